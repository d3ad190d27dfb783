from pydantic import BaseModel, EmailStr, field_validator
import re


# ─── Helpers ──────────────────────────────────────────────────────────────────
def validate_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", v):
        raise ValueError("Password must contain at least one digit")
    return v


def normalize_email(v: str) -> str:
    return v.strip().lower()


# ─── Request Schemas ──────────────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    email:     EmailStr
    password:  str
    firstName: str
    lastName:  str

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return validate_password_strength(v)

    @field_validator("firstName", "lastName")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip()


class LoginRequest(BaseModel):
    email:    EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_present(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class RefreshTokenRequest(BaseModel):
    refreshToken: str

    @field_validator("refreshToken")
    @classmethod
    def token_present(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Refresh token is required")
        return v.strip()


class LogoutRequest(BaseModel):
    refreshToken: str | None = None


class VerifyEmailRequest(BaseModel):
    token: str

    @field_validator("token")
    @classmethod
    def token_present(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Verification token is required")
        return v.strip()


class ResendVerificationRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return normalize_email(v)


# ─── Response Schemas ─────────────────────────────────────────────────────────
class UserOut(BaseModel):
    id:              int
    email:           str
    firstName:       str
    lastName:        str
    emailVerified:   bool
    hasPassword:     bool
    createdAt:       str | None = None


class TokenPair(BaseModel):
    accessToken:  str
    refreshToken: str
    tokenType:    str = "Bearer"
    expiresIn:    int          # seconds


class SessionResponse(TokenPair):
    user: UserOut
