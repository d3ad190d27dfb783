import secrets

from passlib.context import CryptContext

from app.config import settings

# ─── Password Hashing ─────────────────────────────────────────────────────────
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password using bcrypt."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a plain-text password against a bcrypt hash. No hash never verifies."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unrecognised or corrupt hash in the users table
        return False


def dummy_verify() -> None:
    """Spend the same time as a real verify when there is no hash to check."""
    pwd_context.dummy_verify()


# ─── One-time Tokens ──────────────────────────────────────────────────────────
def generate_token(nbytes: int = 32) -> str:
    """Random hex token for password-reset and email-verification links."""
    return secrets.token_hex(nbytes)
