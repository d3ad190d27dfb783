from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import (
    get_current_user, get_logout_subject, get_request_context,
    get_bearer_token, get_session_service, get_verification_service,
)
from app.models.user import User
from app.schemas.auth import (
    LoginRequest, RefreshTokenRequest, LogoutRequest,
    RegisterRequest, ResendVerificationRequest, VerifyEmailRequest,
)
from app.schemas.common import SuccessResponse, success_response
from app.services.session_service import SessionService, serialize_user
from app.services.verification_service import VerificationService
from app.utils.audit import RequestContext

router = APIRouter(prefix="/auth")


# ─── POST /auth/register ──────────────────────────────────────────────────────
@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account and start a session",
    response_model=SuccessResponse,
)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    context: RequestContext = Depends(get_request_context),
):
    """
    Register a new user.
    - Email must be unique (case-insensitive).
    - Password minimum 8 characters, 1 uppercase, 1 number.
    - A verification email is sent; the account is usable before verifying.
    """
    result = sessions.register(db, data, context)
    return success_response("Registration successful", result)


# ─── POST /auth/login ─────────────────────────────────────────────────────────
@router.post(
    "/login",
    status_code=status.HTTP_200_OK,
    summary="Login and receive access + refresh tokens",
    response_model=SuccessResponse,
)
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    context: RequestContext = Depends(get_request_context),
):
    result = sessions.login(db, data, context)
    return success_response("Login successful", result)


# ─── POST /auth/refresh ───────────────────────────────────────────────────────
@router.post(
    "/refresh",
    status_code=status.HTTP_200_OK,
    summary="Rotate a refresh token into a new token pair",
    response_model=SuccessResponse,
)
def refresh_token(
    data: RefreshTokenRequest,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    context: RequestContext = Depends(get_request_context),
):
    """
    The presented refresh token is revoked and replaced; presenting it a
    second time fails with 401.
    """
    result = sessions.refresh(db, data.refreshToken, context)
    return success_response("Token refreshed", result)


# ─── POST /auth/logout ────────────────────────────────────────────────────────
@router.post(
    "/logout",
    status_code=status.HTTP_200_OK,
    summary="Blacklist the access token and revoke the refresh token",
    response_model=SuccessResponse,
)
def logout(
    data: LogoutRequest | None = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_logout_subject),
    sessions: SessionService = Depends(get_session_service),
    context: RequestContext = Depends(get_request_context),
    token: str = Depends(get_bearer_token),
):
    refresh = data.refreshToken if data else None
    sessions.logout(db, token, refresh, user_id, context)
    return success_response("Logged out successfully", None)


# ─── GET /auth/me ─────────────────────────────────────────────────────────────
@router.get(
    "/me",
    status_code=status.HTTP_200_OK,
    summary="Get current authenticated user profile",
    response_model=SuccessResponse,
)
def get_me(current_user: User = Depends(get_current_user)):
    return success_response("User profile retrieved", serialize_user(current_user))


# ─── POST /auth/send-verification ─────────────────────────────────────────────
@router.post(
    "/send-verification",
    status_code=status.HTTP_200_OK,
    summary="Send a new email verification link to the current user",
    response_model=SuccessResponse,
)
def send_verification(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    verification: VerificationService = Depends(get_verification_service),
):
    result = verification.create_and_send(db, current_user)
    return success_response(result.pop("message"), result or None)


# ─── GET|POST /auth/verify-email ──────────────────────────────────────────────
@router.get(
    "/verify-email",
    status_code=status.HTTP_200_OK,
    summary="Verify email from the emailed link",
    response_model=SuccessResponse,
)
def verify_email_link(
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
    context: RequestContext = Depends(get_request_context),
):
    result = verification.verify_email(db, token, context)
    return success_response("Email verified successfully", result)


@router.post(
    "/verify-email",
    status_code=status.HTTP_200_OK,
    summary="Verify email with a token",
    response_model=SuccessResponse,
)
def verify_email(
    data: VerifyEmailRequest,
    db: Session = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
    context: RequestContext = Depends(get_request_context),
):
    result = verification.verify_email(db, data.token, context)
    return success_response("Email verified successfully", result)


# ─── POST /auth/resend-verification ───────────────────────────────────────────
@router.post(
    "/resend-verification",
    status_code=status.HTTP_200_OK,
    summary="Resend the verification email",
    response_model=SuccessResponse,
)
def resend_verification(
    data: ResendVerificationRequest,
    db: Session = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
):
    """
    Always returns 200 with the same message, whether or not the email is
    registered or already verified.
    """
    result = verification.resend_verification(db, data.email)
    return success_response(result["message"], None)


# ─── GET /auth/sessions ───────────────────────────────────────────────────────
@router.get(
    "/sessions",
    status_code=status.HTTP_200_OK,
    summary="List the current user's active refresh sessions",
    response_model=SuccessResponse,
)
def list_sessions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
):
    return success_response("Active sessions retrieved", sessions.list_sessions(db, current_user))


# ─── DELETE /auth/sessions/{session_id} ───────────────────────────────────────
@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_200_OK,
    summary="Revoke one of the current user's refresh sessions",
    response_model=SuccessResponse,
)
def revoke_session(
    session_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
    context: RequestContext = Depends(get_request_context),
):
    """
    The access token of that session stays valid until it expires; only the
    refresh grant is revoked. Another user's session id answers 404.
    """
    sessions.revoke_session(db, current_user, session_id, context)
    return success_response("Session revoked", None)


# ─── GET /auth/login-history ──────────────────────────────────────────────────
@router.get(
    "/login-history",
    status_code=status.HTTP_200_OK,
    summary="Recent sign-in attempts on the current user's account",
    response_model=SuccessResponse,
)
def login_history(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
):
    return success_response("Login history retrieved", sessions.login_history(db, current_user))
