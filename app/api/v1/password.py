from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_password_service, get_request_context
from app.models.user import User
from app.schemas.common import SuccessResponse, success_response
from app.schemas.password import (
    ChangePasswordRequest, ForgotPasswordRequest,
    ResetPasswordRequest, SetPasswordRequest,
)
from app.services.password_service import PasswordService
from app.utils.audit import RequestContext
from app.utils.exceptions import BadRequestException

router = APIRouter(prefix="/password")


# ─── POST /password/forgot ────────────────────────────────────────────────────
@router.post(
    "/forgot",
    status_code=status.HTTP_200_OK,
    summary="Request a password reset link",
    response_model=SuccessResponse,
)
def forgot_password(
    data: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    passwords: PasswordService = Depends(get_password_service),
):
    """
    Always returns 200 with the same body, even if the email does not exist
    (prevents enumeration).
    """
    result = passwords.forgot_password(db, data.email)
    return success_response(result["message"], None)


# ─── GET /password/reset ──────────────────────────────────────────────────────
@router.get(
    "/reset",
    status_code=status.HTTP_200_OK,
    summary="Check a password reset link",
    response_model=SuccessResponse,
)
def check_reset_link(
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    passwords: PasswordService = Depends(get_password_service),
):
    result = passwords.check_reset_token(db, token)
    return success_response("Reset token is valid", result)


# ─── POST /password/reset ─────────────────────────────────────────────────────
@router.post(
    "/reset",
    status_code=status.HTTP_200_OK,
    summary="Reset password with an emailed token",
    response_model=SuccessResponse,
)
def reset_password(
    data: ResetPasswordRequest,
    token: str | None = Query(None),
    db: Session = Depends(get_db),
    passwords: PasswordService = Depends(get_password_service),
    context: RequestContext = Depends(get_request_context),
):
    """The token may come in the body or as ``?token=`` from the emailed link."""
    reset_token = (token or data.token or "").strip()
    if not reset_token:
        raise BadRequestException("Reset token is required", field="token")
    passwords.reset_password(db, reset_token, data.newPassword, context)
    return success_response("Password reset successfully. Please login with your new password.", None)


# ─── PUT /password/change ─────────────────────────────────────────────────────
@router.put(
    "/change",
    status_code=status.HTTP_200_OK,
    summary="Change password (requires current password, authenticated)",
    response_model=SuccessResponse,
)
def change_password(
    data: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    passwords: PasswordService = Depends(get_password_service),
    context: RequestContext = Depends(get_request_context),
):
    passwords.change_password(db, current_user, data.currentPassword, data.newPassword, context)
    return success_response("Password changed successfully. All refresh tokens have been revoked.", None)


# ─── POST /password/set ───────────────────────────────────────────────────────
@router.post(
    "/set",
    status_code=status.HTTP_200_OK,
    summary="Set a password on an account created through OAuth",
    response_model=SuccessResponse,
)
def set_password(
    data: SetPasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    passwords: PasswordService = Depends(get_password_service),
    context: RequestContext = Depends(get_request_context),
):
    passwords.set_password(db, current_user, data.newPassword, context)
    return success_response("Password set successfully", None)
