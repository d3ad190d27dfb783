import logging

from sqlalchemy.orm import Session

from app.config import Settings
from app.models.password_reset_token import PasswordResetToken
from app.models.user import User
from app.services.token_store import RefreshTokenStore, refresh_token_store
from app.utils.audit import RequestContext, log_action
from app.utils.duration import calculate_expiry, ensure_utc, utcnow
from app.utils.email import EmailSender
from app.utils.exceptions import BadRequestException, UnauthorizedException
from app.utils.security import generate_token, hash_password, verify_password

logger = logging.getLogger(__name__)

FORGOT_MESSAGE = "If an account exists with this email, you will receive password reset instructions."


class PasswordService:

    def __init__(
        self,
        settings: Settings,
        email_sender: EmailSender,
        refresh_tokens: RefreshTokenStore = refresh_token_store,
    ):
        self.settings = settings
        self.email_sender = email_sender
        self.refresh_tokens = refresh_tokens

    # ─── Forgot Password ──────────────────────────────────────────────────────
    def forgot_password(self, db: Session, email: str) -> dict:
        """
        Always returns the same payload, whether the email exists or not.
        A reset link is only created and sent if it does.
        """
        user = db.query(User).filter(User.email == email).first()
        if not user:
            logger.info("Password reset requested for unknown email")
            return {"message": FORGOT_MESSAGE}

        db.query(PasswordResetToken).filter(PasswordResetToken.userId == user.id).delete(
            synchronize_session=False
        )
        token = generate_token()
        db.add(PasswordResetToken(
            userId=user.id,
            token=token,
            expiresAt=calculate_expiry(self.settings.PASSWORD_RESET_EXPIRY),
        ))
        db.commit()

        sent = self.email_sender.send(user.email, "password_reset", {
            "firstName": user.firstName,
            "url":       self.email_sender.reset_url(token),
        })
        if not sent:
            logger.warning(f"Password reset email to user {user.id} was not delivered")
        logger.info(f"Password reset token created for user {user.id}")
        return {"message": FORGOT_MESSAGE}

    # ─── Check Reset Link ─────────────────────────────────────────────────────
    def check_reset_token(self, db: Session, token: str) -> dict:
        """Validate an emailed reset token without consuming it."""
        record = self._live_reset_token(db, token)
        return {"valid": True, "expiresAt": ensure_utc(record.expiresAt).isoformat()}

    # ─── Reset Password ───────────────────────────────────────────────────────
    def reset_password(self, db: Session, token: str, new_password: str,
                       context: RequestContext | None = None) -> None:
        record = self._live_reset_token(db, token)
        user = record.user
        user.password = hash_password(new_password)
        db.delete(record)
        revoked = self.refresh_tokens.revoke_all_for_user(db, user.id)
        log_action(db, user.id, "PASSWORD_RESET", f"Password reset, {revoked} session(s) revoked", context)
        db.commit()

        self._notify_changed(user)
        logger.info(f"Password reset for user {user.id}")

    # ─── Change Password ──────────────────────────────────────────────────────
    def change_password(self, db: Session, user: User, current_password: str, new_password: str,
                        context: RequestContext | None = None) -> None:
        if not user.password:
            raise BadRequestException("This account uses OAuth sign-in. Set a password first.")

        if not verify_password(current_password, user.password):
            raise UnauthorizedException("Current password is incorrect")

        user.password = hash_password(new_password)
        revoked = self.refresh_tokens.revoke_all_for_user(db, user.id)
        log_action(db, user.id, "PASSWORD_CHANGE", f"Password changed, {revoked} session(s) revoked", context)
        db.commit()

        self._notify_changed(user)
        logger.info(f"Password changed for user {user.id}")

    # ─── Set Password (OAuth accounts) ────────────────────────────────────────
    def set_password(self, db: Session, user: User, new_password: str,
                     context: RequestContext | None = None) -> None:
        if user.password:
            raise BadRequestException("Password already set. Use change password instead.")

        user.password = hash_password(new_password)
        log_action(db, user.id, "PASSWORD_SET", "Password set for OAuth account", context)
        db.commit()
        logger.info(f"Password set for user {user.id}")

    def _live_reset_token(self, db: Session, token: str) -> PasswordResetToken:
        record = db.query(PasswordResetToken).filter(PasswordResetToken.token == token).first()
        if not record:
            raise BadRequestException("Invalid or expired reset token")

        if utcnow() > ensure_utc(record.expiresAt):
            db.delete(record)
            db.commit()
            raise BadRequestException("Reset token has expired")
        return record

    def _notify_changed(self, user: User) -> None:
        if not self.email_sender.send(user.email, "password_changed", {"firstName": user.firstName}):
            logger.warning(f"Password-changed email to user {user.id} was not delivered")
