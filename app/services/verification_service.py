import logging

from sqlalchemy.orm import Session

from app.config import Settings
from app.models.user import User
from app.models.verification_token import VerificationToken
from app.utils.audit import RequestContext, log_action
from app.utils.duration import calculate_expiry, ensure_utc, utcnow
from app.utils.email import EmailSender
from app.utils.exceptions import BadRequestException
from app.utils.security import generate_token

logger = logging.getLogger(__name__)

RESEND_MESSAGE = "If an account exists with this email, you will receive verification instructions."


class VerificationService:

    def __init__(self, settings: Settings, email_sender: EmailSender):
        self.settings = settings
        self.email_sender = email_sender

    # ─── Create & Send ────────────────────────────────────────────────────────
    def create_and_send(self, db: Session, user: User) -> dict:
        """
        Replace any pending verification token for ``user`` and email a new one.
        The raw token is only part of the result when dev token exposure is on.
        """
        if user.emailVerifiedAt:
            raise BadRequestException("Email is already verified")

        db.query(VerificationToken).filter(VerificationToken.userId == user.id).delete(
            synchronize_session=False
        )
        token = generate_token()
        db.add(VerificationToken(
            userId=user.id,
            token=token,
            expiresAt=calculate_expiry(self.settings.EMAIL_VERIFICATION_EXPIRY),
        ))
        db.commit()

        sent = self.email_sender.send(user.email, "verify_email", {
            "firstName": user.firstName,
            "url":       self.email_sender.verification_url(token),
        })
        if not sent:
            logger.warning(f"Verification email to user {user.id} was not delivered")
        logger.info(f"Verification token created for user {user.id}")

        result = {"message": "Verification email sent. Please check your inbox."}
        if self.settings.expose_dev_tokens:
            result["token"] = token
        return result

    # ─── Verify ───────────────────────────────────────────────────────────────
    def verify_email(self, db: Session, token: str, context: RequestContext | None = None) -> dict:
        record = db.query(VerificationToken).filter(VerificationToken.token == token).first()
        if not record:
            raise BadRequestException("Invalid verification token")

        if utcnow() > ensure_utc(record.expiresAt):
            db.delete(record)
            db.commit()
            raise BadRequestException("Verification token has expired")

        user = record.user
        if user.emailVerifiedAt:
            db.delete(record)
            db.commit()
            raise BadRequestException("Email is already verified")

        user.emailVerifiedAt = utcnow()
        db.delete(record)
        log_action(db, user.id, "EMAIL_VERIFIED", f"{user.email} verified", context)
        db.commit()
        logger.info(f"Email verified for user {user.id}")

        return {
            "id":              user.id,
            "email":           user.email,
            "emailVerifiedAt": ensure_utc(user.emailVerifiedAt).isoformat(),
        }

    # ─── Resend ───────────────────────────────────────────────────────────────
    def resend_verification(self, db: Session, email: str) -> dict:
        """
        Same answer whether or not the account exists or is already verified.
        """
        user = db.query(User).filter(User.email == email).first()
        if user and not user.emailVerifiedAt:
            self.create_and_send(db, user)
        elif not user:
            logger.info("Verification resend requested for unknown email")
        return {"message": RESEND_MESSAGE}
