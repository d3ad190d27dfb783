import logging

from app.config import Settings

logger = logging.getLogger(__name__)

# template kind → subject line
TEMPLATES = {
    "verify_email":     "Verify your email address",
    "password_reset":   "Reset your password",
    "password_changed": "Your password was changed",
}


class EmailSender:
    """
    SMTP is not wired up: messages are written to the log.
    Swap ``deliver`` for a real provider (SendGrid / Resend / SMTP) when ready.

    ``send`` never raises: callers treat email as fire-and-forget and only look
    at the boolean to decide what to log.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: str, template_kind: str, params: dict) -> bool:
        if not self.settings.EMAIL_ENABLED:
            logger.info(f"[EMAIL] disabled, skipping '{template_kind}' to {to}")
            return False
        subject = TEMPLATES.get(template_kind)
        if subject is None:
            logger.error(f"[EMAIL] unknown template '{template_kind}'")
            return False
        try:
            return self.deliver(to, subject, template_kind, params)
        except Exception as e:
            logger.error(f"[EMAIL] delivery of '{template_kind}' to {to} failed: {e}")
            return False

    def deliver(self, to: str, subject: str, template_kind: str, params: dict) -> bool:
        logger.info("=" * 60)
        logger.info(f"[EMAIL]  From    : {self.settings.EMAIL_FROM}")
        logger.info(f"[EMAIL]  To      : {to}")
        logger.info(f"[EMAIL]  Subject : {subject}")
        if "url" in params:
            logger.info(f"[EMAIL]  Link    : {params['url']}")
        logger.info("=" * 60)
        return True

    # ─── Helpers ──────────────────────────────────────────────────────────────
    def verification_url(self, token: str) -> str:
        return f"{self.settings.APP_URL}/api/v1/auth/verify-email?token={token}"

    def reset_url(self, token: str) -> str:
        return f"{self.settings.APP_URL}/api/v1/password/reset?token={token}"
