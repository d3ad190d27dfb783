from datetime import timedelta

from app.config import settings
from app.models.verification_token import VerificationToken
from app.services.verification_service import RESEND_MESSAGE, VerificationService
from app.utils.duration import utcnow
from app.utils.exceptions import BadRequestException
from tests.support import ServiceTestCase


class TestVerification(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.user = self.create_user()

    def test_create_and_verify(self):
        result = self.verification.create_and_send(self.db, self.user)
        self.assertNotIn("token", result)

        token = self.sender.last_token("verify_email")
        verified = self.verification.verify_email(self.db, token)

        self.assertEqual(verified["id"], self.user.id)
        self.assertIsNotNone(self.user.emailVerifiedAt)
        self.assertEqual(self.db.query(VerificationToken).count(), 0)

    def test_token_cannot_be_reused(self):
        self.verification.create_and_send(self.db, self.user)
        token = self.sender.last_token("verify_email")
        self.verification.verify_email(self.db, token)

        with self.assertRaises(BadRequestException):
            self.verification.verify_email(self.db, token)

    def test_already_verified_user_gets_no_new_token(self):
        self.user.emailVerifiedAt = utcnow()
        self.db.commit()
        with self.assertRaises(BadRequestException):
            self.verification.create_and_send(self.db, self.user)

    def test_expired_token(self):
        self.verification.create_and_send(self.db, self.user)
        token = self.sender.last_token("verify_email")
        record = self.db.query(VerificationToken).one()
        record.expiresAt = utcnow() - timedelta(minutes=1)
        self.db.commit()

        with self.assertRaises(BadRequestException):
            self.verification.verify_email(self.db, token)
        self.assertEqual(self.db.query(VerificationToken).count(), 0)
        self.assertIsNone(self.user.emailVerifiedAt)

    def test_resend_answers_the_same_either_way(self):
        known = self.verification.resend_verification(self.db, "alice@example.com")
        unknown = self.verification.resend_verification(self.db, "nobody@example.com")

        self.assertEqual(known, unknown)
        self.assertEqual(known, {"message": RESEND_MESSAGE})
        self.assertEqual(len([m for m in self.sender.outbox if m["kind"] == "verify_email"]), 1)

    def test_dev_token_exposure_needs_development_env(self):
        exposed = VerificationService(
            settings.model_copy(update={"EXPOSE_DEV_TOKENS": True, "APP_ENV": "development"}), self.sender,
        )
        self.assertIn("token", exposed.create_and_send(self.db, self.user))

        hidden = VerificationService(
            settings.model_copy(update={"EXPOSE_DEV_TOKENS": True, "APP_ENV": "production"}), self.sender,
        )
        self.assertNotIn("token", hidden.create_and_send(self.db, self.user))
