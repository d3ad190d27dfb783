from datetime import timedelta

from app.config import settings
from app.maintenance import purge_expired_tokens
from app.models.blacklisted_access_token import BlacklistedAccessToken
from app.models.refresh_token import RefreshToken
from app.utils.duration import utcnow
from tests.support import DatabaseTestCase


class TestPurgeExpiredTokens(DatabaseTestCase):

    def test_purge(self):
        user = self.create_user()
        now = utcnow()
        self.db.add_all([
            RefreshToken(userId=user.id, token="live", expiresAt=now + timedelta(days=1)),
            RefreshToken(userId=user.id, token="revoked-recent", expiresAt=now - timedelta(days=1),
                         revokedAt=now - timedelta(days=2)),
            RefreshToken(userId=user.id, token="ancient", expiresAt=now - timedelta(days=90)),
            BlacklistedAccessToken(userId=user.id, token="gone", expiresAt=now - timedelta(minutes=1)),
            BlacklistedAccessToken(userId=user.id, token="still-live", expiresAt=now + timedelta(minutes=5)),
        ])
        self.db.commit()

        result = purge_expired_tokens(self.db, settings.model_copy(update={"REFRESH_TOKEN_RETENTION_DAYS": 30}))

        self.assertEqual(result, {"refreshTokens": 1, "blacklistedAccessTokens": 1})
        self.assertEqual(sorted(r.token for r in self.db.query(RefreshToken).all()), ["live", "revoked-recent"])
        self.assertEqual([b.token for b in self.db.query(BlacklistedAccessToken).all()], ["still-live"])
