from datetime import timedelta

from app.models.blacklisted_access_token import BlacklistedAccessToken
from app.models.refresh_token import RefreshToken
from app.services.token_store import AccessTokenBlacklist, RefreshTokenStore
from app.utils.audit import RequestContext
from app.utils.duration import utcnow
from app.utils.tokens import REFRESH, TokenIssuer
from tests.support import DatabaseTestCase, make_signing_context


class TestRefreshTokenStore(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.store = RefreshTokenStore()
        self.issuer = TokenIssuer(make_signing_context())
        self.user = self.create_user()

    def _add(self, user_id=None):
        issued = self.issuer.issue(REFRESH, {"sub": user_id or self.user.id})
        record = self.store.add(self.db, user_id or self.user.id, issued,
                                RequestContext(user_agent="pytest", ip_address="127.0.0.1"))
        self.db.commit()
        return record

    def test_add_records_request_metadata(self):
        record = self._add()
        stored = self.store.get(self.db, record.token)
        self.assertEqual(stored.userAgent, "pytest")
        self.assertEqual(stored.ipAddress, "127.0.0.1")
        self.assertIsNone(stored.revokedAt)
        self.assertEqual([r.id for r in self.store.list_usable(self.db, self.user.id)], [stored.id])

    def test_revoke_if_active_only_succeeds_once(self):
        record = self._add()
        self.assertTrue(self.store.revoke_if_active(self.db, record.id))
        self.db.commit()
        self.assertFalse(self.store.revoke_if_active(self.db, record.id))
        self.db.commit()

        self.db.expire_all()
        stored = self.store.get(self.db, record.token)
        self.assertIsNotNone(stored.revokedAt)
        self.assertEqual(self.store.list_usable(self.db, self.user.id), [])

    def test_revoke_for_user_ignores_other_users_tokens(self):
        other = self.create_user(email="bob@example.com")
        record = self._add(user_id=other.id)

        self.assertEqual(self.store.revoke_for_user(self.db, record.token, self.user.id), 0)
        self.assertEqual(self.store.revoke_for_user(self.db, record.token, other.id), 1)
        self.assertEqual(self.store.revoke_for_user(self.db, record.token, other.id), 0)
        self.db.commit()

    def test_revoke_by_id_is_scoped_to_owner(self):
        other = self.create_user(email="bob@example.com")
        mine = self._add()
        theirs = self._add(user_id=other.id)

        self.assertEqual(self.store.revoke_by_id_for_user(self.db, theirs.id, self.user.id), 0)
        self.assertEqual(self.store.revoke_by_id_for_user(self.db, mine.id, self.user.id), 1)
        self.assertEqual(self.store.revoke_by_id_for_user(self.db, mine.id, self.user.id), 0)
        self.db.commit()

        self.assertEqual(self.store.list_usable(self.db, self.user.id), [])
        self.assertEqual([r.id for r in self.store.list_usable(self.db, other.id)], [theirs.id])

    def test_list_usable_is_newest_first(self):
        first = self._add()
        second = self._add()
        self.assertEqual([r.id for r in self.store.list_usable(self.db, self.user.id)], [second.id, first.id])

    def test_revoke_all_for_user_tombstones_rows(self):
        self._add()
        self._add()
        self.assertEqual(len(self.store.list_usable(self.db, self.user.id)), 2)

        self.assertEqual(self.store.revoke_all_for_user(self.db, self.user.id), 2)
        self.db.commit()

        self.assertEqual(len(self.store.list_usable(self.db, self.user.id)), 0)
        self.assertEqual(self.db.query(RefreshToken).filter(RefreshToken.userId == self.user.id).count(), 2)

    def test_expired_record_is_not_usable(self):
        record = self._add()
        record.expiresAt = utcnow() - timedelta(seconds=1)
        self.db.commit()
        self.assertEqual(len(self.store.list_usable(self.db, self.user.id)), 0)

    def test_purge_keeps_rows_inside_retention(self):
        recent = self._add()
        old = self._add()
        recent.expiresAt = utcnow() - timedelta(days=1)
        old.expiresAt = utcnow() - timedelta(days=40)
        self.db.commit()

        self.assertEqual(self.store.purge_expired(self.db, timedelta(days=30)), 1)
        self.db.commit()

        remaining = {r.id for r in self.db.query(RefreshToken).all()}
        self.assertEqual(remaining, {recent.id})


class TestAccessTokenBlacklist(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.blacklist = AccessTokenBlacklist()
        self.user = self.create_user()

    def test_add_is_idempotent(self):
        expires = utcnow() + timedelta(minutes=10)
        self.assertTrue(self.blacklist.add(self.db, "token-a", self.user.id, expires))
        self.db.commit()
        self.assertFalse(self.blacklist.add(self.db, "token-a", self.user.id, expires))
        self.db.commit()

        self.assertTrue(self.blacklist.contains(self.db, "token-a"))
        self.assertFalse(self.blacklist.contains(self.db, "token-b"))
        self.assertEqual(self.db.query(BlacklistedAccessToken).count(), 1)

    def test_expired_entry_is_removed_on_lookup(self):
        self.blacklist.add(self.db, "token-a", self.user.id, utcnow() - timedelta(seconds=1))
        self.db.commit()

        self.assertFalse(self.blacklist.contains(self.db, "token-a"))
        self.assertEqual(self.db.query(BlacklistedAccessToken).count(), 0)

    def test_purge_expired(self):
        self.blacklist.add(self.db, "old", self.user.id, utcnow() - timedelta(minutes=1))
        self.blacklist.add(self.db, "live", self.user.id, utcnow() + timedelta(minutes=10))
        self.db.commit()

        self.assertEqual(self.blacklist.purge_expired(self.db), 1)
        self.db.commit()
        self.assertEqual([e.token for e in self.db.query(BlacklistedAccessToken).all()], ["live"])
