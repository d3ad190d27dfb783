from app.models.audit_log import AuditLog
from app.models.oauth_account import OAuthAccount
from app.models.user import User
from app.services.identity_service import IdentityLinkingResolver, IdentityLinkRaceError, placeholder_email
from app.services.oauth_providers import ProviderProfile
from app.utils.exceptions import BadRequestException, NotFoundException
from tests.support import DatabaseTestCase

PROFILE = ProviderProfile(
    provider="google", provider_id="g-123",
    email="carol@example.com", first_name="Carol", last_name="Danvers",
)


class StaleLookupResolver(IdentityLinkingResolver):
    """Misses the existing link on its first lookup, like a request that lost a race."""

    def __init__(self):
        self.lookups = 0

    def _find(self, db, provider, provider_id):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return super()._find(db, provider, provider_id)


class TestResolve(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.resolver = IdentityLinkingResolver()

    def test_new_identity_creates_user_and_link(self):
        user = self.resolver.resolve(self.db, PROFILE)

        self.assertEqual(user.email, "carol@example.com")
        self.assertEqual(user.firstName, "Carol")
        self.assertIsNone(user.password)
        account = self.db.query(OAuthAccount).one()
        self.assertEqual((account.provider, account.providerId, account.userId), ("google", "g-123", user.id))

    def test_resolve_is_idempotent(self):
        first = self.resolver.resolve(self.db, PROFILE)
        second = self.resolver.resolve(self.db, PROFILE)

        self.assertEqual(first.id, second.id)
        self.assertEqual(self.db.query(OAuthAccount).count(), 1)
        self.assertEqual(self.db.query(User).count(), 1)

    def test_existing_email_account_is_linked_not_duplicated(self):
        existing = self.create_user(email="carol@example.com")
        user = self.resolver.resolve(self.db, PROFILE)

        self.assertEqual(user.id, existing.id)
        self.assertIsNotNone(user.password)
        self.assertEqual(self.db.query(User).count(), 1)
        self.assertEqual(self.db.query(OAuthAccount).filter(OAuthAccount.userId == existing.id).count(), 1)

    def test_provider_email_is_matched_case_insensitively(self):
        existing = self.create_user(email="carol@example.com")
        profile = ProviderProfile(provider="github", provider_id="77", email="Carol@Example.com")
        self.assertEqual(self.resolver.resolve(self.db, profile).id, existing.id)

    def test_profile_without_email_gets_placeholder(self):
        profile = ProviderProfile(provider="github", provider_id="99")
        user = self.resolver.resolve(self.db, profile)

        self.assertEqual(user.email, placeholder_email("github", "99"))
        self.assertEqual((user.firstName, user.lastName), ("Github", "User"))
        self.assertEqual(self.resolver.resolve(self.db, profile).id, user.id)

    def test_same_user_can_link_several_providers(self):
        google_user = self.resolver.resolve(self.db, PROFILE)
        github = ProviderProfile(provider="github", provider_id="gh-1", email="carol@example.com")
        github_user = self.resolver.resolve(self.db, github)

        self.assertEqual(google_user.id, github_user.id)
        self.assertEqual(self.db.query(OAuthAccount).count(), 2)

    def test_link_is_audited(self):
        self.resolver.resolve(self.db, PROFILE)
        self.assertEqual(self.db.query(AuditLog).filter(AuditLog.action == "OAUTH_LINK").count(), 1)


class TestConcurrentResolve(DatabaseTestCase):

    def test_losing_insert_raises_race_error(self):
        IdentityLinkingResolver().resolve(self.db, PROFILE)

        with self.assertRaises(IdentityLinkRaceError):
            StaleLookupResolver().resolve(self.db, PROFILE)
        self.assertEqual(self.db.query(OAuthAccount).count(), 1)

    def test_retry_resolves_to_the_winner(self):
        winner = IdentityLinkingResolver().resolve(self.db, PROFILE)

        other_db = self.SessionFactory()
        try:
            resolver = StaleLookupResolver()
            user = resolver.resolve_with_retry(other_db, PROFILE)
            self.assertEqual(user.id, winner.id)
            self.assertEqual(resolver.lookups, 2)
        finally:
            other_db.close()

        self.assertEqual(self.db.query(OAuthAccount).count(), 1)
        self.assertEqual(self.db.query(User).count(), 1)


class TestAccounts(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.resolver = IdentityLinkingResolver()

    def test_list_accounts(self):
        user = self.resolver.resolve(self.db, PROFILE)
        self.resolver.resolve(self.db, ProviderProfile(provider="github", provider_id="1", email=user.email))

        accounts = self.resolver.list_accounts(self.db, user)
        self.assertEqual([a["provider"] for a in accounts], ["github", "google"])

    def test_unlink_with_password_set(self):
        user = self.create_user(email="carol@example.com")
        self.resolver.resolve(self.db, PROFILE)

        self.assertEqual(self.resolver.unlink(self.db, user, "google"), 1)
        self.assertEqual(self.db.query(OAuthAccount).count(), 0)

    def test_unlink_missing_link(self):
        user = self.create_user()
        with self.assertRaises(NotFoundException):
            self.resolver.unlink(self.db, user, "google")

    def test_last_sign_in_method_cannot_be_removed(self):
        user = self.resolver.resolve(self.db, PROFILE)
        with self.assertRaises(BadRequestException):
            self.resolver.unlink(self.db, user, "google")
        self.assertEqual(self.db.query(OAuthAccount).count(), 1)

    def test_password_less_user_may_drop_one_of_two_links(self):
        user = self.resolver.resolve(self.db, PROFILE)
        self.resolver.resolve(self.db, ProviderProfile(provider="github", provider_id="1", email=user.email))

        self.resolver.unlink(self.db, user, "google")
        self.assertEqual([a["provider"] for a in self.resolver.list_accounts(self.db, user)], ["github"])
