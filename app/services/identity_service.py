"""
Identity linking: map a (provider, providerId) pair onto exactly one local user.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.oauth_account import OAuthAccount
from app.models.user import User
from app.services.oauth_providers import ProviderProfile
from app.utils.audit import RequestContext, log_action
from app.utils.exceptions import BadRequestException, NotFoundException

logger = logging.getLogger(__name__)


class IdentityLinkRaceError(Exception):
    """A concurrent callback created the same (provider, providerId) link first."""


def placeholder_email(provider: str, provider_id: str) -> str:
    return f"{provider_id}@{provider}.oauth"


def serialize_account(a: OAuthAccount) -> dict:
    return {
        "provider":   a.provider,
        "providerId": a.providerId,
        "linkedAt":   a.createdAt.isoformat() if a.createdAt else None,
    }


class IdentityLinkingResolver:

    # ─── Resolve ──────────────────────────────────────────────────────────────
    def resolve(self, db: Session, profile: ProviderProfile,
                context: RequestContext | None = None) -> User:
        """
        1. known link → its user
        2. user with the profile's email (or the placeholder) → link and return
        3. otherwise create user + link together

        Raises IdentityLinkRaceError if a concurrent request wins the unique
        (provider, providerId) insert; the caller retries, which then takes
        path 1.
        """
        provider, provider_id = profile.provider, str(profile.provider_id)

        account = self._find(db, provider, provider_id)
        if account:
            logger.info(f"OAuth account found for {provider}:{provider_id}")
            return account.user

        email = (profile.email or placeholder_email(provider, provider_id)).strip().lower()
        user = db.query(User).filter(User.email == email).first()

        try:
            if user:
                logger.info(f"Linking {provider}:{provider_id} to existing user {user.id}")
            else:
                user = User(
                    email=email,
                    password=None,
                    firstName=profile.first_name or provider.capitalize(),
                    lastName=profile.last_name or "User",
                )
                db.add(user)
                db.flush()
                logger.info(f"Creating new user for OAuth {provider}:{provider_id}")
            db.add(OAuthAccount(userId=user.id, provider=provider, providerId=provider_id))
            log_action(db, user.id, "OAUTH_LINK", f"Linked {provider} account", context)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Concurrent link for {provider}:{provider_id}: {e.orig}")
            raise IdentityLinkRaceError(f"{provider}:{provider_id}") from e

        db.refresh(user)
        return user

    def resolve_with_retry(self, db: Session, profile: ProviderProfile,
                           context: RequestContext | None = None) -> User:
        try:
            return self.resolve(db, profile, context)
        except IdentityLinkRaceError:
            return self.resolve(db, profile, context)

    # ─── Accounts ─────────────────────────────────────────────────────────────
    def list_accounts(self, db: Session, user: User) -> list[dict]:
        accounts = db.query(OAuthAccount).filter(OAuthAccount.userId == user.id) \
            .order_by(OAuthAccount.provider).all()
        return [serialize_account(a) for a in accounts]

    def unlink(self, db: Session, user: User, provider: str,
               context: RequestContext | None = None) -> int:
        remaining = db.query(OAuthAccount).filter(
            OAuthAccount.userId == user.id,
            OAuthAccount.provider != provider,
        ).count()
        if not user.password and remaining == 0:
            raise BadRequestException("Set a password before removing the last sign-in method")

        deleted = db.query(OAuthAccount).filter(
            OAuthAccount.userId == user.id,
            OAuthAccount.provider == provider,
        ).delete(synchronize_session=False)
        if not deleted:
            raise NotFoundException("OAuth account")
        log_action(db, user.id, "OAUTH_UNLINK", f"Unlinked {provider} account", context)
        db.commit()
        logger.info(f"OAuth account {provider} unlinked from user {user.id}")
        return deleted

    def _find(self, db: Session, provider: str, provider_id: str) -> OAuthAccount | None:
        return db.query(OAuthAccount).filter(
            OAuthAccount.provider == provider,
            OAuthAccount.providerId == provider_id,
        ).first()


identity_resolver = IdentityLinkingResolver()
