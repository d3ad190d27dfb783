"""
Housekeeping for the token tables.

Runs once at application startup and can be scheduled on its own:

    python -m app.maintenance
"""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from app.config import Settings, settings
from app.database import SessionLocal
from app.services.token_store import (
    AccessTokenBlacklist, RefreshTokenStore,
    access_token_blacklist, refresh_token_store,
)

logger = logging.getLogger(__name__)


def purge_expired_tokens(
    db: Session,
    config: Settings = settings,
    refresh_tokens: RefreshTokenStore = refresh_token_store,
    blacklist: AccessTokenBlacklist = access_token_blacklist,
) -> dict:
    """
    Delete blacklist entries past their expiry and refresh grants that expired
    more than REFRESH_TOKEN_RETENTION_DAYS ago. Revoked but still-retained
    grants stay, so replays of them remain detectable.
    """
    retention = timedelta(days=config.REFRESH_TOKEN_RETENTION_DAYS)
    refresh_deleted = refresh_tokens.purge_expired(db, retention)
    blacklist_deleted = blacklist.purge_expired(db)
    db.commit()
    logger.info(
        f"Token purge: {refresh_deleted} refresh grant(s), "
        f"{blacklist_deleted} blacklist entr{'y' if blacklist_deleted == 1 else 'ies'} removed"
    )
    return {"refreshTokens": refresh_deleted, "blacklistedAccessTokens": blacklist_deleted}


def run() -> dict:
    db = SessionLocal()
    try:
        return purge_expired_tokens(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    run()
