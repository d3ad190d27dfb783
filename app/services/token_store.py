"""
Durable refresh-token grants and the access-token blacklist.

Apart from the lazy blacklist cleanup nothing here commits: callers own the
transaction, so rotation (revoke the presented grant, insert its successor)
lands as one unit of work.
"""
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.models.blacklisted_access_token import BlacklistedAccessToken
from app.models.refresh_token import RefreshToken
from app.utils.audit import RequestContext
from app.utils.duration import ensure_utc, utcnow
from app.utils.tokens import IssuedToken


class RefreshTokenStore:

    # ─── Create ───────────────────────────────────────────────────────────────
    def add(self, db: Session, user_id: int, issued: IssuedToken,
            context: RequestContext | None = None) -> RefreshToken:
        context = context or RequestContext()
        record = RefreshToken(
            userId=user_id,
            token=issued.token,
            userAgent=context.user_agent[:500] if context.user_agent else None,
            ipAddress=context.ip_address,
            expiresAt=issued.expires_at,
            revokedAt=None,
        )
        db.add(record)
        return record

    # ─── Read ─────────────────────────────────────────────────────────────────
    def get(self, db: Session, token: str) -> RefreshToken | None:
        return db.query(RefreshToken).filter(RefreshToken.token == token).first()

    def list_usable(self, db: Session, user_id: int, now: datetime | None = None) -> list[RefreshToken]:
        """Unrevoked, unexpired grants of ``user_id``, newest first."""
        return db.query(RefreshToken).filter(
            RefreshToken.userId == user_id,
            RefreshToken.revokedAt.is_(None),
            RefreshToken.expiresAt > (now or utcnow()),
        ).order_by(RefreshToken.createdAt.desc(), RefreshToken.id.desc()).all()

    # ─── Revoke ───────────────────────────────────────────────────────────────
    def revoke_if_active(self, db: Session, record_id: int, now: datetime | None = None) -> bool:
        """
        Compare-and-swap: set revokedAt only if it is still NULL.
        Returns False when another request got there first.
        """
        updated = db.query(RefreshToken).filter(
            RefreshToken.id == record_id,
            RefreshToken.revokedAt.is_(None),
        ).update({"revokedAt": now or utcnow()}, synchronize_session=False)
        return updated == 1

    def revoke_for_user(self, db: Session, token: str, user_id: int, now: datetime | None = None) -> int:
        """Revoke ``token`` only if it belongs to ``user_id``."""
        return db.query(RefreshToken).filter(
            RefreshToken.token == token,
            RefreshToken.userId == user_id,
            RefreshToken.revokedAt.is_(None),
        ).update({"revokedAt": now or utcnow()}, synchronize_session=False)

    def revoke_by_id_for_user(self, db: Session, record_id: int, user_id: int,
                              now: datetime | None = None) -> int:
        """Revoke grant ``record_id`` only if it belongs to ``user_id`` and is still active."""
        return db.query(RefreshToken).filter(
            RefreshToken.id == record_id,
            RefreshToken.userId == user_id,
            RefreshToken.revokedAt.is_(None),
        ).update({"revokedAt": now or utcnow()}, synchronize_session=False)

    def revoke_all_for_user(self, db: Session, user_id: int, now: datetime | None = None) -> int:
        return db.query(RefreshToken).filter(
            RefreshToken.userId == user_id,
            RefreshToken.revokedAt.is_(None),
        ).update({"revokedAt": now or utcnow()}, synchronize_session=False)

    # ─── Retention ────────────────────────────────────────────────────────────
    def purge_expired(self, db: Session, retention: timedelta, now: datetime | None = None) -> int:
        """Hard-delete rows that expired more than ``retention`` ago."""
        cutoff = (now or utcnow()) - retention
        return db.query(RefreshToken).filter(
            RefreshToken.expiresAt < cutoff,
        ).delete(synchronize_session=False)


class AccessTokenBlacklist:

    def add(self, db: Session, token: str, user_id: int, expires_at: datetime) -> bool:
        """Returns False when the token is already blacklisted."""
        if db.query(BlacklistedAccessToken.id).filter(BlacklistedAccessToken.token == token).first():
            return False
        db.add(BlacklistedAccessToken(userId=user_id, token=token, expiresAt=expires_at))
        return True

    def contains(self, db: Session, token: str, now: datetime | None = None) -> bool:
        """
        True while a live blacklist entry exists. An entry found past its
        expiry is deleted on the spot (the token fails verification anyway).
        """
        now = now or utcnow()
        entry = db.query(BlacklistedAccessToken).filter(BlacklistedAccessToken.token == token).first()
        if entry is None:
            return False
        if ensure_utc(entry.expiresAt) <= now:
            db.delete(entry)
            db.commit()
            return False
        return True

    def purge_expired(self, db: Session, now: datetime | None = None) -> int:
        return db.query(BlacklistedAccessToken).filter(
            BlacklistedAccessToken.expiresAt <= (now or utcnow()),
        ).delete(synchronize_session=False)


refresh_token_store = RefreshTokenStore()
access_token_blacklist = AccessTokenBlacklist()
