"""
Session lifecycle: register / login / refresh / logout.

State lives in the (User, RefreshToken) pair. Every successful entry point
issues exactly one access token and one refresh grant; refresh retires the
presented grant and creates exactly one successor in the same transaction.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog
from app.models.refresh_token import RefreshToken
from app.models.user import User
from app.schemas.auth import LoginRequest, RegisterRequest, SessionResponse, TokenPair, UserOut
from app.services.token_store import (
    AccessTokenBlacklist, RefreshTokenStore,
    access_token_blacklist, refresh_token_store,
)
from app.utils.audit import RequestContext, log_action
from app.utils.duration import ensure_utc, parse_duration, utcnow
from app.utils.exceptions import ConflictException, NotFoundException, UnauthorizedException
from app.utils.security import dummy_verify, hash_password, verify_password
from app.utils.tokens import (
    ACCESS, REFRESH,
    ExpiredTokenError, InvalidTokenError, TokenIssuer, TokenVerifier,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH     = "Refresh token is invalid or revoked"
INVALID_ACCESS      = "Invalid or expired access token"

LOGIN_ACTIONS = ("LOGIN", "LOGIN_FAILED", "OAUTH_LOGIN")
LOGIN_HISTORY_LIMIT = 50


def serialize_user(u: User) -> dict:
    """Public view of a user. The password hash never leaves this module."""
    return UserOut(
        id=u.id,
        email=u.email,
        firstName=u.firstName,
        lastName=u.lastName,
        emailVerified=u.emailVerifiedAt is not None,
        hasPassword=bool(u.password),
        createdAt=u.createdAt.isoformat() if u.createdAt else None,
    ).model_dump()


def serialize_grant(g: RefreshToken) -> dict:
    return {
        "id":        g.id,
        "userAgent": g.userAgent,
        "ipAddress": g.ipAddress,
        "createdAt": g.createdAt.isoformat() if g.createdAt else None,
        "expiresAt": ensure_utc(g.expiresAt).isoformat(),
    }


def serialize_login(e: AuditLog) -> dict:
    return {
        "action":    e.action,
        "success":   e.action != "LOGIN_FAILED",
        "userAgent": e.userAgent,
        "ipAddress": e.ipAddress,
        "createdAt": e.createdAt.isoformat() if e.createdAt else None,
    }


class SessionService:

    def __init__(
        self,
        issuer: TokenIssuer,
        verifier: TokenVerifier,
        refresh_tokens: RefreshTokenStore = refresh_token_store,
        blacklist: AccessTokenBlacklist = access_token_blacklist,
        verification=None,
    ):
        self.issuer = issuer
        self.verifier = verifier
        self.refresh_tokens = refresh_tokens
        self.blacklist = blacklist
        self.verification = verification

    # ─── Issuance ─────────────────────────────────────────────────────────────
    def _issue_pair(self, db: Session, user: User, context: RequestContext | None) -> TokenPair:
        claims = {"sub": str(user.id), "email": user.email}
        access = self.issuer.issue(ACCESS, claims)
        refresh = self.issuer.issue(REFRESH, claims)
        self.refresh_tokens.add(db, user.id, refresh, context)
        return TokenPair(
            accessToken=access.token,
            refreshToken=refresh.token,
            expiresIn=int(parse_duration(self.issuer.expiry[ACCESS]).total_seconds()),
        )

    def start_session(
        self, db: Session, user: User,
        context: RequestContext | None = None, action: str = "LOGIN",
    ) -> dict:
        """Issue and persist a fresh pair for an already-authenticated user, then commit."""
        if user.is_disabled:
            raise UnauthorizedException(INVALID_CREDENTIALS)
        pair = self._issue_pair(db, user, context)
        log_action(db, user.id, action, f"{user.email} signed in", context)
        db.commit()
        return SessionResponse(user=serialize_user(user), **pair.model_dump()).model_dump()

    # ─── Register ─────────────────────────────────────────────────────────────
    def register(self, db: Session, data: RegisterRequest, context: RequestContext | None = None) -> dict:
        if db.query(User).filter(User.email == data.email).first():
            raise ConflictException("Email already registered", field="email")

        user = User(
            email=data.email,
            password=hash_password(data.password),
            firstName=data.firstName,
            lastName=data.lastName,
        )
        db.add(user)
        try:
            db.flush()  # Get user.id without committing
            pair = self._issue_pair(db, user, context)
            log_action(db, user.id, "REGISTER", f"New user registered: {user.email}", context)
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            db.rollback()
            raise ConflictException("Email already registered", field="email")
        db.refresh(user)
        logger.info(f"User {user.id} registered")

        if self.verification is not None:
            try:
                self.verification.create_and_send(db, user)
            except Exception as e:
                db.rollback()
                logger.error(f"Verification email for user {user.id} not sent: {e}")

        return SessionResponse(user=serialize_user(user), **pair.model_dump()).model_dump()

    # ─── Login ────────────────────────────────────────────────────────────────
    def login(self, db: Session, data: LoginRequest, context: RequestContext | None = None) -> dict:
        user = db.query(User).filter(User.email == data.email).first()

        if not user or not user.password:
            dummy_verify()
            self._record_failed_login(db, user, data.email, context)
            raise UnauthorizedException(INVALID_CREDENTIALS)

        if not verify_password(data.password, user.password):
            self._record_failed_login(db, user, data.email, context)
            raise UnauthorizedException(INVALID_CREDENTIALS)

        if user.is_disabled:
            self._record_failed_login(db, user, data.email, context)
            raise UnauthorizedException(INVALID_CREDENTIALS)

        result = self.start_session(db, user, context, action="LOGIN")
        logger.info(f"User {user.id} logged in")
        return result

    def _record_failed_login(self, db: Session, user: User | None, email: str,
                             context: RequestContext | None) -> None:
        logger.warning(f"Failed login for {email}")
        log_action(db, user.id if user else None, "LOGIN_FAILED", f"Failed login for {email}", context)
        db.commit()

    # ─── Refresh ──────────────────────────────────────────────────────────────
    def refresh(self, db: Session, presented: str, context: RequestContext | None = None) -> dict:
        now = utcnow()
        record = self.refresh_tokens.get(db, presented)

        if record is None:
            logger.warning("Refresh rejected: unknown token")
            raise UnauthorizedException(INVALID_REFRESH)

        if record.revokedAt is not None:
            self._record_reuse(db, record.userId, context)
            raise UnauthorizedException(INVALID_REFRESH)

        if now >= ensure_utc(record.expiresAt):
            logger.info(f"Refresh rejected: grant {record.id} expired")
            raise UnauthorizedException(INVALID_REFRESH)

        try:
            claims = self.verifier.verify(presented, expected_kind=REFRESH)
        except ExpiredTokenError:
            logger.info(f"Refresh rejected: grant {record.id} past its exp claim")
            raise UnauthorizedException(INVALID_REFRESH)
        except InvalidTokenError as e:
            logger.warning(f"Refresh rejected: stored grant {record.id} failed verification ({e})")
            raise UnauthorizedException(INVALID_REFRESH)

        if str(claims.get("sub")) != str(record.userId):
            logger.warning(f"Refresh rejected: grant {record.id} subject mismatch")
            raise UnauthorizedException(INVALID_REFRESH)

        user = db.query(User).filter(User.id == record.userId).first()
        if not user or user.is_disabled:
            raise UnauthorizedException(INVALID_REFRESH)

        # Revoke-old and insert-new commit together; a concurrent refresh of
        # the same grant loses the compare-and-swap and gets nothing.
        if not self.refresh_tokens.revoke_if_active(db, record.id, now):
            db.rollback()
            self._record_reuse(db, record.userId, context)
            raise UnauthorizedException(INVALID_REFRESH)
        try:
            pair = self._issue_pair(db, user, context)
            log_action(db, user.id, "REFRESH", f"Grant {record.id} rotated", context)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"User {user.id} rotated refresh grant {record.id}")
        return pair.model_dump()

    def _record_reuse(self, db: Session, user_id: int, context: RequestContext | None) -> None:
        logger.warning(f"Refresh token replay detected for user {user_id}")
        log_action(db, user_id, "REFRESH_REUSE", "Revoked refresh token presented again", context)
        db.commit()

    # ─── Logout ───────────────────────────────────────────────────────────────
    def logout(
        self, db: Session,
        access_token: str | None, refresh_token: str | None, user_id: int,
        context: RequestContext | None = None,
    ) -> None:
        """
        Best effort and idempotent. An access token that no longer verifies is
        skipped silently; the refresh grant is only revoked if it belongs to
        ``user_id``.
        """
        blacklisted = False
        if access_token:
            try:
                claims = self.verifier.verify(access_token, expected_kind=ACCESS)
            except InvalidTokenError as e:
                logger.info(f"Logout for user {user_id}: access token not blacklisted ({e})")
            else:
                blacklisted = self._blacklist(db, access_token, user_id, claims)

        revoked = 0
        if refresh_token:
            revoked = self.refresh_tokens.revoke_for_user(db, refresh_token, user_id)

        if blacklisted or revoked:
            log_action(db, user_id, "LOGOUT", "User logged out", context)
            logger.info(f"User {user_id} logged out")
        db.commit()

    def _blacklist(self, db: Session, token: str, user_id: int, claims: dict) -> bool:
        expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        try:
            added = self.blacklist.add(db, token, user_id, expires_at)
            if added:
                db.commit()
            return added
        except IntegrityError:
            # Concurrent logout with the same token already wrote the row
            db.rollback()
            return False

    # ─── Active Sessions ──────────────────────────────────────────────────────
    def list_sessions(self, db: Session, user: User) -> list[dict]:
        """Usable refresh grants of ``user``. Token values are never returned."""
        return [serialize_grant(g) for g in self.refresh_tokens.list_usable(db, user.id)]

    def revoke_session(self, db: Session, user: User, session_id: int,
                       context: RequestContext | None = None) -> None:
        if not self.refresh_tokens.revoke_by_id_for_user(db, session_id, user.id):
            raise NotFoundException("Session")
        log_action(db, user.id, "SESSION_REVOKE", f"Grant {session_id} revoked", context)
        db.commit()
        logger.info(f"User {user.id} revoked refresh grant {session_id}")

    def login_history(self, db: Session, user: User, limit: int = LOGIN_HISTORY_LIMIT) -> list[dict]:
        entries = db.query(AuditLog).filter(
            AuditLog.userId == user.id,
            AuditLog.action.in_(LOGIN_ACTIONS),
        ).order_by(AuditLog.createdAt.desc(), AuditLog.id.desc()).limit(limit).all()
        return [serialize_login(e) for e in entries]

    # ─── Access Token Guard ───────────────────────────────────────────────────
    def authenticate(self, db: Session, access_token: str) -> User:
        """Resolve a bearer access token to an active user or raise 401."""
        user_id = self.access_subject(access_token)
        if self.blacklist.contains(db, access_token):
            logger.info(f"Blacklisted access token presented for user {user_id}")
            raise UnauthorizedException(INVALID_ACCESS)
        user = db.query(User).filter(User.id == user_id).first()
        if not user or user.is_disabled:
            raise UnauthorizedException(INVALID_ACCESS)
        return user

    def access_subject(self, access_token: str) -> int:
        """User id of a genuine, unexpired access token. Ignores the blacklist."""
        try:
            claims = self.verifier.verify(access_token, expected_kind=ACCESS)
        except ExpiredTokenError:
            raise UnauthorizedException(INVALID_ACCESS)
        except InvalidTokenError as e:
            logger.warning(f"Rejected access token: {e}")
            raise UnauthorizedException(INVALID_ACCESS)
        try:
            return int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            raise UnauthorizedException(INVALID_ACCESS)
