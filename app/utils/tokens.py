"""
Signed access / refresh tokens.

Keys live in an explicitly constructed ``SigningContext`` (built once at
startup and handed to the issuer and verifier) rather than in module state.
The context holds an ordered list of keys: the newest key already in effect
signs, every non-expired key verifies, so a secret can be rotated by moving
the old value into ``JWT_PREVIOUS_SECRETS``. Those keep verifying until
``JWT_PREVIOUS_SECRETS_EXPIRE_AT`` passes, or until they are removed.
"""
import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import Settings
from app.utils.duration import calculate_expiry, ensure_utc, utcnow

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"
TOKEN_KINDS = (ACCESS, REFRESH)

DEFAULT_EXPIRY = {
    ACCESS:  "15m",
    REFRESH: "7d",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ─── Failures ─────────────────────────────────────────────────────────────────
class InvalidTokenError(Exception):
    """Signature, structure or claims did not validate."""


class ExpiredTokenError(InvalidTokenError):
    """Signature was genuine but the exp claim is in the past."""


# ─── Keys ─────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class SigningKey:
    secret: str
    valid_from: datetime = _EPOCH
    expires_at: datetime | None = None
    kid: str = field(default="")

    def __post_init__(self):
        if not self.kid:
            digest = hashlib.sha256(self.secret.encode("utf-8")).hexdigest()[:16]
            object.__setattr__(self, "kid", digest)

    def usable_for_verification(self, now: datetime) -> bool:
        return self.expires_at is None or now < self.expires_at


class SigningContext:
    def __init__(self, keys: list[SigningKey], algorithm: str = "HS256", issuer: str | None = None):
        if not keys:
            raise ValueError("SigningContext needs at least one key")
        self.keys = sorted(keys, key=lambda k: k.valid_from)
        self.algorithm = algorithm
        self.issuer = issuer

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningContext":
        retire_at = settings.JWT_PREVIOUS_SECRETS_EXPIRE_AT
        if retire_at is not None:
            retire_at = ensure_utc(retire_at)
        keys = [SigningKey(secret=s, expires_at=retire_at) for s in settings.get_previous_secrets()]
        keys.append(SigningKey(secret=settings.JWT_SECRET, valid_from=utcnow()))
        return cls(keys, algorithm=settings.JWT_ALGORITHM, issuer=settings.JWT_ISSUER)

    def signing_key(self, now: datetime | None = None) -> SigningKey:
        now = now or utcnow()
        active = [k for k in self.keys if k.valid_from <= now and k.usable_for_verification(now)]
        if not active:
            raise RuntimeError("No signing key is currently in effect")
        return active[-1]

    def verification_keys(self, kid: str | None, now: datetime | None = None) -> list[SigningKey]:
        now = now or utcnow()
        usable = [k for k in reversed(self.keys) if k.usable_for_verification(now)]
        if kid:
            matching = [k for k in usable if k.kid == kid]
            if matching:
                return matching
        return usable


# ─── Issuer ───────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class IssuedToken:
    token: str
    kind: str
    jti: str
    expires_at: datetime


class TokenIssuer:
    def __init__(self, context: SigningContext, expiry: dict[str, str | None] | None = None):
        self.context = context
        self.expiry = {**DEFAULT_EXPIRY, **{k: v for k, v in (expiry or {}).items() if v}}

    @classmethod
    def from_settings(cls, context: SigningContext, settings: Settings) -> "TokenIssuer":
        return cls(context, {ACCESS: settings.JWT_ACCESS_EXPIRY, REFRESH: settings.JWT_REFRESH_EXPIRY})

    def issue(self, kind: str, subject_claims: dict[str, Any]) -> IssuedToken:
        """
        Sign a token of ``kind`` for ``subject_claims`` (must contain ``sub``).
        Every token gets its own jti so two tokens minted in the same second
        never collide on the unique token columns.
        """
        if kind not in TOKEN_KINDS:
            raise ValueError(f"Unknown token kind: {kind}")
        if "sub" not in subject_claims:
            raise ValueError("subject_claims must include 'sub'")

        now = utcnow()
        expires_at = calculate_expiry(self.expiry[kind], now)
        exp = int(expires_at.timestamp())
        jti = uuid.uuid4().hex

        payload = {
            **subject_claims,
            "sub":  str(subject_claims["sub"]),
            "type": kind,
            "jti":  jti,
            "iat":  int(now.timestamp()),
            "exp":  exp,
        }
        if self.context.issuer:
            payload["iss"] = self.context.issuer

        key = self.context.signing_key(now)
        token = jwt.encode(payload, key.secret, algorithm=self.context.algorithm, headers={"kid": key.kid})
        return IssuedToken(
            token=token,
            kind=kind,
            jti=jti,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )


# ─── Verifier ─────────────────────────────────────────────────────────────────
class TokenVerifier:
    def __init__(self, context: SigningContext):
        self.context = context

    def verify(self, token: str, expected_kind: str | None = None) -> dict:
        """
        Return the claims of a genuine, unexpired token.

        Raises:
            ExpiredTokenError: signature checks out but exp has passed
            InvalidTokenError: anything else (garbage, foreign key, wrong kind)
        """
        if not token or not isinstance(token, str):
            raise InvalidTokenError("Empty token")
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidTokenError("Malformed token") from exc

        last_error: JWTError | None = None
        for key in self.context.verification_keys(header.get("kid")):
            try:
                claims = jwt.decode(
                    token,
                    key.secret,
                    algorithms=[self.context.algorithm],
                    issuer=self.context.issuer,
                )
            except ExpiredSignatureError as exc:
                raise ExpiredTokenError("Token has expired") from exc
            except JWTError as exc:
                last_error = exc
                continue

            if expected_kind and claims.get("type") != expected_kind:
                raise InvalidTokenError(f"Expected a {expected_kind} token")
            return claims

        raise InvalidTokenError("Signature verification failed") from last_error
