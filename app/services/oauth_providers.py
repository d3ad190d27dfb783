"""
Third-party identity providers.

Each provider is a plain object with two calls: ``authorization_url(state)``
for the redirect, and ``exchange_code_for_profile(code)`` which turns the
callback code into a ``ProviderProfile``. Nothing here touches the database;
account resolution happens in ``identity_service``.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from app.config import Settings
from app.utils.duration import utcnow
from app.utils.tokens import SigningContext

logger = logging.getLogger(__name__)

OAUTH_PROVIDERS = {
    "google": {
        "auth_url":     "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url":    "https://oauth2.googleapis.com/token",
        "userinfo_url": "https://www.googleapis.com/oauth2/v2/userinfo",
        "scope":        "openid email profile",
    },
    "github": {
        "auth_url":     "https://github.com/login/oauth/authorize",
        "token_url":    "https://github.com/login/oauth/access_token",
        "userinfo_url": "https://api.github.com/user",
        "emails_url":   "https://api.github.com/user/emails",
        "scope":        "read:user user:email",
    },
}

STATE_TTL = timedelta(minutes=10)


class OAuthExchangeError(Exception):
    """The provider refused the code or returned something unusable."""


@dataclass(frozen=True)
class ProviderProfile:
    provider:    str
    provider_id: str
    email:       str | None = None
    first_name:  str | None = None
    last_name:   str | None = None


class OAuthProvider(Protocol):
    name: str

    def authorization_url(self, state: str) -> str: ...

    def exchange_code_for_profile(self, code: str) -> ProviderProfile: ...


# ─── HTTP-backed providers ────────────────────────────────────────────────────
class _HttpProvider:
    name = ""

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, timeout: float = 10.0,
                 transport: httpx.BaseTransport | None = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.transport = transport
        self.config = OAUTH_PROVIDERS[self.name]

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id":     self.client_id,
            "redirect_uri":  self.redirect_uri,
            "response_type": "code",
            "scope":         self.config["scope"],
            "state":         state,
        }
        return f"{self.config['auth_url']}?{urlencode(params)}"

    def exchange_code_for_profile(self, code: str) -> ProviderProfile:
        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=False, transport=self.transport) as client:
                token_response = client.post(
                    self.config["token_url"],
                    data={
                        "client_id":     self.client_id,
                        "client_secret": self.client_secret,
                        "code":          code,
                        "redirect_uri":  self.redirect_uri,
                        "grant_type":    "authorization_code",
                    },
                    headers={"Accept": "application/json"},
                )
                token_response.raise_for_status()
                access_token = token_response.json().get("access_token")
                if not access_token:
                    raise OAuthExchangeError(f"{self.name} returned no access token")
                return self._fetch_profile(client, access_token)
        except httpx.HTTPStatusError as e:
            logger.error(f"OAuth exchange with {self.name} failed: HTTP {e.response.status_code}")
            raise OAuthExchangeError(f"{self.name} rejected the authorization code") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OAuth exchange with {self.name} failed: {e}")
            raise OAuthExchangeError(f"Could not reach {self.name}") from e

    def _fetch_profile(self, client: httpx.Client, access_token: str) -> ProviderProfile:
        raise NotImplementedError


class GoogleProvider(_HttpProvider):
    name = "google"

    def _fetch_profile(self, client: httpx.Client, access_token: str) -> ProviderProfile:
        response = client.get(self.config["userinfo_url"], headers={"Authorization": f"Bearer {access_token}"})
        response.raise_for_status()
        info = response.json()
        if not info.get("id"):
            raise OAuthExchangeError("google profile has no id")

        # Unverified addresses must not reach account matching
        verified = info.get("verified_email") is True or info.get("email_verified") is True
        if info.get("email") and not verified:
            logger.info(f"google account {info['id']} has an unverified email, ignoring it")
        return ProviderProfile(
            provider=self.name,
            provider_id=str(info["id"]),
            email=info.get("email") if verified else None,
            first_name=info.get("given_name") or "Google",
            last_name=info.get("family_name") or "User",
        )


class GitHubProvider(_HttpProvider):
    name = "github"

    def _fetch_profile(self, client: httpx.Client, access_token: str) -> ProviderProfile:
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/vnd.github+json"}
        response = client.get(self.config["userinfo_url"], headers=headers)
        response.raise_for_status()
        info = response.json()
        if not info.get("id"):
            raise OAuthExchangeError("github profile has no id")

        parts = (info.get("name") or "").split(" ", 1)
        return ProviderProfile(
            provider=self.name,
            provider_id=str(info["id"]),
            email=self._verified_email(client, headers, info.get("email")),
            first_name=parts[0] or "GitHub",
            last_name=parts[1] if len(parts) > 1 and parts[1] else "User",
        )

    def _verified_email(self, client: httpx.Client, headers: dict, public: str | None) -> str | None:
        """
        The public profile email is only used when /user/emails lists it as
        verified; otherwise the primary verified address, if any.
        """
        response = client.get(self.config["emails_url"], headers=headers)
        if response.status_code != 200:
            logger.info(f"github email list unavailable: HTTP {response.status_code}")
            return None
        verified = [e for e in response.json() if e.get("verified") and e.get("email")]
        if public:
            for entry in verified:
                if entry["email"].lower() == public.lower():
                    return entry["email"]
        return next((e["email"] for e in verified if e.get("primary")), None)


def build_providers(settings: Settings) -> dict[str, OAuthProvider]:
    """Providers with both a client id and a secret configured."""
    callback = f"{settings.APP_URL}/api/v1/oauth/{{}}/callback"
    providers: dict[str, OAuthProvider] = {}
    if settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET:
        providers["google"] = GoogleProvider(
            settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET,
            callback.format("google"), settings.OAUTH_HTTP_TIMEOUT,
        )
    if settings.GITHUB_CLIENT_ID and settings.GITHUB_CLIENT_SECRET:
        providers["github"] = GitHubProvider(
            settings.GITHUB_CLIENT_ID, settings.GITHUB_CLIENT_SECRET,
            callback.format("github"), settings.OAUTH_HTTP_TIMEOUT,
        )
    return providers


# ─── State parameter ──────────────────────────────────────────────────────────
class OAuthStateCodec:
    """
    Signed, self-expiring ``state`` values, so the callback can be checked by
    any process without shared in-memory storage.
    """

    def __init__(self, context: SigningContext):
        self.context = context

    def encode(self, provider: str) -> str:
        key = self.context.signing_key()
        payload = {
            "type":     "oauth_state",
            "provider": provider,
            "nonce":    uuid.uuid4().hex,
            "exp":      int((utcnow() + STATE_TTL).timestamp()),
        }
        return jwt.encode(payload, key.secret, algorithm=self.context.algorithm, headers={"kid": key.kid})

    def is_valid(self, state: str | None, provider: str) -> bool:
        if not state:
            return False
        try:
            kid = jwt.get_unverified_header(state).get("kid")
        except JWTError:
            return False
        for key in self.context.verification_keys(kid):
            try:
                claims = jwt.decode(state, key.secret, algorithms=[self.context.algorithm])
            except JWTError:
                continue
            return claims.get("type") == "oauth_state" and claims.get("provider") == provider
        return False
