from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.services.identity_service import IdentityLinkingResolver
from app.services.oauth_providers import OAuthProvider, OAuthStateCodec
from app.services.password_service import PasswordService
from app.services.session_service import SessionService
from app.services.verification_service import VerificationService
from app.utils.audit import RequestContext
from app.utils.exceptions import NotFoundException, UnauthorizedException

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


# ─── Services (wired in app.main.create_app) ──────────────────────────────────
def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def get_password_service(request: Request) -> PasswordService:
    return request.app.state.password_service


def get_verification_service(request: Request) -> VerificationService:
    return request.app.state.verification_service


def get_identity_resolver(request: Request) -> IdentityLinkingResolver:
    return request.app.state.identity_resolver


def get_state_codec(request: Request) -> OAuthStateCodec:
    return request.app.state.oauth_state


def get_oauth_provider(provider: str, request: Request) -> OAuthProvider:
    """Configured provider named in the path, or 404."""
    found = request.app.state.oauth_providers.get(provider.lower())
    if found is None:
        raise NotFoundException(f"OAuth provider '{provider}'")
    return found


# ─── Request Context ──────────────────────────────────────────────────────────
def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


# ─── Bearer Token ─────────────────────────────────────────────────────────────
def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if not credentials:
        raise UnauthorizedException("No authentication token provided")
    return credentials.credentials


# ─── Get Current User ─────────────────────────────────────────────────────────
def get_current_user(
    token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> User:
    """
    Validate the bearer access token and return the current User.
    Raises 401 if the token is missing, invalid, expired, blacklisted, or
    belongs to a disabled account.
    """
    return sessions.authenticate(db, token)


def get_logout_subject(
    token: str = Depends(get_bearer_token),
    sessions: SessionService = Depends(get_session_service),
) -> int:
    """
    User id of the bearer access token, blacklisted or not, so a repeated
    logout with the same token still succeeds.
    """
    return sessions.access_subject(token)
