import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import (
    get_current_user, get_identity_resolver, get_oauth_provider,
    get_request_context, get_session_service, get_state_codec,
)
from app.models.user import User
from app.schemas.common import SuccessResponse, success_response
from app.services.identity_service import IdentityLinkingResolver
from app.services.oauth_providers import OAuthExchangeError, OAuthProvider, OAuthStateCodec
from app.services.session_service import SessionService
from app.utils.audit import RequestContext
from app.utils.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth")


# ─── GET /oauth/providers ─────────────────────────────────────────────────────
@router.get(
    "/providers",
    status_code=status.HTTP_200_OK,
    summary="List configured sign-in providers",
    response_model=SuccessResponse,
)
def list_providers(request: Request):
    return success_response("OAuth providers retrieved", sorted(request.app.state.oauth_providers))


# ─── GET /oauth/accounts ──────────────────────────────────────────────────────
@router.get(
    "/accounts",
    status_code=status.HTTP_200_OK,
    summary="List the provider accounts linked to the current user",
    response_model=SuccessResponse,
)
def list_accounts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    resolver: IdentityLinkingResolver = Depends(get_identity_resolver),
):
    return success_response("Linked accounts retrieved", resolver.list_accounts(db, current_user))


# ─── DELETE /oauth/accounts/{provider} ────────────────────────────────────────
@router.delete(
    "/accounts/{provider}",
    status_code=status.HTTP_200_OK,
    summary="Unlink a provider account from the current user",
    response_model=SuccessResponse,
)
def unlink_account(
    provider: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    resolver: IdentityLinkingResolver = Depends(get_identity_resolver),
    context: RequestContext = Depends(get_request_context),
):
    resolver.unlink(db, current_user, provider.lower(), context)
    return success_response(f"{provider.lower()} account unlinked", None)


# ─── GET /oauth/{provider} ────────────────────────────────────────────────────
@router.get(
    "/{provider}",
    status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    summary="Redirect to the provider's consent page",
)
def start_oauth(
    oauth: OAuthProvider = Depends(get_oauth_provider),
    codec: OAuthStateCodec = Depends(get_state_codec),
):
    logger.info(f"{oauth.name} OAuth initiation request")
    return RedirectResponse(oauth.authorization_url(codec.encode(oauth.name)))


# ─── GET /oauth/{provider}/callback ───────────────────────────────────────────
@router.get(
    "/{provider}/callback",
    status_code=status.HTTP_200_OK,
    summary="Complete provider sign-in and start a session",
    response_model=SuccessResponse,
)
def oauth_callback(
    code: str = Query(..., min_length=1),
    state: str | None = Query(None),
    db: Session = Depends(get_db),
    oauth: OAuthProvider = Depends(get_oauth_provider),
    codec: OAuthStateCodec = Depends(get_state_codec),
    resolver: IdentityLinkingResolver = Depends(get_identity_resolver),
    sessions: SessionService = Depends(get_session_service),
    context: RequestContext = Depends(get_request_context),
):
    """
    Exchange the code for a profile, map it onto exactly one local user
    (existing link, then matching email, then a new account) and issue a
    token pair.
    """
    if not codec.is_valid(state, oauth.name):
        logger.warning(f"{oauth.name} callback with missing or invalid state")
        raise UnauthorizedException("OAuth state is invalid or expired")

    try:
        profile = oauth.exchange_code_for_profile(code)
    except OAuthExchangeError as e:
        logger.warning(f"{oauth.name} callback rejected: {e}")
        raise UnauthorizedException("OAuth authentication failed")

    user = resolver.resolve_with_retry(db, profile, context)
    result = sessions.start_session(db, user, context, action="OAUTH_LOGIN")
    logger.info(f"{oauth.name} OAuth user authenticated: {user.id}")
    return success_response(f"{oauth.name.capitalize()} authentication successful", result)
