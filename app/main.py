import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings, settings
from app.database import check_db_connection
from app.maintenance import run as purge_expired_tokens
from app.middleware.error_handler import register_exception_handlers
from app.services.identity_service import identity_resolver
from app.services.oauth_providers import OAuthProvider, OAuthStateCodec, build_providers
from app.services.password_service import PasswordService
from app.services.session_service import SessionService
from app.services.token_store import access_token_blacklist, refresh_token_store
from app.services.verification_service import VerificationService
from app.utils.email import EmailSender
from app.utils.tokens import SigningContext, TokenIssuer, TokenVerifier

from app.api.v1 import auth
from app.api.v1 import password
from app.api.v1 import oauth

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(
    config: Settings = settings,
    providers: dict[str, OAuthProvider] | None = None,
    email_sender: EmailSender | None = None,
    run_startup_tasks: bool = True,
) -> FastAPI:
    app = FastAPI(
        title=config.APP_NAME,
        version=VERSION,
        description="Credential & session authority: accounts, token pairs, OAuth sign-in",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # ─── Services ─────────────────────────────────────────────────────────────
    signing = SigningContext.from_settings(config)
    issuer = TokenIssuer.from_settings(signing, config)
    verifier = TokenVerifier(signing)
    sender = email_sender or EmailSender(config)
    verification = VerificationService(config, sender)

    app.state.settings = config
    app.state.verification_service = verification
    app.state.password_service = PasswordService(config, sender, refresh_token_store)
    app.state.session_service = SessionService(
        issuer, verifier,
        refresh_tokens=refresh_token_store,
        blacklist=access_token_blacklist,
        verification=verification,
    )
    app.state.identity_resolver = identity_resolver
    app.state.oauth_providers = build_providers(config) if providers is None else providers
    app.state.oauth_state = OAuthStateCodec(signing)

    # ─── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Exception Handlers ───────────────────────────────────────────────────
    register_exception_handlers(app)

    # ─── Routers ──────────────────────────────────────────────────────────────
    PREFIX = "/api/v1"
    app.include_router(auth.router,     prefix=PREFIX, tags=["Auth"])
    app.include_router(password.router, prefix=PREFIX, tags=["Password"])
    app.include_router(oauth.router,    prefix=PREFIX, tags=["OAuth"])

    # ─── Startup ──────────────────────────────────────────────────────────────
    if run_startup_tasks:
        @app.on_event("startup")
        def on_startup():
            ok = check_db_connection()
            logger.info("✅ DB connected" if ok else "❌ DB connection FAILED")
            if not ok:
                return
            try:
                purge_expired_tokens()
            except SQLAlchemyError as e:
                logger.error(f"Startup token purge failed: {e}")
            logger.info(f"OAuth providers enabled: {sorted(app.state.oauth_providers) or 'none'}")

    # ─── Health ───────────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "app": config.APP_NAME, "version": VERSION}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT,
                reload=settings.is_development)
