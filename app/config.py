from datetime import datetime
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ─── Application ───────────────────────────────────────────────────────────
    APP_NAME: str = "Session Authority"
    APP_ENV:  str = "development"
    APP_DEBUG: bool = True
    APP_HOST:  str = "0.0.0.0"
    APP_PORT:  int = 8000
    APP_URL:   str = "http://localhost:8000"

    # ─── Database ──────────────────────────────────────────────────────────────
    DATABASE_URL:          str
    DATABASE_POOL_SIZE:    int  = 10
    DATABASE_MAX_OVERFLOW: int  = 20
    DATABASE_POOL_TIMEOUT: int  = 30
    DATABASE_ECHO:         bool = False

    # ─── JWT ───────────────────────────────────────────────────────────────────
    JWT_SECRET:           str
    JWT_PREVIOUS_SECRETS: str = ""          # comma-separated, verify only
    JWT_PREVIOUS_SECRETS_EXPIRE_AT: datetime | None = None   # previous secrets stop verifying after this
    JWT_ALGORITHM:        str = "HS256"
    JWT_ISSUER:           str = "session-authority"
    JWT_ACCESS_EXPIRY:    str = "15m"
    JWT_REFRESH_EXPIRY:   str = "7d"

    REFRESH_TOKEN_RETENTION_DAYS: int = 30

    # ─── Password & Verification ───────────────────────────────────────────────
    BCRYPT_ROUNDS:             int = 12
    PASSWORD_RESET_EXPIRY:     str = "1h"
    EMAIL_VERIFICATION_EXPIRY: str = "24h"
    EXPOSE_DEV_TOKENS:         bool = False

    # ─── Email ─────────────────────────────────────────────────────────────────
    EMAIL_ENABLED: bool = True
    EMAIL_FROM:    str  = "noreply@localhost"

    # ─── OAuth ─────────────────────────────────────────────────────────────────
    GOOGLE_CLIENT_ID:     str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GITHUB_CLIENT_ID:     str = ""
    GITHUB_CLIENT_SECRET: str = ""
    OAUTH_HTTP_TIMEOUT:   float = 10.0

    # ─── CORS ──────────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    def get_cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    def get_previous_secrets(self) -> List[str]:
        return [s.strip() for s in self.JWT_PREVIOUS_SECRETS.split(",") if s.strip()]

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def expose_dev_tokens(self) -> bool:
        """Raw one-time tokens are only ever echoed back in development."""
        return self.EXPOSE_DEV_TOKENS and self.is_development

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}


settings = Settings()
