"""
Every table of the session authority, imported so Base.metadata is complete
for Alembic and relationship strings resolve. User first: all others point at it.
"""

from app.models.user import User
from app.models.refresh_token import RefreshToken
from app.models.blacklisted_access_token import BlacklistedAccessToken
from app.models.oauth_account import OAuthAccount
from app.models.password_reset_token import PasswordResetToken
from app.models.verification_token import VerificationToken
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "RefreshToken",
    "BlacklistedAccessToken",
    "OAuthAccount",
    "PasswordResetToken",
    "VerificationToken",
    "AuditLog",
]
