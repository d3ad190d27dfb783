"""initial schema: users, refresh grants, blacklist, oauth links, one-time tokens, audit log

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = False, server_default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if server_default else None,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password", sa.String(255), nullable=True),
        sa.Column("firstName", sa.String(100), nullable=False),
        sa.Column("lastName", sa.String(100), nullable=False),
        _timestamp("disabledAt", nullable=True),
        _timestamp("emailVerifiedAt", nullable=True),
        _timestamp("createdAt", server_default=True),
        _timestamp("updatedAt", server_default=True),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token", sa.Text(), nullable=False, unique=True),
        sa.Column("userAgent", sa.String(500), nullable=True),
        sa.Column("ipAddress", sa.String(64), nullable=True),
        _timestamp("expiresAt"),
        _timestamp("revokedAt", nullable=True),
        _timestamp("createdAt", server_default=True),
    )
    op.create_index("ix_refresh_tokens_id", "refresh_tokens", ["id"])
    op.create_index("ix_refresh_tokens_userId", "refresh_tokens", ["userId"])
    op.create_index("ix_refresh_tokens_expiresAt", "refresh_tokens", ["expiresAt"])

    op.create_table(
        "blacklisted_access_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token", sa.Text(), nullable=False, unique=True),
        _timestamp("expiresAt"),
        _timestamp("createdAt", server_default=True),
    )
    op.create_index("ix_blacklisted_access_tokens_id", "blacklisted_access_tokens", ["id"])
    op.create_index("ix_blacklisted_access_tokens_expiresAt", "blacklisted_access_tokens", ["expiresAt"])

    op.create_table(
        "oauth_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("providerId", sa.String(255), nullable=False),
        _timestamp("createdAt", server_default=True),
        sa.UniqueConstraint("provider", "providerId", name="uq_oauth_accounts_provider_provider_id"),
    )
    op.create_index("ix_oauth_accounts_id", "oauth_accounts", ["id"])
    op.create_index("ix_oauth_accounts_userId", "oauth_accounts", ["userId"])

    for table in ("password_reset_tokens", "verification_tokens"):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("token", sa.String(128), nullable=False, unique=True),
            _timestamp("expiresAt"),
        )
        op.create_index(f"ix_{table}_id", table, ["id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("userAgent", sa.String(500), nullable=True),
        sa.Column("ipAddress", sa.String(64), nullable=True),
        _timestamp("createdAt", server_default=True),
    )
    op.create_index("ix_audit_logs_id", "audit_logs", ["id"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "verification_tokens",
        "password_reset_tokens",
        "oauth_accounts",
        "blacklisted_access_tokens",
        "refresh_tokens",
        "users",
    ):
        op.drop_table(table)
