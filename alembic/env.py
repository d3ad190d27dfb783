"""
Alembic environment for the session authority schema.

- The database URL comes from app.config.settings (DATABASE_URL / .env), never alembic.ini
- app.models is imported so every table is on Base.metadata for autogenerate
- SQLite gets batch mode, since it cannot ALTER most column properties in place
"""
from logging.config import fileConfig

from alembic import context

from app.config import settings
from app.database import Base, build_engine

import app.models  # noqa: F401  registers every model on Base.metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
DATABASE_URL = settings.DATABASE_URL
IS_SQLITE = DATABASE_URL.startswith("sqlite")


# ─── Offline Mode ─────────────────────────────────────────────────────────────
def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=IS_SQLITE,
    )

    with context.begin_transaction():
        context.run_migrations()


# ─── Online Mode ──────────────────────────────────────────────────────────────
def run_migrations_online() -> None:
    """Apply migrations over a single connection from the application's engine factory."""
    connectable = build_engine(DATABASE_URL)

    try:
        with connectable.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=IS_SQLITE,
            )

            with context.begin_transaction():
                context.run_migrations()
    finally:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
