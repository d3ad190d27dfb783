import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import QueuePool

from app.config import settings

logger = logging.getLogger(__name__)


# ─── Engine ────────────────────────────────────────────────────────────────────
def build_engine(url: str):
    """
    SQLite (tests, local dev) gets a connection usable from FastAPI's worker
    threads; a server database gets the tuned QueuePool.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=settings.DATABASE_ECHO,
        )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True,
        echo=settings.DATABASE_ECHO,
    )


engine = build_engine(settings.DATABASE_URL)

# Objects stay readable after commit: services return serialized users and
# token pairs after committing the rotation.
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


# ─── Request-scoped session ────────────────────────────────────────────────────
def get_db():
    """One session per request, rolled back if the handler raised."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_db_connection() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
