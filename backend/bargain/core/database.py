"""
Database utilities and connection management.

WHAT: SQLite engine, session factory and declarative base for the session store
WHY: Bargaining sessions must survive restarts and be written atomically
HOW: SQLAlchemy 2 sync engine with WAL mode, context-managed sessions
"""

from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _ensure_sqlite_dir(url: str):
    """Create the parent directory of a file-backed SQLite database."""
    if not url.startswith("sqlite:///") or url.endswith(":memory:"):
        return
    data_dir = Path(url.replace("sqlite:///", "")).parent
    data_dir.mkdir(parents=True, exist_ok=True)


_ensure_sqlite_dir(settings.DATABASE_URL)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},  # sessions are used from the threadpool
    echo=settings.DEBUG,
    future=True
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable WAL mode and FK enforcement on every new connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False
)

Base = declarative_base()


@contextmanager
def get_db():
    """
    Context manager for a unit of work.

    Commits when the block exits cleanly, rolls back on any exception.

    Usage:
        with get_db() as db:
            ...

    Yields:
        Session: SQLAlchemy session
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping_database() -> dict:
    """
    Check database connectivity.

    Returns:
        Dict with availability and error (URL is not echoed back to clients)
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        return {"available": True, "error": None}
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return {"available": False, "error": "database unreachable"}


def init_db():
    """Create all tables. Importing models registers them on Base."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")


def drop_db():
    """Drop all tables (tests and local resets)."""
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)


def close_db():
    """Close database connections."""
    engine.dispose()
    logger.info("Database connections closed")
