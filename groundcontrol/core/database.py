"""Database connection and session management"""
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from groundcontrol.core.config import Settings

# Base class for ORM models
Base = declarative_base()

# Session factory, bound by init_database()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite requires check_same_thread=False because dispatches may commit
    from worker threads; other backends don't support that argument.
    """
    engine_kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(database_url, **engine_kwargs)


def init_database(settings: Settings, create_tables: bool = True) -> Engine:
    """
    Bind the session factory to the configured database.

    Args:
        settings: Application settings (DATABASE_URL, DEBUG)
        create_tables: Create missing tables for all registered models

    Returns:
        The bound engine
    """
    global _engine

    # Register all models on Base.metadata
    import groundcontrol.models  # noqa: F401

    database_path = make_url(settings.DATABASE_URL).database
    if settings.DATABASE_URL.startswith("sqlite") and database_path and database_path != ":memory:":
        Path(database_path).parent.mkdir(parents=True, exist_ok=True)

    _engine = create_db_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    SessionLocal.configure(bind=_engine)
    if create_tables:
        Base.metadata.create_all(_engine)
    return _engine


def get_engine() -> Optional[Engine]:
    """Return the engine bound by init_database(), if any."""
    return _engine


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as db:
            service = PushDispatchService(db, ...)
            await service.dispatch(event)

    Automatically handles:
    - Session creation
    - Rollback on exception
    - Session cleanup (close)
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
