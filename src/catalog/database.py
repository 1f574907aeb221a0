"""
Database connection and session management.

Provides the database engine, session factory, and helper functions for
database operations. The engine is built on first use from
``INGEST_DATABASE_URL``.
"""

from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from src.config.settings import get_settings
from src.catalog.models import Base


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite URLs get a thread-tolerant connection; in-memory SQLite shares
    one connection so every session sees the same database.
    """
    url = make_url(database_url)
    kwargs = {"echo": echo, "future": True}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 3600

    return create_engine(database_url, **kwargs)


@lru_cache()
def get_engine() -> Engine:
    settings = get_settings()
    return build_engine(settings.database_url, echo=settings.debug)


@lru_cache()
def get_session_factory() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine(), future=True)


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine or get_engine())


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function for FastAPI to get database sessions.

    Usage:
        @router.get("/profiles/{dataset}")
        def get_profile(dataset: str, db: Session = Depends(get_db)):
            ...
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions; commits on success.

    Usage:
        with get_db_session() as db:
            db.query(ProfileRecord).all()
    """
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_database_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is successful, False otherwise
    """
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
