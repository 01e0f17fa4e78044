"""
db/session.py

Engine and session factory shared by the API, the scheduler and the
rainfall check workers.

The engine is created lazily on first use so that importing a router or a
service never opens a connection. ``configure_session_factory`` swaps the
factory out for another engine (tests bind it to SQLite).
"""

from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_database_url


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def create_db_engine(database_url: str | None = None) -> Engine:
    url = database_url or resolve_database_url()
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=_env_bool("SQL_ECHO"),
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        url,
        echo=_env_bool("SQL_ECHO"),
        pool_pre_ping=True,
        pool_recycle=_env_int("DB_POOL_RECYCLE", 1800),
        pool_size=_env_int("DB_POOL_SIZE", 5),
        max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
    )


_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def configure_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Bind the shared session factory to ``engine`` and return it."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
    )
    return _session_factory


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        return configure_session_factory(get_engine())
    return _session_factory


def SessionLocal() -> Session:
    """Open a new session. Callable wherever a ``sessionmaker`` is expected."""
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Yield a session that is rolled back on error and always closed.

    Commits stay with the caller.
    """
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
