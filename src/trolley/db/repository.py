"""SQLite engine and session management for the shopping list tables."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from trolley.config import get_settings
from trolley.db.models import Base

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
logger = logging.getLogger(__name__)

# Milliseconds a connection waits on a write lock held by the regroup pool.
SQLITE_BUSY_TIMEOUT_MS = 5000


def _apply_pragmas(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def _open_engine(db_path: Path) -> Engine:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # Rows are regrouped on a worker pool, so connections cross threads.
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _apply_pragmas)
    try:
        Base.metadata.create_all(engine)
    except OperationalError as exc:
        # Two processes racing on a fresh file both try to create the tables.
        if "already exists" not in str(exc).lower():
            raise
        logger.debug("Shopping list schema already present: %s", exc)
    return engine


def get_engine(database_path: Path | None = None) -> Engine:
    """Return the shared engine, creating the schema on first use."""
    global _engine, _session_factory

    if _engine is None:
        db_path = database_path or get_settings().database_path
        _engine = _open_engine(db_path)
        _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        logger.debug("Opened shopping list database path=%s", db_path)
    return _engine


def get_session() -> Session:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None  # for mypy
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_repository_state() -> None:
    """Dispose the shared engine so the next call reopens the configured database."""

    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = [
    "SQLITE_BUSY_TIMEOUT_MS",
    "get_engine",
    "get_session",
    "reset_repository_state",
    "session_scope",
]
