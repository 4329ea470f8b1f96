"""SQLAlchemy engine and session plumbing.

The engine and the session factory are built on first use from the current
settings and cached until ``close_engine`` clears them, so tests and the CLI
can point ``DATABASE_URL`` somewhere else before anything connects.
"""
from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from tradiepay.config import get_settings
from tradiepay.models.base import Base


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ships with FK enforcement off; payments and ledger rows rely on it.
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@lru_cache
def get_engine() -> Engine:
    """Engine for ``settings.database_url``; SQLite gets a thread-shared connection."""

    url = make_url(get_settings().database_url)
    if url.get_backend_name() == "sqlite":
        options = {"connect_args": {"check_same_thread": False}}
    else:
        options = {"pool_pre_ping": True, "pool_recycle": 1800}
    return create_engine(url, future=True, **options)


@lru_cache
def session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False, future=True)


def create_all() -> None:
    """Dev shortcut; real deployments build the schema with Alembic."""

    Base.metadata.create_all(bind=get_engine())


def close_engine() -> None:
    if get_engine.cache_info().currsize:
        get_engine().dispose()
    session_factory.cache_clear()
    get_engine.cache_clear()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request, closed afterwards."""

    with session_factory()() as session:
        yield session


__all__ = ["close_engine", "create_all", "get_db", "get_engine", "session_factory"]
