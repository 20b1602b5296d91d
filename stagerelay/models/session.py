"""Engine and session factories for the configuration database."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from . import Base
from ..settings import DEFAULT_DATABASE_URL


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # Deleting a config set relies on ON DELETE CASCADE for its values.
    dbapi_connection.execute("PRAGMA foreign_keys=ON")


def get_engine(database_url: str | None = None) -> Engine:
    """Create an engine for ``database_url``, ``DATABASE_URL`` or the local SQLite file."""

    engine = create_engine(database_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_sessionmaker(database_url: str | None = None) -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(database_url), expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""

    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


__all__ = ["Base", "get_engine", "get_sessionmaker", "session_scope"]
