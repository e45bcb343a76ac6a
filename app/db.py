"""
Database setup for the curated directory.
Provides SQLAlchemy engine/session utilities (SQLite by default).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless this is set per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    # check_same_thread=False allows usage across FastAPI threads
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine = create_engine(database_url, connect_args=connect_args)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_db(engine: Engine) -> None:
    """Create tables if they don't exist."""
    from app.repositories import models  # noqa: F401  Ensures models are registered

    Base.metadata.create_all(bind=engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False)


@lru_cache
def get_session_factory() -> sessionmaker:
    engine = create_db_engine(get_settings().database_url)
    init_db(engine)
    return make_session_factory(engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency-style session generator."""
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()
