"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - create_engine(): builds the async engine for a DATABASE_URL
  - create_session_factory(): factory for per-request AsyncSessions
  - Base: declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request

Unlike a module-level engine, the store handle is constructed explicitly:
the FastAPI lifespan opens it at startup and disposes it at shutdown, and
the serverless handler opens a fresh one per invocation. The session
factory lives on app.state so get_db() can find it.

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits
  on success and rolls back on unexpected exceptions.
"""

import os
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy import DateTime, event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from authgate.exceptions import AuthServiceError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that round-trips as UTC on every backend.

    SQLite has no timezone support and hands back naive datetimes; values
    are normalised to naive UTC on the way in and tagged UTC on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine.

    For SQLite, the driver's own transaction handling is switched off and
    SQLAlchemy emits BEGIN itself. Without this, SAVEPOINTs (used by the
    audit log and the unique-email insert) don't nest correctly under
    pysqlite/aiosqlite.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        # SQLite creates the file but not its directory
        os.makedirs(os.path.dirname(os.path.abspath(url.database)), exist_ok=True)

    engine = create_async_engine(database_url, echo=echo)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps attributes readable after commit without
    # a lazy reload, which would fail in async context.
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that don't exist yet."""
    # Import for side effect: registers every model on Base.metadata
    import authgate.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request):
    """
    FastAPI dependency that provides a database session.

    Domain errors still commit, so audit rows recorded on the failure path
    (failed logins, rejected registrations) are persisted. Anything else
    rolls back.
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except AuthServiceError:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
