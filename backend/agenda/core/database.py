from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import DateTime, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy.types import TypeDecorator

from agenda.core.config import Settings

# Base class for models
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware instant stored in UTC.

    Naive datetimes are rejected on the way in; values read back from
    backends without timezone support (SQLite) are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime is not an instant; attach a timezone first")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            # Stored as text; keep one fixed format so string comparison in
            # triggers orders instants correctly.
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# PostgreSQL SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError, table: str) -> bool:
    """True only for a primary-key/unique violation on ``table``.

    Foreign-key, CHECK and NOT NULL failures are also IntegrityErrors and
    must not be mistaken for a duplicate.
    """
    orig = exc.orig
    message = str(orig)
    if table not in message:
        return False
    if getattr(orig, "sqlstate", None) == UNIQUE_VIOLATION:
        return True
    # asyncpg: "duplicate key value violates unique constraint <table>_pkey"
    # sqlite:  "UNIQUE constraint failed: <table>.<column>"
    return "UniqueViolationError" in message or "UNIQUE constraint failed" in message


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    url = settings.database_url
    if url.startswith("sqlite"):
        # One connection per session so SQLite's writer lock serialises
        # concurrent transactions instead of interleaving them on a shared
        # connection.
        engine = create_async_engine(url, echo=settings.db_echo, poolclass=NullPool)

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return engine

    return create_async_engine(
        url,
        echo=settings.db_echo,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table (plus per-dialect overlap guards) if missing."""
    # Import models so they register on Base.metadata.
    import agenda.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency for FastAPI
async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
