from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenda.core.database import utcnow
from agenda.models import RunLockEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 900

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class RunLock:
    """TTL-bounded mutual exclusion for periodic jobs, held in storage.

    ``acquire`` is a single upsert that only takes the row when it is absent or
    expired, so two replicas racing for the same key cannot both succeed. It
    returns the holder token, and ``release`` only deletes the row still
    carrying that token, so a stale holder never frees a newer run's lock.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def acquire(
        self,
        key: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        now = now or utcnow()
        holder = str(uuid.uuid4())
        expires_at = now + timedelta(seconds=ttl_seconds)

        async with self._session_factory() as session:
            dialect = session.get_bind().dialect.name
            insert = _INSERTS.get(dialect)
            if insert is None:
                raise RuntimeError(f"RunLock does not support the {dialect!r} dialect")

            stmt = insert(RunLockEntry).values(
                key=key, holder=holder, expires_at=expires_at, acquired_at=now
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[RunLockEntry.key],
                set_={
                    "holder": stmt.excluded.holder,
                    "expires_at": stmt.excluded.expires_at,
                    "acquired_at": stmt.excluded.acquired_at,
                },
                where=RunLockEntry.expires_at < now,
            ).returning(RunLockEntry.holder)

            result = await session.execute(stmt)
            won = result.scalar_one_or_none()
            await session.commit()

        if won != holder:
            logger.info(f"🔒 Run lock '{key}' is held elsewhere")
            return None

        return holder

    async def release(self, key: str, holder: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(RunLockEntry).where(
                    RunLockEntry.key == key, RunLockEntry.holder == holder
                )
            )
            await session.commit()

    @asynccontextmanager
    async def hold(
        self, key: str, ttl_seconds: int = DEFAULT_TTL_SECONDS
    ) -> AsyncIterator[bool]:
        """``async with lock.hold("job") as acquired:``; released on every exit path."""
        holder = await self.acquire(key, ttl_seconds)
        try:
            yield holder is not None
        finally:
            if holder is not None:
                await self.release(key, holder)
