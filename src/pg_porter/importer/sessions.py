"""Import session persistence between chunk requests.

Sessions are stored as ``ImportSession.model_dump_json()`` text and expire
``ttl_seconds`` after their last save.  ``get`` always returns a fresh copy,
so a rejected chunk never mutates stored state.

Usage:
    store = MemorySessionStore(ttl_seconds=3600)
    await store.save(session)
    session = await store.get("abc")

    store = SqlSessionStore("sqlite+aiosqlite:///sessions.db")
    await store.init()
"""

import logging
import time
from collections.abc import Callable
from typing import Protocol

from sqlalchemy import text

from pg_porter.adapters.postgres import create_async_engine_pooled
from pg_porter.importer.models import ImportSession

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class ImportSessionStore(Protocol):
    """Keyed, expiring storage for ``ImportSession`` state."""

    async def get(self, session_id: str) -> ImportSession | None:
        """Return the session, or ``None`` if unknown or expired."""
        ...

    async def save(self, session: ImportSession) -> None:
        """Insert or replace the session and refresh its expiry."""
        ...

    async def delete(self, session_id: str) -> None:
        ...

    async def purge_expired(self) -> int:
        """Drop expired sessions and return how many were removed."""
        ...

    async def close(self) -> None:
        ...


class MemorySessionStore:
    """In-process store for a single server worker.

    Args:
        ttl_seconds: Idle lifetime of a session.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, tuple[str, float]] = {}

    def _expired(self, updated_at: float) -> bool:
        return self._clock() - updated_at > self.ttl_seconds

    async def get(self, session_id: str) -> ImportSession | None:
        stored = self._sessions.get(session_id)
        if stored is None:
            return None
        payload, updated_at = stored
        if self._expired(updated_at):
            del self._sessions[session_id]
            return None
        return ImportSession.model_validate_json(payload)

    async def save(self, session: ImportSession) -> None:
        self._sessions[session.session_id] = (session.model_dump_json(), self._clock())

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def purge_expired(self) -> int:
        expired = [sid for sid, (_, ts) in self._sessions.items() if self._expired(ts)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("Purged %d expired import sessions", len(expired))
        return len(expired)

    async def close(self) -> None:
        self._sessions.clear()


class SqlSessionStore:
    """SQLAlchemy-backed store shared by several server workers.

    Uses an ``import_sessions`` table (created by ``init()``) on any async
    SQLAlchemy URL, e.g. ``postgresql+asyncpg://`` or ``sqlite+aiosqlite://``.

    Args:
        database_url: SQLAlchemy async URL.
        ttl_seconds: Idle lifetime of a session.
        clock: Wall-clock time source, injectable for tests.
        **engine_kwargs: Forwarded to ``create_async_engine_pooled``.
    """

    def __init__(
        self,
        database_url: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        **engine_kwargs,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._engine = create_async_engine_pooled(database_url, **engine_kwargs)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text("""
                    CREATE TABLE IF NOT EXISTS import_sessions (
                        session_id VARCHAR(255) PRIMARY KEY,
                        payload TEXT NOT NULL,
                        updated_at DOUBLE PRECISION NOT NULL
                    )
                """)
            )

    async def get(self, session_id: str) -> ImportSession | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                text("SELECT payload, updated_at FROM import_sessions WHERE session_id = :sid"),
                {"sid": session_id},
            )
            row = result.fetchone()
        if row is None:
            return None
        payload, updated_at = row
        if self._clock() - updated_at > self.ttl_seconds:
            await self.delete(session_id)
            return None
        return ImportSession.model_validate_json(payload)

    async def save(self, session: ImportSession) -> None:
        params = {
            "sid": session.session_id,
            "payload": session.model_dump_json(),
            "ts": self._clock(),
        }
        async with self._engine.begin() as conn:
            await conn.execute(
                text("DELETE FROM import_sessions WHERE session_id = :sid"), {"sid": params["sid"]}
            )
            await conn.execute(
                text(
                    "INSERT INTO import_sessions (session_id, payload, updated_at) "
                    "VALUES (:sid, :payload, :ts)"
                ),
                params,
            )

    async def delete(self, session_id: str) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text("DELETE FROM import_sessions WHERE session_id = :sid"), {"sid": session_id}
            )

    async def purge_expired(self) -> int:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text("DELETE FROM import_sessions WHERE updated_at < :cutoff"),
                {"cutoff": self._clock() - self.ttl_seconds},
            )
        if result.rowcount:
            logger.debug("Purged %d expired import sessions", result.rowcount)
        return result.rowcount or 0

    async def close(self) -> None:
        await self._engine.dispose()
