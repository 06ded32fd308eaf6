"""libsql access for the conversation store.

libsql's Python driver blocks, so each call runs on a worker thread via
``asyncio.to_thread()``. Where the data lives depends on settings:

- ``TURSO_DATABASE_URL`` set: the hosted Turso database (``TURSO_AUTH_TOKEN``)
- otherwise: the SQLite file at ``DATABASE_PATH``, in WAL mode

Callers normally use ``async with connection() as db:``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import libsql

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

from src.config import settings

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000


class _AsyncCursor:
    """Result of :meth:`_AsyncConnection.execute`; fetches off the event loop."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        """Rows touched by the last INSERT/UPDATE/DELETE."""
        return self._cursor.rowcount


class _AsyncConnection:
    """One open database handle. Statements use ``?`` placeholders."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        return _AsyncCursor(await asyncio.to_thread(self._conn.execute, sql, params))

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _connect_file(path: Path) -> Any:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = libsql.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    return conn


def _connect_turso() -> Any:
    return libsql.connect(
        database=settings.turso_database_url,
        auth_token=settings.turso_auth_token,
    )


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Open a connection; the caller must close it.

    *local_path_override* pins a SQLite file (tests pass ``tmp_path``) and
    wins over any Turso configuration.
    """
    if local_path_override is not None:
        conn = await asyncio.to_thread(_connect_file, local_path_override)
        target = str(local_path_override)
    elif settings.turso_database_url:
        conn = await asyncio.to_thread(_connect_turso)
        target = "turso"
    else:
        conn = await asyncio.to_thread(_connect_file, settings.database_path)
        target = str(settings.database_path)
    logger.debug("Opened libsql connection (%s)", target)
    return _AsyncConnection(conn)


@asynccontextmanager
async def connection(local_path_override: Path | None = None) -> AsyncIterator[_AsyncConnection]:
    """Scoped connection, closed when the block exits (even on error)."""
    db = await get_connection(local_path_override)
    try:
        yield db
    finally:
        await db.close()
