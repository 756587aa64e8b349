"""Async database access over libsql.

Wraps the synchronous ``libsql`` driver with ``asyncio.to_thread()`` so the
stores can be awaited from aiohttp handlers.  The target is picked from
settings:

- **Hosted**: ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → remote Turso
- **Local**: no Turso env vars → SQLite file at ``database_path``

Stores take an optional ``db_path`` and pass it through as
``local_path_override``; that is how tests get an isolated file.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import libsql

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

from src.config import settings


class _AsyncCursor:
    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_local(path: str) -> Any:
    conn = libsql.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Return an async-wrapped libsql connection.

    *local_path_override* wins over everything; otherwise Turso is used when
    configured and the local ``database_path`` file when not.
    """
    if local_path_override:
        local_path_override.parent.mkdir(parents=True, exist_ok=True)
        conn = await asyncio.to_thread(_open_local, str(local_path_override))
        return _AsyncConnection(conn)

    if settings.turso_database_url:
        conn = await asyncio.to_thread(
            libsql.connect,
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )
        return _AsyncConnection(conn)

    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await asyncio.to_thread(_open_local, str(settings.database_path))
    return _AsyncConnection(conn)


class Repository:
    """Base for the libsql-backed stores.

    Subclasses set ``schema`` (one or more ``CREATE ... IF NOT EXISTS``
    statements).  The schema is applied on the first connection.
    """

    schema: tuple[str, ...] = ()

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[_AsyncConnection]:
        db = await get_connection(local_path_override=self._db_path)
        try:
            if not self._initialised:
                for statement in self.schema:
                    await db.execute(statement)
                await db.commit()
                self._initialised = True
            yield db
        finally:
            await db.close()
