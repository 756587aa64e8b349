"""MemoryStore: libsql persistence for memories.

Embeddings are stored as JSON text.  A vector whose length differs from
``settings.embedding_dimensions`` is rejected on write so that similarity
search never compares vectors from different models.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from src.config import settings
from src.db import Repository
from src.memory.models import Importance, Memory

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS memories (
    id              TEXT PRIMARY KEY,
    content         TEXT NOT NULL,
    context         TEXT NOT NULL DEFAULT '',
    importance      TEXT NOT NULL,
    tags            TEXT NOT NULL DEFAULT '[]',
    embedding       TEXT,
    conversation_id TEXT,
    created_at      TEXT NOT NULL
)
"""

_COLUMNS = "id, content, context, importance, tags, embedding, conversation_id, created_at"


def _to_row(memory: Memory) -> tuple:
    return (
        memory.id,
        memory.content,
        memory.context,
        memory.importance.value,
        json.dumps(memory.tags),
        json.dumps(memory.embedding) if memory.embedding else None,
        memory.conversation_id,
        memory.created_at,
    )


def _from_row(row: tuple) -> Memory:
    return Memory(
        id=row[0],
        content=row[1],
        context=row[2] or "",
        importance=Importance(row[3]),
        tags=json.loads(row[4] or "[]"),
        embedding=json.loads(row[5]) if row[5] else None,
        conversation_id=row[6],
        created_at=row[7],
    )


class MemoryStore(Repository):
    """Persists memories in SQLite / Turso.

    Singleton accessed via ``MemoryStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    schema = (_CREATE_TABLE,)
    _instance: MemoryStore | None = None

    def __init__(self, db_path: Path | None = None, dimensions: int | None = None) -> None:
        super().__init__(db_path)
        self._dimensions = dimensions or settings.embedding_dimensions

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    def _check_embedding(self, memory: Memory) -> None:
        if memory.embedding and len(memory.embedding) != self._dimensions:
            msg = (
                f"Embedding has {len(memory.embedding)} dimensions, "
                f"expected {self._dimensions}"
            )
            raise ValueError(msg)

    # -- Write ---------------------------------------------------------------

    async def add(self, memory: Memory) -> Memory:
        """Insert a memory. Returns the same object."""
        self._check_embedding(memory)
        async with self.connect() as db:
            await db.execute(
                f"INSERT INTO memories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                _to_row(memory),
            )
            await db.commit()
        logger.debug("Stored memory [%s]: %s", memory.importance, memory.content[:80])
        return memory

    async def add_many(self, memories: list[Memory]) -> list[Memory]:
        for memory in memories:
            self._check_embedding(memory)
        async with self.connect() as db:
            for memory in memories:
                await db.execute(
                    f"INSERT INTO memories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    _to_row(memory),
                )
            await db.commit()
        return memories

    # -- Read ----------------------------------------------------------------

    async def get_memory(self, memory_id: str) -> Memory | None:
        async with self.connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
            )
            row = await cursor.fetchone()
        return _from_row(row) if row else None

    async def list_all(self) -> list[Memory]:
        """All memories, oldest first."""
        async with self.connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM memories ORDER BY created_at, rowid"
            )
            rows = await cursor.fetchall()
        return [_from_row(row) for row in rows]

    # -- Delete --------------------------------------------------------------

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory by ID. Returns True if a row was removed."""
        async with self.connect() as db:
            cursor = await db.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted memory: %s", memory_id)
        return deleted

    async def clear(self) -> int:
        """Delete every memory. Returns the number removed."""
        async with self.connect() as db:
            cursor = await db.execute("DELETE FROM memories")
            await db.commit()
            count = cursor.rowcount
        logger.info("Cleared %d memories", count)
        return count
