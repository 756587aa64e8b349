"""ConversationStore: libsql persistence for conversation records."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from src.chat.models import ChatMessage, Conversation, EmotionContext
from src.db import Repository

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS conversations (
    id         TEXT PRIMARY KEY,
    title      TEXT NOT NULL DEFAULT '',
    summary    TEXT NOT NULL DEFAULT '',
    messages   TEXT NOT NULL DEFAULT '[]',
    emotions   TEXT NOT NULL DEFAULT '{}',
    memory_ids TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_COLUMNS = "id, title, summary, messages, emotions, memory_ids, created_at, updated_at"


def _to_row(conv: Conversation) -> tuple:
    return (
        conv.id,
        conv.title,
        conv.summary,
        json.dumps([m.model_dump(mode="json") for m in conv.messages]),
        conv.emotions.model_dump_json(),
        json.dumps(conv.memory_ids),
        conv.created_at,
        conv.updated_at,
    )


def _from_row(row: tuple) -> Conversation:
    return Conversation(
        id=row[0],
        title=row[1],
        summary=row[2],
        messages=[ChatMessage.model_validate(m) for m in json.loads(row[3])],
        emotions=EmotionContext.model_validate_json(row[4] or "{}"),
        memory_ids=json.loads(row[5]),
        created_at=row[6],
        updated_at=row[7],
    )


class ConversationStore(Repository):
    """Persists conversations in SQLite / Turso.

    Singleton accessed via ``ConversationStore.get()``.  Pass an explicit
    *db_path* for test isolation.
    """

    schema = (_CREATE_TABLE,)
    _instance: ConversationStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        super().__init__(db_path)

    @classmethod
    def get(cls) -> ConversationStore:
        """Return the shared ConversationStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    async def create(self, conversation: Conversation) -> Conversation:
        async with self.connect() as db:
            await db.execute(
                f"INSERT INTO conversations ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                _to_row(conversation),
            )
            await db.commit()
        logger.info("Saved conversation %s (%d messages)", conversation.id, len(conversation.messages))
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self.connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM conversations WHERE id = ?", (conversation_id,)
            )
            row = await cursor.fetchone()
        return _from_row(row) if row else None

    async def append_messages(
        self,
        conversation_id: str,
        messages: list[ChatMessage],
        memory_ids: list[str] | None = None,
    ) -> Conversation | None:
        """Append to an existing record. Returns None if it does not exist."""
        conv = await self.get_conversation(conversation_id)
        if conv is None:
            return None
        conv.messages.extend(messages)
        conv.memory_ids.extend(memory_ids or [])
        conv.updated_at = datetime.now(UTC).isoformat()
        async with self.connect() as db:
            await db.execute(
                "UPDATE conversations SET messages = ?, memory_ids = ?, updated_at = ? WHERE id = ?",
                (
                    json.dumps([m.model_dump(mode="json") for m in conv.messages]),
                    json.dumps(conv.memory_ids),
                    conv.updated_at,
                    conv.id,
                ),
            )
            await db.commit()
        return conv

    async def list_recent(self, limit: int = 20) -> list[Conversation]:
        async with self.connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM conversations ORDER BY updated_at DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [_from_row(row) for row in rows]

    async def delete(self, conversation_id: str) -> bool:
        """Delete a whole record. Returns True if a row was removed."""
        async with self.connect() as db:
            cursor = await db.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def clear(self) -> int:
        async with self.connect() as db:
            cursor = await db.execute("DELETE FROM conversations")
            await db.commit()
            return cursor.rowcount
