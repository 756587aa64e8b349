"""ChatService: one user turn end to end.

memory retrieval → prompt assembly → chat relay → history update →
conversation and memory persistence (+ background LLM extraction).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from src.chat.models import ChatMessage, Conversation, Role
from src.chat.session import get_session
from src.chat.store import ConversationStore
from src.config import settings
from src.errors import InvalidRequestError
from src.llm.client import ChatCompletion, complete_chat
from src.llm.prompt import assemble_messages
from src.memory.extraction import attach_embedding, derive_memory, extract_memories
from src.memory.retrieval import get_relevant_memories
from src.memory.store import MemoryStore

if TYPE_CHECKING:
    from src.memory.models import Memory
    from src.memory.retrieval import Embedder

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    completion: ChatCompletion
    memories_used: list[str] = field(default_factory=list)
    conversation_id: str | None = None

    def to_dict(self) -> dict:
        return {
            **self.completion.to_dict(),
            "memories": self.memories_used,
            "conversationId": self.conversation_id,
        }


class ChatService:
    """Runs the conversational flow against injected stores."""

    def __init__(
        self,
        memory_store: MemoryStore | None = None,
        conversation_store: ConversationStore | None = None,
        embedder: Embedder | None = None,
    ) -> None:
        self._memories = memory_store or MemoryStore.get()
        self._conversations = conversation_store or ConversationStore.get()
        self._embedder = embedder
        self._background: set[asyncio.Task] = set()

    async def _recall(self, text: str) -> list[Memory]:
        try:
            return await get_relevant_memories(
                text,
                settings.memory_context_limit,
                store=self._memories,
                embedder=self._embedder,
            )
        except Exception:
            logger.exception("Memory retrieval failed; continuing without context")
            return []

    async def send_message(self, session_id: str, text: str) -> ChatReply:
        """Answer *text* in the context of *session_id*'s history.

        Relay errors propagate; persistence errors are logged only.
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidRequestError("message is required")

        session = get_session(session_id)
        memories = await self._recall(text)
        messages = assemble_messages(text, session.to_api_messages(), memories)
        completion = await complete_chat(messages)

        user_msg = session.add(Role.USER, text)
        reply_msg = session.add(Role.ASSISTANT, completion.response)

        conversation_id = await self._persist(text, [user_msg, reply_msg])
        return ChatReply(
            completion=completion,
            memories_used=[m.id for m in memories],
            conversation_id=conversation_id,
        )

    async def _persist(self, user_text: str, exchange: list[ChatMessage]) -> str | None:
        try:
            conversation = Conversation.start(user_text, exchange)
            memory = derive_memory(user_text, conversation_id=conversation.id)
            if memory is not None:
                await attach_embedding(memory)
                await self._remember(memory, conversation)
            await self._conversations.create(conversation)
        except Exception:
            logger.exception("Failed to save conversation")
            return None

        self._spawn_extraction([m.to_api() for m in exchange], conversation.id)
        return conversation.id

    async def _remember(self, memory: Memory, conversation: Conversation) -> None:
        """Store *memory*; only a stored memory is linked from the conversation."""
        try:
            await self._memories.add(memory)
        except Exception:
            logger.exception("Failed to save memory for conversation %s", conversation.id)
            return
        conversation.memory_ids.append(memory.id)

    def _spawn_extraction(self, messages: list[dict[str, str]], conversation_id: str) -> None:
        if not settings.memory_extraction_enabled:
            return
        task = asyncio.create_task(
            extract_memories(messages, conversation_id=conversation_id, store=self._memories)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for pending background extraction (shutdown, tests)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
