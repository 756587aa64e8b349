"""Tests for ChatService: one conversational turn end to end."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from src.chat.service import ChatService
from src.chat.session import get_session
from src.chat.store import ConversationStore
from src.errors import InvalidRequestError, RateLimitedError
from src.llm.client import ChatCompletion
from src.memory.models import Memory
from src.memory.store import MemoryStore

pytestmark = pytest.mark.usefixtures("_no_turso")

REPLY = ChatCompletion(response="I hear you.", tokens=12, model="gpt-4")


@pytest.fixture
def memory_store(tmp_path: Path) -> MemoryStore:
    return MemoryStore(db_path=tmp_path / "test.db", dimensions=2)


@pytest.fixture
def conversation_store(tmp_path: Path) -> ConversationStore:
    return ConversationStore(db_path=tmp_path / "test.db")


@pytest.fixture
def service(memory_store, conversation_store, monkeypatch) -> ChatService:
    monkeypatch.setattr("src.config.settings.memory_extraction_enabled", False)
    return ChatService(
        memory_store=memory_store,
        conversation_store=conversation_store,
        embedder=AsyncMock(side_effect=RuntimeError("no embeddings")),
    )


@pytest.fixture
def no_embeddings():
    with patch("src.memory.extraction.embed_text", AsyncMock(side_effect=RuntimeError("down"))):
        yield


async def test_blank_message_rejected(service: ChatService) -> None:
    with pytest.raises(InvalidRequestError):
        await service.send_message("s1", "   ")


@pytest.mark.usefixtures("no_embeddings")
async def test_send_message_updates_history_and_persists(
    service: ChatService, memory_store: MemoryStore, conversation_store: ConversationStore
) -> None:
    with patch("src.chat.service.complete_chat", AsyncMock(return_value=REPLY)) as chat:
        reply = await service.send_message("s1", "I have been feeling anxious about work lately")

    assert reply.completion.response == "I hear you."
    sent = chat.call_args.args[0]
    assert sent[0]["role"] == "system"
    assert sent[-1] == {"role": "user", "content": "I have been feeling anxious about work lately"}

    history = get_session("s1").to_api_messages()
    assert history == [
        {"role": "user", "content": "I have been feeling anxious about work lately"},
        {"role": "assistant", "content": "I hear you."},
    ]

    conv = await conversation_store.get_conversation(reply.conversation_id)
    assert conv is not None
    assert len(conv.messages) == 2
    [memory] = await memory_store.list_all()
    assert memory.content == "I have been feeling anxious about work lately"
    assert memory.embedding is None
    assert conv.memory_ids == [memory.id]


@pytest.mark.usefixtures("no_embeddings")
async def test_short_message_creates_no_memory(
    service: ChatService, memory_store: MemoryStore
) -> None:
    with patch("src.chat.service.complete_chat", AsyncMock(return_value=REPLY)):
        await service.send_message("s1", "hi there")
    assert await memory_store.list_all() == []


@pytest.mark.usefixtures("no_embeddings")
async def test_recalled_memories_go_into_system_prompt(
    service: ChatService, memory_store: MemoryStore
) -> None:
    await memory_store.add(Memory(content="Loves hiking on weekends", tags=["hiking"]))

    with patch("src.chat.service.complete_chat", AsyncMock(return_value=REPLY)) as chat:
        reply = await service.send_message("s1", "hiking")

    system = chat.call_args.args[0][0]["content"]
    assert "Loves hiking on weekends" in system
    assert len(reply.memories_used) == 1
    assert reply.to_dict()["memories"] == reply.memories_used


async def test_relay_failure_propagates_and_leaves_history(service: ChatService) -> None:
    with (
        patch("src.chat.service.complete_chat", AsyncMock(side_effect=RateLimitedError())),
        pytest.raises(RateLimitedError),
    ):
        await service.send_message("s1", "hello there friend")
    assert get_session("s1").to_api_messages() == []


@pytest.mark.usefixtures("no_embeddings")
async def test_persistence_failure_is_not_raised(service: ChatService) -> None:
    service._conversations = AsyncMock()
    service._conversations.create.side_effect = RuntimeError("disk full")

    with patch("src.chat.service.complete_chat", AsyncMock(return_value=REPLY)):
        reply = await service.send_message("s1", "something worth remembering")

    assert reply.conversation_id is None
    assert reply.completion.response == "I hear you."


@pytest.mark.usefixtures("no_embeddings")
async def test_background_extraction_runs_when_enabled(service: ChatService, monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.memory_extraction_enabled", True)
    extract = AsyncMock(return_value=[])

    with (
        patch("src.chat.service.complete_chat", AsyncMock(return_value=REPLY)),
        patch("src.chat.service.extract_memories", extract),
    ):
        reply = await service.send_message("s1", "I want to learn piano this year")
        await service.drain()

    extract.assert_awaited_once()
    assert extract.call_args.kwargs["conversation_id"] == reply.conversation_id


@pytest.mark.usefixtures("no_embeddings")
async def test_failed_memory_is_not_linked(
    service: ChatService, memory_store: MemoryStore, conversation_store: ConversationStore
) -> None:
    with (
        patch.object(memory_store, "add", AsyncMock(side_effect=RuntimeError("locked"))),
        patch("src.chat.service.complete_chat", AsyncMock(return_value=REPLY)),
    ):
        reply = await service.send_message("s1", "I have been feeling anxious about work lately")

    assert reply.conversation_id is not None
    conv = await conversation_store.get_conversation(reply.conversation_id)
    assert conv is not None
    assert conv.memory_ids == []
