"""Tests for memory derivation and LLM extraction."""

from datetime import date
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from src.memory.extraction import (
    attach_embedding,
    conversation_context,
    derive_memory,
    extract_memories,
    extract_tags,
    format_transcript,
    parse_extraction_result,
)
from src.memory.models import Importance, Memory
from src.memory.store import MemoryStore

# -- extract_tags ----------------------------------------------------------------


def test_extract_tags_filters_short_and_stop_words() -> None:
    tags = extract_tags("I want to learn the guitar this summer, with friends!")
    assert tags == ["want", "learn", "guitar", "summer", "friends"]


def test_extract_tags_unique_and_capped() -> None:
    tags = extract_tags("music music music painting dancing singing reading writing")
    assert tags == ["music", "painting", "dancing", "singing", "reading"]


def test_extract_tags_strips_punctuation() -> None:
    assert extract_tags("Hello, world... coding!") == ["hello", "world", "coding"]


# -- derive_memory ---------------------------------------------------------------


def test_short_message_yields_nothing() -> None:
    assert derive_memory("hi there") is None
    assert derive_memory("exactly10!") is None


def test_medium_importance_for_long_messages() -> None:
    memory = derive_memory("x" * 101)
    assert memory is not None
    assert memory.importance == Importance.MEDIUM


def test_low_importance_for_short_messages() -> None:
    memory = derive_memory("I started running every morning", conversation_id="conv_1")
    assert memory is not None
    assert memory.importance == Importance.LOW
    assert memory.conversation_id == "conv_1"
    assert memory.tags == ["started", "running", "every", "morning"]
    assert memory.context.startswith("Conversation on ")


def test_conversation_context_format() -> None:
    assert conversation_context(date(2025, 3, 9)) == "Conversation on 2025-03-09"


# -- attach_embedding ------------------------------------------------------------


async def test_attach_embedding_success(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.embedding_dimensions", 3)
    memory = Memory(content="likes tea")
    with patch("src.memory.extraction.embed_text", AsyncMock(return_value=[0.1, 0.2, 0.3])):
        await attach_embedding(memory)
    assert memory.embedding == [0.1, 0.2, 0.3]


async def test_attach_embedding_failure_leaves_none() -> None:
    memory = Memory(content="likes tea")
    with patch("src.memory.extraction.embed_text", AsyncMock(side_effect=RuntimeError("down"))):
        await attach_embedding(memory)
    assert memory.embedding is None


async def test_attach_embedding_discards_wrong_dimension(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.embedding_dimensions", 3)
    memory = Memory(content="likes tea")
    with patch("src.memory.extraction.embed_text", AsyncMock(return_value=[0.1, 0.2])):
        await attach_embedding(memory)
    assert memory.embedding is None


# -- parse_extraction_result -----------------------------------------------------


def test_parse_plain_array() -> None:
    raw = '[{"content": "Wants to become a PM", "importance": "high", "tags": ["career"]}]'
    [item] = parse_extraction_result(raw)
    assert item.content == "Wants to become a PM"
    assert item.importance == Importance.HIGH
    assert item.tags == ["career"]


def test_parse_array_wrapped_in_prose() -> None:
    raw = 'Here you go:\n[{"content": "Has a dog named Max"}]\nHope that helps.'
    [item] = parse_extraction_result(raw)
    assert item.content == "Has a dog named Max"
    assert item.importance == Importance.LOW


def test_parse_object_with_memories_key() -> None:
    raw = '{"memories": [{"content": "Lives in Pune", "importance": "weird"}]}'
    [item] = parse_extraction_result(raw)
    assert item.importance == Importance.LOW


def test_parse_skips_entries_without_content() -> None:
    raw = '[{"importance": "high"}, "text", {"content": "Real one"}]'
    assert [m.content for m in parse_extraction_result(raw)] == ["Real one"]


def test_parse_garbage_returns_empty() -> None:
    assert parse_extraction_result("no json here") == []
    assert parse_extraction_result("") == []
    assert parse_extraction_result("[not valid]") == []


def test_format_transcript() -> None:
    text = format_transcript(
        [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
    )
    assert text == "user: hi\n\nassistant: hello"


# -- extract_memories ------------------------------------------------------------


@pytest.mark.usefixtures("_no_turso")
async def test_extract_memories_stores_results(tmp_path: Path) -> None:
    store = MemoryStore(db_path=tmp_path / "test.db")
    raw = '[{"content": "Training for a marathon", "importance": "medium", "tags": ["running"]}]'
    with (
        patch("src.memory.extraction.complete_text", AsyncMock(return_value=raw)),
        patch("src.memory.extraction.embed_text", AsyncMock(side_effect=RuntimeError("down"))),
    ):
        memories = await extract_memories(
            [{"role": "user", "content": "I'm training for a marathon"}],
            conversation_id="conv_9",
            store=store,
        )

    assert [m.content for m in memories] == ["Training for a marathon"]
    [stored] = await store.list_all()
    assert stored.conversation_id == "conv_9"
    assert stored.importance == Importance.MEDIUM
    assert stored.embedding is None


async def test_extract_memories_swallows_upstream_failure() -> None:
    store = AsyncMock()
    with patch("src.memory.extraction.complete_text", AsyncMock(side_effect=RuntimeError("x"))):
        result = await extract_memories([{"role": "user", "content": "hello"}], store=store)
    assert result == []
    store.add_many.assert_not_called()


async def test_extract_memories_disabled(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.memory_extraction_enabled", False)
    complete = AsyncMock()
    with patch("src.memory.extraction.complete_text", complete):
        assert await extract_memories([{"role": "user", "content": "hello"}]) == []
    complete.assert_not_called()
