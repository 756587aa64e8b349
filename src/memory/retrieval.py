"""Memory relevance retrieval.

Primary path ranks stored memories by cosine similarity between their
embeddings and the query's.  When no query vector can be produced (the
embedding call failed or returned nothing) or no stored memory carries a
vector, retrieval falls back to keyword matching ordered by importance.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from src.llm.client import embed_text
from src.memory.store import MemoryStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from src.memory.models import Memory

    Embedder = Callable[[str], Awaitable[list[float]]]

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Vectors of different length, empty vectors, and zero-magnitude vectors
    all score 0.
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    mag_a = math.sqrt(sum(x * x for x in a))
    mag_b = math.sqrt(sum(y * y for y in b))
    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (mag_a * mag_b)


def rank_by_similarity(
    query_embedding: Sequence[float],
    memories: Sequence[Memory],
    limit: int,
) -> list[tuple[Memory, float]]:
    """Top *limit* embedded memories with their scores, best first."""
    scored = [
        (memory, cosine_similarity(query_embedding, memory.embedding))
        for memory in memories
        if memory.embedding
    ]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:limit]


def query_keywords(query: str) -> list[str]:
    return [word for word in query.lower().split() if word]


def keyword_search(query: str, memories: Sequence[Memory], limit: int) -> list[Memory]:
    """Memories whose content or tags contain any query word, by importance."""
    keywords = query_keywords(query)
    if not keywords:
        return []

    def matches(memory: Memory) -> bool:
        content = memory.content.lower()
        tags = [tag.lower() for tag in memory.tags]
        return any(kw in content or any(kw in tag for tag in tags) for kw in keywords)

    candidates = [memory for memory in memories if matches(memory)]
    candidates.sort(key=lambda memory: memory.importance.rank, reverse=True)
    return candidates[:limit]


async def _query_embedding(query: str, embedder: Embedder) -> list[float]:
    try:
        return list(await embedder(query))
    except Exception:
        logger.warning("Query embedding failed; using keyword search", exc_info=True)
        return []


async def find_relevant(
    query: str,
    memories: Sequence[Memory],
    limit: int = 5,
    *,
    embedder: Embedder | None = None,
) -> list[Memory]:
    """Return up to *limit* of *memories* ordered by relevance to *query*."""
    if limit <= 0 or not memories:
        return []

    if any(memory.embedding for memory in memories):
        query_embedding = await _query_embedding(query, embedder or embed_text)
        if query_embedding:
            return [memory for memory, _ in rank_by_similarity(query_embedding, memories, limit)]

    return keyword_search(query, memories, limit)


async def get_relevant_memories(
    query: str,
    limit: int = 5,
    *,
    store: MemoryStore | None = None,
    embedder: Embedder | None = None,
) -> list[Memory]:
    """Load every stored memory and return the most relevant to *query*."""
    store = store or MemoryStore.get()
    memories = await store.list_all()
    return await find_relevant(query, memories, limit, embedder=embedder)
