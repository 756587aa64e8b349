"""Deriving memories from conversation.

Two paths feed the store after each exchange:

- a naive one that keeps the user's own message as a memory, tagged with
  its most distinctive words;
- an LLM pass that reads the exchange and returns the facts worth keeping
  (preferences, goals, relationships, ...) as JSON.

Both attach an embedding when one can be computed and leave it out
otherwise.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date

from src.config import settings
from src.llm.client import complete_text, embed_text
from src.memory.models import Importance, Memory
from src.memory.store import MemoryStore

logger = logging.getLogger(__name__)

MIN_MEMORY_LENGTH = 10
MEDIUM_IMPORTANCE_LENGTH = 100
MAX_TAGS = 5

STOP_WORDS = frozenset({
    "the", "is", "at", "which", "on", "and", "a", "to", "are", "as", "was",
    "with", "for", "be", "have", "not", "or", "but", "by", "this", "that",
    "it", "you", "he", "she", "they", "we", "i", "me", "my", "your", "his",
    "her", "their", "our",
})

_NON_WORD_RE = re.compile(r"[^\w\s]")

EXTRACTION_SYSTEM_PROMPT = """\
You are Zoxaa's memory extraction system. Analyze the conversation and extract \
important memories that should be stored for future reference.

Extract information about:
- User preferences, goals, and aspirations
- Important life events or plans
- Skills, interests, and hobbies
- Relationships and social connections
- Professional background and career goals
- Personal challenges or concerns
- Decision-making patterns
- Values and beliefs

For each memory, provide:
1. A clear, concise description
2. Importance level (low, medium, high)
3. Relevant tags (max 5)

Return a JSON array of memories in this format:
[{
  "content": "User is interested in transitioning from marketing to product management",
  "importance": "high",
  "tags": ["career", "transition", "product-management", "goals"]
}]"""


# -- Naive extraction --------------------------------------------------------


def extract_tags(text: str) -> list[str]:
    """Up to five distinct words longer than three letters, stop words removed."""
    words = _NON_WORD_RE.sub("", text.lower()).split()
    tags: list[str] = []
    for word in words:
        if len(word) > 3 and word not in STOP_WORDS and word not in tags:
            tags.append(word)
    return tags[:MAX_TAGS]


def conversation_context(day: date | None = None) -> str:
    return f"Conversation on {(day or date.today()).isoformat()}"


def derive_memory(message: str, conversation_id: str | None = None) -> Memory | None:
    """Turn a user message into a memory, or None if it is too short."""
    text = message.strip()
    if len(text) <= MIN_MEMORY_LENGTH:
        return None
    importance = Importance.MEDIUM if len(message) > MEDIUM_IMPORTANCE_LENGTH else Importance.LOW
    return Memory(
        content=message,
        context=conversation_context(),
        importance=importance,
        tags=extract_tags(message),
        conversation_id=conversation_id,
    )


async def attach_embedding(memory: Memory) -> Memory:
    """Fill in ``memory.embedding``; leaves it empty if the call fails."""
    try:
        vector = await embed_text(memory.content)
    except Exception:
        logger.warning("Embedding failed for memory %s", memory.id, exc_info=True)
        return memory
    if len(vector) == settings.embedding_dimensions:
        memory.embedding = vector
    else:
        logger.warning(
            "Discarding %d-dimension embedding (expected %d)",
            len(vector),
            settings.embedding_dimensions,
        )
    return memory


# -- LLM extraction ----------------------------------------------------------


@dataclass
class ExtractedMemory:
    content: str
    importance: Importance = Importance.LOW
    tags: list[str] = field(default_factory=list)


def format_transcript(messages: list[dict[str, str]]) -> str:
    return "\n\n".join(f"{m.get('role', 'unknown')}: {m.get('content', '')}" for m in messages)


def build_extraction_prompt(conversation_text: str, context: str) -> str:
    return f"Context: {context}\n\nConversation:\n{conversation_text}"


def _coerce_importance(value: object) -> Importance:
    try:
        return Importance(str(value).lower())
    except ValueError:
        return Importance.LOW


def parse_extraction_result(text: str) -> list[ExtractedMemory]:
    """Parse the model's JSON array; anything unparseable yields []."""
    if not text or not text.strip():
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("[")
        end = text.rfind("]") + 1
        if start < 0 or end <= start:
            logger.warning("Failed to parse extraction JSON")
            return []
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError:
            logger.warning("Failed to parse extraction JSON")
            return []

    if isinstance(data, dict):
        data = data.get("memories", [])
    if not isinstance(data, list):
        return []

    extracted = []
    for item in data:
        if not isinstance(item, dict) or not item.get("content"):
            continue
        tags = item.get("tags") or []
        extracted.append(
            ExtractedMemory(
                content=str(item["content"]),
                importance=_coerce_importance(item.get("importance", "low")),
                tags=[str(tag) for tag in tags][:MAX_TAGS],
            )
        )
    return extracted


async def extract_memories(
    messages: list[dict[str, str]],
    *,
    conversation_id: str | None = None,
    store: MemoryStore | None = None,
) -> list[Memory]:
    """Ask the model which facts in *messages* to remember, then store them.

    Failures are logged and produce an empty list.
    """
    if not settings.memory_extraction_enabled or not messages:
        return []

    context = conversation_context()
    try:
        raw = await complete_text(
            [{"role": "user", "content": build_extraction_prompt(format_transcript(messages), context)}],
            system=EXTRACTION_SYSTEM_PROMPT,
        )
        extracted = parse_extraction_result(raw)
        memories = [
            await attach_embedding(
                Memory(
                    content=item.content,
                    context=context,
                    importance=item.importance,
                    tags=item.tags,
                    conversation_id=conversation_id,
                )
            )
            for item in extracted
        ]
        if memories:
            await (store or MemoryStore.get()).add_many(memories)
            logger.info("Extracted %d memories from exchange", len(memories))
        return memories
    except Exception:
        logger.exception("Memory extraction failed (non-fatal)")
        return []
