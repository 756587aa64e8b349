"""Prompt assembly: persona + recalled memories + recent turns + new message."""

import logging
from collections.abc import Sequence
from pathlib import Path

from src.config import settings
from src.memory.models import Memory

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"

DEFAULT_PERSONA = (
    "You are Zoxaa, an empathetic AI companion and cognitive partner. "
    "You remember what the user shares and help them navigate life's "
    "challenges with honesty, empathy, and strategic thinking."
)


def _read_config(filename: str) -> str:
    """Read a config markdown file, returning empty string if missing."""
    path = CONFIG_DIR / filename
    if path.exists():
        return path.read_text(encoding="utf-8").strip()
    return ""


def load_persona() -> str:
    return _read_config("PERSONA.md") or DEFAULT_PERSONA


def _format_memories(memories: Sequence[Memory]) -> str:
    """Render memories as the bullet block appended to the system prompt."""
    if not memories:
        return ""
    lines = [
        f"- {m.content} ({m.importance} importance, tags: {', '.join(m.tags)})"
        for m in memories
    ]
    return "\n\nRelevant memories about this user:\n" + "\n".join(lines)


def build_system_prompt(memories: Sequence[Memory] = (), persona: str | None = None) -> str:
    """Persona text with the memory block appended (never a separate turn)."""
    return (persona or load_persona()) + _format_memories(memories)


def recent_history(
    history: Sequence[dict[str, str]], turns: int | None = None
) -> list[dict[str, str]]:
    """The last *turns* entries of *history*, reduced to role/content."""
    limit = settings.history_turns if turns is None else turns
    if limit <= 0:
        return []
    return [{"role": m["role"], "content": m["content"]} for m in history[-limit:]]


def assemble_messages(
    user_message: str,
    history: Sequence[dict[str, str]] = (),
    memories: Sequence[Memory] = (),
    *,
    persona: str | None = None,
    history_turns: int | None = None,
) -> list[dict[str, str]]:
    """Build ``[system, ...history, user]`` for the chat relay."""
    system = build_system_prompt(memories, persona)
    turns = recent_history(history, history_turns)
    logger.debug(
        "Assembled prompt: %d history turns, %d memories", len(turns), len(memories)
    )
    return [
        {"role": "system", "content": system},
        *turns,
        {"role": "user", "content": user_message},
    ]
