"""Data models for stored memories."""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class Importance(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Sort weight: high > medium > low."""
        match self:
            case Importance.HIGH:
                return 3
            case Importance.MEDIUM:
                return 2
            case Importance.LOW:
                return 1


def make_memory_id() -> str:
    return f"mem_{uuid.uuid4().hex}"


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Memory(BaseModel):
    """A short persisted fact about the user."""

    id: str = Field(default_factory=make_memory_id)
    content: str
    context: str = ""
    importance: Importance = Importance.LOW
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None
    conversation_id: str | None = None
    created_at: str = Field(default_factory=_now)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def to_public(self) -> dict:
        """JSON shape for API responses (the vector is left out)."""
        return self.model_dump(exclude={"embedding"})
