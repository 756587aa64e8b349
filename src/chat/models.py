"""Conversation records and the keyword emotion tagger."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

TITLE_LENGTH = 100
SUMMARY_LENGTH = 200


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Role
    content: str
    timestamp: str = Field(default_factory=_now)

    def to_api(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class Emotion(StrEnum):
    HAPPY = "happy"
    SAD = "sad"
    ANXIOUS = "anxious"
    ANGRY = "angry"
    HOPEFUL = "hopeful"

    @property
    def keywords(self) -> tuple[str, ...]:
        match self:
            case Emotion.HAPPY:
                return ("happy", "excited", "joy", "great", "amazing", "wonderful")
            case Emotion.SAD:
                return ("sad", "depressed", "down", "upset", "terrible", "awful")
            case Emotion.ANXIOUS:
                return ("anxious", "worried", "nervous", "stressed", "overwhelmed")
            case Emotion.ANGRY:
                return ("angry", "frustrated", "mad", "annoyed", "irritated")
            case Emotion.HOPEFUL:
                return ("hopeful", "optimistic", "confident", "motivated", "determined")


class Intensity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EmotionContext(BaseModel):
    detected_emotions: list[Emotion] = Field(default_factory=list)
    intensity: Intensity = Intensity.LOW
    timestamp: str = Field(default_factory=_now)


def detect_emotions(text: str) -> EmotionContext:
    """Tag *text* with every emotion whose keywords appear in it (substring match)."""
    lowered = text.lower()
    found = [e for e in Emotion if any(kw in lowered for kw in e.keywords)]
    if len(found) > 2:
        intensity = Intensity.HIGH
    elif found:
        intensity = Intensity.MEDIUM
    else:
        intensity = Intensity.LOW
    return EmotionContext(detected_emotions=found, intensity=intensity)


class Conversation(BaseModel):
    """A persisted exchange. Messages are only ever appended."""

    id: str = Field(default_factory=lambda: f"conv_{uuid.uuid4().hex}")
    title: str = ""
    summary: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)
    emotions: EmotionContext = Field(default_factory=EmotionContext)
    memory_ids: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    @classmethod
    def start(cls, user_message: str, messages: list[ChatMessage]) -> Conversation:
        """New record titled and summarised from the opening user message."""
        return cls(
            title=user_message[:TITLE_LENGTH],
            summary=f"Conversation about: {user_message[:SUMMARY_LENGTH]}...",
            messages=list(messages),
            emotions=detect_emotions(user_message),
        )
