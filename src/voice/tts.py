"""Text-to-speech relay: validate, clamp, synthesize, encode."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any

from src.config import settings
from src.errors import InvalidRequestError
from src.llm.client import _get_client, require_api_key, upstream_call
from src.voice.models import Voice

logger = logging.getLogger(__name__)

AUDIO_FORMAT = "mp3"
AUDIO_MIME = "audio/mpeg"
MIN_SPEED = 0.25
WORDS_PER_SECOND = 2.5


@dataclass
class SpeechAudio:
    """Synthesized audio plus the metadata the client shows."""

    audio: bytes
    voice: str
    speed: float
    duration: float
    format: str = AUDIO_FORMAT

    @property
    def size(self) -> int:
        return len(self.audio)

    def to_payload(self) -> dict[str, Any]:
        return {
            "audio": base64.b64encode(self.audio).decode("ascii"),
            "format": self.format,
            "size": self.size,
            "duration": self.duration,
            "voice": self.voice,
            "speed": self.speed,
        }


def validate_text(text: Any) -> str:
    if not text or not isinstance(text, str) or not text.strip():
        raise InvalidRequestError("text parameter is required")
    if len(text) > settings.tts_max_text_length:
        raise InvalidRequestError(
            f"text exceeds maximum length of {settings.tts_max_text_length} characters"
        )
    return text


def resolve_voice(voice: Any) -> Voice:
    if voice is None or voice == "":
        return Voice(settings.tts_default_voice)
    try:
        return Voice(str(voice).lower())
    except ValueError:
        valid = ", ".join(v.value for v in Voice)
        raise InvalidRequestError(f"voice must be one of: {valid}") from None


def clamp_speed(speed: Any) -> float:
    """Apply the configured multiplier, then keep within the upstream range."""
    if speed is None:
        speed = 1.0
    if isinstance(speed, bool) or not isinstance(speed, int | float):
        raise InvalidRequestError("speed must be a number")
    scaled = float(speed) * settings.tts_speed_multiplier
    return max(MIN_SPEED, min(scaled, settings.tts_max_speed))


def estimate_duration(text: str, speed: float) -> float:
    """Rough playback length in seconds (about 150 words a minute at 1x)."""
    words = len(text.split())
    return round(words / (WORDS_PER_SECOND * speed), 2)


async def synthesize_speech(text: Any, voice: Any = None, speed: Any = 1.0) -> SpeechAudio:
    """Request MPEG audio for *text* from the TTS endpoint.

    Raises ``InvalidRequestError`` for bad input and the relay errors for
    upstream failures.
    """
    text = validate_text(text)
    chosen = resolve_voice(voice)
    rate = clamp_speed(speed)
    require_api_key()

    logger.info("Processing TTS request: %r voice=%s speed=%.2f", text[:50], chosen, rate)
    client = _get_client()
    async with upstream_call("Speech synthesis"):
        response = await client.audio.speech.create(
            model=settings.tts_model,
            voice=chosen.upstream,
            input=text,
            speed=rate,
            response_format=AUDIO_FORMAT,
        )
    audio = response.content
    logger.info("TTS audio generated, size: %d bytes", len(audio))
    return SpeechAudio(
        audio=audio,
        voice=chosen.upstream,
        speed=rate,
        duration=estimate_duration(text, rate),
    )


def decode_audio(payload: dict[str, Any]) -> bytes:
    """Base64-decode a TTS payload, checking the reported size when present."""
    try:
        audio = base64.b64decode(payload["audio"], validate=True)
    except (KeyError, TypeError, binascii.Error) as exc:
        msg = "payload has no valid base64 audio"
        raise ValueError(msg) from exc
    size = payload.get("size")
    if size is not None and size != len(audio):
        msg = f"payload reports {size} bytes but decodes to {len(audio)}"
        raise ValueError(msg)
    return audio
