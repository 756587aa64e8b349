"""Playback controller: at most one utterance plays at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from src.voice.models import VoiceSettings
from src.voice.tts import SpeechAudio, synthesize_speech

logger = logging.getLogger(__name__)

Synthesizer = Callable[..., Awaitable[SpeechAudio]]


@runtime_checkable
class AudioSink(Protocol):
    """Protocol for whatever actually makes sound."""

    async def play(self, audio: bytes, *, rate: float = 1.0) -> None:
        """Play *audio* and return when it finishes."""
        ...

    async def stop(self) -> None:
        """Halt the current output immediately."""
        ...


class PlaybackController:
    """Owns the single active playback.

    Starting a new utterance always stops the previous one first, and
    ``interrupt()`` lets the user cut the assistant off mid-sentence.
    """

    def __init__(
        self,
        sink: AudioSink,
        *,
        synthesizer: Synthesizer = synthesize_speech,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.sink = sink
        self._synthesize = synthesizer
        self.on_error = on_error
        self._current: asyncio.Task[None] | None = None

    @property
    def is_speaking(self) -> bool:
        return self._current is not None and not self._current.done()

    async def play(self, audio: bytes, rate: float = 1.0) -> asyncio.Task[None]:
        await self.stop()
        task = asyncio.create_task(self._run(audio, rate))
        self._current = task
        return task

    async def _run(self, audio: bytes, rate: float) -> None:
        try:
            await self.sink.play(audio, rate=rate)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Audio playback failed")
            if self.on_error is not None:
                self.on_error(exc)

    async def stop(self) -> None:
        task, self._current = self._current, None
        if task is None or task.done():
            return
        task.cancel()
        await self.sink.stop()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def interrupt(self) -> bool:
        """Stop speaking because the user started. Returns True if anything was cut off."""
        was_speaking = self.is_speaking
        await self.stop()
        if was_speaking:
            logger.info("Playback interrupted by user")
        return was_speaking

    async def wait(self) -> None:
        """Wait for the current utterance to finish (no-op when idle)."""
        if self._current is not None:
            try:
                await self._current
            except asyncio.CancelledError:
                pass

    async def speak(self, text: str, voice_settings: VoiceSettings | None = None) -> SpeechAudio:
        """Synthesize *text* and start playing it."""
        voice_settings = voice_settings or VoiceSettings()
        speech = await self._synthesize(text, voice_settings.voice, voice_settings.speed)
        await self.play(speech.audio)
        return speech
