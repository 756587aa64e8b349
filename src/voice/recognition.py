"""Speech recognition session: device-aware listening with bounded restarts.

The platform recognizer is injected as a ``SpeechEngine``; the session owns
the listening state, the running transcript and every restart decision.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable

from src.voice.models import DeviceClass
from src.voice.retry import (
    NO_SPEECH_MESSAGE,
    RecognitionError,
    RetryPolicy,
    classify,
)

logger = logging.getLogger(__name__)

END_RESTART_DELAY = 0.5
MAX_END_RESTARTS = 2


class VoiceUnavailableError(Exception):
    """Voice input cannot start (no recognizer, or microphone denied)."""


@runtime_checkable
class SpeechEngine(Protocol):
    """Protocol the platform speech recognizer must satisfy."""

    def configure(
        self, *, continuous: bool, interim_results: bool, lang: str, max_alternatives: int
    ) -> None:
        ...

    async def request_permission(self) -> bool:
        """Ask for microphone access. Returns True if granted."""
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


@dataclass
class TranscriptSegment:
    text: str
    is_final: bool = False


@dataclass
class Notice:
    """A toast for the user."""

    title: str
    description: str
    destructive: bool = False


class Outcome(StrEnum):
    RESTARTED = "restarted"
    STOPPED = "stopped"
    GAVE_UP = "gave_up"
    IGNORED = "ignored"


class RecognitionSession:
    """One user's listening state on one device."""

    def __init__(
        self,
        engine: SpeechEngine,
        device: DeviceClass = DeviceClass.DESKTOP,
        *,
        policy: RetryPolicy | None = None,
        lang: str = "en-US",
        on_transcript: Callable[[str, bool], None] | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.device = DeviceClass(device)
        self.policy = policy or RetryPolicy()
        self.policy.give_up = self._give_up
        self.lang = lang
        self.on_transcript = on_transcript
        self.on_notice = on_notice
        self._sleep = sleep

        self.is_listening = False
        self.voice_supported = True
        self.permission_granted = False
        self.transcript = ""
        self._restarting = False
        self._end_restarts = 0

        self.engine.configure(
            continuous=self.device.continuous,
            interim_results=self.device.continuous,
            lang=lang,
            max_alternatives=1,
        )
        logger.info("Speech recognition configured for %s", self.device)

    def _notify(self, title: str, description: str, destructive: bool = False) -> None:
        if self.on_notice is not None:
            self.on_notice(Notice(title, description, destructive))

    def _give_up(self, message: str) -> None:
        self.is_listening = False
        self._notify("Voice Recognition Unavailable", message, destructive=True)

    # -- Controls --------------------------------------------------------------

    async def start(self) -> bool:
        """Begin listening. Returns False (no-op) when already listening."""
        if self.is_listening:
            return False
        if not self.voice_supported:
            msg = "Speech recognition not supported"
            raise VoiceUnavailableError(msg)
        if not self.permission_granted:
            self.permission_granted = await self.engine.request_permission()
            if not self.permission_granted:
                self._notify(
                    "Microphone Access Denied",
                    "Please allow microphone access to use voice input.",
                    destructive=True,
                )
                msg = "Microphone permission denied"
                raise VoiceUnavailableError(msg)

        self.policy.reset()
        self._end_restarts = 0
        await self.engine.start()
        self.is_listening = True
        if self.device is DeviceClass.MOBILE:
            self._notify("Voice Mode Active", "Tap the microphone and speak, then pause to send.")
        else:
            self._notify("Voice Mode Active", "Speak naturally, Zoxaa is listening.")
        return True

    async def stop(self) -> None:
        self.is_listening = False
        self._restarting = False
        self.transcript = ""
        self.policy.reset()
        await self.engine.stop()

    def clear_transcript(self) -> None:
        self.transcript = ""

    # -- Engine events ---------------------------------------------------------

    def handle_result(self, segments: list[TranscriptSegment]) -> str:
        """Combine final and interim segments into the running transcript."""
        final = "".join(s.text for s in segments if s.is_final)
        interim = "" if not self.device.continuous else "".join(
            s.text for s in segments if not s.is_final
        )
        self.transcript = (final + interim).strip()
        if self.transcript and self.on_transcript is not None:
            self.on_transcript(self.transcript, bool(final))
        return self.transcript

    async def handle_error(self, code: str) -> Outcome:
        error = RecognitionError.parse(code)
        logger.warning("Speech recognition error: %s", error)
        handling = classify(error)

        match error:
            case RecognitionError.NOT_ALLOWED:
                self.permission_granted = False
            case RecognitionError.SERVICE_NOT_ALLOWED:
                self.voice_supported = False
            case _:
                pass

        if handling.terminal:
            self.is_listening = False
            self._notify("Voice Input Unavailable", handling.message, destructive=True)
            return Outcome.STOPPED

        prior = handling.max_prior_restarts
        if prior is not None and self.policy.attempts >= prior:
            self.is_listening = False
            if error is RecognitionError.NO_SPEECH:
                self._notify("No Speech Detected", NO_SPEECH_MESSAGE)
            return Outcome.STOPPED

        if not self.is_listening:
            return Outcome.IGNORED

        if handling.notify:
            self._notify("Voice Recognition Issue", handling.message, destructive=True)

        delay = self.policy.next_delay()
        if delay is None:
            return Outcome.GAVE_UP
        return await self._restart(delay)

    async def handle_end(self) -> Outcome:
        """The engine stopped on its own; restart briefly a bounded number of times."""
        if not self.is_listening or self._restarting:
            return Outcome.IGNORED
        if self._end_restarts >= MAX_END_RESTARTS:
            self.is_listening = False
            return Outcome.STOPPED
        self._end_restarts += 1
        return await self._restart(END_RESTART_DELAY, stop_first=False)

    async def _restart(self, delay: float, *, stop_first: bool = True) -> Outcome:
        self._restarting = True
        try:
            if stop_first:
                await self.engine.stop()
            await self._sleep(delay)
            if not self.is_listening:
                return Outcome.STOPPED
            await self.engine.start()
            return Outcome.RESTARTED
        except Exception:
            logger.exception("Failed to restart speech recognition")
            self.is_listening = False
            return Outcome.STOPPED
        finally:
            self._restarting = False
