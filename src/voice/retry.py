"""Bounded restart policy for speech recognition errors.

Every recoverable recognition error goes through one ``RetryPolicy``: a
capped number of attempts, a backoff schedule with a minimum spacing
between restarts, and a single give-up action once the cap is hit.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

logger = logging.getLogger(__name__)

GIVE_UP_MESSAGE = "Too many restart attempts. Please try again later or use text input."
NO_SPEECH_MESSAGE = "No speech detected. Please try speaking clearly or use text input."


class RecognitionError(StrEnum):
    NOT_ALLOWED = "not-allowed"
    SERVICE_NOT_ALLOWED = "service-not-allowed"
    NO_SPEECH = "no-speech"
    ABORTED = "aborted"
    NETWORK = "network"
    AUDIO_CAPTURE = "audio-capture"
    OTHER = "other"

    @classmethod
    def parse(cls, code: str) -> RecognitionError:
        try:
            return cls(code)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class ErrorHandling:
    """How the recognition session reacts to one error class.

    Attributes:
        restart: Try to start listening again.
        notify: Show ``message`` to the user.
        message: User-facing description.
        terminal: Voice input is unusable until the user acts.
        max_prior_restarts: Only restart when fewer restarts happened already.
    """

    restart: bool
    notify: bool
    message: str = ""
    terminal: bool = False
    max_prior_restarts: int | None = None


def classify(error: RecognitionError) -> ErrorHandling:
    match error:
        case RecognitionError.NOT_ALLOWED:
            return ErrorHandling(
                restart=False,
                notify=True,
                message="Please allow microphone access to use voice input.",
                terminal=True,
            )
        case RecognitionError.SERVICE_NOT_ALLOWED:
            return ErrorHandling(
                restart=False,
                notify=True,
                message="Speech recognition service is not available. Please use text input.",
                terminal=True,
            )
        case RecognitionError.NO_SPEECH:
            return ErrorHandling(restart=True, notify=False, max_prior_restarts=1)
        case RecognitionError.ABORTED:
            return ErrorHandling(restart=True, notify=False)
        case RecognitionError.NETWORK:
            return ErrorHandling(
                restart=True,
                notify=True,
                message="Network issue detected. Trying to reconnect...",
            )
        case RecognitionError.AUDIO_CAPTURE:
            return ErrorHandling(
                restart=True,
                notify=True,
                message="Microphone issue detected. Please check your microphone.",
            )
        case RecognitionError.OTHER:
            return ErrorHandling(
                restart=True,
                notify=True,
                message="Voice recognition hit a problem. Trying again...",
            )


@dataclass
class RetryPolicy:
    """Counts restart attempts and decides how long to wait before each one.

    ``next_delay()`` registers an attempt and returns the wait in seconds,
    or calls ``give_up`` and returns None once ``max_attempts`` is used up.
    The delay is never shorter than what is left of ``min_interval`` since
    the previous attempt.
    """

    max_attempts: int = 5
    backoff: tuple[float, ...] = (3.0, 5.0, 8.0)
    min_interval: float = 3.0
    give_up: Callable[[str], None] | None = None
    clock: Callable[[], float] = time.monotonic
    attempts: int = field(default=0, init=False)
    _last_attempt: float | None = field(default=None, init=False, repr=False)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> float | None:
        if self.exhausted:
            logger.warning("Giving up after %d restart attempts", self.attempts)
            if self.give_up is not None:
                self.give_up(GIVE_UP_MESSAGE)
            return None

        delay = self.backoff[min(self.attempts, len(self.backoff) - 1)] if self.backoff else 0.0
        now = self.clock()
        if self._last_attempt is not None:
            delay = max(delay, self.min_interval - (now - self._last_attempt))
        self.attempts += 1
        self._last_attempt = now + delay
        logger.info("Restart attempt %d/%d in %.1fs", self.attempts, self.max_attempts, delay)
        return delay

    def reset(self) -> None:
        self.attempts = 0
        self._last_attempt = None
