"""Tests for PlaybackController: single active playback."""

import asyncio
from unittest.mock import AsyncMock

from src.voice.models import Voice, VoiceSettings
from src.voice.playback import AudioSink, PlaybackController
from src.voice.tts import SpeechAudio


class FakeSink:
    """Plays until released or stopped."""

    def __init__(self) -> None:
        self.started: list[bytes] = []
        self.rates: list[float] = []
        self.stops = 0
        self.release = asyncio.Event()

    async def play(self, audio: bytes, *, rate: float = 1.0) -> None:
        self.started.append(audio)
        self.rates.append(rate)
        await self.release.wait()

    async def stop(self) -> None:
        self.stops += 1


class FailingSink(FakeSink):
    async def play(self, audio: bytes, *, rate: float = 1.0) -> None:
        raise RuntimeError("device busy")


def test_fake_sink_satisfies_protocol() -> None:
    assert isinstance(FakeSink(), AudioSink)


async def test_play_marks_speaking_until_done() -> None:
    sink = FakeSink()
    controller = PlaybackController(sink)

    task = await controller.play(b"one")
    await asyncio.sleep(0)
    assert controller.is_speaking

    sink.release.set()
    await task
    assert not controller.is_speaking


async def test_new_playback_stops_previous() -> None:
    sink = FakeSink()
    controller = PlaybackController(sink)

    first = await controller.play(b"one")
    await asyncio.sleep(0)
    second = await controller.play(b"two")
    await asyncio.sleep(0)

    assert first.cancelled()
    assert not second.done()
    assert sink.stops == 1
    assert sink.started == [b"one", b"two"]
    assert controller.is_speaking

    await controller.stop()


async def test_interrupt() -> None:
    sink = FakeSink()
    controller = PlaybackController(sink)

    assert await controller.interrupt() is False

    await controller.play(b"one")
    await asyncio.sleep(0)
    assert await controller.interrupt() is True
    assert not controller.is_speaking
    assert sink.stops == 1


async def test_playback_error_reported() -> None:
    errors: list[Exception] = []
    controller = PlaybackController(FailingSink(), on_error=errors.append)

    await controller.play(b"one")
    await controller.wait()

    assert len(errors) == 1
    assert "device busy" in str(errors[0])
    assert not controller.is_speaking


async def test_speak_synthesizes_then_plays() -> None:
    sink = FakeSink()
    sink.release.set()
    speech = SpeechAudio(audio=b"mp3", voice="nova", speed=1.25, duration=0.4)
    synthesizer = AsyncMock(return_value=speech)
    controller = PlaybackController(sink, synthesizer=synthesizer)

    result = await controller.speak("hello", VoiceSettings(voice=Voice.NOVA, speed=1.25))
    await controller.wait()

    assert result is speech
    synthesizer.assert_awaited_once_with("hello", Voice.NOVA, 1.25)
    assert sink.started == [b"mp3"]
