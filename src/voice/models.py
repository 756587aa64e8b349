"""Closed vocabularies for the voice bridge."""

import re
from dataclasses import dataclass
from enum import StrEnum

_MOBILE_UA_RE = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.I)


class Voice(StrEnum):
    ZOXAA = "zoxaa"
    ALLOY = "alloy"
    ECHO = "echo"
    FABLE = "fable"
    ONYX = "onyx"
    NOVA = "nova"
    SHIMMER = "shimmer"

    @property
    def upstream(self) -> str:
        """Voice name the TTS endpoint understands."""
        match self:
            case Voice.ZOXAA:
                return Voice.ALLOY.value
            case Voice.ALLOY | Voice.ECHO | Voice.FABLE | Voice.ONYX | Voice.NOVA | Voice.SHIMMER:
                return self.value


class VoiceEmotion(StrEnum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    EXCITED = "excited"
    CALM = "calm"
    CONCERNED = "concerned"


class DeviceClass(StrEnum):
    DESKTOP = "desktop"
    MOBILE = "mobile"

    @classmethod
    def from_user_agent(cls, user_agent: str) -> "DeviceClass":
        return cls.MOBILE if _MOBILE_UA_RE.search(user_agent or "") else cls.DESKTOP

    @property
    def continuous(self) -> bool:
        """Desktop keeps one long session with interim results; mobile is single-shot."""
        match self:
            case DeviceClass.DESKTOP:
                return True
            case DeviceClass.MOBILE:
                return False


@dataclass
class VoiceSettings:
    voice: Voice = Voice.ZOXAA
    speed: float = 1.0
    pitch: float = 1.0
    emotion: VoiceEmotion = VoiceEmotion.NEUTRAL

    def __post_init__(self) -> None:
        self.voice = Voice(self.voice)
        self.emotion = VoiceEmotion(self.emotion)
