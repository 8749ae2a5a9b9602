from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Speaker(str, Enum):
    SPEAKER1 = "speaker1"
    SPEAKER2 = "speaker2"

    @property
    def other(self) -> "Speaker":
        return Speaker.SPEAKER2 if self is Speaker.SPEAKER1 else Speaker.SPEAKER1

    @property
    def label(self) -> str:
        return "User 1" if self is Speaker.SPEAKER1 else "User 2"


class TranscriptKind(str, Enum):
    INTERIM = "interim"
    FINAL = "final"


@dataclass(frozen=True)
class TranscriptEvent:
    kind: TranscriptKind
    text: str

    @classmethod
    def interim(cls, text: str) -> "TranscriptEvent":
        return cls(kind=TranscriptKind.INTERIM, text=text)

    @classmethod
    def final(cls, text: str) -> "TranscriptEvent":
        return cls(kind=TranscriptKind.FINAL, text=text)

    @property
    def is_final(self) -> bool:
        return self.kind is TranscriptKind.FINAL


@dataclass(frozen=True)
class RecognitionConfig:
    locale: str
    continuous: bool = True
    interim_results: bool = True


@dataclass(frozen=True)
class TranslationRequest:
    text: str
    source_lang: str = "en"
    target_lang: str = "es"


@dataclass(frozen=True)
class TranslationResult:
    source_text: str
    translated_text: str
    provider: str
    ok: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class SpeechRequest:
    text: str
    locale: str
    rate: float = 0.9
    pitch: float = 1.0


@dataclass(frozen=True)
class AudioChunk:
    """
    Raw PCM16 audio chunk captured from a live source (e.g., microphone).
    pcm16: little-endian signed 16-bit PCM bytes (interleaved if channels > 1).
    """
    pcm16: bytes
    sample_rate: int
    channels: int
    start_time: float  # seconds since stream start
    duration: float    # seconds


@dataclass(frozen=True)
class Message:
    id: int
    speaker: Speaker
    original_text: str
    translated_text: str
    original_language: str
    translated_language: str
    timestamp: float  # seconds since session start (monotonic)
    translation_ok: bool = True
    created_at: datetime = field(default_factory=datetime.now)
