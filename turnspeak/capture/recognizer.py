from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from turnspeak.contracts import RecognitionConfig, TranscriptEvent


class Recognizer(ABC):
    """
    Continuous speech recognition source.

    listen() returns a fresh async generator per call. It yields transcript
    events in spoken order until closed (aclose / cancellation) and raises
    CaptureError when the device or engine fails. A generator is never
    restarted; call listen() again instead.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def listen(self, config: RecognitionConfig) -> AsyncIterator[TranscriptEvent]: ...
