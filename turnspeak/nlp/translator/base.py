from __future__ import annotations
from abc import ABC, abstractmethod
from turnspeak.contracts import TranslationRequest, TranslationResult

class Translator(ABC):
    """Synchronous translation backend. Raise TranslationError for unusable replies."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def translate(self, req: TranslationRequest) -> TranslationResult: ...
