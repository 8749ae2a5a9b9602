from __future__ import annotations


class TurnSpeakError(RuntimeError):
    pass


class CaptureError(TurnSpeakError):
    """Microphone or recognizer failure for one capture channel."""


class TranslationError(TurnSpeakError):
    """Translation endpoint answered, but not with a usable translation."""


class SynthesisError(TurnSpeakError):
    pass


class SessionEndedError(TurnSpeakError):
    pass
