from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional

from turnspeak.app.logging_setup import log_event
from turnspeak.contracts import SpeechRequest
from turnspeak.errors import SynthesisError
from turnspeak.nlp.languages import locale_root


class Synthesizer(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def speak(self, req: SpeechRequest) -> None:
        """Play one request to completion (or until stop())."""

    @abstractmethod
    def stop(self) -> None:
        """Interrupt the request playing and any already handed to the engine."""

    def close(self) -> None:
        pass


def _voice_languages(voice: Any) -> list[str]:
    out: list[str] = []
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            # espeak reports b"\x05en-us": a priority byte then the tag
            lang = lang.decode("utf-8", errors="ignore")
        lang = "".join(ch for ch in str(lang) if ch.isprintable()).strip()
        if lang:
            out.append(lang.replace("_", "-").lower())
    return out


def pick_voice(voices: Iterable[Any], locale: str) -> Optional[str]:
    """Voice id for `locale`: exact tag first, then language root, else None."""
    voices = list(voices or [])
    tag = locale.replace("_", "-").lower()
    root = locale_root(locale)

    for voice in voices:
        if tag in _voice_languages(voice):
            return voice.id
    for voice in voices:
        if any(locale_root(lang) == root for lang in _voice_languages(voice)):
            return voice.id
    for voice in voices:
        # Some drivers (SAPI5, NSSpeech) only encode the language in the id.
        vid = str(getattr(voice, "id", "")).replace("_", "-").lower()
        if tag in vid or f"{root}-" in vid:
            return voice.id
    return None


class Pyttsx3Synthesizer(Synthesizer):
    """
    Offline TTS through pyttsx3.

    The engine lives on a single worker thread, so every channel that shares
    this synthesizer is serialized onto one output device.

    stop() never touches the engine from the caller's thread. It bumps a stop
    generation instead: jobs submitted before the bump return without speaking,
    and the engine's own word callback stops the utterance that is playing.
    """

    def __init__(self, *, driver_name: Optional[str] = None, logger: logging.Logger | None = None) -> None:
        self.driver_name = driver_name
        self.logger = logger or logging.getLogger(__name__)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="turnspeak-tts")
        self._engine = None
        self._base_rate: float = 200.0
        self._generation = 0
        self._playing: int | None = None

    @property
    def name(self) -> str:
        return "pyttsx3"

    def _create_engine(self):
        import pyttsx3

        return pyttsx3.init(self.driver_name)

    def _get_engine(self):
        if self._engine is None:
            engine = self._create_engine()
            self._base_rate = float(engine.getProperty("rate") or 200.0)
            engine.connect("started-utterance", self._on_progress)
            engine.connect("started-word", self._on_progress)
            self._engine = engine
        return self._engine

    def _on_progress(self, *_args: Any) -> None:
        # Runs on the engine thread inside runAndWait().
        if self._playing is not None and self._playing != self._generation:
            self._engine.stop()

    def _speak_blocking(self, req: SpeechRequest, generation: int) -> None:
        if generation != self._generation:
            log_event(self.logger, logging.DEBUG, "speech_skipped", locale=req.locale)
            return
        engine = self._get_engine()
        voice_id = pick_voice(engine.getProperty("voices"), req.locale)
        if voice_id is not None:
            engine.setProperty("voice", voice_id)
        engine.setProperty("rate", max(1, int(round(self._base_rate * req.rate))))
        # pyttsx3 exposes no pitch property; req.pitch is ignored here.
        self._playing = generation
        try:
            engine.say(req.text)
            engine.runAndWait()
        finally:
            self._playing = None

    async def speak(self, req: SpeechRequest) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self._speak_blocking, req, self._generation)
        except Exception as e:
            raise SynthesisError(f"pyttsx3 failed: {e}") from e

    def stop(self) -> None:
        self._generation += 1

    def close(self) -> None:
        self.stop()
        self._executor.shutdown(wait=False)
        log_event(self.logger, logging.INFO, "synth_closed", engine=self.name)


class SilentSynthesizer(Synthesizer):
    """Discards speech. Used with --tts off."""

    @property
    def name(self) -> str:
        return "off"

    async def speak(self, req: SpeechRequest) -> None:
        await asyncio.sleep(0)

    def stop(self) -> None:
        pass
