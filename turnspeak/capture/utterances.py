from __future__ import annotations

import logging
from typing import Iterable, Iterator, Protocol

from turnspeak.app.logging_setup import log_event
from turnspeak.audio.vad import SpeechDetector
from turnspeak.contracts import AudioChunk, TranscriptEvent


class UtteranceTranscriber(Protocol):
    def transcribe(
        self,
        pcm16: bytes,
        *,
        sample_rate: int,
        channels: int,
        language: str | None = None,
    ) -> str:
        ...


class LiveUtteranceTranscriber:
    """
    Turn a live chunk stream into interim/final transcript events.

    Speech chunks are buffered into an utterance. Every `interim_chunks`
    speech chunks the partial buffer is transcribed and emitted as INTERIM.
    The utterance is finalized (FINAL) after `silence_chunks` non-speech
    chunks, when it reaches `max_utter_sec`, or when the stream ends.
    """

    def __init__(
        self,
        *,
        transcriber: UtteranceTranscriber,
        vad: SpeechDetector,
        language: str | None = None,
        silence_chunks: int = 3,
        min_utter_sec: float = 0.4,
        max_utter_sec: float | None = 8.0,
        interim_chunks: int = 4,
        logger: logging.Logger | None = None,
    ) -> None:
        if silence_chunks <= 0:
            raise ValueError("silence_chunks must be > 0")
        if min_utter_sec < 0:
            raise ValueError("min_utter_sec must be >= 0")
        if max_utter_sec is not None and max_utter_sec <= 0:
            raise ValueError("max_utter_sec must be > 0 when set")
        if interim_chunks < 0:
            raise ValueError("interim_chunks must be >= 0")

        self.transcriber = transcriber
        self.vad = vad
        self.language = language
        self.silence_chunks = int(silence_chunks)
        self.min_utter_sec = float(min_utter_sec)
        self.max_utter_sec = float(max_utter_sec) if max_utter_sec is not None else None
        self.interim_chunks = int(interim_chunks)
        self.logger = logger or logging.getLogger(__name__)

        self._parts: list[bytes] = []
        self._bytes = 0
        self._sr = 0
        self._ch = 0
        self._speech_chunks = 0
        self._trailing_silence = 0

    @property
    def in_utterance(self) -> bool:
        return bool(self._parts)

    def _utter_sec(self) -> float:
        bytes_per_second = self._sr * self._ch * 2
        if bytes_per_second <= 0:
            return 0.0
        return self._bytes / float(bytes_per_second)

    def _reset(self) -> None:
        self._parts = []
        self._bytes = 0
        self._speech_chunks = 0
        self._trailing_silence = 0

    def _transcribe_buffer(self) -> str:
        text = self.transcriber.transcribe(
            b"".join(self._parts),
            sample_rate=self._sr,
            channels=self._ch,
            language=self.language,
        )
        return (text or "").strip()

    def _finalize(self, reason: str) -> Iterator[TranscriptEvent]:
        utter_sec = self._utter_sec()
        if utter_sec < self.min_utter_sec:
            log_event(self.logger, logging.DEBUG, "utterance_skipped_short", reason=reason, sec=round(utter_sec, 2))
            self._reset()
            return
        text = self._transcribe_buffer()
        log_event(
            self.logger,
            logging.DEBUG,
            "utterance_finalized",
            reason=reason,
            sec=round(utter_sec, 2),
            chars=len(text),
        )
        self._reset()
        if text:
            yield TranscriptEvent.final(text)

    def push(self, chunk: AudioChunk) -> Iterator[TranscriptEvent]:
        if self.vad.is_speech(chunk.pcm16, chunk.channels):
            if not self._parts:
                self._sr = int(chunk.sample_rate)
                self._ch = int(chunk.channels)
            self._parts.append(chunk.pcm16)
            self._bytes += len(chunk.pcm16)
            self._speech_chunks += 1
            self._trailing_silence = 0

            if self.max_utter_sec is not None and self._utter_sec() >= self.max_utter_sec:
                yield from self._finalize("max_utter_sec")
                return
            if self.interim_chunks and self._speech_chunks % self.interim_chunks == 0:
                partial = self._transcribe_buffer()
                if partial:
                    yield TranscriptEvent.interim(partial)
            return

        if self._parts:
            self._trailing_silence += 1
            if self._trailing_silence >= self.silence_chunks:
                yield from self._finalize("silence")

    def flush(self) -> Iterator[TranscriptEvent]:
        if self._parts:
            yield from self._finalize("stream_end")

    def events(self, chunk_iter: Iterable[AudioChunk]) -> Iterator[TranscriptEvent]:
        for chunk in chunk_iter:
            yield from self.push(chunk)
        yield from self.flush()
