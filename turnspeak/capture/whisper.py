from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable, Iterator

from turnspeak.app.logging_setup import log_event
from turnspeak.audio.vad import SpeechDetector
from turnspeak.capture.recognizer import Recognizer
from turnspeak.capture.utterances import LiveUtteranceTranscriber, UtteranceTranscriber
from turnspeak.contracts import AudioChunk, RecognitionConfig, TranscriptEvent
from turnspeak.errors import CaptureError
from turnspeak.nlp.languages import locale_root

ChunkSource = Callable[[threading.Event], Iterable[AudioChunk]]


@dataclass(frozen=True)
class UtteranceSettings:
    silence_chunks: int = 3
    min_utter_sec: float = 0.4
    max_utter_sec: float | None = 8.0
    interim_chunks: int = 4


@dataclass(frozen=True)
class _Failed:
    exc: BaseException


_END = object()


def _close_source(chunks: Iterator[AudioChunk]) -> None:
    close = getattr(chunks, "close", None)
    if close is not None:
        close()


class WhisperRecognizer(Recognizer):
    """
    Microphone -> VAD -> faster-whisper recognizer.

    The blocking capture loop runs on a worker thread per listen() call and
    hands events to the asyncio loop with call_soon_threadsafe. Closing the
    generator sets the worker's stop flag; audio buffered at that point is
    dropped.

    Recognizers that read the same device share one `mic_gate`. A listen()
    holds the gate from before its source opens until that source is closed,
    so a second stream never opens the device while the first still has it.
    """

    def __init__(
        self,
        *,
        chunk_source: ChunkSource,
        transcriber: UtteranceTranscriber,
        vad_factory: Callable[[], SpeechDetector],
        settings: UtteranceSettings = UtteranceSettings(),
        mic_gate: asyncio.Lock | None = None,
        release_timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.chunk_source = chunk_source
        self.transcriber = transcriber
        self.vad_factory = vad_factory
        self.settings = settings
        self.mic_gate = mic_gate if mic_gate is not None else asyncio.Lock()
        self.release_timeout = float(release_timeout)
        self.logger = logger or logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return "faster-whisper"

    def _run_capture(
        self,
        config: RecognitionConfig,
        stop: threading.Event,
        released: threading.Event,
        emit: Callable[[object], None],
    ) -> None:
        interim_chunks = self.settings.interim_chunks if config.interim_results else 0
        runner = LiveUtteranceTranscriber(
            transcriber=self.transcriber,
            vad=self.vad_factory(),
            language=locale_root(config.locale),
            silence_chunks=self.settings.silence_chunks,
            min_utter_sec=self.settings.min_utter_sec,
            max_utter_sec=self.settings.max_utter_sec,
            interim_chunks=interim_chunks,
            logger=self.logger,
        )
        try:
            chunks = iter(self.chunk_source(stop))
            try:
                for chunk in chunks:
                    if stop.is_set():
                        return
                    for event in runner.push(chunk):
                        emit(event)
                        if event.is_final and not config.continuous:
                            return
            finally:
                _close_source(chunks)
                released.set()
            if not stop.is_set():
                for event in runner.flush():
                    emit(event)
        except Exception as e:
            emit(_Failed(e))
        finally:
            released.set()
            emit(_END)

    async def listen(self, config: RecognitionConfig) -> AsyncIterator[TranscriptEvent]:
        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue[object] = asyncio.Queue()
        stop = threading.Event()
        released = threading.Event()

        def _emit(item: object) -> None:
            if stop.is_set() and item is not _END:
                return
            try:
                loop.call_soon_threadsafe(inbox.put_nowait, item)
            except RuntimeError:
                # Loop already closed; nobody is listening any more.
                stop.set()

        async with self.mic_gate:
            worker = threading.Thread(
                target=self._run_capture,
                args=(config, stop, released, _emit),
                name=f"turnspeak-capture-{config.locale}",
                daemon=True,
            )
            worker.start()
            log_event(self.logger, logging.INFO, "capture_stream_open", locale=config.locale, engine=self.name)
            try:
                while True:
                    item = await inbox.get()
                    if item is _END:
                        return
                    if isinstance(item, _Failed):
                        if isinstance(item.exc, CaptureError):
                            raise item.exc
                        raise CaptureError(f"Recognizer failed: {item.exc}") from item.exc
                    yield item  # type: ignore[misc]
            finally:
                stop.set()
                # The worker may be mid-read or mid-transcription; hold the gate until the device is closed.
                if not await asyncio.to_thread(released.wait, self.release_timeout):
                    log_event(
                        self.logger,
                        logging.WARNING,
                        "capture_release_timeout",
                        locale=config.locale,
                        timeout_s=self.release_timeout,
                    )
                log_event(self.logger, logging.INFO, "capture_stream_closed", locale=config.locale)
