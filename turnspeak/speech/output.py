from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from turnspeak.app.logging_setup import log_event
from turnspeak.contracts import SpeechRequest
from turnspeak.nlp.languages import code_for
from turnspeak.speech.synth import Synthesizer

SpeechFailureCallback = Callable[[SpeechRequest, BaseException], None]


class SpeechOutputChannel:
    """
    Fire-and-forget speech for one listener.

    speak() only enqueues; a worker task plays requests one at a time.
    cancel_all() drops the queue and interrupts the current utterance.
    """

    def __init__(
        self,
        synthesizer: Synthesizer,
        *,
        rate: float = 0.9,
        pitch: float = 1.0,
        on_failure: Optional[SpeechFailureCallback] = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        self.synthesizer = synthesizer
        self.rate = float(rate)
        self.pitch = float(pitch)
        self.on_failure = on_failure
        self.logger = logger or logging.getLogger(__name__)
        self._queue: asyncio.Queue[SpeechRequest] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._current: SpeechRequest | None = None
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def speaking(self) -> bool:
        return self._current is not None

    def speak(self, text: str, language: str) -> None:
        if self._closed or not (text or "").strip():
            return
        req = SpeechRequest(text=text, locale=code_for(language), rate=self.rate, pitch=self.pitch)
        self._queue.put_nowait(req)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain(), name="turnspeak-speech-output")

    def cancel_all(self) -> None:
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            dropped += 1
        if self._current is not None:
            self.synthesizer.stop()
        if dropped or self._current is not None:
            log_event(self.logger, logging.INFO, "speech_cancelled", dropped=dropped, interrupted=self._current is not None)

    async def _drain(self) -> None:
        while True:
            req = await self._queue.get()
            self._current = req
            try:
                await self.synthesizer.speak(req)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.warning(
                    "speech_failed",
                    extra={"engine": self.synthesizer.name, "locale": req.locale, "detail": str(e)},
                )
                if self.on_failure is not None:
                    self.on_failure(req, e)
            finally:
                self._current = None
                self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    async def aclose(self) -> None:
        self.cancel_all()
        self._closed = True
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
