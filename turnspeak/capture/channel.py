from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Callable, Optional

from turnspeak.app.diagnostics import describe_exception
from turnspeak.app.logging_setup import log_event
from turnspeak.capture.recognizer import Recognizer
from turnspeak.contracts import RecognitionConfig, Speaker, TranscriptEvent
from turnspeak.errors import CaptureError
from turnspeak.nlp.languages import code_for

TranscriptCallback = Callable[[Speaker, TranscriptEvent], None]
FailureCallback = Callable[[Speaker, BaseException], None]


class CaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


class SpeechCaptureChannel:
    """
    One speaker's continuous capture.

    start() opens a new recognizer stream and pumps its events to
    `on_transcript` in order. A failing stream stops the channel and is
    reported through `on_failure`; it never raises into the caller.
    """

    def __init__(
        self,
        speaker: Speaker,
        language: str,
        recognizer: Recognizer,
        *,
        on_transcript: TranscriptCallback,
        on_failure: Optional[FailureCallback] = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.speaker = speaker
        self.language = language
        self.locale = code_for(language)
        self.recognizer = recognizer
        self.on_transcript = on_transcript
        self.on_failure = on_failure
        self.logger = logger or logging.getLogger(__name__)
        self.state = CaptureState.IDLE
        self.last_error: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping: asyncio.Task[None] | None = None

    @property
    def is_active(self) -> bool:
        return self.state is CaptureState.LISTENING

    def start(self) -> bool:
        if self.is_active:
            return False
        config = RecognitionConfig(locale=self.locale, continuous=True, interim_results=True)
        self.state = CaptureState.LISTENING
        self.last_error = None
        self._task = asyncio.get_running_loop().create_task(
            self._pump(config),
            name=f"turnspeak-capture-{self.speaker.value}",
        )
        log_event(self.logger, logging.INFO, "capture_started", speaker=self.speaker, locale=self.locale)
        return True

    def stop(self) -> None:
        if not self.is_active and self._task is None:
            return
        self.state = CaptureState.IDLE
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            self._stopping = task
        log_event(self.logger, logging.INFO, "capture_stopped", speaker=self.speaker)

    async def wait_closed(self) -> None:
        """Wait until the last stopped stream has released its device."""
        task, self._stopping = self._stopping, None
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _pump(self, config: RecognitionConfig) -> None:
        try:
            stream = self.recognizer.listen(config)
            async with contextlib.aclosing(stream):
                async for event in stream:
                    if not self.is_active:
                        break
                    self.on_transcript(self.speaker, event)
            if self.is_active:
                raise CaptureError("capture stream ended unexpectedly")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(e)

    def _fail(self, exc: BaseException) -> None:
        self.state = CaptureState.IDLE
        self._task = None
        self.last_error = describe_exception(exc)
        self.logger.warning(
            "capture_failed",
            extra={"speaker": self.speaker, "detail": self.last_error},
            exc_info=exc,
        )
        if self.on_failure is not None:
            self.on_failure(self.speaker, exc)
