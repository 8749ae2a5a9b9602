from __future__ import annotations

import asyncio
import itertools
import logging
import time
from functools import partial
from typing import Callable, Mapping, Optional, Union

from turnspeak.app.diagnostics import describe_exception, hint_for_exception
from turnspeak.app.logging_setup import log_event
from turnspeak.capture.channel import SpeechCaptureChannel
from turnspeak.capture.recognizer import Recognizer
from turnspeak.contracts import Message, Speaker, SpeechRequest, TranscriptEvent
from turnspeak.errors import SessionEndedError
from turnspeak.nlp.translator.gateway import TranslationGateway
from turnspeak.session.arbiter import TurnArbiter, TurnPolicy, TurnState, speaker_of
from turnspeak.session.events import EventBus, EventKind, Listener
from turnspeak.session.log import MessageLog
from turnspeak.session.state import SessionSnapshot, SessionState
from turnspeak.session.transcript import TranscriptLine, transcript_for
from turnspeak.speech.output import SpeechOutputChannel
from turnspeak.speech.synth import Synthesizer

_STOP = None


class SessionCoordinator:
    """
    Root of a two-speaker translation session.

    Per finalized utterance: translate -> append Message -> speak the
    translation to the *other* speaker (unless muted or the translation
    failed). Each speaker's finals are processed one at a time in spoken
    order; the two speakers run concurrently, so the log is ordered by
    completion, not by when an utterance started.

    Everything runs on one asyncio loop. Capture, translation and synthesis
    failures are turned into state changes or sentinel values and reported
    as SessionEvents; none of them propagate out of the coordinator.
    """

    def __init__(
        self,
        *,
        languages: Mapping[Speaker, str],
        recognizers: Mapping[Speaker, Recognizer],
        gateway: TranslationGateway,
        synthesizer: Union[Synthesizer, Mapping[Speaker, Synthesizer]],
        policy: TurnPolicy = TurnPolicy.PREEMPT,
        speech_rate: float = 0.9,
        speech_pitch: float = 1.0,
        muted: bool = False,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.gateway = gateway
        self._state = SessionState(languages=dict(languages), muted=bool(muted))
        self._log: Optional[MessageLog] = MessageLog()
        self._ids = itertools.count(1)
        self._clock = clock
        self._t0 = clock()
        self._last_ts = 0.0
        self._bus = EventBus(logger=self.logger)
        self._ended = False

        self._captures = {
            s: SpeechCaptureChannel(
                s,
                self._state.languages[s],
                recognizers[s],
                on_transcript=self._on_transcript,
                on_failure=self._on_capture_failure,
                logger=self.logger,
            )
            for s in Speaker
        }

        synths = synthesizer if isinstance(synthesizer, Mapping) else {s: synthesizer for s in Speaker}
        self._synthesizers = synths
        self._outputs = {
            s: SpeechOutputChannel(
                synths[s],
                rate=speech_rate,
                pitch=speech_pitch,
                on_failure=partial(self._on_speech_failure, s),
                logger=self.logger,
            )
            for s in Speaker
        }

        self._arbiter = TurnArbiter(
            self._captures,
            policy=policy,
            on_change=self._on_turn_change,
            on_reject=self._on_turn_rejected,
            logger=self.logger,
        )

        self._finals: dict[Speaker, asyncio.Queue[Optional[tuple[str, int]]]] = {
            s: asyncio.Queue() for s in Speaker
        }
        self._workers: dict[Speaker, asyncio.Task[None]] = {}

        log_event(
            self.logger,
            logging.INFO,
            "session_start",
            speaker1_language=self._state.languages[Speaker.SPEAKER1],
            speaker2_language=self._state.languages[Speaker.SPEAKER2],
            policy=self._arbiter.policy,
            translator=getattr(getattr(gateway, "translator", None), "name", "unknown"),
        )

    # -- read side -------------------------------------------------------

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def muted(self) -> bool:
        return self._state.muted

    @property
    def active_speaker(self) -> Optional[Speaker]:
        return self._arbiter.active_speaker

    @property
    def turn_state(self) -> TurnState:
        return self._arbiter.state

    @property
    def captures(self) -> Mapping[Speaker, SpeechCaptureChannel]:
        return dict(self._captures)

    @property
    def outputs(self) -> Mapping[Speaker, SpeechOutputChannel]:
        return dict(self._outputs)

    def language_of(self, speaker: Speaker) -> str:
        return self._state.languages[speaker]

    def interim_text(self, speaker: Speaker) -> str:
        return self._state.interim_text[speaker]

    def messages(self) -> tuple[Message, ...]:
        return self._log.all() if self._log is not None else ()

    def messages_by(self, speaker: Speaker) -> tuple[Message, ...]:
        return self._log.by_speaker(speaker) if self._log is not None else ()

    def transcript_for(self, viewer: Speaker) -> list[TranscriptLine]:
        return transcript_for(self.messages(), viewer)

    def snapshot(self) -> SessionSnapshot:
        return self._state.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._bus.subscribe(listener)

    # -- commands --------------------------------------------------------

    def _require_active(self) -> None:
        if self._ended:
            raise SessionEndedError("session has ended")

    def toggle_capture(self, speaker: Speaker) -> TurnState:
        self._require_active()
        return self._arbiter.request_activate(Speaker(speaker))

    def set_muted(self, muted: bool) -> None:
        self._require_active()
        muted = bool(muted)
        if muted == self._state.muted:
            return
        self._state.muted = muted
        if muted:
            for out in self._outputs.values():
                out.cancel_all()
        log_event(self.logger, logging.INFO, "mute_changed", muted=muted)
        self._bus.emit(EventKind.MUTE_CHANGED, muted=muted)

    def toggle_mute(self) -> bool:
        self.set_muted(not self._state.muted)
        return self._state.muted

    def end_session(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._arbiter.shutdown()
        for out in self._outputs.values():
            out.cancel_all()

        dropped = 0
        for speaker, queue in self._finals.items():
            while True:
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                queue.task_done()
                dropped += 1
            if speaker in self._workers:
                queue.put_nowait(_STOP)

        message_count = len(self._log) if self._log is not None else 0
        self._log = None
        self._state.set_ended()
        log_event(
            self.logger,
            logging.INFO,
            "session_end",
            messages=message_count,
            dropped_finals=dropped,
        )
        self._bus.emit(EventKind.SESSION_ENDED, messages=message_count, dropped_finals=dropped)

    async def drain(self) -> None:
        """Wait until every queued final transcript has been processed."""
        await asyncio.gather(*(q.join() for q in self._finals.values()))

    async def aclose(self) -> None:
        self.end_session()
        await asyncio.gather(*(capture.wait_closed() for capture in self._captures.values()))
        await asyncio.gather(*(out.aclose() for out in self._outputs.values()))
        workers = list(self._workers.values())
        self._workers.clear()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        for synth in {id(s): s for s in self._synthesizers.values()}.values():
            synth.close()
        self._bus.clear()

    # -- capture side ----------------------------------------------------

    def _on_transcript(self, speaker: Speaker, event: TranscriptEvent) -> None:
        if self._ended:
            return
        if not event.is_final:
            self._state.set_interim(speaker, event.text)
            self._bus.emit(EventKind.INTERIM, speaker, text=event.text)
            return

        if self._state.clear_interim(speaker):
            self._bus.emit(EventKind.INTERIM, speaker, text="")
        text = (event.text or "").strip()
        if not text:
            return
        self._finals[speaker].put_nowait((text, self._state.interim_revision[speaker]))
        self._ensure_worker(speaker)

    def _ensure_worker(self, speaker: Speaker) -> None:
        worker = self._workers.get(speaker)
        if worker is None or worker.done():
            self._workers[speaker] = asyncio.get_running_loop().create_task(
                self._utterance_worker(speaker),
                name=f"turnspeak-utterances-{speaker.value}",
            )

    async def _utterance_worker(self, speaker: Speaker) -> None:
        queue = self._finals[speaker]
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                text, revision = item
                await self._process_final(speaker, text, revision)
            except Exception:
                self.logger.exception("utterance_pipeline_failed", extra={"speaker": speaker})
            finally:
                queue.task_done()

    def _now(self) -> float:
        ts = max(self._last_ts, self._clock() - self._t0)
        self._last_ts = ts
        return ts

    async def _process_final(self, speaker: Speaker, text: str, revision: int) -> None:
        listener = speaker.other
        from_language = self._state.languages[speaker]
        to_language = self._state.languages[listener]

        result = await self.gateway.translate(text, from_language, to_language)

        if self._ended or self._log is None:
            log_event(self.logger, logging.INFO, "translation_discarded", speaker=speaker, chars=len(text))
            return

        message = Message(
            id=next(self._ids),
            speaker=speaker,
            original_text=text,
            translated_text=result.translated_text,
            original_language=from_language,
            translated_language=to_language,
            timestamp=self._now(),
            translation_ok=result.ok,
        )
        self._log.append(message)
        log_event(
            self.logger,
            logging.INFO,
            "message_logged",
            id=message.id,
            speaker=speaker,
            translation_ok=result.ok,
            provider=result.provider,
        )
        self._bus.emit(EventKind.MESSAGE, speaker, message=message)

        if result.ok and not self._state.muted:
            self._outputs[listener].speak(result.translated_text, to_language)

        if self._state.clear_interim(speaker, if_revision=revision):
            self._bus.emit(EventKind.INTERIM, speaker, text="")

    def _on_capture_failure(self, speaker: Speaker, exc: BaseException) -> None:
        summary = describe_exception(exc)
        hint = hint_for_exception(summary)
        self._state.set_capture_error(speaker, summary)
        self._arbiter.release(speaker)
        self._bus.emit(EventKind.CAPTURE_FAILED, speaker, detail=summary, hint=hint)

    def _on_speech_failure(self, listener: Speaker, req: SpeechRequest, exc: BaseException) -> None:
        self._bus.emit(
            EventKind.SYNTHESIS_FAILED,
            listener,
            detail=describe_exception(exc),
            locale=req.locale,
        )

    # -- turn side -------------------------------------------------------

    def _on_turn_change(self, old: TurnState, new: TurnState) -> None:
        stopped = speaker_of(old)
        started = speaker_of(new)
        self._state.active_speaker = started
        if stopped is not None and stopped is not started and not self._ended:
            if self._state.clear_interim(stopped):
                self._bus.emit(EventKind.INTERIM, stopped, text="")
        if started is not None:
            self._state.clear_capture_error(started)
        self._bus.emit(EventKind.TURN_CHANGED, started, old=old, new=new)

    def _on_turn_rejected(self, requester: Speaker, holder: Speaker) -> None:
        self._bus.emit(EventKind.TURN_REJECTED, requester, holder=holder)
