from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Mapping, Optional, Protocol

from turnspeak.app.logging_setup import log_event
from turnspeak.contracts import Speaker


class CaptureControl(Protocol):
    def start(self) -> bool:
        ...

    def stop(self) -> None:
        ...


class TurnState(str, Enum):
    IDLE = "idle"
    SPEAKER1_ACTIVE = "speaker1_active"
    SPEAKER2_ACTIVE = "speaker2_active"


class TurnPolicy(str, Enum):
    PREEMPT = "preempt"
    REJECT = "reject"


_ACTIVE_STATE = {
    Speaker.SPEAKER1: TurnState.SPEAKER1_ACTIVE,
    Speaker.SPEAKER2: TurnState.SPEAKER2_ACTIVE,
}


def active_state(speaker: Speaker) -> TurnState:
    return _ACTIVE_STATE[speaker]


def speaker_of(state: TurnState) -> Optional[Speaker]:
    for speaker, st in _ACTIVE_STATE.items():
        if st is state:
            return speaker
    return None


ChangeCallback = Callable[[TurnState, TurnState], None]
RejectCallback = Callable[[Speaker, Speaker], None]


class TurnArbiter:
    """
    Sole owner of capture-channel lifecycle.

    At most one channel is active. request_activate() is a toggle: it turns
    the requester off if it is active, otherwise turns it on. When the other
    speaker holds the turn, PREEMPT stops them first (stop observed before
    start) and REJECT leaves everything unchanged.
    """

    def __init__(
        self,
        channels: Mapping[Speaker, CaptureControl],
        *,
        policy: TurnPolicy = TurnPolicy.PREEMPT,
        on_change: Optional[ChangeCallback] = None,
        on_reject: Optional[RejectCallback] = None,
        logger: logging.Logger | None = None,
    ) -> None:
        missing = [s for s in Speaker if s not in channels]
        if missing:
            raise ValueError(f"capture channel missing for {', '.join(s.value for s in missing)}")
        self.channels = dict(channels)
        self.policy = TurnPolicy(policy)
        self.on_change = on_change
        self.on_reject = on_reject
        self.logger = logger or logging.getLogger(__name__)
        self._state = TurnState.IDLE
        self._closed = False

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def active_speaker(self) -> Optional[Speaker]:
        return speaker_of(self._state)

    @property
    def closed(self) -> bool:
        return self._closed

    def _transition(self, new: TurnState) -> None:
        old, self._state = self._state, new
        if old is new:
            return
        log_event(self.logger, logging.INFO, "turn_changed", old=old, new=new)
        if self.on_change is not None:
            self.on_change(old, new)

    def _deactivate(self, speaker: Speaker) -> None:
        self.channels[speaker].stop()
        self._transition(TurnState.IDLE)

    def _activate(self, speaker: Speaker) -> None:
        self.channels[speaker].start()
        self._transition(active_state(speaker))

    def request_activate(self, speaker: Speaker) -> TurnState:
        if self._closed:
            log_event(self.logger, logging.WARNING, "turn_request_after_shutdown", speaker=speaker)
            return self._state

        active = self.active_speaker
        if active is speaker:
            self._deactivate(speaker)
        elif active is None:
            self._activate(speaker)
        elif self.policy is TurnPolicy.REJECT:
            log_event(self.logger, logging.INFO, "turn_rejected", speaker=speaker, holder=active)
            if self.on_reject is not None:
                self.on_reject(speaker, active)
        else:
            self._deactivate(active)
            self._activate(speaker)
        return self._state

    def release(self, speaker: Speaker) -> TurnState:
        """Return to IDLE after `speaker`'s channel stopped on its own (capture failure)."""
        if self.active_speaker is speaker:
            self._deactivate(speaker)
        return self._state

    def shutdown(self) -> None:
        if self._closed:
            return
        active = self.active_speaker
        if active is not None:
            self._deactivate(active)
        self._closed = True
        log_event(self.logger, logging.INFO, "turn_arbiter_shutdown")
