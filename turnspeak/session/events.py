from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from turnspeak.contracts import Speaker


class EventKind(str, Enum):
    TURN_CHANGED = "turn_changed"
    TURN_REJECTED = "turn_rejected"
    INTERIM = "interim"
    MESSAGE = "message"
    MUTE_CHANGED = "mute_changed"
    CAPTURE_FAILED = "capture_failed"
    SYNTHESIS_FAILED = "synthesis_failed"
    SESSION_ENDED = "session_ended"


@dataclass(frozen=True)
class SessionEvent:
    kind: EventKind
    speaker: Optional[Speaker] = None
    data: Mapping[str, Any] = field(default_factory=dict)


Listener = Callable[[SessionEvent], None]


class EventBus:
    """Synchronous fan-out to observers. A failing listener never breaks the session."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._listeners: list[Listener] = []
        self.logger = logger or logging.getLogger(__name__)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, kind: EventKind, speaker: Optional[Speaker] = None, **data: Any) -> SessionEvent:
        event = SessionEvent(kind=kind, speaker=speaker, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.logger.exception("listener_failed", extra={"event_kind": kind})
        return event

    def clear(self) -> None:
        self._listeners.clear()
