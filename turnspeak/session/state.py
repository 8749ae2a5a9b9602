from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from turnspeak.contracts import Speaker


class SessionPhase(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True)
class SessionSnapshot:
    phase: SessionPhase
    active_speaker: Optional[Speaker]
    muted: bool
    languages: Mapping[Speaker, str]
    interim_text: Mapping[Speaker, str]
    last_error: Mapping[Speaker, Optional[str]]


def _per_speaker(value):
    return {s: value for s in Speaker}


@dataclass
class SessionState:
    languages: dict[Speaker, str]
    active_speaker: Optional[Speaker] = None
    muted: bool = False
    phase: SessionPhase = SessionPhase.ACTIVE
    interim_text: dict[Speaker, str] = field(default_factory=lambda: _per_speaker(""))
    last_error: dict[Speaker, Optional[str]] = field(default_factory=lambda: _per_speaker(None))
    # bumped on every interim change; lets the pipeline clear only the fragment it saw
    interim_revision: dict[Speaker, int] = field(default_factory=lambda: _per_speaker(0))

    def __post_init__(self) -> None:
        missing = [s for s in Speaker if s not in self.languages]
        if missing:
            raise ValueError(f"language missing for {', '.join(s.value for s in missing)}")

    @property
    def is_active(self) -> bool:
        return self.phase is SessionPhase.ACTIVE

    def set_interim(self, speaker: Speaker, text: str) -> int:
        self.interim_text[speaker] = text
        self.interim_revision[speaker] += 1
        return self.interim_revision[speaker]

    def clear_interim(self, speaker: Speaker, *, if_revision: Optional[int] = None) -> bool:
        if if_revision is not None and self.interim_revision[speaker] != if_revision:
            return False
        if not self.interim_text[speaker]:
            return False
        self.set_interim(speaker, "")
        return True

    def set_capture_error(self, speaker: Speaker, detail: str) -> None:
        self.last_error[speaker] = detail

    def clear_capture_error(self, speaker: Speaker) -> None:
        self.last_error[speaker] = None

    def set_ended(self) -> None:
        self.phase = SessionPhase.ENDED
        self.active_speaker = None
        for s in Speaker:
            self.interim_text[s] = ""

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self.phase,
            active_speaker=self.active_speaker,
            muted=self.muted,
            languages=dict(self.languages),
            interim_text=dict(self.interim_text),
            last_error=dict(self.last_error),
        )
