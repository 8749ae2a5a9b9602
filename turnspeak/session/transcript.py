from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable

from turnspeak.contracts import Message, Speaker


class LineKind(str, Enum):
    SAID = "said"
    HEARD = "heard"


@dataclass(frozen=True)
class TranscriptLine:
    kind: LineKind
    message_id: int
    text: str
    original_text: str
    created_at: datetime
    translation_ok: bool = True


def transcript_for(messages: Iterable[Message], viewer: Speaker) -> list[TranscriptLine]:
    """The shared log as one side sees it: own lines as SAID, the other side's as HEARD."""
    out: list[TranscriptLine] = []
    for m in messages:
        own = m.speaker is viewer
        out.append(
            TranscriptLine(
                kind=LineKind.SAID if own else LineKind.HEARD,
                message_id=m.id,
                text=m.original_text if own else m.translated_text,
                original_text=m.original_text,
                created_at=m.created_at,
                translation_ok=m.translation_ok,
            )
        )
    return out


def format_line(line: TranscriptLine) -> str:
    stamp = line.created_at.strftime("%H:%M:%S")
    if line.kind is LineKind.SAID:
        return f"[{stamp}] You said: {line.text}"
    return f'[{stamp}] You hear: {line.text} (Original: "{line.original_text}")'
