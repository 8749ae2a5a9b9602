from __future__ import annotations

from typing import Iterator, Optional

from turnspeak.contracts import Message, Speaker


class MessageLog:
    """
    Append-only transcript of translated utterances.

    Insertion order is creation order; ids must strictly increase. There is
    no removal, no mutation and no size bound.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, message: Message) -> None:
        if self._messages and message.id <= self._messages[-1].id:
            raise ValueError(
                f"message id {message.id} must be greater than last id {self._messages[-1].id}"
            )
        self._messages.append(message)

    def all(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def by_speaker(self, speaker: Speaker) -> tuple[Message, ...]:
        return tuple(m for m in self._messages if m.speaker is speaker)

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
