"""Pending queue of messages awaiting the next moderation flush."""

from __future__ import annotations

from typing import Iterable, List

from streamcrew.datatypes.chat_datatypes import ChatMessage, ChatRole


def is_moderation_eligible(message: ChatMessage, persona_names: Iterable[str]) -> bool:
    """Return True when ``message`` may be reviewed for violations.

    Moderators and the broadcaster are exempt, and personas never review
    themselves or each other.
    """
    if message.role is not ChatRole.USER:
        return False
    return not any(message.is_authored_by(name) for name in persona_names)


class ModerationQueue:
    """Transient list of eligible messages, emptied atomically by ``take_all``."""

    def __init__(self) -> None:
        self._messages: List[ChatMessage] = []

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)

    def enqueue(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def take_all(self) -> List[ChatMessage]:
        """Return every queued message and leave the queue empty."""
        batch, self._messages = self._messages, []
        return batch

    def clear(self) -> None:
        self._messages = []

    def snapshot(self) -> List[ChatMessage]:
        """Return a copy of the queued messages without clearing them."""
        return list(self._messages)
