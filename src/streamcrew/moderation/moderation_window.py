"""
Fixed-capacity, time-expiring buffer of recent chat messages.

Entries are stamped with ``expires_at = now + ttl`` when added and the stamp
never changes. Since stamps grow with insertion order, expired entries always
form a prefix of the buffer: purging scans from the front and stops at the
first live entry.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, List

from streamcrew.datatypes.chat_datatypes import ChatMessage
from streamcrew.datatypes.moderation_datatypes import WindowEntry

DEFAULT_MAX_MESSAGES = 10
DEFAULT_TTL_SECONDS = 600.0

Clock = Callable[[], float]


class ModerationWindow:
    """
    Ring buffer of the most recent messages of one channel.

    Args:
        max_messages: Capacity; the oldest entry is evicted beyond it.
        ttl_seconds: Lifetime of each entry from its insertion.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._max_messages = max_messages
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Deque[WindowEntry] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def add(self, message: ChatMessage) -> None:
        """Append ``message``, enforce capacity, then purge expired entries."""
        now = self._clock()
        self._entries.append(WindowEntry(message=message, expires_at=now + self._ttl_seconds))
        if len(self._entries) > self._max_messages:
            self._entries.popleft()
        self._purge(now)

    def peek(self) -> List[ChatMessage]:
        """Return the live messages oldest-first after purging expired ones."""
        self._purge(self._clock())
        return [entry.message for entry in self._entries]

    def _purge(self, now: float) -> int:
        evicted = 0
        while self._entries and self._entries[0].is_expired(now):
            self._entries.popleft()
            evicted += 1
        return evicted
