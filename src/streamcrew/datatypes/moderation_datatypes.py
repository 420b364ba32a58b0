"""
Moderation data structures: window entries, violations and executed timeouts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from streamcrew.datatypes.chat_datatypes import ChatMessage


@dataclass(slots=True)
class WindowEntry:
    """A ChatMessage stored in the moderation window with its fixed expiry.

    Attributes:
        message: The buffered chat message.
        expires_at: Clock reading (seconds) after which the entry is purged.
    """

    message: ChatMessage
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now


@dataclass(frozen=True, slots=True)
class Violation:
    """A rule break flagged by the classification call.

    Attributes:
        username: Login name of the offending user.
        reason: Short human readable reason, forwarded to the platform.
        duration_seconds: Requested timeout length before clamping.
    """

    username: str
    reason: str
    duration_seconds: int


@dataclass(slots=True)
class TimeoutRecord:
    """A timeout that was accepted by the platform, kept for the action log."""

    channel: str
    username: str
    user_id: str
    duration_seconds: int
    reason: str
    moderator: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
