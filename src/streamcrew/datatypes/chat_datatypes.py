"""
Chat-side data structures shared by the classifier, orchestrator and sessions.

ChatMessage is the unit everything else is fed with; ScheduledResponse and
ConversationState are produced per decision cycle and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Tuple


class ChatRole(Enum):
    """Role of a chat author inside the channel."""

    USER = "user"
    MODERATOR = "moderator"
    BROADCASTER = "broadcaster"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "ChatRole | str | None") -> "ChatRole":
        """Coerce a transport-provided role into a ChatRole, defaulting to USER."""
        if isinstance(value, ChatRole):
            return value
        try:
            return cls(str(value or "user").strip().lower())
        except ValueError:
            return cls.USER


class ResponsePriority(Enum):
    """Priority attached to a scheduled persona reply."""

    HIGH = "high"
    LOW = "low"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """An inbound chat line.

    Attributes:
        channel: Channel (login name) the message was posted in.
        username: Author login name.
        text: Raw message text.
        role: Author role in the channel.
        timestamp: When the message was received.
    """

    channel: str
    username: str
    text: str
    role: ChatRole = ChatRole.USER
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_authored_by(self, name: str) -> bool:
        return self.username.lower() == name.lower()

    def format_line(self) -> str:
        """Render the message as ``username: text`` for prompts."""
        return f"{self.username}: {self.text}"


@dataclass(frozen=True, slots=True)
class ScheduledResponse:
    """One persona reply decided for one message."""

    persona_name: str
    delay_ms: float
    priority: ResponsePriority


@dataclass(frozen=True, slots=True)
class ConversationState:
    """Snapshot of a channel's conversational activity."""

    is_active: bool = False
    last_message_time: float | None = None
    messages_since_last_response: int = 0


@dataclass(frozen=True, slots=True)
class MessageClassification:
    """Result of classifying one message against the active personas."""

    mentions: Tuple[str, ...] = ()
    is_greeting: bool = False
