"""Per-channel conversational activity tracking."""

from __future__ import annotations

from streamcrew.datatypes.chat_datatypes import ConversationState

DEFAULT_CONVERSATION_TIMEOUT_MS = 30_000.0


class ConversationTracker:
    """
    Track whether a channel conversation is live.

    One tracker exists per channel and is only touched from that channel's
    dispatch task, so it needs no locking. Times are plain clock readings in
    seconds (``time.monotonic()`` in production).
    """

    def __init__(self, conversation_timeout_ms: float = DEFAULT_CONVERSATION_TIMEOUT_MS) -> None:
        self._timeout_seconds = conversation_timeout_ms / 1000.0
        self._is_active = False
        self._last_message_time: float | None = None
        self._messages_since_last_response = 0

    def update(self, now: float, *, is_response: bool = False) -> None:
        """Account for one inbound message received at ``now``.

        An idle gap longer than the timeout resets the conversation before the
        new message is counted. A message written by a persona counts as a
        response and resets the counter afterwards.
        """
        if self._last_message_time is not None and now - self._last_message_time > self._timeout_seconds:
            self._is_active = False
            self._messages_since_last_response = 0

        self._messages_since_last_response += 1
        self._is_active = True
        self._last_message_time = now

        if is_response:
            self._messages_since_last_response = 0

    def snapshot(self) -> ConversationState:
        return ConversationState(
            is_active=self._is_active,
            last_message_time=self._last_message_time,
            messages_since_last_response=self._messages_since_last_response,
        )
