"""
Boundaries to the external collaborators.

The orchestration and moderation core only depends on these protocols; the
concrete implementations live in streamcrew.ai (completion service) and
streamcrew.platform (Helix, IRC); tests substitute AsyncMock objects.
"""

from __future__ import annotations

from typing import Callable, List, Protocol, Sequence

from streamcrew.datatypes.chat_datatypes import ChatMessage, ChatRole
from streamcrew.datatypes.moderation_datatypes import TimeoutRecord, Violation
from streamcrew.datatypes.persona_datatypes import PersonaConfig

InboundHandler = Callable[[str, str, str, ChatRole], None]


class PersonaRuntime(Protocol):
    async def generate_reply(
        self,
        persona: PersonaConfig,
        trigger_text: str,
        context: Sequence[ChatMessage] = (),
    ) -> str | None:
        """Return the persona's reply, or None when it has nothing to say.

        Raises:
            CompletionCallFailed: If the completion service errors.
        """
        ...

    async def classify_violations(
        self,
        persona: PersonaConfig,
        batch: Sequence[ChatMessage],
    ) -> List[Violation]:
        """Return the rule violations found in ``batch``.

        Raises:
            ClassifierError: If the call fails or returns an unusable payload.
        """
        ...


class ModerationApi(Protocol):
    async def resolve_user_id(self, username: str) -> str:
        """Raises UserResolutionFailed when the user does not exist."""
        ...

    async def timeout_user(self, channel_id: str, user_id: str, duration_seconds: int, reason: str) -> None:
        """Raises TimeoutApiError when the platform rejects the request."""
        ...

    async def is_stream_online(self) -> bool:
        ...


class ChatTransport(Protocol):
    def set_message_handler(self, handler: InboundHandler) -> None:
        ...

    async def connect(self, channel: str) -> None:
        ...

    async def send(self, persona_name: str, channel: str, text: str) -> None:
        ...

    async def close(self) -> None:
        ...


class ActionLog(Protocol):
    async def record_timeout(self, record: TimeoutRecord) -> None:
        ...


