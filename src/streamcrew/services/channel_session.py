"""
Channel Session.

Owns all per-channel state and the dispatch pipeline between inbound chat
lines and scheduled persona replies:

  1. Record the message in the moderation window (reply context)
  2. Queue it for moderation review when eligible
  3. Update the conversation tracker
  4. Drop the author from the active personas and classify the text
  5. Ask the orchestrator which personas answer, and when
  6. Hand each reply to the shared concurrency governor

Inbound lines are fed through one ``asyncio.Queue`` consumed by a single
dispatch task, so steps 1-6 run synchronously and in arrival order.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from streamcrew.configuration.tuning_settings import (
    ModerationSettings,
    OrchestratorSettings,
    StreamSettings,
)
from streamcrew.datatypes.chat_datatypes import ChatMessage, ScheduledResponse
from streamcrew.datatypes.persona_datatypes import PersonaRoster
from streamcrew.errors import CompletionCallFailed, PersonaNotFound
from streamcrew.moderation.moderation_queue import ModerationQueue, is_moderation_eligible
from streamcrew.moderation.moderation_window import ModerationWindow
from streamcrew.orchestration import message_classifier
from streamcrew.orchestration.concurrency_governor import ConcurrencyGovernor
from streamcrew.orchestration.conversation_tracker import ConversationTracker
from streamcrew.orchestration.response_orchestrator import ResponseOrchestrator
from streamcrew.platform.interfaces import ChatTransport, PersonaRuntime
from streamcrew.util.logger import get_logger

logger = get_logger("channel_session")


@dataclass(slots=True)
class SessionSettings:
    """Tunables a channel session needs, grouped for convenience."""

    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    moderation: ModerationSettings = field(default_factory=ModerationSettings)
    stream: StreamSettings = field(default_factory=StreamSettings)


class ChannelSession:
    """
    Per-channel conversation state and reply dispatch.

    Parameters
    ----------
    channel:
        Channel login name.
    roster:
        Configured personas.
    runtime:
        Completion service producing persona replies.
    transport:
        Chat transport replies are sent through.
    governor:
        Concurrency governor shared by every session.
    settings:
        Orchestrator, moderation and stream tunables.
    rng:
        Randomness for the orchestrator; seed it in tests.
    clock:
        Monotonic clock in seconds, used for conversation timing.
    """

    def __init__(
        self,
        *,
        channel: str,
        roster: PersonaRoster,
        runtime: PersonaRuntime,
        transport: ChatTransport,
        governor: ConcurrencyGovernor,
        settings: SessionSettings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.channel = channel
        self._roster = roster
        self._runtime = runtime
        self._transport = transport
        self._governor = governor
        self._settings = settings or SessionSettings()
        self._clock = clock

        self.window = ModerationWindow(
            max_messages=self._settings.moderation.max_messages,
            ttl_seconds=self._settings.moderation.ttl_seconds,
            clock=clock,
        )
        self.moderation_queue = ModerationQueue()
        self.tracker = ConversationTracker(self._settings.orchestrator.conversation_timeout_ms)
        self.orchestrator = ResponseOrchestrator(roster.names, self._settings.orchestrator, rng)

        self._inbox: asyncio.Queue[ChatMessage] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self.live = True
        self.messages_seen = 0
        self.replies_sent = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._dispatch_loop(), name=f"session-{self.channel}")
        logger.info("[SESSION] Dispatch started for #%s", self.channel)

    async def stop(self) -> None:
        """Stop the dispatch task. Messages still in the inbox are discarded."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[SESSION] Dispatch stopped for #%s", self.channel)

    def submit(self, message: ChatMessage) -> None:
        """Queue an inbound message for dispatch. Safe to call from sync callbacks."""
        self._inbox.put_nowait(message)

    async def wait_idle(self) -> None:
        """Wait until every submitted message has been processed."""
        await self._inbox.join()

    async def _dispatch_loop(self) -> None:
        while True:
            message = await self._inbox.get()
            try:
                self.process(message)
            except Exception:
                logger.exception("[SESSION] Failed to process message from %s in #%s", message.username, self.channel)
            finally:
                self._inbox.task_done()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, message: ChatMessage) -> List[ScheduledResponse]:
        """Run one message through the decision pipeline and schedule its replies."""
        self.messages_seen += 1
        persona_names = self._roster.names
        authored_by_persona = message.username in self._roster

        self.window.add(message)
        if self.live and is_moderation_eligible(message, persona_names):
            self.moderation_queue.enqueue(message)

        self.tracker.update(self._clock(), is_response=authored_by_persona)

        if not self.live:
            return []
        if authored_by_persona and not self._settings.orchestrator.respond_to_personas:
            return []

        active = [name for name in persona_names if not message.is_authored_by(name)]
        classification = message_classifier.classify(message.text, active)
        responses = self.orchestrator.determine_responses(
            classification.mentions,
            classification.is_greeting,
            author=message.username,
        )

        for response in responses:
            self._schedule_reply(response, message)
        return responses

    def _schedule_reply(self, response: ScheduledResponse, trigger: ChatMessage) -> None:
        persona_name = response.persona_name

        async def reply() -> None:
            await self._reply(persona_name, trigger)

        if not self._governor.schedule(persona_name, response.delay_ms, reply):
            logger.debug("[SESSION] Reply from %s not scheduled", persona_name)

    async def _reply(self, persona_name: str, trigger: ChatMessage) -> None:
        try:
            persona = self._roster.get(persona_name)
        except PersonaNotFound as exc:
            logger.error("[SESSION] %s", exc)
            return

        context = [line for line in self.window.peek() if line is not trigger]
        try:
            text = await self._runtime.generate_reply(persona, trigger.format_line(), context)
        except CompletionCallFailed as exc:
            logger.error("[SESSION] No reply from %s: %s", persona.name, exc)
            return

        if not text:
            logger.debug("[SESSION] %s had nothing to say", persona.name)
            return

        await self._send(persona.name, text)

    async def _send(self, persona_name: str, text: str) -> None:
        await self._transport.send(persona_name, self.channel, text)
        self.orchestrator.record_spoke(persona_name, self._clock())
        self.replies_sent += 1
        logger.info("[SESSION] %s -> #%s: %s", persona_name, self.channel, text)

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def post_intros(self) -> int:
        """Schedule every persona's intro message, staggered. Returns the count."""
        stagger = self._settings.stream.intro_stagger_ms
        scheduled = 0
        for persona in self._roster:
            if not persona.intro_message:
                continue
            name, text = persona.name, persona.intro_message

            async def intro(name: str = name, text: str = text) -> None:
                await self._send(name, text)

            if self._governor.schedule(name, scheduled * stagger, intro):
                scheduled += 1
        if scheduled:
            logger.info("[SESSION] Scheduled %d intro message(s) in #%s", scheduled, self.channel)
        return scheduled

    async def say(self, persona_name: str, text: str) -> None:
        """Send ``text`` as ``persona_name`` immediately, bypassing the governor.

        Raises:
            PersonaNotFound: If the persona is not configured.
        """
        persona = self._roster.get(persona_name)
        await self._send(persona.name, text)

    def status(self) -> Dict[str, Any]:
        state = self.tracker.snapshot()
        return {
            "channel": self.channel,
            "live": self.live,
            "dispatching": self.is_running,
            "inbox": self._inbox.qsize(),
            "messages_seen": self.messages_seen,
            "replies_sent": self.replies_sent,
            "window": len(self.window),
            "moderation_queue": len(self.moderation_queue),
            "conversation_active": state.is_active,
            "messages_since_last_response": state.messages_since_last_response,
        }
