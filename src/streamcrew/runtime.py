"""
Crew runtime: the wiring between the chat transport and the core engine.

One ChannelSession (and, when a moderator persona exists, one
ModerationEvaluator) is created per channel on first use. All sessions share
a single ConcurrencyGovernor so the global concurrency limit spans channels.

Stream lifecycle
----------------
Offline: pending replies are cleared, moderation stops and its queue is
dropped, sessions keep recording context but never reply.
Online: sessions reply again, moderation restarts, intros are posted.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Awaitable, Callable, Dict, Mapping

from streamcrew.configuration.tuning_settings import ConcurrencySettings, StreamSettings
from streamcrew.datatypes.chat_datatypes import ChatMessage, ChatRole
from streamcrew.datatypes.persona_datatypes import PersonaRoster
from streamcrew.moderation.moderation_evaluator import ModerationEvaluator
from streamcrew.orchestration.concurrency_governor import ConcurrencyGovernor
from streamcrew.platform.interfaces import ActionLog, ChatTransport, ModerationApi, PersonaRuntime
from streamcrew.scheduler.stream_status_scheduler import StreamStatusScheduler
from streamcrew.services.channel_session import ChannelSession, SessionSettings
from streamcrew.util.logger import get_logger

logger = get_logger("runtime")


class CrewRuntime:
    """
    Own every channel session and the background tasks around them.

    Args:
        roster: Configured personas.
        persona_runtime: Completion service.
        transport: Chat transport.
        moderation_api: Platform moderation API.
        channel_ids: Channel login -> platform id, used for timeouts.
        settings: Orchestrator, moderation and stream tunables.
        concurrency: Governor limits.
        action_log: Optional sink for executed timeouts.
        rng: Randomness shared by every session's orchestrator.
        sleep: Delay function handed to the governor.
    """

    def __init__(
        self,
        *,
        roster: PersonaRoster,
        persona_runtime: PersonaRuntime,
        transport: ChatTransport,
        moderation_api: ModerationApi,
        channel_ids: Mapping[str, str] | None = None,
        settings: SessionSettings | None = None,
        concurrency: ConcurrencySettings | None = None,
        action_log: ActionLog | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.roster = roster
        self._persona_runtime = persona_runtime
        self._transport = transport
        self._moderation_api = moderation_api
        self._channel_ids = {name.lower(): value for name, value in (channel_ids or {}).items()}
        self._settings = settings or SessionSettings()
        concurrency = concurrency or ConcurrencySettings()
        self.governor = ConcurrencyGovernor(
            concurrency.global_concurrency,
            concurrency.per_persona_concurrency,
            sleep=sleep,
        )
        self._action_log = action_log
        self._rng = rng or random.Random()

        self.sessions: Dict[str, ChannelSession] = {}
        self.evaluators: Dict[str, ModerationEvaluator] = {}
        self._status_scheduler: StreamStatusScheduler | None = None
        self._live = True
        self._stopped = False
        self._started_at: float | None = None

        if roster.moderator is None:
            logger.warning("[RUNTIME] No moderator persona configured; moderation disabled")

    @property
    def stream_settings(self) -> StreamSettings:
        return self._settings.stream

    @property
    def is_live(self) -> bool:
        return self._live

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def session_for(self, channel: str) -> ChannelSession:
        """Return the session of ``channel``, creating and starting it on first use."""
        key = channel.lstrip("#").lower()
        session = self.sessions.get(key)
        if session is not None:
            return session

        session = ChannelSession(
            channel=key,
            roster=self.roster,
            runtime=self._persona_runtime,
            transport=self._transport,
            governor=self.governor,
            settings=self._settings,
            rng=self._rng,
        )
        session.live = self._live
        session.start()
        self.sessions[key] = session

        moderator = self.roster.moderator
        if moderator is not None:
            evaluator = ModerationEvaluator(
                channel=key,
                channel_id=self._channel_ids.get(key, ""),
                moderator=moderator,
                persona_names=self.roster.names,
                queue=session.moderation_queue,
                runtime=self._persona_runtime,
                moderation_api=self._moderation_api,
                settings=self._settings.moderation,
                action_log=self._action_log,
            )
            self.evaluators[key] = evaluator
            if self._live:
                evaluator.start()

        logger.info("[RUNTIME] Created session for #%s", key)
        return session

    def handle_inbound(self, channel: str, username: str, text: str, role: ChatRole | str) -> None:
        """Transport callback: route one chat line to its channel session."""
        if self._stopped:
            return
        session = self.session_for(channel)
        session.submit(ChatMessage(
            channel=session.channel,
            username=username,
            text=text,
            role=ChatRole.parse(role),
        ))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, channel: str) -> None:
        """Create the channel session, connect the transport and begin status polling."""
        self._started_at = time.time()
        self._transport.set_message_handler(self.handle_inbound)
        stream = self._settings.stream
        self._set_live(stream.assume_online)
        self.session_for(channel)
        await self._transport.connect(channel)

        if stream.assume_online:
            logger.info("[RUNTIME] assume_online set; skipping stream status polling")
            await self.on_stream_online()
            return

        self._status_scheduler = StreamStatusScheduler(
            self._moderation_api.is_stream_online,
            self.on_stream_online,
            self.on_stream_offline,
            interval_seconds=stream.poll_interval_seconds,
        )
        self._status_scheduler.start()

    async def stop(self, graceful: bool = True) -> None:
        """Stop timers, then drain (graceful) or clear (forced) pending replies."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("[RUNTIME] Stopping (%s)", "graceful" if graceful else "forced")

        if self._status_scheduler is not None:
            await self._status_scheduler.shutdown()
        for evaluator in self.evaluators.values():
            await evaluator.shutdown()
        for session in self.sessions.values():
            await session.stop()

        if graceful:
            await self.governor.drain()
        else:
            self.governor.clear()

        await self._transport.close()
        logger.info("[RUNTIME] Stopped")

    async def on_stream_online(self) -> None:
        logger.info("[RUNTIME] Stream online")
        self._set_live(True)
        for evaluator in self.evaluators.values():
            if not evaluator.is_running:
                evaluator.start()
        for session in self.sessions.values():
            session.post_intros()

    async def on_stream_offline(self) -> None:
        logger.info("[RUNTIME] Stream offline")
        self._set_live(False)
        self.governor.clear()
        for evaluator in self.evaluators.values():
            await evaluator.shutdown()
        for session in self.sessions.values():
            session.moderation_queue.clear()

    def _set_live(self, live: bool) -> None:
        self._live = live
        for session in self.sessions.values():
            session.live = live

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        return {
            "live": self._live,
            "started_at": self._started_at,
            "governor": self.governor.metrics(),
            "sessions": [session.status() for session in self.sessions.values()],
            "moderation": {channel: evaluator.is_running for channel, evaluator in self.evaluators.items()},
        }
