"""
Periodic moderation evaluator.

Every ``flush_interval_seconds`` the pending moderation queue is taken and
cleared in one step, handed to the moderator persona for violation
classification, and each returned violation is executed as a clamped timeout.
Violations run independently: a user that cannot be resolved or a timeout the
platform rejects only skips that one violation.

The queue is cleared at hand-off, before the classification call resolves.
Memory stays bounded and delivery is at-most-once: a failed classification
drops its batch.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

from streamcrew.configuration.tuning_settings import ModerationSettings
from streamcrew.datatypes.chat_datatypes import ChatMessage
from streamcrew.datatypes.moderation_datatypes import TimeoutRecord, Violation
from streamcrew.datatypes.persona_datatypes import PersonaConfig
from streamcrew.errors import ClassifierError, TimeoutApiError, UserResolutionFailed
from streamcrew.moderation.moderation_queue import ModerationQueue
from streamcrew.platform.interfaces import ActionLog, ModerationApi, PersonaRuntime
from streamcrew.util.logger import get_logger

logger = get_logger("moderation_evaluator")

MIN_TIMEOUT_SECONDS = 1


def clamp_timeout(requested_seconds: int, max_timeout_seconds: int) -> int:
    """Clamp a requested timeout to ``[1, max_timeout_seconds]``."""
    return max(MIN_TIMEOUT_SECONDS, min(int(requested_seconds), int(max_timeout_seconds)))


class ModerationEvaluator:
    """
    Batch reviewer that times out rule-violating users.

    Args:
        channel: Channel login the evaluator moderates.
        channel_id: Platform id of the channel (broadcaster id).
        moderator: Persona that performs the classification.
        persona_names: Every configured persona; never targeted.
        queue: Pending moderation queue filled by the channel session.
        runtime: Completion service used for classification.
        moderation_api: Platform moderation API.
        settings: Moderation tunables.
        action_log: Optional sink for executed timeouts.
    """

    def __init__(
        self,
        *,
        channel: str,
        channel_id: str,
        moderator: PersonaConfig,
        persona_names: Iterable[str],
        queue: ModerationQueue,
        runtime: PersonaRuntime,
        moderation_api: ModerationApi,
        settings: ModerationSettings | None = None,
        action_log: ActionLog | None = None,
    ) -> None:
        self._channel = channel
        self._channel_id = channel_id
        self._moderator = moderator
        self._persona_keys = {name.lower() for name in persona_names} | {moderator.name.lower()}
        self._queue = queue
        self._runtime = runtime
        self._moderation_api = moderation_api
        self._settings = settings or ModerationSettings()
        self._action_log = action_log
        self._task: asyncio.Task[None] | None = None
        self._flush_task: asyncio.Task[int] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic flush task if it is not already running."""
        if self.is_running:
            logger.warning("[MODERATION] Evaluator for #%s already running", self._channel)
            return
        interval = self._settings.flush_interval_seconds
        logger.info("[MODERATION] Starting evaluator for #%s (interval=%.1fs)", self._channel, interval)
        self._task = asyncio.create_task(self._run_loop(interval), name=f"moderation-{self._channel}")

    async def shutdown(self) -> None:
        """Stop the flush timer. A flush already under way runs to completion first."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        flush_task, self._flush_task = self._flush_task, None
        if flush_task is not None and not flush_task.done():
            logger.info("[MODERATION] Waiting for in-flight flush in #%s", self._channel)
            try:
                await flush_task
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[MODERATION] In-flight flush for #%s failed", self._channel)
        logger.info("[MODERATION] Evaluator for #%s stopped", self._channel)

    async def _run_loop(self, interval: float) -> None:
        try:
            while True:
                await asyncio.sleep(interval)
                # Shielded: cancelling the timer never cancels outbound calls.
                self._flush_task = asyncio.create_task(self.flush(), name=f"moderation-flush-{self._channel}")
                try:
                    await asyncio.shield(self._flush_task)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("[MODERATION] Unexpected error during flush for #%s", self._channel)
        except asyncio.CancelledError:
            logger.debug("[MODERATION] Flush loop for #%s cancelled", self._channel)
            raise

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    async def flush(self) -> int:
        """Review the pending queue once and return the number of executed timeouts."""
        if not self._queue:
            return 0

        # Taken before any await so concurrent flushes never see the same messages.
        batch = self._queue.take_all()
        logger.info("[MODERATION] Reviewing %d message(s) in #%s", len(batch), self._channel)

        try:
            violations = await self._runtime.classify_violations(self._moderator, batch)
        except ClassifierError as exc:
            logger.error("[MODERATION] Classification failed, dropping %d message(s): %s", len(batch), exc)
            return 0

        if not violations:
            logger.debug("[MODERATION] No violations in #%s", self._channel)
            return 0

        results = await asyncio.gather(
            *(self._execute_violation(violation, batch) for violation in violations),
            return_exceptions=True,
        )

        executed = 0
        for violation, result in zip(violations, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "[MODERATION] Unexpected error executing violation for %s: %s",
                    violation.username,
                    result,
                    exc_info=result,
                )
            elif result:
                executed += 1

        logger.info("[MODERATION] %d/%d violation(s) executed in #%s", executed, len(violations), self._channel)
        return executed

    async def _execute_violation(self, violation: Violation, batch: Sequence[ChatMessage]) -> bool:
        target = violation.username.strip().lstrip("@")
        if target.lower() in self._persona_keys:
            logger.warning("[MODERATION] Ignoring violation targeting persona %s", target)
            return False

        message = self._find_message(target, batch)
        if message is None:
            logger.warning("[MODERATION] Violation for %s matches no reviewed message; skipping", target)
            return False

        duration = clamp_timeout(violation.duration_seconds, self._settings.max_timeout_seconds)

        try:
            user_id = await self._moderation_api.resolve_user_id(message.username)
        except UserResolutionFailed as exc:
            logger.warning("[MODERATION] %s", exc)
            return False

        try:
            await self._moderation_api.timeout_user(self._channel_id, user_id, duration, violation.reason)
        except TimeoutApiError as exc:
            logger.error("[MODERATION] Timeout of %s failed: %s", message.username, exc)
            return False

        logger.info(
            "[MODERATION] Timed out %s for %ds in #%s: %s",
            message.username,
            duration,
            self._channel,
            violation.reason,
        )
        await self._record(TimeoutRecord(
            channel=self._channel,
            username=message.username,
            user_id=user_id,
            duration_seconds=duration,
            reason=violation.reason,
            moderator=self._moderator.name,
        ))
        return True

    @staticmethod
    def _find_message(username: str, batch: Sequence[ChatMessage]) -> ChatMessage | None:
        for message in batch:
            if message.is_authored_by(username):
                return message
        return None

    async def _record(self, record: TimeoutRecord) -> None:
        if self._action_log is None:
            return
        try:
            await self._action_log.record_timeout(record)
        except Exception as exc:
            logger.error("[MODERATION] Failed to record timeout of %s: %s", record.username, exc)

