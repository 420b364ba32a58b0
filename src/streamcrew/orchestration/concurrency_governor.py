"""
Two-level concurrency governor for persona response tasks.

A global BoundedExecutor admits a limited number of units across all
personas. Each admitted unit hands its work to the persona's own
BoundedExecutor and keeps its global slot until that inner unit ends, so a
persona's replies are serialized while the crew as a whole stays bounded.

The scheduling delay is awaited inside the persona unit. A reply therefore
occupies its persona slot while it "types", and clear() can drop pending
delays and pending work the same way.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Set

from streamcrew.orchestration.bounded_executor import BoundedExecutor
from streamcrew.util.logger import get_logger

logger = get_logger("concurrency_governor")

ResponseTask = Callable[[], Awaitable[None]]
SleepFunc = Callable[[float], Awaitable[Any]]

DEFAULT_GLOBAL_CONCURRENCY = 5
DEFAULT_PER_PERSONA_CONCURRENCY = 1


class ConcurrencyGovernor:
    """
    Bounded scheduler for persona replies.

    Args:
        global_concurrency: Maximum units running across all personas.
        per_persona_concurrency: Maximum units running for a single persona.
        sleep: Awaitable used for scheduling delays (seconds); injectable for tests.
    """

    def __init__(
        self,
        global_concurrency: int = DEFAULT_GLOBAL_CONCURRENCY,
        per_persona_concurrency: int = DEFAULT_PER_PERSONA_CONCURRENCY,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._global = BoundedExecutor("global", global_concurrency)
        self._per_persona_concurrency = per_persona_concurrency
        if per_persona_concurrency < 1:
            raise ValueError("per_persona_concurrency must be at least 1")
        self._persona_executors: Dict[str, BoundedExecutor] = {}
        self._delaying: Set[asyncio.Task[Any]] = set()
        self._sleep = sleep
        self._accepting = True
        # Bumped by clear()/drain(); units admitted under an older generation do nothing.
        self._generation = 0

    @property
    def accepting(self) -> bool:
        return self._accepting

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def schedule(self, persona_name: str, delay_ms: float, task: ResponseTask) -> bool:
        """Queue ``task`` for ``persona_name`` to run after ``delay_ms``.

        Must be called from the event loop. Returns False when the governor
        has been drained and no longer admits work.
        """
        if not self._accepting:
            logger.warning("[GOVERNOR] Rejected task for %s: governor is drained", persona_name)
            return False

        executor = self._executor_for(persona_name)
        generation = self._generation

        async def admitted() -> None:
            if generation != self._generation:
                return
            await executor.submit(
                lambda: self._delayed(persona_name, delay_ms, task, generation),
                label=persona_name,
            )

        self._global.submit(admitted, label=persona_name)
        logger.debug("[GOVERNOR] Queued task for %s with %.0fms delay", persona_name, delay_ms)
        return True

    async def drain(self) -> None:
        """Stop admission, drop units that have not started, and wait for running ones."""
        self._accepting = False
        self._generation += 1
        executors = [self._global, *self._persona_executors.values()]
        for executor in executors:
            executor.pause()
        discarded = sum(executor.clear() for executor in executors)

        logger.info("[GOVERNOR] Draining (%d queued unit(s) dropped)", discarded)
        await self._global.wait_running()
        for executor in self._persona_executors.values():
            await executor.wait_running()
        logger.info("[GOVERNOR] Drain complete")

    def clear(self) -> None:
        """Drop queued units and pending delays at both levels without waiting.

        Units already executing their task are left to finish; outbound calls
        are never cancelled.
        """
        self._generation += 1
        discarded = self._global.clear()
        for executor in self._persona_executors.values():
            discarded += executor.clear()
        delayed = list(self._delaying)
        for task in delayed:
            task.cancel()
        logger.info(
            "[GOVERNOR] Cleared %d queued unit(s) and %d pending delay(s)",
            discarded,
            len(delayed),
        )

    def metrics(self) -> Dict[str, Any]:
        """Return queued/running counts for the global and per-persona executors."""
        return {
            "global": {"queued": self._global.queued, "running": self._global.running},
            "personas": {
                name: {"queued": executor.queued, "running": executor.running}
                for name, executor in self._persona_executors.items()
            },
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _executor_for(self, persona_name: str) -> BoundedExecutor:
        key = persona_name.lower()
        executor = self._persona_executors.get(key)
        if executor is None:
            executor = BoundedExecutor(f"persona-{key}", self._per_persona_concurrency)
            self._persona_executors[key] = executor
        return executor

    async def _delayed(self, persona_name: str, delay_ms: float, task: ResponseTask, generation: int) -> None:
        if generation != self._generation:
            return
        if delay_ms > 0:
            current = asyncio.current_task()
            if current is not None:
                self._delaying.add(current)
            try:
                await self._sleep(delay_ms / 1000.0)
            finally:
                if current is not None:
                    self._delaying.discard(current)
            if generation != self._generation:
                return

        try:
            await task()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[GOVERNOR] Response task for %s failed", persona_name)
