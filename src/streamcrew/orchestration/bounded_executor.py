"""Bounded-concurrency executor for coroutine work units."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Set

from streamcrew.util.logger import get_logger

logger = get_logger("bounded_executor")

WorkFactory = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class _WorkUnit:
    work: WorkFactory
    future: asyncio.Future[bool]
    label: str


class BoundedExecutor:
    """
    FIFO executor that runs at most ``concurrency`` work units at a time.

    Each submitted unit gets a future that resolves to ``True`` once the unit
    ran to completion and to ``False`` when it was discarded, cancelled or
    failed. The future never carries an exception, so awaiting it is safe for
    any caller. Failures are logged here and never stop later units.
    """

    def __init__(self, name: str, concurrency: int) -> None:
        if concurrency < 1:
            raise ValueError(f"Executor '{name}' needs a concurrency of at least 1, got {concurrency}")
        self._name = name
        self._concurrency = concurrency
        self._pending: Deque[_WorkUnit] = deque()
        self._running: Set[asyncio.Task[None]] = set()
        self._paused = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def queued(self) -> int:
        """Number of units waiting to start."""
        return len(self._pending)

    @property
    def running(self) -> int:
        """Number of units currently running."""
        return len(self._running)

    @property
    def is_paused(self) -> bool:
        return self._paused

    def submit(self, work: WorkFactory, label: str = "") -> asyncio.Future[bool]:
        """Queue ``work`` and return a future resolved when it finishes or is dropped."""
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending.append(_WorkUnit(work, future, label))
        self._pump()
        return future

    def pause(self) -> None:
        """Stop starting queued units; running units are unaffected."""
        self._paused = True

    def resume(self) -> None:
        self._paused = False
        self._pump()

    def clear(self) -> int:
        """Discard every queued unit and return how many were dropped."""
        discarded = 0
        while self._pending:
            unit = self._pending.popleft()
            if not unit.future.done():
                unit.future.set_result(False)
            discarded += 1
        return discarded

    async def wait_running(self) -> None:
        """Wait until no unit is running."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _pump(self) -> None:
        while not self._paused and self._pending and len(self._running) < self._concurrency:
            unit = self._pending.popleft()
            task = asyncio.create_task(self._run(unit), name=f"{self._name}:{unit.label}")
            self._running.add(task)
            task.add_done_callback(self._on_done)

    async def _run(self, unit: _WorkUnit) -> None:
        completed = False
        try:
            await unit.work()
            completed = True
        except asyncio.CancelledError:
            logger.debug("[EXECUTOR %s] Unit %s cancelled", self._name, unit.label)
            raise
        except Exception:
            logger.exception("[EXECUTOR %s] Unit %s failed", self._name, unit.label)
        finally:
            if not unit.future.done():
                unit.future.set_result(completed)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        self._pump()
