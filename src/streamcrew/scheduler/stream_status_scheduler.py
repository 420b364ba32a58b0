"""Periodic stream status polling.

Polls ``is_stream_online()`` on a fixed interval and invokes the online or
offline callback on transitions only. The first successful poll
fires ``on_online`` when the stream is live and nothing otherwise. A
failed poll keeps the last known state.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from streamcrew.util.logger import get_logger

logger = get_logger("stream_status_scheduler")

StatusCallback = Callable[[], Awaitable[Any]]


class StreamStatusScheduler:
    """
    Poll the platform for the live status of the channel.

    Args:
        is_online: Async callable returning whether the stream is live.
        on_online: Awaited when the stream goes live.
        on_offline: Awaited when the stream ends.
        interval_seconds: Delay between polls.
    """

    def __init__(
        self,
        is_online: Callable[[], Awaitable[bool]],
        on_online: StatusCallback,
        on_offline: StatusCallback,
        interval_seconds: float = 60.0,
    ) -> None:
        self._is_online = is_online
        self._on_online = on_online
        self._on_offline = on_offline
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._online: bool | None = None

    @property
    def online(self) -> bool | None:
        """Last known state, or None before the first successful poll."""
        return self._online

    async def poll_once(self) -> bool | None:
        """Poll once and fire the transition callback if the state changed."""
        try:
            online = await self._is_online()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[STREAM STATUS] Poll failed, keeping last state: %s", exc)
            return self._online

        if online == self._online:
            return online

        previous, self._online = self._online, online
        logger.info("[STREAM STATUS] Stream is now %s", "online" if online else "offline")
        try:
            if online:
                await self._on_online()
            elif previous is not None:
                await self._on_offline()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[STREAM STATUS] Transition handler failed")
        return online

    async def _run_loop(self) -> None:
        logger.info("[STREAM STATUS] Starting status polling (interval=%.1fs)", self._interval)
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            logger.info("[STREAM STATUS] Status polling cancelled")
            raise

    def start(self) -> None:
        """Start the background polling task if not already running."""
        if self._task and not self._task.done():
            logger.warning("[STREAM STATUS] Polling task already running")
            return
        self._task = asyncio.create_task(self._run_loop(), name="stream-status")

    async def shutdown(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[STREAM STATUS] Scheduler shutdown complete")
