"""Base class for the periodic coordinators."""

from __future__ import annotations

import abc
import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from jobguard.core.types import utcnow

logger = structlog.get_logger(__name__)


class PeriodicScheduler(abc.ABC):
    """Background task that calls ``run_once`` every ``interval_secs``.

    The loop optionally waits for ``elected`` (leader election) and then for
    ``startup_delay_secs`` before the first tick. An exception raised by a tick
    is logged and the loop carries on.

    Usage::

        scheduler = DeadManScheduler(provider, analyzer, dispatcher)
        await scheduler.start()
        # ...
        await scheduler.stop()
    """

    name = "scheduler"

    def __init__(
        self,
        interval_secs: float,
        startup_delay_secs: float = 0.0,
        elected: asyncio.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if interval_secs <= 0:
            raise ValueError("interval_secs must be positive")
        self._interval = interval_secs
        self._startup_delay = startup_delay_secs
        self._elected = elected
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._tick_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def tick_count(self) -> int:
        return self._tick_count

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @abc.abstractmethod
    async def run_once(self) -> None:
        """Evaluate every tracked workload once."""

    # ── Internal loop ───────────────────────────────────────────

    async def _loop(self) -> None:
        if self._elected is not None and not self._elected.is_set():
            logger.info("scheduler_waiting_for_leadership", scheduler=self.name)
            await self._elected.wait()
            logger.info("scheduler_leadership_acquired", scheduler=self.name)

        if self._startup_delay > 0:
            await asyncio.sleep(self._startup_delay)

        logger.info("scheduler_started", scheduler=self.name, interval_secs=self._interval)
        while self._running:
            try:
                await self.run_once()
                self._tick_count += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("scheduler_tick_error", scheduler=self.name)
            await asyncio.sleep(self._interval)
