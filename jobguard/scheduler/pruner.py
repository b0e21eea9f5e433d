"""Periodic pruning of old execution history."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from jobguard.core.types import utcnow
from jobguard.scheduler.base import PeriodicScheduler
from jobguard.store.base import HistoryStore

logger = structlog.get_logger(__name__)


class HistoryPruner(PeriodicScheduler):
    """Deletes executions older than ``retention_days``."""

    name = "history_pruner"

    def __init__(
        self,
        store: HistoryStore,
        retention_days: int = 30,
        interval_secs: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(interval_secs, clock=clock)
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        self._store = store
        self.retention_days = retention_days

    async def run_once(self) -> None:
        cutoff = self._clock() - timedelta(days=self.retention_days)
        try:
            removed = await self._store.prune(cutoff)
        except Exception:
            logger.exception("history_prune_error", cutoff=cutoff.isoformat())
            return
        if removed:
            logger.info("history_pruned", removed=removed, cutoff=cutoff.isoformat())
