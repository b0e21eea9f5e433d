"""Stuck-run coordinator: flags (and optionally kills) runs that never finish."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from jobguard.alerting.dispatcher import AlertDispatcher
from jobguard.alerting.types import Alert, AlertContext, alert_key
from jobguard.core.types import ActiveRun, AlertKind, Severity, TrackedWorkload, utcnow
from jobguard.scheduler.base import PeriodicScheduler
from jobguard.scheduler.helpers import clear_condition, format_duration, severity_for, skip_reason
from jobguard.store.base import HistoryStore, Remediator, WorkloadProvider

logger = structlog.get_logger(__name__)


class StuckRunChecker(PeriodicScheduler):
    """Alerts on active runs older than ``stuck_runs.after``."""

    name = "stuck_runs"

    def __init__(
        self,
        provider: WorkloadProvider,
        dispatcher: AlertDispatcher,
        store: HistoryStore | None = None,
        remediator: Remediator | None = None,
        interval_secs: float = 60.0,
        startup_delay_secs: float = 0.0,
        elected: asyncio.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(interval_secs, startup_delay_secs, elected, clock)
        self._provider = provider
        self._dispatcher = dispatcher
        self._store = store
        self._remediator = remediator

    async def run_once(self) -> None:
        workloads = await self._provider.list_workloads()
        for workload in workloads:
            try:
                await self.check_workload(workload)
            except Exception:
                logger.exception("stuck_run_check_error", workload=str(workload.ref))

    def stuck_runs(self, workload: TrackedWorkload) -> list[ActiveRun]:
        """Active runs that have exceeded the threshold, oldest first."""
        config = workload.policy.stuck_runs
        if config is None:
            return []
        now = self._clock()
        stuck = [r for r in workload.active_runs if now - r.start_time > config.after]
        return sorted(stuck, key=lambda r: r.start_time)

    async def check_workload(self, workload: TrackedWorkload) -> None:
        config = workload.policy.stuck_runs
        if config is None or not config.enabled:
            return
        now = self._clock()
        reason = skip_reason(workload, now)
        if reason:
            logger.debug("stuck_check_skipped", workload=str(workload.ref), reason=reason)
            return

        key = alert_key(workload.ref, AlertKind.STUCK_RUN)
        stuck = self.stuck_runs(workload)
        if not stuck:
            await clear_condition(
                self._dispatcher, self._store, workload, AlertKind.STUCK_RUN, [key],
            )
            return

        oldest = stuck[0]
        running_for = now - oldest.start_time
        logger.info(
            "stuck_run_found",
            workload=str(workload.ref),
            run=oldest.run_name,
            running_for=format_duration(running_for),
            count=len(stuck),
        )

        if not workload.has_active_alert(AlertKind.STUCK_RUN):
            names = ", ".join(r.run_name for r in stuck)
            alert = Alert(
                key=key,
                kind=AlertKind.STUCK_RUN,
                severity=severity_for(workload, AlertKind.STUCK_RUN, Severity.WARNING),
                title=f"Stuck run detected: {workload.ref}",
                message=(
                    f"Run {oldest.run_name} has been running for {format_duration(running_for)} "
                    f"(threshold: {format_duration(config.after)}); stuck runs: {names}"
                ),
                workload=workload.ref,
                monitor=workload.monitor,
                context=AlertContext(last_duration=running_for.total_seconds()),
                timestamp=now,
            )
            await self._dispatcher.dispatch(alert, workload.policy.alerting)

        if config.kill and self._remediator is not None:
            for run in stuck:
                await self._kill(self._remediator, workload, run)

    async def _kill(self, remediator: Remediator, workload: TrackedWorkload, run: ActiveRun) -> None:
        try:
            killed = await remediator.kill_stuck_run(workload, run)
        except Exception:
            logger.exception("stuck_run_kill_error", workload=str(workload.ref), run=run.run_name)
            return
        if killed:
            logger.info("stuck_run_killed", workload=str(workload.ref), run=run.run_name)
        else:
            logger.warning("stuck_run_not_killed", workload=str(workload.ref), run=run.run_name)
