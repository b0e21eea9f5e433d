"""Dead-man's switch coordinator, including the suspended-too-long check."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from jobguard.alerting.dispatcher import AlertDispatcher
from jobguard.alerting.types import Alert, alert_key
from jobguard.analyzer.exceptions import AnalyzerError
from jobguard.analyzer.sla import SLAAnalyzer
from jobguard.core.types import AlertKind, Severity, TrackedWorkload, utcnow
from jobguard.schedule.maintenance import active_window
from jobguard.scheduler.base import PeriodicScheduler
from jobguard.scheduler.helpers import clear_condition, format_duration, severity_for, skip_reason
from jobguard.scheduler.suspension import SuspensionState, SuspensionTracker
from jobguard.store.base import HistoryStore, WorkloadProvider

logger = structlog.get_logger(__name__)


class DeadManScheduler(PeriodicScheduler):
    """Alerts when a workload has not succeeded within its expected window."""

    name = "dead_man"

    def __init__(
        self,
        provider: WorkloadProvider,
        analyzer: SLAAnalyzer,
        dispatcher: AlertDispatcher,
        store: HistoryStore | None = None,
        suspension_tracker: SuspensionTracker | None = None,
        interval_secs: float = 60.0,
        startup_delay_secs: float = 0.0,
        elected: asyncio.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(interval_secs, startup_delay_secs, elected, clock)
        self._provider = provider
        self._analyzer = analyzer
        self._dispatcher = dispatcher
        self._store = store
        self._suspensions = suspension_tracker or SuspensionTracker(clock)

    @property
    def suspension_tracker(self) -> SuspensionTracker:
        return self._suspensions

    async def run_once(self) -> None:
        workloads = await self._provider.list_workloads()
        for workload in workloads:
            try:
                await self.check_workload(workload)
            except Exception:
                logger.exception("dead_man_check_error", workload=str(workload.ref))

    async def check_workload(self, workload: TrackedWorkload) -> None:
        await self._check_suspended_duration(workload)

        config = workload.policy.dead_man_switch
        if config is None or not config.enabled:
            return
        reason = skip_reason(workload, self._clock())
        if reason:
            logger.debug("dead_man_skipped", workload=str(workload.ref), reason=reason)
            return

        try:
            result = await self._analyzer.check_dead_man_switch(workload, config)
        except AnalyzerError as exc:
            logger.warning("dead_man_check_failed", workload=str(workload.ref), error=str(exc))
            return

        key = alert_key(workload.ref, AlertKind.DEAD_MAN_TRIGGERED)
        if not result.triggered:
            await clear_condition(
                self._dispatcher, self._store, workload, AlertKind.DEAD_MAN_TRIGGERED, [key],
            )
            return

        if workload.has_active_alert(AlertKind.DEAD_MAN_TRIGGERED):
            return

        alert = Alert(
            key=key,
            kind=AlertKind.DEAD_MAN_TRIGGERED,
            severity=severity_for(workload, AlertKind.DEAD_MAN_TRIGGERED, Severity.CRITICAL),
            title=f"Dead-man's switch triggered: {workload.ref}",
            message=result.message,
            workload=workload.ref,
            monitor=workload.monitor,
            timestamp=self._clock(),
        )
        outcome = await self._dispatcher.dispatch(alert, workload.policy.alerting)
        logger.info(
            "dead_man_triggered",
            workload=str(workload.ref),
            missed=result.missed_count,
            outcome=str(outcome),
        )

    async def _check_suspended_duration(self, workload: TrackedWorkload) -> None:
        handling = workload.policy.suspended_handling
        key = workload.ref.key
        alert_id = alert_key(workload.ref, AlertKind.SUSPENDED_TOO_LONG)
        threshold = handling.alert_if_suspended_for
        if threshold is None:
            self._suspensions.forget(key)
            return

        state = self._suspensions.observe(key, workload.suspended, threshold)
        if state is SuspensionState.STARTED:
            logger.debug("workload_suspension_tracking_started", workload=key)
        elif state is SuspensionState.RESUMED:
            logger.debug("workload_resumed", workload=key)
            await clear_condition(
                self._dispatcher, self._store, workload, AlertKind.SUSPENDED_TOO_LONG, [alert_id],
            )
        elif state is SuspensionState.TOO_LONG:
            if workload.has_active_alert(AlertKind.SUSPENDED_TOO_LONG):
                return
            policy = workload.policy
            window = active_window(policy.maintenance_windows, self._clock(), policy.timezone)
            if window is not None:
                logger.debug(
                    "suspended_alert_skipped",
                    workload=key,
                    reason=f"maintenance:{window.name or window.schedule}",
                )
                return
            suspended_for = self._suspensions.suspended_for(key)
            alert = Alert(
                key=alert_id,
                kind=AlertKind.SUSPENDED_TOO_LONG,
                severity=severity_for(workload, AlertKind.SUSPENDED_TOO_LONG, Severity.WARNING),
                title=f"Workload suspended for too long: {workload.ref}",
                message=(
                    f"Workload has been suspended for {format_duration(suspended_for)} "
                    f"(threshold: {format_duration(threshold)})"
                    if suspended_for is not None
                    else f"Workload suspended longer than {format_duration(threshold)}"
                ),
                workload=workload.ref,
                monitor=workload.monitor,
                timestamp=self._clock(),
            )
            outcome = await self._dispatcher.dispatch(alert, workload.policy.alerting)
            logger.info("suspended_too_long", workload=key, outcome=str(outcome))
