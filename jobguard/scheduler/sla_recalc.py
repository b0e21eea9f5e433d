"""SLA recalculation coordinator (success rate, max duration, regression)."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from jobguard.alerting.dispatcher import AlertDispatcher
from jobguard.alerting.types import Alert, AlertContext, alert_key
from jobguard.analyzer.exceptions import AnalyzerError, InsufficientHistoryError
from jobguard.analyzer.sla import SLAAnalyzer
from jobguard.analyzer.types import ViolationType
from jobguard.core.types import AlertKind, Severity, SLAConfig, TrackedWorkload, utcnow
from jobguard.scheduler.base import PeriodicScheduler
from jobguard.scheduler.helpers import clear_condition, severity_for, skip_reason
from jobguard.store.base import HistoryStore, WorkloadProvider

logger = structlog.get_logger(__name__)


def sla_key(workload: TrackedWorkload, violation: ViolationType) -> str:
    return alert_key(workload.ref, "SLA", str(violation))


class SLARecalcScheduler(PeriodicScheduler):
    """Re-evaluates SLA targets and duration regressions.

    Pass ``elected`` to run only on the replica that holds leadership; the
    loop blocks until the event is set.
    """

    name = "sla_recalc"

    def __init__(
        self,
        provider: WorkloadProvider,
        analyzer: SLAAnalyzer,
        dispatcher: AlertDispatcher,
        store: HistoryStore | None = None,
        interval_secs: float = 300.0,
        startup_delay_secs: float = 0.0,
        elected: asyncio.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(interval_secs, startup_delay_secs, elected, clock)
        self._provider = provider
        self._analyzer = analyzer
        self._dispatcher = dispatcher
        self._store = store

    async def run_once(self) -> None:
        workloads = await self._provider.list_workloads()
        for workload in workloads:
            try:
                await self.check_workload(workload)
            except Exception:
                logger.exception("sla_recalc_error", workload=str(workload.ref))

    async def check_workload(self, workload: TrackedWorkload) -> None:
        config = workload.policy.sla
        if config is None or not config.enabled:
            return
        reason = skip_reason(workload, self._clock())
        if reason:
            logger.debug("sla_recalc_skipped", workload=str(workload.ref), reason=reason)
            return

        await self._check_sla(workload, config)
        await self._check_regression(workload, config)

    async def _check_sla(self, workload: TrackedWorkload, config: SLAConfig) -> None:
        try:
            metrics = await self._analyzer.get_metrics(workload.ref, config.window_days)
            result = await self._analyzer.check_sla(workload.ref, config)
        except InsufficientHistoryError as exc:
            logger.debug("sla_insufficient_history", workload=str(workload.ref), error=str(exc))
            return
        except AnalyzerError as exc:
            logger.warning("sla_check_failed", workload=str(workload.ref), error=str(exc))
            return

        violated = {v.type for v in result.violations}
        for violation in result.violations:
            alert = Alert(
                key=sla_key(workload, violation.type),
                kind=AlertKind.SLA_BREACHED,
                severity=severity_for(workload, AlertKind.SLA_BREACHED, Severity.WARNING),
                title=f"SLA breach: {workload.ref}",
                message=violation.message,
                workload=workload.ref,
                monitor=workload.monitor,
                context=AlertContext(
                    success_rate=metrics.success_rate,
                    last_duration=(
                        violation.current
                        if violation.type is ViolationType.MAX_DURATION
                        else None
                    ),
                    metrics={
                        "p95_duration_seconds": metrics.p95_duration_seconds,
                        "total_runs": float(metrics.total_runs),
                    },
                ),
                timestamp=self._clock(),
            )
            outcome = await self._dispatcher.dispatch(alert, workload.policy.alerting)
            logger.info(
                "sla_violation",
                workload=str(workload.ref),
                violation=str(violation.type),
                current=violation.current,
                threshold=violation.threshold,
                outcome=str(outcome),
            )

        healthy = [sla_key(workload, t) for t in ViolationType if t not in violated]
        if result.passed:
            await clear_condition(
                self._dispatcher, self._store, workload, AlertKind.SLA_BREACHED, healthy,
            )
        else:
            for key in healthy:
                self._dispatcher.cancel_pending_alert(key)
                self._dispatcher.clear_alert(key)

    async def _check_regression(self, workload: TrackedWorkload, config: SLAConfig) -> None:
        try:
            result = await self._analyzer.check_duration_regression(workload.ref, config)
        except InsufficientHistoryError:
            return
        except AnalyzerError as exc:
            logger.warning("regression_check_failed", workload=str(workload.ref), error=str(exc))
            return

        key = alert_key(workload.ref, AlertKind.DURATION_REGRESSION)
        if not result.detected:
            await clear_condition(
                self._dispatcher, self._store, workload, AlertKind.DURATION_REGRESSION, [key],
            )
            return

        alert = Alert(
            key=key,
            kind=AlertKind.DURATION_REGRESSION,
            severity=severity_for(workload, AlertKind.DURATION_REGRESSION, Severity.WARNING),
            title=f"Duration regression: {workload.ref}",
            message=result.message,
            workload=workload.ref,
            monitor=workload.monitor,
            context=AlertContext(
                metrics={
                    "baseline_p95_seconds": result.baseline_p95,
                    "current_p95_seconds": result.current_p95,
                    "percentage_increase": result.percentage_increase,
                },
            ),
            timestamp=self._clock(),
        )
        outcome = await self._dispatcher.dispatch(alert, workload.policy.alerting)
        logger.info(
            "duration_regression",
            workload=str(workload.ref),
            increase=round(result.percentage_increase, 2),
            outcome=str(outcome),
        )
