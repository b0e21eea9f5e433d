"""SLA analyzer — success rate, duration and regression checks over history.

Every operation is a read-only function of the execution history returned by
the store plus the supplied configuration. Failures are raised as
``AnalyzerError`` subclasses; callers treat ``InsufficientHistoryError`` as
"no signal yet" rather than a violation.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from jobguard.analyzer.exceptions import (
    AnalyzerError,
    ConfigurationError,
    HistoryUnavailableError,
    InsufficientHistoryError,
)
from jobguard.analyzer.stats import completed, durations, percentile, success_rate, summarize
from jobguard.analyzer.types import RegressionResult, SLAResult, Violation, ViolationType
from jobguard.core.types import (
    DeadManSwitchConfig,
    ExecutionRecord,
    SLAConfig,
    TrackedWorkload,
    WorkloadMetrics,
    WorkloadRef,
    utcnow,
)
from jobguard.schedule.exceptions import ScheduleError
from jobguard.schedule.interval import DeadManResult, evaluate_dead_man
from jobguard.store.base import HistoryStore

logger = structlog.get_logger(__name__)

# Runs from the last day form the "current" sample for regression checks.
RECENT_WINDOW = timedelta(days=1)


class SLAAnalyzer:
    """Computes SLA signals for tracked workloads from a ``HistoryStore``."""

    def __init__(
        self,
        store: HistoryStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def _executions(self, workload: WorkloadRef, since: datetime) -> list[ExecutionRecord]:
        try:
            return await self._store.get_executions(workload, since)
        except AnalyzerError:
            raise
        except Exception as exc:
            raise HistoryUnavailableError(
                f"failed to read executions for {workload}: {exc}"
            ) from exc

    async def get_metrics(self, workload: WorkloadRef, window_days: int) -> WorkloadMetrics:
        """Success rate, run counts and duration percentiles over *window_days*."""
        since = self._clock() - timedelta(days=window_days)
        records = await self._executions(workload, since)
        return summarize(records, window_days)

    async def check_sla(self, workload: WorkloadRef, config: SLAConfig) -> SLAResult:
        """Check success-rate and max-duration targets.

        Raises ``InsufficientHistoryError`` when fewer than
        ``config.min_executions`` runs completed inside the window.
        """
        now = self._clock()
        records = completed(
            await self._executions(workload, now - timedelta(days=config.window_days))
        )
        if len(records) < config.min_executions:
            raise InsufficientHistoryError(
                f"{workload}: {len(records)} completed runs in {config.window_days}d, "
                f"need {config.min_executions}"
            )

        rate = success_rate(records)
        result = SLAResult(
            success_rate=rate,
            min_required=config.min_success_rate,
            total_runs=len(records),
        )

        if rate < config.min_success_rate:
            result.violations.append(Violation(
                type=ViolationType.SUCCESS_RATE,
                message=(
                    f"Success rate {rate:.1f}% is below SLA of "
                    f"{config.min_success_rate:.1f}% over {config.window_days}d"
                ),
                current=rate,
                threshold=config.min_success_rate,
            ))

        if config.max_duration is not None:
            latest = max(records, key=lambda r: r.completion_time)  # type: ignore[arg-type,return-value]
            limit = config.max_duration.total_seconds()
            if latest.duration is not None and latest.duration > limit:
                result.violations.append(Violation(
                    type=ViolationType.MAX_DURATION,
                    message=(
                        f"Last run took {latest.duration:.0f}s, "
                        f"exceeding max duration of {limit:.0f}s"
                    ),
                    current=latest.duration,
                    threshold=limit,
                ))

        result.passed = not result.violations
        return result

    async def check_dead_man_switch(
        self,
        workload: TrackedWorkload,
        config: DeadManSwitchConfig,
    ) -> DeadManResult:
        """Evaluate the dead-man's switch for *workload*.

        The last success comes from the store, falling back to the reconciler's
        status when the store has no record.
        """
        try:
            record = await self._store.get_last_successful_execution(workload.ref)
        except Exception as exc:
            raise HistoryUnavailableError(
                f"failed to read last success for {workload.ref}: {exc}"
            ) from exc

        last_success = workload.last_success_time
        if record is not None and record.completion_time is not None:
            if last_success is None or record.completion_time > last_success:
                last_success = record.completion_time

        try:
            return evaluate_dead_man(
                config,
                workload.schedule,
                last_success,
                workload.created_at,
                self._clock(),
                workload.policy.timezone,
            )
        except ScheduleError as exc:
            raise ConfigurationError(str(exc)) from exc

    async def check_duration_regression(
        self,
        workload: WorkloadRef,
        config: SLAConfig,
    ) -> RegressionResult:
        """Compare the last day's P95 duration with the baseline window's.

        The baseline covers ``duration_baseline_window_days`` ending where the
        recent window starts, so runs from the last day never count towards
        their own baseline. A P95 taken over the whole window instead would let
        a slow recent day raise the baseline it is compared against. Regression is detected when the percentage
        increase reaches ``duration_regression_threshold``.
        """
        now = self._clock()
        recent_start = now - RECENT_WINDOW
        baseline_start = now - timedelta(days=config.duration_baseline_window_days)

        records = await self._executions(workload, baseline_start)
        recent = durations(r for r in records if r.start_time >= recent_start)
        baseline = durations(r for r in records if r.start_time < recent_start)

        if not baseline:
            raise InsufficientHistoryError(f"{workload}: no baseline executions")
        if not recent:
            raise InsufficientHistoryError(f"{workload}: no recent executions")

        baseline_p95 = percentile(baseline, 95)
        current_p95 = percentile(recent, 95)
        if baseline_p95 <= 0:
            raise InsufficientHistoryError(f"{workload}: baseline P95 is zero")

        increase = (current_p95 - baseline_p95) / baseline_p95 * 100.0
        threshold = config.duration_regression_threshold
        result = RegressionResult(
            baseline_p95=baseline_p95,
            current_p95=current_p95,
            percentage_increase=increase,
            threshold=threshold,
            detected=increase >= threshold,
        )
        if result.detected:
            result.message = (
                f"P95 duration increased {increase:.1f}% "
                f"({baseline_p95:.0f}s -> {current_p95:.0f}s), threshold {threshold:.0f}%"
            )
        logger.debug(
            "duration_regression_checked",
            workload=str(workload),
            baseline_p95=baseline_p95,
            current_p95=current_p95,
            increase=round(increase, 2),
            detected=result.detected,
        )
        return result
