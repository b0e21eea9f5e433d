"""Pure statistics over execution history.

Percentiles use the nearest-rank method on durations sorted ascending:
``rank = ceil(p / 100 * n)`` clamped to ``[1, n]``. No interpolation is done,
so the result is always an observed duration.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from jobguard.analyzer.exceptions import InsufficientHistoryError
from jobguard.core.types import ExecutionRecord, WorkloadMetrics


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of *values*."""
    if not values:
        raise InsufficientHistoryError("no durations to compute a percentile from")
    if not 0 <= p <= 100:
        raise ValueError(f"percentile must be within [0, 100], got {p}")
    ordered = sorted(values)
    rank = math.ceil(p / 100 * len(ordered))
    rank = min(max(rank, 1), len(ordered))
    return ordered[rank - 1]


def completed(records: Iterable[ExecutionRecord]) -> list[ExecutionRecord]:
    return [r for r in records if r.completed]


def durations(records: Iterable[ExecutionRecord]) -> list[float]:
    """Durations (seconds) of completed records."""
    return [r.duration for r in records if r.duration is not None]


def success_rate(records: Iterable[ExecutionRecord]) -> float:
    """Percentage of completed records that succeeded."""
    done = completed(records)
    if not done:
        raise InsufficientHistoryError("no completed executions in window")
    ok = sum(1 for r in done if r.succeeded)
    return ok / len(done) * 100.0


def summarize(records: Iterable[ExecutionRecord], window_days: int) -> WorkloadMetrics:
    """Aggregate *records* into metrics. An empty window yields zeroed metrics."""
    done = completed(records)
    metrics = WorkloadMetrics(window_days=window_days, total_runs=len(done))
    if not done:
        return metrics

    metrics.successful_runs = sum(1 for r in done if r.succeeded)
    metrics.failed_runs = metrics.total_runs - metrics.successful_runs
    metrics.success_rate = metrics.successful_runs / metrics.total_runs * 100.0

    secs = durations(done)
    metrics.avg_duration_seconds = sum(secs) / len(secs)
    metrics.p50_duration_seconds = percentile(secs, 50)
    metrics.p95_duration_seconds = percentile(secs, 95)
    metrics.p99_duration_seconds = percentile(secs, 99)
    return metrics
