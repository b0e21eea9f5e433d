"""Tests for jobguard/analyzer/stats.py — nearest-rank percentiles and summaries."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from jobguard.analyzer.exceptions import InsufficientHistoryError
from jobguard.analyzer.stats import percentile, success_rate, summarize
from jobguard.core.types import ExecutionRecord, WorkloadRef

T0 = datetime(2024, 6, 1, tzinfo=UTC)
REF = WorkloadRef(namespace="ns", name="job")


def _run(secs: float | None, ok: bool = True) -> ExecutionRecord:
    return ExecutionRecord(
        workload=REF,
        start_time=T0,
        completion_time=None if secs is None else T0 + timedelta(seconds=secs),
        succeeded=ok,
    )


class TestPercentile:
    def test_nearest_rank(self) -> None:
        values = [15, 20, 35, 40, 50]
        assert percentile(values, 30) == 20
        assert percentile(values, 40) == 20
        assert percentile(values, 50) == 35
        assert percentile(values, 100) == 50

    def test_order_independent(self) -> None:
        assert percentile([5, 1, 4, 2, 3], 50) == percentile([1, 2, 3, 4, 5], 50) == 3

    def test_zero_percentile_is_minimum(self) -> None:
        assert percentile([7, 3, 9], 0) == 3

    def test_p95_rounds_rank_up(self) -> None:
        values = list(range(1, 11))
        assert percentile(values, 95) == 10
        assert percentile(values, 75) == 8

    def test_single_value(self) -> None:
        assert percentile([42.0], 99) == 42.0

    def test_empty_raises(self) -> None:
        with pytest.raises(InsufficientHistoryError):
            percentile([], 95)

    def test_out_of_range_rejected(self) -> None:
        with pytest.raises(ValueError):
            percentile([1], 101)


class TestSuccessRate:
    def test_ignores_running(self) -> None:
        records = [_run(10), _run(10, ok=False), _run(None)]
        assert success_rate(records) == 50.0

    def test_no_completed_raises(self) -> None:
        with pytest.raises(InsufficientHistoryError):
            success_rate([_run(None)])


class TestSummarize:
    def test_metrics(self) -> None:
        records = [_run(10), _run(20), _run(30, ok=False), _run(40)]
        m = summarize(records, 7)
        assert m.window_days == 7
        assert m.total_runs == 4
        assert m.successful_runs == 3
        assert m.failed_runs == 1
        assert m.success_rate == 75.0
        assert m.avg_duration_seconds == 25.0
        assert m.p50_duration_seconds == 20
        assert m.p95_duration_seconds == 40
        assert m.p99_duration_seconds == 40

    def test_empty_window(self) -> None:
        m = summarize([], 7)
        assert m.total_runs == 0
        assert m.success_rate == 0.0
