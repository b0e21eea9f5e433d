"""In-memory implementations of the collaborator interfaces.

Used by the test-suite and for local runs without a database. All methods are
synchronous internally, so they are atomic with respect to the event loop.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from pathlib import Path

import yaml

from jobguard.analyzer.exceptions import InsufficientHistoryError
from jobguard.analyzer.stats import durations, percentile, success_rate, summarize
from jobguard.core.types import (
    AlertHistory,
    AlertKind,
    ChannelStatsRecord,
    ExecutionRecord,
    Severity,
    TrackedWorkload,
    WorkloadMetrics,
    WorkloadRef,
    utcnow,
)
from jobguard.store.base import HistoryStore, WorkloadProvider


class InMemoryWorkloadProvider(WorkloadProvider):
    """Holds tracked workloads in insertion order."""

    def __init__(self, workloads: Iterable[TrackedWorkload] = ()) -> None:
        self._workloads: dict[WorkloadRef, TrackedWorkload] = {}
        for w in workloads:
            self.upsert(w)

    @classmethod
    def from_yaml(cls, path: str | Path) -> InMemoryWorkloadProvider:
        """Load a static workload list (a top-level ``workloads:`` sequence)."""
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        entries = raw.get("workloads", []) if isinstance(raw, dict) else []
        return cls(TrackedWorkload.model_validate(e) for e in entries)

    def upsert(self, workload: TrackedWorkload) -> None:
        self._workloads[workload.ref] = workload

    def remove(self, ref: WorkloadRef) -> None:
        self._workloads.pop(ref, None)

    def get(self, ref: WorkloadRef) -> TrackedWorkload | None:
        return self._workloads.get(ref)

    async def list_workloads(self) -> list[TrackedWorkload]:
        return list(self._workloads.values())


class InMemoryHistoryStore(HistoryStore):
    """Dict-backed execution and alert history."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._executions: dict[WorkloadRef, list[ExecutionRecord]] = defaultdict(list)
        self._alerts: list[AlertHistory] = []
        self._channel_stats: dict[str, ChannelStatsRecord] = {}
        self._ids = itertools.count(1)

    # ── Executions ──────────────────────────────────────────────

    async def record_execution(self, record: ExecutionRecord) -> None:
        self._executions[record.workload].append(record)

    def _window(self, workload: WorkloadRef, window_days: int) -> list[ExecutionRecord]:
        since = self._clock() - timedelta(days=window_days)
        return self._since(workload, since)

    def _since(self, workload: WorkloadRef, since: datetime) -> list[ExecutionRecord]:
        rows = [r for r in self._executions.get(workload, []) if r.start_time >= since]
        return sorted(rows, key=lambda r: r.start_time, reverse=True)

    async def get_executions(
        self, workload: WorkloadRef, since: datetime,
    ) -> list[ExecutionRecord]:
        return self._since(workload, since)

    async def get_last_execution(self, workload: WorkloadRef) -> ExecutionRecord | None:
        done = [r for r in self._executions.get(workload, []) if r.completed]
        return max(done, key=lambda r: r.completion_time, default=None)  # type: ignore[arg-type,return-value]

    async def get_last_successful_execution(
        self, workload: WorkloadRef,
    ) -> ExecutionRecord | None:
        ok = [r for r in self._executions.get(workload, []) if r.completed and r.succeeded]
        return max(ok, key=lambda r: r.completion_time, default=None)  # type: ignore[arg-type,return-value]

    async def get_metrics(self, workload: WorkloadRef, window_days: int) -> WorkloadMetrics:
        return summarize(self._window(workload, window_days), window_days)

    async def get_duration_percentile(
        self, workload: WorkloadRef, percentile_: float, window_days: int,
    ) -> float:
        secs = durations(self._window(workload, window_days))
        if not secs:
            return 0.0
        return percentile(secs, percentile_)

    async def get_success_rate(self, workload: WorkloadRef, window_days: int) -> float:
        try:
            return success_rate(self._window(workload, window_days))
        except InsufficientHistoryError:
            return 0.0

    async def prune(self, older_than: datetime) -> int:
        removed = 0
        for ref, rows in self._executions.items():
            keep = [r for r in rows if r.start_time >= older_than]
            removed += len(rows) - len(keep)
            self._executions[ref] = keep
        return removed

    # ── Alerts ──────────────────────────────────────────────────

    async def store_alert(self, alert: AlertHistory) -> AlertHistory:
        stored = alert.model_copy(update={"id": next(self._ids)})
        self._alerts.append(stored)
        return stored

    async def list_alert_history(
        self,
        since: datetime | None = None,
        limit: int = 100,
        kind: AlertKind | None = None,
        severity: Severity | None = None,
    ) -> list[AlertHistory]:
        rows = [
            a for a in self._alerts
            if (since is None or a.occurred_at >= since)
            and (kind is None or a.kind == kind)
            and (severity is None or a.severity == severity)
        ]
        rows.sort(key=lambda a: a.occurred_at, reverse=True)
        return [a.model_copy() for a in rows[:limit]]

    async def resolve_alert(self, kind: AlertKind, namespace: str, name: str) -> int:
        now = self._clock()
        resolved = 0
        for i, a in enumerate(self._alerts):
            if (
                a.kind == kind
                and a.resolved_at is None
                and a.workload.namespace == namespace
                and a.workload.name == name
            ):
                self._alerts[i] = a.model_copy(update={"resolved_at": now})
                resolved += 1
        return resolved

    # ── Channel stats ───────────────────────────────────────────

    async def save_channel_stats(self, record: ChannelStatsRecord) -> None:
        self._channel_stats[record.channel_name] = record.model_copy()

    async def get_all_channel_stats(self) -> dict[str, ChannelStatsRecord]:
        return {k: v.model_copy() for k, v in self._channel_stats.items()}
