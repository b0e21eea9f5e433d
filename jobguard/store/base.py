"""Collaborator interfaces consumed by the detection engine.

The reconciler that maintains tracked-workload status and the relational
history backend live outside this package; the engine only talks to them
through these abstract classes. Implementations must tolerate concurrent
calls from several coordinators.
"""

from __future__ import annotations

import abc
from datetime import datetime

from jobguard.core.types import (
    ActiveRun,
    AlertHistory,
    AlertKind,
    ChannelStatsRecord,
    ExecutionRecord,
    Severity,
    TrackedWorkload,
    WorkloadMetrics,
    WorkloadRef,
)


class WorkloadProvider(abc.ABC):
    """Source of the tracked-workload status snapshot."""

    @abc.abstractmethod
    async def list_workloads(self) -> list[TrackedWorkload]:
        """Return every tracked workload, in a stable order."""


class HistoryStore(abc.ABC):
    """Execution history and alert history storage."""

    # ── Executions ──────────────────────────────────────────────

    @abc.abstractmethod
    async def record_execution(self, record: ExecutionRecord) -> None:
        """Append an execution record."""

    @abc.abstractmethod
    async def get_executions(
        self, workload: WorkloadRef, since: datetime,
    ) -> list[ExecutionRecord]:
        """Executions started at or after *since*, most recent first."""

    @abc.abstractmethod
    async def get_last_execution(self, workload: WorkloadRef) -> ExecutionRecord | None:
        """Most recent completed execution."""

    @abc.abstractmethod
    async def get_last_successful_execution(
        self, workload: WorkloadRef,
    ) -> ExecutionRecord | None:
        """Most recent successful execution."""

    @abc.abstractmethod
    async def get_metrics(self, workload: WorkloadRef, window_days: int) -> WorkloadMetrics:
        """Aggregated metrics over the last *window_days* days."""

    @abc.abstractmethod
    async def get_duration_percentile(
        self, workload: WorkloadRef, percentile: float, window_days: int,
    ) -> float:
        """Duration percentile in seconds over the last *window_days* days."""

    @abc.abstractmethod
    async def get_success_rate(self, workload: WorkloadRef, window_days: int) -> float:
        """Success percentage over the last *window_days* days."""

    @abc.abstractmethod
    async def prune(self, older_than: datetime) -> int:
        """Delete executions started before *older_than*; return the count."""

    # ── Alerts ──────────────────────────────────────────────────

    @abc.abstractmethod
    async def store_alert(self, alert: AlertHistory) -> AlertHistory:
        """Persist a delivered alert and return it with its assigned id."""

    @abc.abstractmethod
    async def list_alert_history(
        self,
        since: datetime | None = None,
        limit: int = 100,
        kind: AlertKind | None = None,
        severity: Severity | None = None,
    ) -> list[AlertHistory]:
        """Alert history, most recent first."""

    @abc.abstractmethod
    async def resolve_alert(self, kind: AlertKind, namespace: str, name: str) -> int:
        """Mark unresolved alerts of *kind* for a workload resolved; return the count."""

    # ── Channel stats ───────────────────────────────────────────

    @abc.abstractmethod
    async def save_channel_stats(self, record: ChannelStatsRecord) -> None:
        """Upsert persisted counters for one channel."""

    @abc.abstractmethod
    async def get_all_channel_stats(self) -> dict[str, ChannelStatsRecord]:
        """All persisted channel counters keyed by channel name."""


class Remediator(abc.ABC):
    """Acts on stuck runs (e.g. deletes the underlying job)."""

    @abc.abstractmethod
    async def kill_stuck_run(self, workload: TrackedWorkload, run: ActiveRun) -> bool:
        """Terminate *run*. Returns True when the run was killed."""
