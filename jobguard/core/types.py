"""Domain types for tracked workloads, execution history and monitor policy.

Durations are ``timedelta`` and timestamps are timezone-aware ``datetime``
values in UTC unless stated otherwise.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime (the default clock)."""
    return datetime.now(UTC)


class Severity(StrEnum):
    """Alert severity."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class AlertKind(StrEnum):
    """The detection that produced an alert."""

    DEAD_MAN_TRIGGERED = "DeadManTriggered"
    SUSPENDED_TOO_LONG = "SuspendedTooLong"
    SLA_BREACHED = "SLABreached"
    DURATION_REGRESSION = "DurationRegression"
    STUCK_RUN = "StuckRun"


class WorkloadRef(BaseModel):
    """Namespaced identity of a workload or monitor."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def __str__(self) -> str:
        return self.key


# ── Execution history ────────────────────────────────────────────


class ExecutionRecord(BaseModel):
    """One run of a tracked workload. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    workload: WorkloadRef
    run_name: str = ""
    start_time: datetime
    completion_time: datetime | None = None
    succeeded: bool = False
    exit_code: int = 0
    reason: str = ""

    @property
    def completed(self) -> bool:
        return self.completion_time is not None

    @property
    def duration(self) -> float | None:
        """Run duration in seconds, or None while still running."""
        if self.completion_time is None:
            return None
        return (self.completion_time - self.start_time).total_seconds()


class ActiveRun(BaseModel):
    """A run that has started and not yet terminated."""

    run_name: str
    start_time: datetime


class ActiveAlert(BaseModel):
    """Alert currently reported on a workload's status by the reconciler."""

    kind: AlertKind
    severity: Severity = Severity.WARNING
    message: str = ""
    since: datetime = Field(default_factory=utcnow)


# ── Monitor policy ───────────────────────────────────────────────


class AutoScheduleConfig(BaseModel):
    """Derive the dead-man deadline from the workload's cron schedule."""

    enabled: bool = False
    buffer: timedelta = timedelta(hours=1)
    missed_schedule_threshold: int = Field(default=1, ge=1)


class DeadManSwitchConfig(BaseModel):
    """Dead-man's switch settings.

    ``max_time_since_last_success`` selects the fixed mode and takes precedence
    over ``auto_from_schedule``.
    """

    enabled: bool = True
    max_time_since_last_success: timedelta | None = None
    auto_from_schedule: AutoScheduleConfig | None = None


class SLAConfig(BaseModel):
    """Success-rate, duration and regression targets."""

    enabled: bool = True
    min_success_rate: float = Field(default=95.0, ge=0.0, le=100.0)
    window_days: int = Field(default=7, ge=1)
    max_duration: timedelta | None = None
    duration_regression_threshold: float = Field(default=50.0, ge=0.0)
    duration_baseline_window_days: int = Field(default=14, ge=1)
    min_executions: int = Field(default=1, ge=1)


class SuspendedHandlingConfig(BaseModel):
    """Behaviour for suspended workloads."""

    pause_monitoring: bool = True
    alert_if_suspended_for: timedelta | None = None


class MaintenanceWindow(BaseModel):
    """Recurring interval during which alerts are suppressed."""

    name: str = ""
    schedule: str
    duration: timedelta
    timezone: str = ""
    suppress_alerts: bool = True


class StuckRunConfig(BaseModel):
    """Flag runs that have been executing for longer than ``after``."""

    enabled: bool = False
    after: timedelta = timedelta(hours=1)
    kill: bool = False


class ChannelRef(BaseModel):
    """Reference to a registered channel, optionally filtered by severity."""

    name: str
    severities: list[Severity] = Field(default_factory=list)

    def accepts(self, severity: Severity) -> bool:
        return not self.severities or severity in self.severities


class AlertingConfig(BaseModel):
    """Routing, deduplication and delay settings for a monitor."""

    enabled: bool = True
    channel_refs: list[ChannelRef] = Field(default_factory=list)
    suppress_duplicates_for: timedelta = timedelta(hours=1)
    alert_delay: timedelta | None = None
    severity_overrides: dict[AlertKind, Severity] = Field(default_factory=dict)

    def severity_for(self, kind: AlertKind, default: Severity) -> Severity:
        return self.severity_overrides.get(kind, default)


class MonitorPolicy(BaseModel):
    """Per-workload monitoring configuration."""

    dead_man_switch: DeadManSwitchConfig | None = None
    sla: SLAConfig | None = None
    suspended_handling: SuspendedHandlingConfig = SuspendedHandlingConfig()
    maintenance_windows: list[MaintenanceWindow] = Field(default_factory=list)
    stuck_runs: StuckRunConfig | None = None
    alerting: AlertingConfig | None = None
    timezone: str = ""


class TrackedWorkload(BaseModel):
    """Status snapshot of one monitored workload, maintained by the reconciler."""

    ref: WorkloadRef
    monitor: WorkloadRef
    schedule: str = ""
    suspended: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    last_success_time: datetime | None = None
    active_runs: list[ActiveRun] = Field(default_factory=list)
    active_alerts: list[ActiveAlert] = Field(default_factory=list)
    policy: MonitorPolicy = MonitorPolicy()

    def has_active_alert(self, kind: AlertKind) -> bool:
        return any(a.kind == kind for a in self.active_alerts)


# ── Store records ────────────────────────────────────────────────


class WorkloadMetrics(BaseModel):
    """Aggregated execution metrics over a rolling window."""

    success_rate: float = 0.0
    window_days: int = 0
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    avg_duration_seconds: float = 0.0
    p50_duration_seconds: float = 0.0
    p95_duration_seconds: float = 0.0
    p99_duration_seconds: float = 0.0


class AlertHistory(BaseModel):
    """Persisted record of a delivered alert."""

    id: int = 0
    key: str = ""
    kind: AlertKind
    severity: Severity
    title: str
    message: str = ""
    workload: WorkloadRef
    monitor: WorkloadRef | None = None
    channels_notified: list[str] = Field(default_factory=list)
    occurred_at: datetime
    resolved_at: datetime | None = None
    exit_code: int = 0
    reason: str = ""


class ChannelStatsRecord(BaseModel):
    """Persisted per-channel delivery counters."""

    channel_name: str
    alerts_sent_total: int = 0
    alerts_failed_total: int = 0
    alerts_rate_limited_total: int = 0
    last_alert_time: datetime | None = None
    last_failed_time: datetime | None = None
    last_failed_error: str = ""
    consecutive_failures: int = 0
