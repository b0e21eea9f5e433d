"""Domain types for the alerting subsystem."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from jobguard.core.types import AlertKind, Severity, WorkloadRef, utcnow


class AlertContext(BaseModel):
    """Supporting detail attached to an alert."""

    success_rate: float | None = None
    last_duration: float | None = None
    exit_code: int = 0
    reason: str = ""
    logs: str = ""
    metrics: dict[str, float] = Field(default_factory=dict)


class Alert(BaseModel):
    """Candidate notification produced by a detector.

    ``key`` identifies the alert condition for deduplication. When omitted it
    is derived as ``<namespace>/<name>/<kind>``.
    """

    key: str = ""
    kind: AlertKind
    severity: Severity = Severity.WARNING
    title: str
    message: str = ""
    workload: WorkloadRef
    monitor: WorkloadRef | None = None
    context: AlertContext = AlertContext()
    timestamp: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _derive_key(self) -> Alert:
        if "key" not in self.model_fields_set:
            self.key = alert_key(self.workload, self.kind)
        return self


def alert_key(workload: WorkloadRef, kind: AlertKind | str, *suffix: str) -> str:
    """Dedup key ``<namespace>/<name>/<kind>[/<suffix>...]``."""
    return "/".join([workload.namespace, workload.name, str(kind), *suffix])


class DispatchOutcome(StrEnum):
    """What ``AlertDispatcher.dispatch`` did with an alert."""

    DISABLED = "disabled"
    GRACE_PERIOD = "grace_period"
    SUPPRESSED = "suppressed"
    ALREADY_PENDING = "already_pending"
    PENDING = "pending"
    SENT = "sent"
    PARTIAL = "partial"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    NO_CHANNELS = "no_channels"


@dataclass
class ChannelStats:
    """Delivery health counters for one channel."""

    alerts_sent_total: int = 0
    alerts_failed_total: int = 0
    alerts_rate_limited_total: int = 0
    last_alert_time: datetime | None = None
    last_failed_time: datetime | None = None
    last_failed_error: str = ""
    consecutive_failures: int = 0

    def record_success(self, at: datetime) -> None:
        self.alerts_sent_total += 1
        self.last_alert_time = at
        self.consecutive_failures = 0

    def record_failure(self, at: datetime, error: str) -> None:
        self.alerts_failed_total += 1
        self.last_failed_time = at
        self.last_failed_error = error
        self.consecutive_failures += 1

    def copy(self) -> ChannelStats:
        return replace(self)
