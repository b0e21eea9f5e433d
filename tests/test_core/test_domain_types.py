"""Tests for jobguard/core/types.py — workload identity, records, policy helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from jobguard.core.types import (
    ActiveAlert,
    AlertingConfig,
    AlertKind,
    AutoScheduleConfig,
    ChannelRef,
    ExecutionRecord,
    Severity,
    TrackedWorkload,
    WorkloadRef,
)

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
REF = WorkloadRef(namespace="prod", name="backup")


class TestWorkloadRef:
    def test_key_and_str(self) -> None:
        assert REF.key == "prod/backup"
        assert str(REF) == "prod/backup"

    def test_hashable(self) -> None:
        assert {REF: 1}[WorkloadRef(namespace="prod", name="backup")] == 1


class TestExecutionRecord:
    def test_duration(self) -> None:
        rec = ExecutionRecord(
            workload=REF, start_time=T0, completion_time=T0 + timedelta(seconds=90),
        )
        assert rec.completed is True
        assert rec.duration == 90.0

    def test_running_has_no_duration(self) -> None:
        rec = ExecutionRecord(workload=REF, start_time=T0)
        assert rec.completed is False
        assert rec.duration is None

    def test_immutable(self) -> None:
        rec = ExecutionRecord(workload=REF, start_time=T0, completion_time=T0)
        with pytest.raises(ValidationError):
            rec.succeeded = True  # type: ignore[misc]

    def test_fields(self) -> None:
        assert set(ExecutionRecord.model_fields) == {
            "workload", "run_name", "start_time", "completion_time", "succeeded", "exit_code", "reason",
        }
        assert set(ActiveAlert.model_fields) == {"kind", "severity", "message", "since"}


class TestPolicyHelpers:
    def test_channel_ref_empty_filter_accepts_all(self) -> None:
        ref = ChannelRef(name="slack")
        assert all(ref.accepts(s) for s in Severity)

    def test_channel_ref_filter(self) -> None:
        ref = ChannelRef(name="pager", severities=[Severity.CRITICAL])
        assert ref.accepts(Severity.CRITICAL)
        assert not ref.accepts(Severity.WARNING)

    def test_severity_override(self) -> None:
        cfg = AlertingConfig(severity_overrides={AlertKind.SLA_BREACHED: Severity.CRITICAL})
        assert cfg.severity_for(AlertKind.SLA_BREACHED, Severity.WARNING) == Severity.CRITICAL
        assert cfg.severity_for(AlertKind.STUCK_RUN, Severity.WARNING) == Severity.WARNING

    def test_alerting_defaults(self) -> None:
        cfg = AlertingConfig()
        assert cfg.suppress_duplicates_for == timedelta(hours=1)
        assert cfg.alert_delay is None

    def test_missed_threshold_at_least_one(self) -> None:
        with pytest.raises(ValidationError):
            AutoScheduleConfig(missed_schedule_threshold=0)

    def test_has_active_alert(self) -> None:
        w = TrackedWorkload(
            ref=REF,
            monitor=WorkloadRef(namespace="prod", name="monitor"),
            active_alerts=[ActiveAlert(kind=AlertKind.DEAD_MAN_TRIGGERED)],
        )
        assert w.has_active_alert(AlertKind.DEAD_MAN_TRIGGERED)
        assert not w.has_active_alert(AlertKind.STUCK_RUN)
