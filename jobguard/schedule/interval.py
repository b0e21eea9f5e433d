"""Interval model — expected run cadence and dead-man deadlines.

Two modes are supported:

- **fixed**: alert when no success within ``max_time_since_last_success``;
  no schedule inference happens at all.
- **auto**: infer the cadence from the workload's cron schedule. Each expected
  occurrence gets ``buffer`` of grace; the switch fires once
  ``missed_schedule_threshold`` such extended deadlines have passed since the
  last success (or since creation if the workload never succeeded).
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel

from jobguard.core.types import DeadManSwitchConfig
from jobguard.schedule.cron import parse_schedule


class DeadManResult(BaseModel):
    """Outcome of a dead-man's switch evaluation."""

    triggered: bool = False
    last_success: datetime | None = None
    expected_interval: timedelta | None = None
    deadline: datetime | None = None
    time_since_success: timedelta | None = None
    missed_count: int = 0
    message: str = ""


def expected_interval(schedule: str, *timezones: str, now: datetime | None = None) -> timedelta:
    """Cadence of *schedule*. Raises ``ScheduleError`` if it cannot be parsed."""
    return parse_schedule(schedule, *timezones).interval(now)


def compute_deadline(
    last_success: datetime,
    interval: timedelta,
    buffer: timedelta = timedelta(0),
    missed_threshold: int = 1,
) -> datetime:
    """Time after which ``missed_threshold`` expected runs have been missed."""
    if missed_threshold < 1:
        raise ValueError("missed_threshold must be at least 1")
    return last_success + interval * missed_threshold + buffer


def missed_occurrences(
    last_success: datetime,
    now: datetime,
    interval: timedelta,
    buffer: timedelta = timedelta(0),
) -> int:
    """Number of buffered deadlines that have passed since *last_success*."""
    if interval <= timedelta(0):
        return 0
    overdue = now - last_success - buffer
    if overdue <= timedelta(0):
        return 0
    # A deadline landing exactly on ``now`` has not passed yet.
    return int((overdue - timedelta(microseconds=1)) // interval)


def _fmt(td: timedelta) -> str:
    minutes = int(td.total_seconds() // 60)
    hours, minutes = divmod(minutes, 60)
    if hours and minutes:
        return f"{hours}h{minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def evaluate_dead_man(
    config: DeadManSwitchConfig | None,
    schedule: str,
    last_success: datetime | None,
    created_at: datetime,
    now: datetime,
    *timezones: str,
) -> DeadManResult:
    """Evaluate the dead-man's switch for one workload.

    Raises ``ScheduleError`` in auto mode when *schedule* is unparsable; the
    caller is expected to fail closed for that workload.
    """
    if config is None or not config.enabled:
        return DeadManResult()

    result = DeadManResult(last_success=last_success)
    anchor = last_success if last_success is not None else created_at
    if last_success is not None:
        result.time_since_success = now - last_success

    if config.max_time_since_last_success is not None:
        limit = config.max_time_since_last_success
        result.expected_interval = limit
        result.deadline = anchor + limit
        if now > result.deadline:
            result.triggered = True
            result.missed_count = 1
    elif config.auto_from_schedule is not None and config.auto_from_schedule.enabled:
        auto = config.auto_from_schedule
        interval = expected_interval(schedule, *timezones, now=now)
        result.expected_interval = interval
        result.deadline = compute_deadline(
            anchor, interval, auto.buffer, auto.missed_schedule_threshold,
        )
        result.missed_count = missed_occurrences(anchor, now, interval, auto.buffer)
        result.triggered = result.missed_count >= auto.missed_schedule_threshold
    else:
        return DeadManResult()

    if result.triggered:
        window = _fmt(now - anchor)
        if last_success is None:
            result.message = (
                f"No successful runs since creation {window} ago "
                f"(expected by {result.deadline.isoformat()})"
            )
        else:
            result.message = (
                f"No successful run in {window} "
                f"(expected within {_fmt(result.deadline - anchor)})"
            )
    return result
