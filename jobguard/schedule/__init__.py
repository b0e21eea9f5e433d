"""Cron schedules, expected intervals and maintenance windows."""

from jobguard.schedule.cron import CronSchedule, parse_schedule, resolve_timezone
from jobguard.schedule.exceptions import ScheduleError
from jobguard.schedule.interval import (
    DeadManResult,
    compute_deadline,
    evaluate_dead_man,
    expected_interval,
    missed_occurrences,
)
from jobguard.schedule.maintenance import (
    active_window,
    in_maintenance_window,
    window_contains,
)

__all__ = [
    "CronSchedule",
    "DeadManResult",
    "ScheduleError",
    "active_window",
    "compute_deadline",
    "evaluate_dead_man",
    "expected_interval",
    "in_maintenance_window",
    "missed_occurrences",
    "parse_schedule",
    "resolve_timezone",
    "window_contains",
]
