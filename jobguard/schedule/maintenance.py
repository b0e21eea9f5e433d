"""Maintenance window evaluation."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog

from jobguard.core.types import MaintenanceWindow
from jobguard.schedule.cron import parse_schedule
from jobguard.schedule.exceptions import ScheduleError

logger = structlog.get_logger(__name__)


def window_contains(window: MaintenanceWindow, at: datetime, default_tz: str = "") -> bool:
    """Whether *at* falls inside the most recent occurrence of *window*.

    The search walks back at most one schedule period (or the window duration
    when that is longer), which is enough: if any earlier occurrence still
    covers *at*, so does the most recent one. Raises ``ScheduleError``.
    """
    schedule = parse_schedule(window.schedule, window.timezone, default_tz)
    local = at.astimezone(schedule.tz)
    horizon = max(schedule.interval(local), window.duration)
    start = schedule.previous_before(local, horizon)
    if start is None:
        return False
    return start <= local < start + window.duration


def active_window(
    windows: Iterable[MaintenanceWindow],
    at: datetime,
    default_tz: str = "",
) -> MaintenanceWindow | None:
    """Return the first suppressing window that contains *at*, if any.

    Windows with an unparsable schedule are logged and skipped.
    """
    for window in windows:
        if not window.suppress_alerts:
            continue
        try:
            if window_contains(window, at, default_tz):
                return window
        except ScheduleError as exc:
            logger.warning(
                "maintenance_window_invalid",
                window=window.name,
                schedule=window.schedule,
                error=str(exc),
            )
    return None


def in_maintenance_window(
    windows: Iterable[MaintenanceWindow],
    at: datetime,
    default_tz: str = "",
) -> bool:
    """Whether *at* falls inside any suppressing maintenance window."""
    return active_window(windows, at, default_tz) is not None
