"""Cron schedule evaluation shared by the interval model and maintenance windows.

Wraps APScheduler's ``CronTrigger`` so that callers only deal with aware
datetimes and ``ScheduleError``.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from apscheduler.triggers.cron import CronTrigger

from jobguard.schedule.exceptions import ScheduleError

logger = structlog.get_logger(__name__)

_TICK = timedelta(microseconds=1)

# Upper bound on occurrences visited by a single backward search.
_MAX_SCAN = 10_000


def resolve_timezone(*names: str) -> tzinfo:
    """Return the first loadable IANA zone among *names*, else UTC.

    Empty names are skipped; unknown names are logged and skipped.
    """
    for name in names:
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("unknown_timezone", timezone=name)
    return UTC


# Crontab weekday numbering: 0 and 7 are Sunday.
_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _weekday_index(token: str) -> int:
    if token.isdigit():
        n = int(token)
        if not 0 <= n <= 7:
            raise ValueError(f"weekday {n} out of range")
        return n
    return _WEEKDAYS.index(token[:3])


def translate_day_of_week(field: str) -> str:
    """Rewrite a crontab weekday field using names.

    APScheduler numbers weekdays from Monday, so numeric crontab fields
    are expanded to explicit day names before they reach ``CronTrigger``.
    """
    field = field.lower()
    if not any(ch.isdigit() for ch in field):
        return field
    days: list[str] = []
    for part in field.split(","):
        base, _, step = part.partition("/")
        stride = int(step) if step else 1
        if stride < 1:
            raise ValueError("weekday step must be positive")
        if base in ("*", "?"):
            lo, hi = 0, 6
        elif "-" in base:
            first, last = base.split("-", 1)
            lo, hi = _weekday_index(first), _weekday_index(last)
        else:
            lo = _weekday_index(base)
            hi = 6 if step else lo
        if hi < lo:
            raise ValueError(f"invalid weekday range {base!r}")
        for day in range(lo, hi + 1, stride):
            if _WEEKDAYS[day] not in days:
                days.append(_WEEKDAYS[day])
    return ",".join(days)


class CronSchedule:
    """A parsed five-field cron expression bound to a timezone."""

    def __init__(self, expression: str, tz: tzinfo = UTC) -> None:
        self.expression = expression
        self.tz = tz
        fields = expression.split()
        if len(fields) != 5:
            raise ScheduleError(expression, f"expected 5 fields, got {len(fields)}")
        try:
            fields[4] = translate_day_of_week(fields[4])
            self._trigger = CronTrigger.from_crontab(" ".join(fields), timezone=tz)
        except (ValueError, TypeError) as exc:
            raise ScheduleError(expression, str(exc)) from exc

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r}, tz={self.tz})"

    def next_after(self, t: datetime) -> datetime:
        """First occurrence strictly after *t*."""
        fire = self._trigger.get_next_fire_time(None, t.astimezone(self.tz) + _TICK)
        if fire is None:
            raise ScheduleError(self.expression, "schedule has no future occurrences")
        return fire

    def previous_before(self, t: datetime, horizon: timedelta) -> datetime | None:
        """Most recent occurrence at or before *t*, looking back at most *horizon*."""
        cursor = t - horizon - _TICK
        latest: datetime | None = None
        for _ in range(_MAX_SCAN):
            occurrence = self.next_after(cursor)
            if occurrence > t:
                break
            latest = occurrence
            cursor = occurrence
        return latest

    def occurrences(self, after: datetime, count: int) -> list[datetime]:
        """The next *count* occurrences strictly after *after*."""
        result: list[datetime] = []
        cursor = after
        for _ in range(count):
            cursor = self.next_after(cursor)
            result.append(cursor)
        return result

    def interval(self, now: datetime | None = None, samples: int = 3) -> timedelta:
        """Expected time between consecutive runs.

        Samples *samples* successive occurrences after *now* and returns the
        largest gap between neighbours, so irregular schedules (weekdays only)
        are not reported shorter than their real cadence.
        """
        if samples < 2:
            raise ValueError("at least two samples are needed to infer an interval")
        points = self.occurrences(now or datetime.now(UTC), samples)
        return max(b - a for a, b in zip(points, points[1:]))


def parse_schedule(expression: str, *timezones: str) -> CronSchedule:
    """Parse *expression* in the first resolvable timezone (UTC fallback)."""
    if not expression or not expression.strip():
        raise ScheduleError(expression, "empty schedule")
    return CronSchedule(expression.strip(), resolve_timezone(*timezones))
