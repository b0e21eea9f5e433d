"""Schedule evaluation exceptions."""

from __future__ import annotations


class ScheduleError(Exception):
    """A cron expression or timezone could not be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"invalid schedule {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason
