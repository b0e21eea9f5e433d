"""Tracks how long each workload has been suspended."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import StrEnum

from jobguard.core.types import utcnow


class SuspensionState(StrEnum):
    """Result of observing one workload's suspension flag."""

    NOT_SUSPENDED = "not_suspended"
    # First observation of a suspension: tracking starts, never alert here.
    STARTED = "started"
    SUSPENDED = "suspended"
    TOO_LONG = "too_long"
    # Was tracked and is no longer suspended: any alert should be cleared.
    RESUMED = "resumed"


class SuspensionTracker:
    """Maps workload key -> time the workload was first seen suspended."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._since: dict[str, datetime] = {}

    def observe(
        self,
        key: str,
        suspended: bool,
        threshold: timedelta,
    ) -> SuspensionState:
        now = self._clock()
        with self._lock:
            if not suspended:
                if self._since.pop(key, None) is not None:
                    return SuspensionState.RESUMED
                return SuspensionState.NOT_SUSPENDED

            started = self._since.get(key)
            if started is None:
                self._since[key] = now
                return SuspensionState.STARTED
            if now - started >= threshold:
                return SuspensionState.TOO_LONG
            return SuspensionState.SUSPENDED

    def suspended_for(self, key: str) -> timedelta | None:
        with self._lock:
            started = self._since.get(key)
        if started is None:
            return None
        return self._clock() - started

    def forget(self, key: str) -> bool:
        with self._lock:
            return self._since.pop(key, None) is not None

    def tracked(self) -> dict[str, datetime]:
        with self._lock:
            return dict(self._since)
