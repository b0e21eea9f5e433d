"""Core module: config, types, logging."""

from jobguard.core.config import Settings, get_settings, load_settings, reset_settings
from jobguard.core.logging import setup_logging
from jobguard.core.types import (
    AlertKind,
    ExecutionRecord,
    MonitorPolicy,
    Severity,
    TrackedWorkload,
    WorkloadRef,
)

__all__ = [
    "AlertKind",
    "ExecutionRecord",
    "MonitorPolicy",
    "Settings",
    "Severity",
    "TrackedWorkload",
    "WorkloadRef",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
