"""Shared helpers for the periodic coordinators."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from jobguard.alerting.dispatcher import AlertDispatcher
from jobguard.core.types import AlertKind, Severity, TrackedWorkload
from jobguard.schedule.maintenance import active_window
from jobguard.store.base import HistoryStore

logger = structlog.get_logger(__name__)


def severity_for(workload: TrackedWorkload, kind: AlertKind, default: Severity) -> Severity:
    alerting = workload.policy.alerting
    if alerting is None:
        return default
    return alerting.severity_for(kind, default)


def skip_reason(workload: TrackedWorkload, now: datetime) -> str:
    """Why *workload* should not be evaluated right now ("" = evaluate it)."""
    policy = workload.policy
    if workload.suspended and policy.suspended_handling.pause_monitoring:
        return "suspended"
    window = active_window(policy.maintenance_windows, now, policy.timezone)
    if window is not None:
        return f"maintenance:{window.name or window.schedule}"
    return ""


def format_duration(td: timedelta) -> str:
    """Round to whole seconds, e.g. ``1:02:03``."""
    return str(timedelta(seconds=int(td.total_seconds())))


async def clear_condition(
    dispatcher: AlertDispatcher,
    store: HistoryStore | None,
    workload: TrackedWorkload,
    kind: AlertKind,
    keys: list[str],
) -> bool:
    """Clear *keys* and mark stored *kind* alerts resolved.

    The store is only touched when something was actually active, either in
    the dispatcher or on the workload status.
    """
    cleared = False
    for key in keys:
        cancelled = dispatcher.cancel_pending_alert(key)
        cleared = dispatcher.clear_alert(key) or cancelled or cleared
    if not cleared and not workload.has_active_alert(kind):
        return False

    if store is not None:
        try:
            resolved = await store.resolve_alert(kind, workload.ref.namespace, workload.ref.name)
        except Exception:
            logger.exception("alert_resolve_error", workload=str(workload.ref), kind=str(kind))
        else:
            if resolved:
                logger.info(
                    "alert_resolved",
                    workload=str(workload.ref),
                    kind=str(kind),
                    count=resolved,
                )
    return True
