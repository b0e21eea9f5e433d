"""Central alert dispatcher — dedup, delay, rate limiting and channel fan-out."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from jobguard.alerting.channels import NotificationChannel
from jobguard.alerting.exceptions import ChannelError, ChannelNotFoundError, InvalidAlertError
from jobguard.alerting.rate_limiter import RateLimiter
from jobguard.alerting.types import Alert, ChannelStats, DispatchOutcome, alert_key
from jobguard.core.config import ChannelRateLimit, RateLimitsConfig
from jobguard.core.types import (
    AlertHistory,
    AlertingConfig,
    ChannelStatsRecord,
    utcnow,
)
from jobguard.store.base import HistoryStore

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)

RESTORE_WINDOW = timedelta(hours=1)
RETENTION = timedelta(hours=24)
CLEANUP_INTERVAL_SECS = 3600.0


class AlertDispatcher:
    """Turns detections into deduplicated, rate-limited notifications.

    Per dedup key an alert moves Absent -> Pending (only with ``alert_delay``)
    -> Active -> Absent. A key is Active from its first delivery until it is
    cleared or its suppression window lapses; re-dispatching an Active key is
    a no-op.

    State is guarded by a ``threading.Lock`` that is only ever held around
    dictionary access, never across a channel send, so a slow destination
    cannot stall other coordinators.
    """

    def __init__(
        self,
        store: HistoryStore | None = None,
        rate_limits: RateLimitsConfig | None = None,
        startup_grace_period: timedelta = timedelta(0),
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        cleanup_interval_secs: float = CLEANUP_INTERVAL_SECS,
    ) -> None:
        self._store = store
        self._rate_limits = rate_limits or RateLimitsConfig()
        self._clock = clock
        self._monotonic = monotonic
        self._cleanup_interval = cleanup_interval_secs
        self._ready_at = clock() + startup_grace_period

        self._lock = threading.Lock()
        self._channels: dict[str, NotificationChannel] = {}
        self._limiters: dict[str, RateLimiter] = {}
        self._stats: dict[str, ChannelStats] = {}
        self._sent: dict[str, datetime] = {}
        self._windows: dict[str, timedelta] = {}
        self._active: dict[str, Alert] = {}
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._sent_log: list[datetime] = []
        self._global_limiter = RateLimiter.per_minute(
            self._rate_limits.max_alerts_per_minute,
            self._rate_limits.global_burst,
            clock=monotonic,
        )

        self._cleanup_task: asyncio.Task[None] | None = None
        self._closed = False

    # ── Channel registry ────────────────────────────────────────

    def register_channel(
        self,
        channel: NotificationChannel,
        rate_limit: ChannelRateLimit | None = None,
    ) -> None:
        """Register (or replace) *channel*. Existing stats are kept on replace."""
        limit = rate_limit or self._rate_limits.for_channel(channel.name)
        limiter = RateLimiter.per_hour(limit.max_alerts_per_hour, limit.burst, clock=self._monotonic)
        with self._lock:
            self._channels[channel.name] = channel
            self._limiters[channel.name] = limiter
            self._stats.setdefault(channel.name, ChannelStats())
        logger.info(
            "channel_registered",
            channel=channel.name,
            type=channel.channel_type,
            max_per_hour=limit.max_alerts_per_hour,
            burst=limit.burst,
        )

    def remove_channel(self, name: str) -> NotificationChannel | None:
        """Unregister *name*. The caller owns closing the returned channel."""
        with self._lock:
            self._limiters.pop(name, None)
            channel = self._channels.pop(name, None)
        if channel is not None:
            logger.info("channel_removed", channel=name)
        return channel

    def channel_names(self) -> list[str]:
        with self._lock:
            return list(self._channels)

    def get_channel_stats(self, name: str) -> ChannelStats | None:
        """Copy of the health counters for *name*, or None if unknown."""
        with self._lock:
            stats = self._stats.get(name)
            return stats.copy() if stats is not None else None

    # ── Dispatch ────────────────────────────────────────────────

    async def dispatch(self, alert: Alert, alerting: AlertingConfig | None) -> DispatchOutcome:
        """Admit, suppress, delay or send *alert* according to *alerting*."""
        if alerting is None or not alerting.enabled:
            return DispatchOutcome.DISABLED
        if not alert.key.strip():
            raise InvalidAlertError("alert dedup key must not be empty")

        now = self._clock()
        if now < self._ready_at:
            with self._lock:
                self._sent[alert.key] = now
                self._active[alert.key] = alert
                self._windows[alert.key] = alerting.suppress_duplicates_for
            self._log_decision(alert, DispatchOutcome.GRACE_PERIOD)
            logger.debug(
                "alert_suppressed_startup_grace",
                key=alert.key,
                remaining_secs=(self._ready_at - now).total_seconds(),
            )
            return DispatchOutcome.GRACE_PERIOD

        suppressed, reason = self.is_suppressed(alert, alerting)
        if suppressed:
            self._log_decision(alert, DispatchOutcome.SUPPRESSED, reason=reason)
            return DispatchOutcome.SUPPRESSED

        delay = alerting.alert_delay
        if delay is not None and delay > timedelta(0):
            return self._queue_delayed(alert, alerting, delay)

        return await self._dispatch_immediate(alert, alerting)

    def is_suppressed(self, alert: Alert, alerting: AlertingConfig) -> tuple[bool, str]:
        """Whether *alert* would be dropped as a duplicate right now."""
        with self._lock:
            last_sent = self._sent.get(alert.key)
        if last_sent is None:
            return False, ""
        if self._clock() - last_sent < alerting.suppress_duplicates_for:
            return True, "duplicate within suppression window"
        return False, ""

    def _queue_delayed(
        self,
        alert: Alert,
        alerting: AlertingConfig,
        delay: timedelta,
    ) -> DispatchOutcome:
        with self._lock:
            if alert.key in self._pending:
                outcome = DispatchOutcome.ALREADY_PENDING
            else:
                self._pending[alert.key] = asyncio.create_task(
                    self._send_after(alert, alerting, delay.total_seconds()),
                    name=f"pending-alert:{alert.key}",
                )
                outcome = DispatchOutcome.PENDING
        self._log_decision(alert, outcome, delay_secs=delay.total_seconds())
        if outcome is DispatchOutcome.PENDING:
            logger.info(
                "alert_queued_with_delay",
                key=alert.key,
                delay_secs=delay.total_seconds(),
                workload=str(alert.workload),
            )
        return outcome

    async def _send_after(self, alert: Alert, alerting: AlertingConfig, delay: float) -> None:
        await asyncio.sleep(delay)
        with self._lock:
            task = self._pending.get(alert.key)
            still_pending = task is asyncio.current_task()
            if still_pending:
                del self._pending[alert.key]
        if not still_pending:
            return
        logger.info("alert_delay_expired", key=alert.key)
        try:
            await self._dispatch_immediate(alert, alerting)
        except Exception:
            logger.exception("delayed_alert_dispatch_error", key=alert.key)

    async def _dispatch_immediate(self, alert: Alert, alerting: AlertingConfig) -> DispatchOutcome:
        with self._lock:
            admitted = self._global_limiter.allow()
        if not admitted:
            logger.warning("alert_rate_limited_global", key=alert.key)
            self._log_decision(alert, DispatchOutcome.RATE_LIMITED, scope="global")
            return DispatchOutcome.RATE_LIMITED

        targets = self._resolve_channels(alert, alerting)
        if not targets:
            logger.debug(
                "alert_no_channels",
                key=alert.key,
                severity=str(alert.severity),
                workload=str(alert.workload),
            )
            self._log_decision(alert, DispatchOutcome.NO_CHANNELS)
            return DispatchOutcome.NO_CHANNELS

        logger.info(
            "alert_dispatching",
            key=alert.key,
            kind=str(alert.kind),
            severity=str(alert.severity),
            workload=str(alert.workload),
            channels=[f"{ch.name}({ch.channel_type})" for ch in targets],
        )

        delivered: list[str] = []
        failed: list[str] = []
        limited: list[str] = []
        for ch in targets:
            with self._lock:
                limiter = self._limiters.get(ch.name)
                allowed = limiter.allow() if limiter is not None else True
            if not allowed:
                limited.append(ch.name)
                await self._record_rate_limited(ch.name)
                logger.warning("alert_rate_limited_channel", key=alert.key, channel=ch.name)
                continue
            try:
                await ch.send(alert)
            except Exception as exc:
                failed.append(ch.name)
                await self._record_failure(ch.name, str(exc))
                logger.warning(
                    "alert_send_failed",
                    key=alert.key,
                    channel=ch.name,
                    type=ch.channel_type,
                    error=str(exc),
                )
            else:
                delivered.append(ch.name)
                await self._record_success(ch.name)
                logger.info("alert_sent", key=alert.key, channel=ch.name, type=ch.channel_type)

        if delivered:
            now = self._clock()
            with self._lock:
                self._sent[alert.key] = now
                self._active[alert.key] = alert
                self._windows[alert.key] = alerting.suppress_duplicates_for
                self._sent_log.append(now)
            await self._store_history(alert, delivered)

        if delivered and not failed and not limited:
            outcome = DispatchOutcome.SENT
        elif delivered:
            outcome = DispatchOutcome.PARTIAL
        elif failed:
            outcome = DispatchOutcome.FAILED
        else:
            outcome = DispatchOutcome.RATE_LIMITED
        self._log_decision(
            alert, outcome, delivered=delivered, failed=failed, rate_limited=limited,
        )
        return outcome

    def _resolve_channels(
        self,
        alert: Alert,
        alerting: AlertingConfig,
    ) -> list[NotificationChannel]:
        targets: list[NotificationChannel] = []
        with self._lock:
            for ref in alerting.channel_refs:
                if not ref.accepts(alert.severity):
                    continue
                channel = self._channels.get(ref.name)
                if channel is None:
                    logger.warning("channel_not_registered", channel=ref.name, key=alert.key)
                    continue
                if channel not in targets:
                    targets.append(channel)
        return targets

    async def send_to_channel(self, name: str, alert: Alert) -> None:
        """Send *alert* to one channel, bypassing dedup and rate limits.

        Used for test notifications. Raises ``ChannelNotFoundError`` or
        ``ChannelError``.
        """
        with self._lock:
            channel = self._channels.get(name)
        if channel is None:
            raise ChannelNotFoundError(f"channel {name!r} is not registered")
        try:
            await channel.send(alert)
        except Exception as exc:
            await self._record_failure(name, str(exc))
            if isinstance(exc, ChannelError):
                raise
            raise ChannelError(name, str(exc)) from exc
        await self._record_success(name)

    # ── Pending / active state ──────────────────────────────────

    def cancel_pending_alert(self, key: str) -> bool:
        """Cancel the delay timer for *key*. Returns True if one was pending."""
        with self._lock:
            task = self._pending.pop(key, None)
        if task is None:
            return False
        task.cancel()
        logger.info("pending_alert_cancelled", key=key)
        return True

    def cancel_pending_alerts_for_workload(self, namespace: str, name: str) -> int:
        """Cancel every pending alert of one workload. Returns the count."""
        prefix = f"{namespace}/{name}/"
        with self._lock:
            keys = [k for k in self._pending if k.startswith(prefix)]
            tasks = [self._pending.pop(k) for k in keys]
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(
                "pending_alerts_cancelled",
                namespace=namespace,
                name=name,
                count=len(tasks),
            )
        return len(tasks)

    def clear_alert(self, key: str) -> bool:
        """Forget *key* so its next occurrence is treated as new."""
        with self._lock:
            was_active = self._active.pop(key, None) is not None
            was_sent = self._sent.pop(key, None) is not None
            self._windows.pop(key, None)
        return was_active or was_sent

    def clear_alerts_for_monitor(self, namespace: str, name: str) -> int:
        """Clear every alert whose key belongs to ``namespace/name``."""
        prefix = f"{namespace}/{name}/"
        with self._lock:
            keys = {k for k in (*self._active, *self._sent) if k.startswith(prefix)}
            for k in keys:
                self._active.pop(k, None)
                self._sent.pop(k, None)
                self._windows.pop(k, None)
        return len(keys)

    def active_alerts(self) -> dict[str, Alert]:
        with self._lock:
            return dict(self._active)

    def pending_keys(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def alert_count_24h(self) -> int:
        cutoff = self._clock() - RETENTION
        with self._lock:
            return sum(1 for t in self._sent_log if t >= cutoff)

    def cleanup_old_alerts(self, max_age: timedelta = RETENTION) -> int:
        """Drop dedup entries last sent more than *max_age* ago.

        An entry whose duplicate-suppression window is longer than *max_age*
        is kept until that window has elapsed.
        """
        now = self._clock()
        cutoff = now - max_age
        with self._lock:
            stale = [
                k for k, t in self._sent.items() if t < now - max(max_age, self._windows.get(k, max_age))
            ]
            for k in stale:
                del self._sent[k]
                self._active.pop(k, None)
                self._windows.pop(k, None)
            self._sent_log = [t for t in self._sent_log if t >= cutoff]
        if stale:
            logger.debug("old_alerts_cleaned", count=len(stale))
        return len(stale)

    # ── Persistence ─────────────────────────────────────────────

    async def restore(self, store: HistoryStore | None = None) -> None:
        """Reload channel stats and recent unresolved alerts after a restart."""
        store = store or self._store
        if store is None:
            return

        try:
            records = await store.get_all_channel_stats()
        except Exception:
            logger.exception("channel_stats_load_error")
            records = {}
        with self._lock:
            for name, rec in records.items():
                self._stats[name] = ChannelStats(
                    alerts_sent_total=rec.alerts_sent_total,
                    alerts_failed_total=rec.alerts_failed_total,
                    alerts_rate_limited_total=rec.alerts_rate_limited_total,
                    last_alert_time=rec.last_alert_time,
                    last_failed_time=rec.last_failed_time,
                    last_failed_error=rec.last_failed_error,
                    consecutive_failures=rec.consecutive_failures,
                )

        since = self._clock() - RESTORE_WINDOW
        try:
            history = await store.list_alert_history(since=since, limit=1000)
        except Exception:
            logger.exception("recent_alerts_load_error")
            return
        loaded = 0
        with self._lock:
            for entry in history:
                if entry.resolved_at is not None:
                    continue
                key = entry.key or alert_key(entry.workload, entry.kind)
                previous = self._sent.get(key)
                if previous is None or entry.occurred_at > previous:
                    self._sent[key] = entry.occurred_at
                loaded += 1
        logger.info(
            "dispatcher_state_restored",
            channel_stats=len(records),
            recent_alerts=loaded,
        )

    async def _store_history(self, alert: Alert, channels: list[str]) -> None:
        if self._store is None:
            return
        entry = AlertHistory(
            key=alert.key,
            kind=alert.kind,
            severity=alert.severity,
            title=alert.title,
            message=alert.message,
            workload=alert.workload,
            monitor=alert.monitor,
            channels_notified=channels,
            occurred_at=alert.timestamp,
            exit_code=alert.context.exit_code,
            reason=alert.context.reason,
        )
        try:
            await self._store.store_alert(entry)
        except Exception:
            logger.exception("alert_history_store_error", key=alert.key)

    async def _record_success(self, name: str) -> None:
        with self._lock:
            stats = self._stats.setdefault(name, ChannelStats())
            stats.record_success(self._clock())
            snapshot = stats.copy()
        await self._persist_stats(name, snapshot)

    async def _record_failure(self, name: str, error: str) -> None:
        with self._lock:
            stats = self._stats.setdefault(name, ChannelStats())
            stats.record_failure(self._clock(), error)
            snapshot = stats.copy()
        await self._persist_stats(name, snapshot)

    async def _record_rate_limited(self, name: str) -> None:
        with self._lock:
            stats = self._stats.setdefault(name, ChannelStats())
            stats.alerts_rate_limited_total += 1
            snapshot = stats.copy()
        await self._persist_stats(name, snapshot)

    async def _persist_stats(self, name: str, stats: ChannelStats) -> None:
        if self._store is None:
            return
        record = ChannelStatsRecord(
            channel_name=name,
            alerts_sent_total=stats.alerts_sent_total,
            alerts_failed_total=stats.alerts_failed_total,
            alerts_rate_limited_total=stats.alerts_rate_limited_total,
            last_alert_time=stats.last_alert_time,
            last_failed_time=stats.last_failed_time,
            last_failed_error=stats.last_failed_error,
            consecutive_failures=stats.consecutive_failures,
        )
        try:
            await self._store.save_channel_stats(record)
        except Exception:
            logger.exception("channel_stats_persist_error", channel=name)

    def _log_decision(self, alert: Alert, outcome: DispatchOutcome, **fields: object) -> None:
        decision_logger.info(
            "decision",
            outcome=str(outcome),
            key=alert.key,
            kind=str(alert.kind),
            severity=str(alert.severity),
            title=alert.title,
            workload=str(alert.workload),
            **fields,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Start the periodic cleanup of old dedup entries."""
        if self._cleanup_task is not None:
            return
        self._closed = False
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                self.cleanup_old_alerts()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("alert_cleanup_error")

    async def close(self) -> None:
        """Drop pending alerts, stop cleanup and close every channel."""
        if self._closed:
            return
        self._closed = True

        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
            channels = list(self._channels.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("pending_alerts_dropped", count=len(pending))

        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        for ch in channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=ch.name)
