"""Notification channels — Slack, PagerDuty and generic webhook delivery."""

from __future__ import annotations

import abc
from typing import Any

import aiohttp
import structlog

from jobguard.alerting.exceptions import ChannelError, UnknownChannelTypeError
from jobguard.alerting.types import Alert
from jobguard.core.config import ChannelConfig
from jobguard.core.types import Severity

logger = structlog.get_logger(__name__)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"

_SLACK_EMOJI: dict[Severity, str] = {
    Severity.CRITICAL: ":red_circle:",
    Severity.WARNING: ":warning:",
    Severity.INFO: ":information_source:",
}


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels.

    ``send`` raises ``ChannelError`` on any delivery failure; the dispatcher
    counts every raised error against the channel's health.
    """

    channel_type: str = ""

    def __init__(self, name: str) -> None:
        self.name = name

    @abc.abstractmethod
    async def send(self, alert: Alert) -> None:
        """Deliver *alert*."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HTTPChannel(NotificationChannel):
    """Shared aiohttp session handling for HTTP-based channels."""

    ok_statuses: tuple[int, ...] = (200, 201, 202, 204)

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=30),
            )
        return self._session

    async def _request(
        self,
        url: str,
        payload: dict[str, Any],
        method: str = "POST",
        headers: dict[str, str] | None = None,
    ) -> None:
        try:
            session = self._get_session()
            async with session.request(method, url, json=payload, headers=headers) as resp:
                if resp.status in self.ok_statuses:
                    return
                body = await resp.text()
                logger.warning(
                    "channel_send_failed",
                    channel=self.name,
                    type=self.channel_type,
                    status=resp.status,
                    body=body[:200],
                )
                raise ChannelError(self.name, f"{self.channel_type} returned status {resp.status}")
        except ChannelError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ChannelError(self.name, f"request failed: {exc}") from exc

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class SlackChannel(_HTTPChannel):
    """Delivers alerts to a Slack incoming webhook as mrkdwn text."""

    channel_type = "slack"

    def __init__(self, config: ChannelConfig) -> None:
        super().__init__(config.name)
        self._webhook_url = config.url.get_secret_value()
        self._default_channel = config.default_channel
        if not self._webhook_url:
            raise ValueError(f"slack channel {config.name!r} has no webhook url")

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        emoji = _SLACK_EMOJI.get(alert.severity, "")
        lines = [f"{emoji} *[{alert.severity.upper()}] {alert.title}*".strip()]
        lines.append(f"*Workload:* `{alert.workload}`")
        if alert.message:
            lines.append(alert.message)
        ctx = alert.context
        if ctx.success_rate is not None:
            lines.append(f"*Success rate:* {ctx.success_rate:.1f}%")
        if ctx.exit_code:
            lines.append(f"*Exit code:* {ctx.exit_code}")
        if ctx.reason:
            lines.append(f"*Reason:* {ctx.reason}")
        if ctx.logs:
            lines.append(f"```{ctx.logs}```")

        payload: dict[str, Any] = {"text": "\n".join(lines)}
        if self._default_channel:
            payload["channel"] = self._default_channel
        return payload

    async def send(self, alert: Alert) -> None:
        await self._request(self._webhook_url, self.build_payload(alert))


class PagerDutyChannel(_HTTPChannel):
    """Triggers PagerDuty incidents through the Events API v2."""

    channel_type = "pagerduty"
    ok_statuses = (202,)

    def __init__(self, config: ChannelConfig, events_url: str = PAGERDUTY_EVENTS_URL) -> None:
        super().__init__(config.name)
        self._routing_key = config.routing_key.get_secret_value()
        self._severity = config.pagerduty_severity
        self._events_url = events_url
        if not self._routing_key:
            raise ValueError(f"pagerduty channel {config.name!r} has no routing key")

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        ctx = alert.context
        return {
            "routing_key": self._routing_key,
            "event_action": "trigger",
            "dedup_key": alert.key,
            "payload": {
                "summary": alert.title,
                "source": str(alert.workload),
                "severity": self._severity or str(alert.severity),
                "timestamp": alert.timestamp.isoformat(),
                "custom_details": {
                    "type": str(alert.kind),
                    "message": alert.message,
                    "success_rate": ctx.success_rate,
                    "exit_code": ctx.exit_code,
                    "reason": ctx.reason,
                },
            },
        }

    async def send(self, alert: Alert) -> None:
        await self._request(self._events_url, self.build_payload(alert))


class WebhookChannel(_HTTPChannel):
    """Posts the alert as JSON to an arbitrary HTTP endpoint."""

    channel_type = "webhook"

    def __init__(self, config: ChannelConfig) -> None:
        super().__init__(config.name)
        self._url = config.url.get_secret_value()
        self._method = config.method.upper() or "POST"
        self._headers = dict(config.headers)
        if not self._url:
            raise ValueError(f"webhook channel {config.name!r} has no url")

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        return {
            "key": alert.key,
            "type": str(alert.kind),
            "severity": str(alert.severity),
            "title": alert.title,
            "message": alert.message,
            "namespace": alert.workload.namespace,
            "name": alert.workload.name,
            "timestamp": alert.timestamp.isoformat(),
            "context": alert.context.model_dump(),
        }

    async def send(self, alert: Alert) -> None:
        await self._request(self._url, self.build_payload(alert), self._method, self._headers)


_CHANNEL_TYPES: dict[str, type[NotificationChannel]] = {
    SlackChannel.channel_type: SlackChannel,
    PagerDutyChannel.channel_type: PagerDutyChannel,
    WebhookChannel.channel_type: WebhookChannel,
}


def create_channel(config: ChannelConfig) -> NotificationChannel:
    """Instantiate the adapter for ``config.type``."""
    cls = _CHANNEL_TYPES.get(config.type.lower())
    if cls is None:
        raise UnknownChannelTypeError(f"unknown channel type {config.type!r} for {config.name!r}")
    return cls(config)  # type: ignore[call-arg]
