"""Tests for notification channels — payloads, HTTP mocking, error wrapping."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from pydantic import SecretStr

from jobguard.alerting.channels import (
    PagerDutyChannel,
    SlackChannel,
    WebhookChannel,
    create_channel,
)
from jobguard.alerting.exceptions import ChannelError, UnknownChannelTypeError
from jobguard.alerting.types import Alert, AlertContext
from jobguard.core.config import ChannelConfig
from jobguard.core.types import AlertKind, Severity, WorkloadRef

# ── Helpers ─────────────────────────────────────────────────────


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "kind": AlertKind.DEAD_MAN_TRIGGERED,
        "severity": Severity.CRITICAL,
        "title": "No success in 26h",
        "message": "expected a run every 24h",
        "workload": WorkloadRef(namespace="prod", name="backup"),
        "timestamp": datetime(2024, 6, 10, 12, 0, tzinfo=UTC),
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


def _config(**kw: object) -> ChannelConfig:
    defaults: dict[str, object] = {
        "name": "ops",
        "type": "slack",
        "url": SecretStr("https://hooks.slack.test/abc"),
    }
    defaults.update(kw)
    return ChannelConfig(**defaults)  # type: ignore[arg-type]


def _mock_response(status: int = 200, text: str = "ok") -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _attach(ch: object, resp: AsyncMock | None = None, exc: Exception | None = None) -> MagicMock:
    mock_session = MagicMock()
    if exc is not None:
        mock_session.request = MagicMock(side_effect=exc)
    else:
        mock_session.request = MagicMock(return_value=resp)
    mock_session.closed = False
    ch._session = mock_session  # type: ignore[attr-defined]
    return mock_session


# ── SlackChannel ────────────────────────────────────────────────


class TestSlackChannel:
    async def test_send_success(self) -> None:
        ch = SlackChannel(_config(default_channel="#alerts"))
        session = _attach(ch, _mock_response(200))

        await ch.send(_alert())
        session.request.assert_called_once()
        method, url = session.request.call_args[0]
        assert method == "POST"
        assert url == "https://hooks.slack.test/abc"
        payload = session.request.call_args[1]["json"]
        assert payload["channel"] == "#alerts"
        assert "[CRITICAL] No success in 26h" in payload["text"]
        assert "`prod/backup`" in payload["text"]

    def test_payload_includes_context(self) -> None:
        ch = SlackChannel(_config())
        alert = _alert(context=AlertContext(success_rate=87.5, exit_code=2, reason="OOMKilled"))
        text = ch.build_payload(alert)["text"]
        assert "87.5%" in text
        assert "*Exit code:* 2" in text
        assert "OOMKilled" in text
        assert "Suggested fix" not in text

    def test_no_default_channel_omitted(self) -> None:
        ch = SlackChannel(_config())
        assert "channel" not in ch.build_payload(_alert())

    async def test_failure_status_raises(self) -> None:
        ch = SlackChannel(_config())
        _attach(ch, _mock_response(500, "server error"))
        with pytest.raises(ChannelError) as exc_info:
            await ch.send(_alert())
        assert exc_info.value.channel == "ops"
        assert "500" in str(exc_info.value)

    async def test_client_error_wrapped(self) -> None:
        ch = SlackChannel(_config())
        _attach(ch, exc=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(ChannelError):
            await ch.send(_alert())

    async def test_timeout_wrapped(self) -> None:
        ch = SlackChannel(_config())
        _attach(ch, exc=TimeoutError())
        with pytest.raises(ChannelError):
            await ch.send(_alert())

    def test_missing_url_rejected(self) -> None:
        with pytest.raises(ValueError):
            SlackChannel(_config(url=SecretStr("")))

    async def test_close_session(self) -> None:
        ch = SlackChannel(_config())
        session = _attach(ch, _mock_response())
        session.close = AsyncMock()
        await ch.close()
        session.close.assert_awaited_once()
        assert ch._session is None

    async def test_close_without_session(self) -> None:
        ch = SlackChannel(_config())
        await ch.close()


# ── PagerDutyChannel ────────────────────────────────────────────


class TestPagerDutyChannel:
    def _channel(self, **kw: object) -> PagerDutyChannel:
        cfg = _config(type="pagerduty", url=SecretStr(""), routing_key=SecretStr("rk-1"), **kw)
        return PagerDutyChannel(cfg, events_url="https://pd.test/enqueue")

    async def test_send_accepted(self) -> None:
        ch = self._channel()
        session = _attach(ch, _mock_response(202))
        alert = _alert()
        await ch.send(alert)
        url = session.request.call_args[0][1]
        assert url == "https://pd.test/enqueue"
        payload = session.request.call_args[1]["json"]
        assert payload["routing_key"] == "rk-1"
        assert payload["event_action"] == "trigger"
        assert payload["dedup_key"] == alert.key
        assert payload["payload"]["source"] == "prod/backup"
        assert payload["payload"]["severity"] == "critical"

    async def test_only_202_is_success(self) -> None:
        ch = self._channel()
        _attach(ch, _mock_response(200))
        with pytest.raises(ChannelError):
            await ch.send(_alert())

    def test_custom_details_carry_context(self) -> None:
        ch = self._channel()
        alert = _alert(context=AlertContext(success_rate=80.0, exit_code=137, reason="OOMKilled"))
        details = ch.build_payload(alert)["payload"]["custom_details"]
        assert details == {
            "type": "DeadManTriggered",
            "message": "expected a run every 24h",
            "success_rate": 80.0,
            "exit_code": 137,
            "reason": "OOMKilled",
        }

    def test_severity_override(self) -> None:
        ch = self._channel(pagerduty_severity="error")
        assert ch.build_payload(_alert())["payload"]["severity"] == "error"

    def test_missing_routing_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            PagerDutyChannel(_config(type="pagerduty"))


# ── WebhookChannel ──────────────────────────────────────────────


class TestWebhookChannel:
    async def test_custom_method_and_headers(self) -> None:
        cfg = _config(
            type="webhook",
            url=SecretStr("https://hooks.test/in"),
            method="put",
            headers={"X-Token": "secret"},
        )
        ch = WebhookChannel(cfg)
        session = _attach(ch, _mock_response(204))
        await ch.send(_alert())
        method, url = session.request.call_args[0]
        assert (method, url) == ("PUT", "https://hooks.test/in")
        assert session.request.call_args[1]["headers"] == {"X-Token": "secret"}

    def test_payload_shape(self) -> None:
        ch = WebhookChannel(_config(type="webhook"))
        payload = ch.build_payload(_alert())
        assert payload["key"] == "prod/backup/DeadManTriggered"
        assert payload["type"] == "DeadManTriggered"
        assert payload["namespace"] == "prod"
        assert payload["name"] == "backup"
        assert payload["timestamp"] == "2024-06-10T12:00:00+00:00"
        assert payload["context"]["exit_code"] == 0


# ── Factory ─────────────────────────────────────────────────────


class TestCreateChannel:
    @pytest.mark.parametrize(
        ("type_", "cls"),
        [("slack", SlackChannel), ("Webhook", WebhookChannel)],
    )
    def test_known_types(self, type_: str, cls: type) -> None:
        assert isinstance(create_channel(_config(type=type_)), cls)

    def test_pagerduty(self) -> None:
        ch = create_channel(_config(type="pagerduty", routing_key=SecretStr("rk")))
        assert isinstance(ch, PagerDutyChannel)
        assert ch.name == "ops"

    def test_unknown_type(self) -> None:
        with pytest.raises(UnknownChannelTypeError):
            create_channel(_config(type="carrier-pigeon"))
