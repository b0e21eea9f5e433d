"""Tests for jobguard/core/config.py — YAML loading, defaults, SecretStr."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from jobguard.core.config import (
    ChannelConfig,
    ChannelRateLimit,
    LoggingConfig,
    RateLimitsConfig,
    SchedulerConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_scheduler_config(self) -> None:
        cfg = SchedulerConfig()
        assert cfg.dead_man_interval_secs == 60.0
        assert cfg.sla_recalc_interval_secs == 300.0
        assert cfg.stuck_check_interval_secs == 60.0
        assert cfg.prune_interval_secs == 3600.0
        assert cfg.startup_grace_period_secs == 0.0

    def test_default_rate_limits(self) -> None:
        cfg = RateLimitsConfig()
        assert cfg.max_alerts_per_minute == 50
        assert cfg.global_burst == 10
        assert cfg.default_channel.max_alerts_per_hour == 100
        assert cfg.default_channel.burst == 10

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_settings(self) -> None:
        s = Settings()
        assert s.history_retention.default_days == 30
        assert s.leader_election.enabled is False
        assert s.channels == []


class TestRateLimits:
    def test_for_channel_override(self) -> None:
        cfg = RateLimitsConfig(channels={"oncall": ChannelRateLimit(max_alerts_per_hour=5, burst=1)})
        assert cfg.for_channel("oncall").burst == 1
        assert cfg.for_channel("other") == cfg.default_channel

    def test_burst_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ChannelRateLimit(burst=0)


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "scheduler": {"dead_man_interval_secs": 30, "startup_grace_period_secs": 90},
            "rate_limits": {
                "max_alerts_per_minute": 20,
                "channels": {"oncall": {"max_alerts_per_hour": 12, "burst": 2}},
            },
            "history_retention": {"default_days": 7},
            "leader_election": {"enabled": True},
            "channels": [
                {"name": "slack", "type": "slack", "url": "https://hooks.example/x"},
                {"name": "oncall", "type": "pagerduty", "routing_key": "rk-123"},
            ],
            "logging": {"level": "DEBUG", "format": "console"},
        }
        config_file = tmp_path / "jobguard.yaml"
        config_file.write_text(yaml.dump(config_data))

        settings = load_settings(config_file)

        assert settings.scheduler.dead_man_interval_secs == 30
        assert settings.scheduler.startup_grace_period_secs == 90
        assert settings.rate_limits.max_alerts_per_minute == 20
        assert settings.rate_limits.for_channel("oncall").max_alerts_per_hour == 12
        assert settings.history_retention.default_days == 7
        assert settings.leader_election.enabled is True
        assert [c.name for c in settings.channels] == ["slack", "oncall"]
        assert settings.channels[1].routing_key.get_secret_value() == "rk-123"
        assert settings.logging.level == "DEBUG"

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.scheduler.dead_man_interval_secs == 60.0
        assert settings.rate_limits.max_alerts_per_minute == 50

    def test_load_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        settings = load_settings(config_file)
        assert settings.history_retention.default_days == 30

    def test_partial_yaml_merges_with_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "jobguard.yaml"
        config_file.write_text(yaml.dump({"scheduler": {"prune_interval_secs": 60}}))

        settings = load_settings(config_file)
        assert settings.scheduler.prune_interval_secs == 60
        # Other defaults still intact
        assert settings.scheduler.sla_recalc_interval_secs == 300.0
        assert settings.rate_limits.default_channel.burst == 10

    def test_get_settings_caches(self, tmp_path: Path) -> None:
        config_file = tmp_path / "jobguard.yaml"
        config_file.write_text(yaml.dump({"history_retention": {"default_days": 3}}))
        loaded = load_settings(config_file)
        assert get_settings() is loaded
        reset_settings()
        assert get_settings() is not loaded


class TestSecretStr:
    """Channel credentials should use SecretStr to prevent leaking."""

    def test_secret_str_repr_does_not_leak(self) -> None:
        cfg = ChannelConfig(
            name="hook",
            type="webhook",
            url="https://hooks.example/secret-token",  # type: ignore[arg-type]
            routing_key="rk-secret",  # type: ignore[arg-type]
        )
        repr_str = repr(cfg)
        assert "secret-token" not in repr_str
        assert "rk-secret" not in repr_str
        assert "**********" in repr_str

    def test_secret_str_get_value(self) -> None:
        cfg = ChannelConfig(name="hook", type="webhook", url="https://x.example")  # type: ignore[arg-type]
        assert cfg.url.get_secret_value() == "https://x.example"
