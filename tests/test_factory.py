"""Tests for create_guardian_stack."""

from __future__ import annotations

import asyncio

from pydantic import SecretStr

from jobguard.alerting.channels import PagerDutyChannel, SlackChannel
from jobguard.core.config import (
    ChannelConfig,
    LeaderElectionConfig,
    SchedulerConfig,
    Settings,
)
from jobguard.factory import create_guardian_stack
from jobguard.store.memory import InMemoryHistoryStore, InMemoryWorkloadProvider


def _settings(**kw: object) -> Settings:
    defaults: dict[str, object] = {
        "channels": [
            ChannelConfig(name="chat", type="slack", url=SecretStr("https://hooks.test/x")),
            ChannelConfig(name="pager", type="pagerduty", routing_key=SecretStr("rk")),
        ],
    }
    defaults.update(kw)
    return Settings(**defaults)  # type: ignore[arg-type]


class TestCreateGuardianStack:
    def test_channels_registered(self) -> None:
        stack = create_guardian_stack(InMemoryWorkloadProvider(), InMemoryHistoryStore(), _settings())
        assert stack.dispatcher.channel_names() == ["chat", "pager"]
        assert isinstance(stack.dispatcher._channels["chat"], SlackChannel)
        assert isinstance(stack.dispatcher._channels["pager"], PagerDutyChannel)

    def test_scheduler_intervals(self) -> None:
        sched = SchedulerConfig(dead_man_interval_secs=5, sla_recalc_interval_secs=7)
        stack = create_guardian_stack(
            InMemoryWorkloadProvider(), InMemoryHistoryStore(), _settings(scheduler=sched),
        )
        assert stack.dead_man.interval == 5
        assert stack.sla_recalc.interval == 7
        assert len(stack.schedulers) == 4

    def test_leader_election_event(self) -> None:
        stack = create_guardian_stack(
            InMemoryWorkloadProvider(),
            InMemoryHistoryStore(),
            _settings(leader_election=LeaderElectionConfig(enabled=True)),
        )
        assert isinstance(stack.elected, asyncio.Event)
        assert stack.sla_recalc._elected is stack.elected
        assert stack.dead_man._elected is None

    def test_no_leader_election_by_default(self) -> None:
        stack = create_guardian_stack(InMemoryWorkloadProvider(), InMemoryHistoryStore(), _settings())
        assert stack.elected is None

    async def test_start_and_stop(self) -> None:
        stack = create_guardian_stack(
            InMemoryWorkloadProvider(), InMemoryHistoryStore(), Settings(),
        )
        await stack.start()
        assert all(s.running for s in stack.schedulers)
        await asyncio.sleep(0.01)
        await stack.stop()
        assert not any(s.running for s in stack.schedulers)
