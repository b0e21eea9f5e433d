"""Convenience factory for wiring the detection and alerting stack."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from jobguard.alerting.channels import create_channel
from jobguard.alerting.dispatcher import AlertDispatcher
from jobguard.analyzer.sla import SLAAnalyzer
from jobguard.core.config import Settings, get_settings
from jobguard.core.types import utcnow
from jobguard.scheduler.base import PeriodicScheduler
from jobguard.scheduler.deadman import DeadManScheduler
from jobguard.scheduler.pruner import HistoryPruner
from jobguard.scheduler.sla_recalc import SLARecalcScheduler
from jobguard.scheduler.stuck import StuckRunChecker
from jobguard.store.base import HistoryStore, Remediator, WorkloadProvider

logger = structlog.get_logger(__name__)


@dataclass
class GuardianStack:
    """Every long-lived component of a running guardian."""

    dispatcher: AlertDispatcher
    analyzer: SLAAnalyzer
    dead_man: DeadManScheduler
    sla_recalc: SLARecalcScheduler
    stuck_runs: StuckRunChecker
    pruner: HistoryPruner
    elected: asyncio.Event | None = None
    schedulers: list[PeriodicScheduler] = field(default_factory=list)

    async def start(self) -> None:
        """Restore dispatcher state, then start every coordinator."""
        await self.dispatcher.restore()
        await self.dispatcher.start()
        for scheduler in self.schedulers:
            await scheduler.start()

    async def stop(self) -> None:
        for scheduler in self.schedulers:
            await scheduler.stop()
        await self.dispatcher.close()


def create_guardian_stack(
    provider: WorkloadProvider,
    store: HistoryStore,
    settings: Settings | None = None,
    remediator: Remediator | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> GuardianStack:
    """Build dispatcher, analyzer and coordinators from *settings*.

    Channels listed in ``settings.channels`` are created and registered with
    their configured rate limits. When leader election is enabled the SLA
    recalculation loop waits on ``stack.elected``.
    """
    settings = settings or get_settings()
    sched = settings.scheduler
    grace = sched.startup_grace_period_secs

    dispatcher = AlertDispatcher(
        store=store,
        rate_limits=settings.rate_limits,
        startup_grace_period=timedelta(seconds=grace),
        clock=clock,
    )
    for channel_config in settings.channels:
        dispatcher.register_channel(create_channel(channel_config))

    analyzer = SLAAnalyzer(store, clock=clock)
    elected = asyncio.Event() if settings.leader_election.enabled else None

    dead_man = DeadManScheduler(
        provider, analyzer, dispatcher, store,
        interval_secs=sched.dead_man_interval_secs,
        startup_delay_secs=grace,
        clock=clock,
    )
    sla_recalc = SLARecalcScheduler(
        provider, analyzer, dispatcher, store,
        interval_secs=sched.sla_recalc_interval_secs,
        startup_delay_secs=grace,
        elected=elected,
        clock=clock,
    )
    stuck_runs = StuckRunChecker(
        provider, dispatcher, store, remediator,
        interval_secs=sched.stuck_check_interval_secs,
        startup_delay_secs=grace,
        clock=clock,
    )
    pruner = HistoryPruner(
        store,
        retention_days=settings.history_retention.default_days,
        interval_secs=sched.prune_interval_secs,
        clock=clock,
    )

    logger.info(
        "guardian_stack_created",
        channels=dispatcher.channel_names(),
        leader_election=elected is not None,
        startup_grace_secs=grace,
    )
    return GuardianStack(
        dispatcher=dispatcher,
        analyzer=analyzer,
        dead_man=dead_man,
        sla_recalc=sla_recalc,
        stuck_runs=stuck_runs,
        pruner=pruner,
        elected=elected,
        schedulers=[dead_man, sla_recalc, stuck_runs, pruner],
    )
