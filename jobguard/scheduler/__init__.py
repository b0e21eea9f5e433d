"""Periodic coordinators and the suspension tracker."""

from jobguard.scheduler.base import PeriodicScheduler
from jobguard.scheduler.deadman import DeadManScheduler
from jobguard.scheduler.pruner import HistoryPruner
from jobguard.scheduler.sla_recalc import SLARecalcScheduler
from jobguard.scheduler.stuck import StuckRunChecker
from jobguard.scheduler.suspension import SuspensionState, SuspensionTracker

__all__ = [
    "DeadManScheduler",
    "HistoryPruner",
    "PeriodicScheduler",
    "SLARecalcScheduler",
    "StuckRunChecker",
    "SuspensionState",
    "SuspensionTracker",
]
