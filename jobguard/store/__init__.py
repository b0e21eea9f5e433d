"""Collaborator interfaces and in-memory reference implementations."""

from jobguard.store.base import HistoryStore, Remediator, WorkloadProvider
from jobguard.store.memory import InMemoryHistoryStore, InMemoryWorkloadProvider

__all__ = [
    "HistoryStore",
    "InMemoryHistoryStore",
    "InMemoryWorkloadProvider",
    "Remediator",
    "WorkloadProvider",
]
