"""Detection and alert dispatch for periodic batch workloads."""

__version__ = "0.1.0"
