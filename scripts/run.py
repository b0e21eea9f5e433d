#!/usr/bin/env python3
"""Guardian entrypoint — wires the detection stack and runs until interrupted.

Usage::

    # Run with default config
    python scripts/run.py --workloads config/workloads.yaml

    # Custom config file
    python scripts/run.py --config config/jobguard.yaml --workloads config/workloads.yaml

    # Override log level
    python scripts/run.py --workloads config/workloads.yaml --log-level DEBUG

History is kept in memory, so SLA and regression checks only see runs
recorded during this process's lifetime.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from jobguard.core.config import load_settings
from jobguard.core.logging import setup_logging
from jobguard.factory import create_guardian_stack
from jobguard.store.memory import InMemoryHistoryStore, InMemoryWorkloadProvider

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start every coordinator and run until SIGINT/SIGTERM."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    provider = InMemoryWorkloadProvider.from_yaml(args.workloads)
    workloads = await provider.list_workloads()
    if not workloads:
        logger.error("no_workloads_configured", path=args.workloads)
        print(f"No workloads found in {args.workloads}.", file=sys.stderr)
        return 1

    store = InMemoryHistoryStore()
    stack = create_guardian_stack(provider, store, settings)
    if stack.elected is not None:
        # Single process: this replica is always the leader.
        stack.elected.set()

    await stack.start()
    logger.info(
        "guardian_running",
        workloads=len(workloads),
        channels=stack.dispatcher.channel_names(),
    )

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    logger.info("guardian_shutting_down")
    await stack.stop()
    logger.info(
        "guardian_stopped",
        alerts_24h=stack.dispatcher.alert_count_24h(),
        ticks={s.name: s.tick_count for s in stack.schedulers},
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the cron workload guardian")
    parser.add_argument("--config", default=None, help="Path to settings YAML")
    parser.add_argument("--workloads", required=True, help="Path to workloads YAML")
    parser.add_argument("--log-level", default=None, help="Log level override")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
