"""Command-line entry point for portwatch."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys

import structlog

from portwatch.browser.measurer import FunctionalTimeMeasurer
from portwatch.browser.session import BrowserSessionManager
from portwatch.config import PortwatchConfig, build_targets, load_config
from portwatch.errors import ConfigError
from portwatch.models import Target
from portwatch.scheduler.check_scheduler import CheckScheduler
from portwatch.sinks.memory import MemoryResultSink
from portwatch.sinks.sqlite import SqliteResultSink
from portwatch.targets.address_entry import prompt_addresses
from portwatch.targets.port_registry import load_port_registry


logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, str(level).upper(), logging.INFO)),
        # stdout belongs to the interactive prompt.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def build_measurer(config: PortwatchConfig) -> FunctionalTimeMeasurer:
    browser = config.browser
    manager = BrowserSessionManager(
        connect_timeout_seconds=browser.connect_timeout_seconds,
        navigation_timeout_seconds=browser.navigation_timeout_seconds,
        close_timeout_seconds=browser.close_timeout_seconds,
    )
    return FunctionalTimeMeasurer(
        manager,
        poll_interval=browser.poll_interval_seconds,
        element_timeout=browser.element_timeout_seconds,
        poll_attempt_timeout=browser.poll_attempt_timeout_seconds,
    )


def build_scheduler(config: PortwatchConfig, targets: list[Target]) -> CheckScheduler:
    registry = load_port_registry(config.port_registry_csv) if config.port_registry_csv else None
    sink = SqliteResultSink(config.db_path) if config.db_path else MemoryResultSink(max_records=10_000)
    measurer = build_measurer(config) if any(t.functional is not None for t in targets) else None
    return CheckScheduler(
        targets,
        sink,
        measurer=measurer,
        probe_timeout=config.probe_timeout_seconds,
        interval_seconds=config.interval_seconds,
        check_concurrency=config.check_concurrency,
        browser_concurrency=config.browser_concurrency,
        port_registry=registry,
    )


def _merge_operator_targets(targets: list[Target]) -> list[Target]:
    entry = prompt_addresses()
    known = {t.name for t in targets}
    merged = list(targets)
    for endpoint in entry.endpoints:
        target = Target.for_endpoint(endpoint)
        if target.name in known:
            logger.info("Endpoint already configured", endpoint=endpoint.address)
            continue
        known.add(target.name)
        merged.append(target)
    return merged


async def _serve(scheduler: CheckScheduler) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    await scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()


async def run(config: PortwatchConfig, targets: list[Target], ticks: int | None) -> int:
    scheduler = build_scheduler(config, targets)
    try:
        if ticks is not None:
            await scheduler.run(ticks=ticks)
        else:
            await _serve(scheduler)
    finally:
        await scheduler.sink.close()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="TCP endpoint and page functional-time monitor")
    parser.add_argument("--config", default=os.getenv("PORTWATCH_CONFIG", "config/portwatch.yaml"), help="Path to YAML config")
    parser.add_argument("--once", action="store_true", help="Run one check tick and exit")
    parser.add_argument("--ticks", type=int, default=None, help="Run this many ticks and exit")
    parser.add_argument("--interactive", action="store_true", help="Prompt for additional host:port addresses")
    parser.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))
        logger.error("Invalid configuration", config=args.config, error=str(e))
        return 2

    configure_logging(args.log_level or config.log_level)
    try:
        targets = build_targets(config)
    except ConfigError as e:
        logger.error("Invalid configuration", config=args.config, error=str(e))
        return 2

    if args.interactive:
        targets = _merge_operator_targets(targets)

    if not targets:
        logger.error("No targets configured", config=args.config)
        return 2

    ticks = 1 if args.once else args.ticks
    if ticks is not None and ticks < 1:
        parser.error("--ticks must be at least 1")

    logger.info("Starting portwatch", targets=len(targets), ticks=ticks, interval_seconds=config.interval_seconds)
    return asyncio.run(run(config, targets, ticks))


if __name__ == "__main__":
    raise SystemExit(main())
