"""Periodic fan-out of reachability and functional-time checks."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Sequence

import structlog

from portwatch.errors import ErrorKind, MeasurementError, ResultSinkError
from portwatch.models import (
    CheckError,
    CheckResult,
    Endpoint,
    FunctionalTimeResult,
    ReachabilityResult,
    Target,
    utc_now,
)
from portwatch.probing.reachability import probe
from portwatch.scheduler.job_scheduler import JobScheduler
from portwatch.sinks.base import ResultSink
from portwatch.targets.port_registry import PortRegistry


logger = structlog.get_logger(__name__)

TICK_JOB_ID = "portwatch_tick"

Prober = Callable[[Endpoint, float], Awaitable[bool]]


class CheckScheduler:
    """Runs every configured target once per tick and emits one result per check.

    Targets within a tick run concurrently (bounded by ``check_concurrency``
    and, for browser checks, ``browser_concurrency``). A target whose previous
    check is still in flight is skipped for the tick instead of being started
    twice.
    """

    def __init__(
        self,
        targets: Sequence[Target],
        sink: ResultSink,
        *,
        measurer: Any = None,
        prober: Prober = probe,
        probe_timeout: float = 1.0,
        interval_seconds: float = 60.0,
        check_concurrency: int = 16,
        browser_concurrency: int = 2,
        port_registry: PortRegistry | None = None,
    ):
        names = [t.name for t in targets]
        if len(set(names)) != len(names):
            raise ValueError("Target names must be unique")
        if any(t.functional is not None for t in targets) and measurer is None:
            raise ValueError("A measurer is required for functional-time targets")

        self.targets = list(targets)
        self.sink = sink
        self.measurer = measurer
        self.prober = prober
        self.probe_timeout = probe_timeout
        self.interval_seconds = interval_seconds
        self.port_registry = port_registry

        self._in_flight = {t.name: asyncio.Lock() for t in self.targets}
        self._check_semaphore = asyncio.Semaphore(check_concurrency)
        self._browser_semaphore = asyncio.Semaphore(browser_concurrency)
        self._tick_tasks: set[asyncio.Task] = set()
        self._job_scheduler: JobScheduler | None = None
        self.tick_count = 0

    async def run_tick(self) -> list[CheckResult]:
        """Check every target once; returns the results emitted during this tick."""
        self.tick_count += 1
        tick = self.tick_count
        started = time.perf_counter()

        tasks = [
            asyncio.create_task(self._run_target(target, tick), name=f"check:{target.name}")
            for target in self.targets
        ]
        outcomes = await asyncio.gather(*tasks)
        results = [r for r in outcomes if r is not None]

        logger.info(
            "Tick completed",
            tick=tick,
            targets=len(self.targets),
            emitted=len(results),
            skipped=len(outcomes) - len(results),
            failed=sum(1 for r in results if not r.ok),
            elapsed_ms=round((time.perf_counter() - started) * 1000.0, 3),
        )
        return results

    async def _run_target(self, target: Target, tick: int) -> CheckResult | None:
        lock = self._in_flight[target.name]
        if lock.locked():
            logger.warning("Previous check still running, skipping target", target=target.name, tick=tick)
            return None

        async with lock:
            async with self._check_semaphore:
                result = await self._check(target)
            await self._emit(result)
            return result

    async def _check(self, target: Target) -> CheckResult:
        probed_at = utc_now()
        try:
            if target.endpoint is not None:
                return await self._check_reachability(target, probed_at)
            return await self._check_functional(target, probed_at)
        except Exception as e:
            logger.exception("Check crashed", target=target.name)
            return CheckError(
                target=target.name,
                kind=ErrorKind.UNEXPECTED,
                message=f"{type(e).__name__}: {e}",
                probed_at=probed_at,
            )

    async def _check_reachability(self, target: Target, probed_at) -> ReachabilityResult:
        endpoint = target.endpoint
        is_open = await self.prober(endpoint, self.probe_timeout)
        service = self.port_registry.service_name(endpoint.port) if self.port_registry else None
        logger.info(
            "Endpoint is open" if is_open else "Endpoint is closed",
            target=target.name,
            endpoint=endpoint.address,
            service=service,
        )
        return ReachabilityResult(
            target=target.name,
            endpoint=endpoint,
            open=is_open,
            probed_at=probed_at,
            service=service,
        )

    async def _check_functional(self, target: Target, probed_at) -> CheckResult:
        spec = target.functional
        async with self._browser_semaphore:
            try:
                measurement = await self.measurer.measure(spec)
            except MeasurementError as e:
                logger.warning("Functional check failed", target=target.name, kind=e.kind.value, error=str(e))
                return CheckError(
                    target=target.name,
                    kind=e.kind,
                    message=str(e),
                    probed_at=probed_at,
                    close_error=str(e.close_error) if e.close_error is not None else None,
                )
        return FunctionalTimeResult(
            target=target.name,
            spec=spec,
            duration_seconds=measurement.duration_seconds,
            probed_at=probed_at,
            close_error=measurement.close_error,
        )

    async def _emit(self, result: CheckResult) -> None:
        try:
            record_id = await self.sink.append(result)
        except ResultSinkError as e:
            logger.error("Failed to store check result", target=result.target, error=str(e))
            return
        except Exception:
            logger.exception("Result sink crashed", target=result.target)
            return
        logger.debug("Stored check result", target=result.target, record_id=record_id)

    def _spawn_tick(self) -> asyncio.Task:
        task = asyncio.create_task(self.run_tick(), name=f"tick:{self.tick_count + 1}")
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_tasks.discard)
        return task

    async def run(self, ticks: int | None = None) -> None:
        """Start a tick every ``interval_seconds``; with ``ticks`` set, stop after that many.

        A tick that runs long does not delay the next one; targets still busy
        from the previous tick are skipped. Returns once every started tick
        has finished.
        """
        loop = asyncio.get_running_loop()
        next_start = loop.time()
        started = 0
        try:
            while ticks is None or started < ticks:
                self._spawn_tick()
                started += 1
                if ticks is not None and started >= ticks:
                    break
                next_start += self.interval_seconds
                delay = next_start - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
                else:
                    logger.warning("Tick schedule is running late", late_seconds=round(-delay, 3))
                    next_start = loop.time()
        finally:
            await self.drain()

    async def drain(self) -> None:
        """Wait for ticks that are still running."""
        if self._tick_tasks:
            await asyncio.gather(*list(self._tick_tasks))

    async def _scheduled_tick(self) -> None:
        self._spawn_tick()

    async def start(self) -> None:
        """Run ticks from an APScheduler interval job until ``stop()``."""
        if self._job_scheduler is not None:
            logger.warning("Check scheduler already started")
            return
        self._job_scheduler = JobScheduler()
        self._job_scheduler.add_interval_job(
            job_id=TICK_JOB_ID,
            func=self._scheduled_tick,
            seconds=self.interval_seconds,
            description="Run all configured checks",
        )
        await self._job_scheduler.start()
        logger.info("Check scheduler started", targets=len(self.targets), interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._job_scheduler is not None:
            await self._job_scheduler.stop()
            self._job_scheduler = None
        await self.drain()
        logger.info("Check scheduler stopped", ticks=self.tick_count)
