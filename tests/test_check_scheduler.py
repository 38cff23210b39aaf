from __future__ import annotations

import asyncio
from collections import Counter

import pytest

from portwatch.errors import ElementTimeout, ErrorKind, ResultSinkError, SessionCloseError
from portwatch.models import (
    CheckError,
    Endpoint,
    FunctionalCheckSpec,
    FunctionalTimeResult,
    Measurement,
    ReachabilityResult,
    Target,
)
from portwatch.scheduler.check_scheduler import CheckScheduler
from portwatch.sinks.memory import MemoryResultSink
from portwatch.targets.port_registry import PortRecord, PortRegistry


OPEN = Endpoint("10.0.0.1", 80)
CLOSED = Endpoint("10.0.0.2", 22)
CRASHING = Endpoint("10.0.0.3", 443)


async def fake_prober(endpoint: Endpoint, timeout: float) -> bool:
    if endpoint == CRASHING:
        raise RuntimeError("probe exploded")
    return endpoint == OPEN


class FakeMeasurer:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: Counter[str] = Counter()
        self.in_flight: Counter[str] = Counter()
        self.max_in_flight: Counter[str] = Counter()

    async def measure(self, spec: FunctionalCheckSpec) -> Measurement:
        self.calls[spec.url] += 1
        self.in_flight[spec.url] += 1
        self.max_in_flight[spec.url] = max(self.max_in_flight[spec.url], self.in_flight[spec.url])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if spec.selector == "#never":
                error = ElementTimeout("#never", 30.0)
                error.close_error = SessionCloseError(["page: gone"])
                raise error
            return Measurement(duration_seconds=0.25)
        finally:
            self.in_flight[spec.url] -= 1


class FailingSink(MemoryResultSink):
    async def append(self, result):
        if result.target == "10.0.0.1:80":
            raise ResultSinkError("database is locked")
        return await super().append(result)


def _targets() -> list[Target]:
    return [
        Target.for_endpoint(OPEN),
        Target.for_endpoint(CLOSED),
        Target.for_endpoint(CRASHING),
        Target.for_functional(FunctionalCheckSpec(url="http://site.test/", selector="#app"), name="site"),
        Target.for_functional(FunctionalCheckSpec(url="http://broken.test/", selector="#never"), name="broken"),
    ]


@pytest.mark.asyncio
async def test_tick_emits_one_result_per_target() -> None:
    sink = MemoryResultSink()
    scheduler = CheckScheduler(_targets(), sink, measurer=FakeMeasurer(), prober=fake_prober)

    results = await scheduler.run_tick()

    assert len(results) == 5
    by_target = {r.target: r for r in sink.results}
    assert isinstance(by_target["10.0.0.1:80"], ReachabilityResult) and by_target["10.0.0.1:80"].open is True
    assert isinstance(by_target["10.0.0.2:22"], ReachabilityResult) and by_target["10.0.0.2:22"].open is False
    assert isinstance(by_target["site"], FunctionalTimeResult)
    assert by_target["site"].duration_ms == 250.0


@pytest.mark.asyncio
async def test_one_target_failure_does_not_abort_tick() -> None:
    sink = MemoryResultSink()
    scheduler = CheckScheduler(_targets(), sink, measurer=FakeMeasurer(), prober=fake_prober)

    await scheduler.run_tick()

    by_target = {r.target: r for r in sink.results}
    crashed = by_target["10.0.0.3:443"]
    assert isinstance(crashed, CheckError)
    assert crashed.kind is ErrorKind.UNEXPECTED
    assert "probe exploded" in crashed.message

    broken = by_target["broken"]
    assert isinstance(broken, CheckError)
    assert broken.kind is ErrorKind.ELEMENT_TIMEOUT
    assert broken.close_error is not None
    assert broken.to_dict()["kind"] == "element_timeout"


@pytest.mark.asyncio
async def test_sink_failure_is_not_fatal() -> None:
    sink = FailingSink()
    scheduler = CheckScheduler(_targets(), sink, measurer=FakeMeasurer(), prober=fake_prober)

    results = await scheduler.run_tick()

    assert len(results) == 5
    assert len(sink.results) == 4


@pytest.mark.asyncio
async def test_bounded_run_executes_requested_ticks() -> None:
    sink = MemoryResultSink()
    targets = [Target.for_endpoint(OPEN), Target.for_endpoint(CLOSED)]
    scheduler = CheckScheduler(targets, sink, prober=fake_prober, interval_seconds=0.02)

    await scheduler.run(ticks=3)

    assert scheduler.tick_count == 3
    assert Counter(r.target for r in sink.results) == {"10.0.0.1:80": 3, "10.0.0.2:22": 3}


@pytest.mark.asyncio
async def test_slow_check_is_never_overlapped() -> None:
    sink = MemoryResultSink()
    measurer = FakeMeasurer(delay=0.25)
    targets = [
        Target.for_endpoint(OPEN),
        Target.for_functional(FunctionalCheckSpec(url="http://slow.test/"), name="slow"),
    ]
    scheduler = CheckScheduler(targets, sink, measurer=measurer, prober=fake_prober, interval_seconds=0.05)

    await scheduler.run(ticks=4)

    assert measurer.max_in_flight["http://slow.test/"] == 1
    counts = Counter(r.target for r in sink.results)
    assert counts["10.0.0.1:80"] == 4
    assert 1 <= counts["slow"] < 4


@pytest.mark.asyncio
async def test_reachability_result_is_annotated_with_service() -> None:
    registry = PortRegistry(tcp={"80": PortRecord(service_name="http", port_number="80", transport_protocol="tcp")})
    sink = MemoryResultSink()
    scheduler = CheckScheduler([Target.for_endpoint(OPEN)], sink, prober=fake_prober, port_registry=registry)

    await scheduler.run_tick()

    assert sink.results[0].service == "http"
    assert sink.results[0].to_dict()["service"] == "http"


@pytest.mark.asyncio
async def test_real_prober_against_local_listener() -> None:
    server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    sink = MemoryResultSink()
    try:
        scheduler = CheckScheduler([Target.for_endpoint(Endpoint("127.0.0.1", port))], sink, probe_timeout=2.0)
        await scheduler.run_tick()
    finally:
        server.close()
        await server.wait_closed()

    assert sink.results[0].ok is True


def test_functional_targets_require_a_measurer() -> None:
    with pytest.raises(ValueError):
        CheckScheduler(
            [Target.for_functional(FunctionalCheckSpec(url="http://site.test/"))],
            MemoryResultSink(),
        )


def test_duplicate_target_names_rejected() -> None:
    with pytest.raises(ValueError):
        CheckScheduler([Target.for_endpoint(OPEN), Target.for_endpoint(OPEN)], MemoryResultSink())
