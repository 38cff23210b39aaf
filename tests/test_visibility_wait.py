from __future__ import annotations

import time

import pytest

from portwatch.browser.visibility import VisibilityWait, WaitState
from portwatch.errors import NoSuchElement, SessionError


def _checker(results: list):
    calls = {"n": 0}

    async def check() -> bool:
        calls["n"] += 1
        item = results.pop(0) if results else False
        if isinstance(item, Exception):
            raise item
        return item

    return check, calls


@pytest.mark.asyncio
async def test_satisfied_on_first_visible_poll() -> None:
    check, calls = _checker([False, False, True])
    wait = VisibilityWait(check, deadline=time.perf_counter() + 5.0, poll_interval=0.01, attempt_timeout=1.0)

    assert await wait.run() is WaitState.SATISFIED
    assert calls["n"] == 3
    assert wait.polls == 3
    assert wait.satisfied_at is not None


@pytest.mark.asyncio
async def test_timed_out_after_deadline() -> None:
    check, _ = _checker([])
    deadline = time.perf_counter() + 0.15
    wait = VisibilityWait(check, deadline=deadline, poll_interval=0.05, attempt_timeout=1.0)

    assert await wait.run() is WaitState.TIMED_OUT
    assert time.perf_counter() >= deadline
    assert wait.polls >= 3


@pytest.mark.asyncio
async def test_deadline_already_passed_still_polls_once() -> None:
    check, calls = _checker([True])
    wait = VisibilityWait(check, deadline=time.perf_counter() - 1.0, poll_interval=0.05, attempt_timeout=1.0)

    assert await wait.run() is WaitState.SATISFIED
    assert calls["n"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [NoSuchElement("#x"), SessionError("websocket closed")])
async def test_transport_failure_stops_polling(error: Exception) -> None:
    check, calls = _checker([False, error, True])
    wait = VisibilityWait(check, deadline=time.perf_counter() + 5.0, poll_interval=0.01, attempt_timeout=1.0)

    assert await wait.run() is WaitState.TRANSPORT_FAILED
    assert wait.error is error
    assert calls["n"] == 2
