from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable

import structlog

from portwatch.errors import MeasurementError, NoSuchElement, SessionError


logger = structlog.get_logger(__name__)


class WaitState(str, Enum):
    POLLING = "polling"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    TRANSPORT_FAILED = "transport_failed"


class VisibilityWait:
    """Polls a visibility check until it holds, the deadline passes, or the transport fails.

    Each poll is capped at ``attempt_timeout`` seconds, and never runs more than
    one ``poll_interval`` past the deadline; a poll that hits the cap counts as
    "not visible yet". TIMED_OUT is only reached after a failed poll
    taken at or after ``deadline``, so the wait never gives up early.
    """

    def __init__(
        self,
        check: Callable[[], Awaitable[bool]],
        *,
        deadline: float,
        poll_interval: float,
        attempt_timeout: float,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.check = check
        self.deadline = deadline
        self.poll_interval = poll_interval
        self.attempt_timeout = attempt_timeout
        self.clock = clock

        self.state = WaitState.POLLING
        self.polls = 0
        self.satisfied_at: float | None = None
        self.error: MeasurementError | None = None

    async def run(self) -> WaitState:
        while self.state is WaitState.POLLING:
            self.state = await self._step()
        logger.debug("Visibility wait finished", state=self.state.value, polls=self.polls)
        return self.state

    async def _step(self) -> WaitState:
        self.polls += 1
        # A poll may overrun the deadline by at most one poll interval.
        cap = min(self.attempt_timeout, max(self.deadline - self.clock(), 0.0) + self.poll_interval)
        try:
            visible = await asyncio.wait_for(self.check(), timeout=cap)
        except asyncio.TimeoutError:
            logger.debug("Visibility poll exceeded attempt cap", attempt_timeout=cap)
            visible = False
        except (NoSuchElement, SessionError) as e:
            self.error = e
            return WaitState.TRANSPORT_FAILED

        now = self.clock()
        if visible:
            self.satisfied_at = now
            return WaitState.SATISFIED

        remaining = self.deadline - now
        if remaining <= 0:
            return WaitState.TIMED_OUT

        await asyncio.sleep(min(self.poll_interval, remaining))
        return WaitState.POLLING
