"""Functional-time measurement: how long a page takes to become usable."""

from __future__ import annotations

import time
from typing import Any, Callable

import structlog

from portwatch.browser.session import BrowserSessionManager, SessionLease
from portwatch.browser.visibility import VisibilityWait, WaitState
from portwatch.errors import ElementTimeout, MeasurementError, SessionError
from portwatch.models import FunctionalCheckSpec, Measurement


logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.5
DEFAULT_ELEMENT_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_ATTEMPT_TIMEOUT_SECONDS = 5.0


class FunctionalTimeMeasurer:
    """Measures wall-clock time until a page is functional.

    Without a selector the page is functional once navigation completes
    (the ``load`` event). With a selector it is functional once an element
    matching the selector is visible.
    """

    def __init__(
        self,
        session_manager: Any = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        element_timeout: float = DEFAULT_ELEMENT_TIMEOUT_SECONDS,
        poll_attempt_timeout: float = DEFAULT_POLL_ATTEMPT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.session_manager = session_manager if session_manager is not None else BrowserSessionManager()
        self.poll_interval = poll_interval
        self.element_timeout = element_timeout
        self.poll_attempt_timeout = poll_attempt_timeout
        self.clock = clock

    async def measure(self, spec: FunctionalCheckSpec) -> Measurement:
        lease = SessionLease(self.session_manager, spec.session_endpoint, spec.headless)
        try:
            async with lease as session:
                duration = await self._measure_in_session(session, spec)
        except MeasurementError as e:
            e.close_error = lease.close_error
            logger.info("Functional measurement failed", url=spec.url, kind=e.kind.value, error=str(e))
            raise
        except Exception as e:
            error = SessionError(f"{type(e).__name__}: {e}")
            error.close_error = lease.close_error
            logger.warning("Functional measurement crashed", url=spec.url, error=str(error))
            raise error from e

        close_error = str(lease.close_error) if lease.close_error is not None else None
        logger.info(
            "Functional measurement completed",
            url=spec.url,
            selector=spec.selector,
            duration_ms=round(duration * 1000.0, 3),
        )
        return Measurement(duration_seconds=duration, close_error=close_error)

    async def _measure_in_session(self, session: Any, spec: FunctionalCheckSpec) -> float:
        started = self.clock()
        await self.session_manager.navigate(session, spec.url)
        if not spec.selector:
            return max(0.0, self.clock() - started)

        selector = spec.selector
        wait = VisibilityWait(
            lambda: self.session_manager.is_visible(session, selector),
            deadline=started + self.element_timeout,
            poll_interval=self.poll_interval,
            attempt_timeout=self.poll_attempt_timeout,
            clock=self.clock,
        )
        state = await wait.run()

        if state is WaitState.SATISFIED:
            return max(0.0, wait.satisfied_at - started)
        if state is WaitState.TIMED_OUT:
            raise ElementTimeout(selector, self.element_timeout)
        if wait.error is not None:
            raise wait.error
        raise SessionError(f"visibility wait for {selector!r} ended in state {state.value}")
