from __future__ import annotations

import asyncio
import time
from typing import Any

from portwatch.errors import SessionCloseError


class CountingSessionManager:
    """Session-manager test double that counts open/close calls.

    ``visible_after`` is the delay (seconds after navigation completes) before
    the selector reports visible; ``None`` means it never does.
    """

    def __init__(
        self,
        *,
        open_error: Exception | None = None,
        navigate_error: Exception | None = None,
        navigate_delay: float = 0.0,
        visible_after: float | None = 0.0,
        visibility_error: Exception | None = None,
        visibility_hang: float = 0.0,
        close_error: bool = False,
    ):
        self.open_error = open_error
        self.navigate_error = navigate_error
        self.navigate_delay = navigate_delay
        self.visible_after = visible_after
        self.visibility_error = visibility_error
        self.visibility_hang = visibility_hang
        self.close_error = close_error

        self.opened = 0
        self.closed = 0
        self.polls = 0
        self.navigated_at: float | None = None
        self.open_args: list[tuple[Any, bool]] = []

    async def open(self, session_endpoint: str | None, headless: bool) -> dict[str, Any]:
        self.open_args.append((session_endpoint, headless))
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1
        return {"id": self.opened}

    async def navigate(self, session: dict[str, Any], url: str) -> None:
        if self.navigate_delay:
            await asyncio.sleep(self.navigate_delay)
        if self.navigate_error is not None:
            raise self.navigate_error
        self.navigated_at = time.perf_counter()

    async def is_visible(self, session: dict[str, Any], selector: str) -> bool:
        self.polls += 1
        if self.visibility_hang:
            await asyncio.sleep(self.visibility_hang)
        if self.visibility_error is not None:
            raise self.visibility_error
        if self.visible_after is None or self.navigated_at is None:
            return False
        return time.perf_counter() - self.navigated_at >= self.visible_after

    async def close(self, session: dict[str, Any]) -> None:
        self.closed += 1
        if self.close_error:
            raise SessionCloseError(["browser: connection reset"])
