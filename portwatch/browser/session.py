"""Browser session lifecycle on top of Playwright."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from portwatch.errors import NavigationError, NoSuchElement, SessionCloseError, SessionError, SessionUnavailable


logger = structlog.get_logger(__name__)

HEADLESS_ARGS = ["--no-sandbox", "--disable-dev-shm-usage"]

_ABSENT_ELEMENT_MARKERS = (
    "element is not attached to the dom",
    "element is detached",
    "node is detached",
    "no node found",
    "no node with given id",
    "failed to find element",
)


def is_absent_element_error(exc: BaseException) -> bool:
    msg = str(exc or "").lower()
    return any(marker in msg for marker in _ABSENT_ELEMENT_MARKERS)


def find_chromium_executable() -> str | None:
    env_path = os.getenv("CHROMIUM_PATH")
    if env_path and Path(env_path).exists():
        return env_path

    candidates = [
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    ]
    for path in candidates:
        if Path(path).exists():
            return path
    return None


@dataclass
class BrowserSession:
    playwright: Playwright
    browser: Browser
    context: BrowserContext
    page: Page
    session_endpoint: str | None = None
    closed: bool = False


class BrowserSessionManager:
    """Creates, drives and tears down one browser session per measurement.

    ``session_endpoint`` selects how the browser is reached: ``ws://`` connects
    to a Playwright browser server, ``http://`` attaches over CDP, and no
    endpoint launches a local Chromium.
    """

    def __init__(
        self,
        *,
        connect_timeout_seconds: float = 30.0,
        navigation_timeout_seconds: float = 30.0,
        close_timeout_seconds: float = 10.0,
    ):
        self.connect_timeout_seconds = connect_timeout_seconds
        self.navigation_timeout_seconds = navigation_timeout_seconds
        self.close_timeout_seconds = close_timeout_seconds

    async def open(self, session_endpoint: str | None, headless: bool) -> BrowserSession:
        timeout_ms = int(self.connect_timeout_seconds * 1000)
        playwright = None
        browser = None
        context = None
        try:
            playwright = await async_playwright().start()
            browser = await self._connect(playwright, session_endpoint, headless, timeout_ms)
            context = await browser.new_context(viewport={"width": 1280, "height": 720})
            page = await context.new_page()
        except Exception as e:
            await self._release_partial(playwright, browser, context)
            where = session_endpoint or "local chromium"
            raise SessionUnavailable(f"cannot open browser session on {where}: {type(e).__name__}: {e}") from e

        logger.debug("Opened browser session", session_endpoint=session_endpoint, headless=headless)
        return BrowserSession(
            playwright=playwright,
            browser=browser,
            context=context,
            page=page,
            session_endpoint=session_endpoint,
        )

    async def _connect(
        self,
        playwright: Playwright,
        session_endpoint: str | None,
        headless: bool,
        timeout_ms: int,
    ) -> Browser:
        endpoint = (session_endpoint or "").strip()
        if not endpoint:
            launch_kwargs: dict[str, Any] = {"headless": headless, "timeout": timeout_ms}
            executable = find_chromium_executable()
            if executable:
                launch_kwargs["executable_path"] = executable
            if headless:
                launch_kwargs["args"] = list(HEADLESS_ARGS)
            return await playwright.chromium.launch(**launch_kwargs)

        scheme = endpoint.split("://", 1)[0].lower()
        if scheme in ("ws", "wss"):
            return await playwright.chromium.connect(endpoint, timeout=timeout_ms)
        if scheme in ("http", "https"):
            return await playwright.chromium.connect_over_cdp(endpoint, timeout=timeout_ms)
        raise ValueError(f"Unsupported automation endpoint scheme: {endpoint!r}")

    async def _release_partial(
        self,
        playwright: Playwright | None,
        browser: Browser | None,
        context: BrowserContext | None,
    ) -> None:
        steps = []
        if context is not None:
            steps.append(context.close)
        if browser is not None:
            steps.append(browser.close)
        if playwright is not None:
            steps.append(playwright.stop)
        for step in steps:
            try:
                await asyncio.wait_for(step(), timeout=self.close_timeout_seconds)
            except Exception as e:
                logger.debug("Ignoring cleanup failure after open error", error=str(e))

    async def navigate(self, session: BrowserSession, url: str) -> None:
        timeout_ms = int(self.navigation_timeout_seconds * 1000)
        try:
            await session.page.goto(url, wait_until="load", timeout=timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"navigation to {url} failed: {type(e).__name__}: {e}") from e

    async def is_visible(self, session: BrowserSession, selector: str) -> bool:
        try:
            return await session.page.locator(selector).first.is_visible()
        except PlaywrightError as e:
            if is_absent_element_error(e):
                raise NoSuchElement(selector, str(e)) from e
            raise SessionError(f"visibility query for {selector!r} failed: {type(e).__name__}: {e}") from e

    async def close(self, session: BrowserSession) -> None:
        if session.closed:
            return
        session.closed = True

        failures: list[str] = []
        steps = [
            ("page", session.page.close),
            ("context", session.context.close),
            ("browser", session.browser.close),
            ("playwright", session.playwright.stop),
        ]
        for name, step in steps:
            try:
                await asyncio.wait_for(step(), timeout=self.close_timeout_seconds)
            except asyncio.TimeoutError:
                failures.append(f"{name}: timeout after {self.close_timeout_seconds}s")
            except Exception as e:
                failures.append(f"{name}: {type(e).__name__}: {e}")

        if failures:
            raise SessionCloseError(failures)
        logger.debug("Closed browser session", session_endpoint=session.session_endpoint)


class SessionLease:
    """Async context manager that owns one session and always closes it.

    A close failure is logged and stored on ``close_error``; it never replaces
    the outcome of the ``async with`` body.
    """

    def __init__(self, manager: Any, session_endpoint: str | None, headless: bool):
        self.manager = manager
        self.session_endpoint = session_endpoint
        self.headless = headless
        self.session: Any = None
        self.close_error: SessionCloseError | None = None

    async def __aenter__(self):
        self.session = await self.manager.open(self.session_endpoint, self.headless)
        return self.session

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await self.manager.close(self.session)
        except SessionCloseError as e:
            self.close_error = e
            logger.warning(
                "Browser session close failed",
                session_endpoint=self.session_endpoint,
                error=str(e),
                outcome="error" if exc_type else "ok",
            )
        return False
