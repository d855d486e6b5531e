"""Playwright-backed session capability and the per-run session factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError, async_playwright

from workflow.errors import (
    ActionError,
    SessionClosedError,
    TargetNotFoundError,
    TargetNotInteractableError,
    TransportError,
)
from workflow.session import SessionContext

from .config import RunConfig
from .page_stability import stabilize_page
from .safe_interactions import dispatch_events, hide_elements, read_options, safe_click, safe_fill, safe_select
from .watchdogs import PageWatchdog

log = logging.getLogger(__name__)

# Short bound for read-only queries made by probes.
QUERY_TIMEOUT_MS = 1_000

_JS_READ_VALUE = "el => ('value' in el) ? el.value : el.textContent"


class PlaywrightSession:
    """Session capability over one Playwright page.

    Element problems surface as ``TargetNotFoundError`` or
    ``TargetNotInteractableError``, navigation problems as ``TransportError``,
    and anything that happens after the page crashed or closed as
    ``SessionClosedError``.
    """

    def __init__(self, page: Page, watchdog: PageWatchdog, *, action_timeout_ms: int = 10_000) -> None:
        self.page = page
        self.watchdog = watchdog
        self.action_timeout_ms = action_timeout_ms

    @property
    def url(self) -> str:
        return self.page.url

    @property
    def closed(self) -> bool:
        return self.watchdog.crashed or self.watchdog.closed or self.page.is_closed()

    def inflight_requests(self) -> int:
        return self.watchdog.inflight_requests()

    async def _guard(self, operation: Awaitable[Any], selector: str) -> Any:
        try:
            return await operation
        except ActionError as exc:
            if self.closed:
                raise SessionClosedError("page closed during element operation") from exc
            raise
        except PlaywrightTimeoutError as exc:
            if self.closed:
                raise SessionClosedError("page closed during element operation") from exc
            raise TargetNotFoundError(str(exc), details={"selector": selector}) from exc
        except PlaywrightError as exc:
            if self.closed:
                raise SessionClosedError("page closed during element operation") from exc
            raise TargetNotInteractableError(str(exc), details={"selector": selector}) from exc

    async def navigate(self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightError as exc:
            if self.closed:
                raise SessionClosedError("page closed during navigation") from exc
            raise TransportError(f"navigation to {url} failed: {exc}", details={"url": url}) from exc

    async def count(self, selector: str) -> int:
        return await self._guard(self.page.locator(selector).count(), selector)

    async def is_visible(self, selector: str) -> bool:
        return await self._guard(self.page.locator(selector).first.is_visible(), selector)

    async def read_value(self, selector: str) -> Optional[str]:
        locator = self.page.locator(selector)
        if await self.count(selector) == 0:
            return None
        value = await self._guard(locator.first.evaluate(_JS_READ_VALUE, timeout=QUERY_TIMEOUT_MS), selector)
        return None if value is None else str(value)

    async def inner_text(self, selector: str) -> str:
        return await self._guard(self.page.locator(selector).first.inner_text(timeout=QUERY_TIMEOUT_MS), selector)

    async def title(self) -> str:
        return await self.page.title()

    async def fill(self, selector: str, value: str, *, timeout_ms: Optional[int] = None) -> None:
        await self._guard(safe_fill(self.page.locator(selector), value, timeout=timeout_ms or self.action_timeout_ms), selector)

    async def click(self, selector: str, *, timeout_ms: Optional[int] = None) -> None:
        await self._guard(safe_click(self.page.locator(selector), timeout=timeout_ms or self.action_timeout_ms), selector)

    async def option_entries(self, selector: str, *, timeout_ms: Optional[int] = None) -> List[Tuple[str, str]]:
        return await self._guard(
            read_options(self.page.locator(selector), timeout=timeout_ms or self.action_timeout_ms), selector
        )

    async def select_option(
        self,
        selector: str,
        *,
        value: Optional[str] = None,
        label: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        await self._guard(
            safe_select(self.page.locator(selector), value=value, label=label, timeout=timeout_ms or self.action_timeout_ms),
            selector,
        )

    async def dispatch_change(self, selector: str, events: Sequence[str]) -> None:
        await self._guard(dispatch_events(self.page.locator(selector), events, timeout=self.action_timeout_ms), selector)

    async def hide(self, selector: str) -> int:
        return await self._guard(hide_elements(self.page.locator(selector)), selector)

    async def settle(self, timeout_ms: int) -> None:
        await stabilize_page(self.page, timeout=timeout_ms)

    async def screenshot(self, path: Path) -> None:
        await self.page.screenshot(path=str(path), full_page=True)


class PlaywrightSessionFactory:
    """Open one isolated Chromium context per workflow run.

    Use as ``async with factory() as session``. Context and browser are closed
    on the way out whatever happened inside the block.
    """

    def __init__(self, config: RunConfig) -> None:
        self.config = config

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[SessionContext]:
        config = self.config
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=config.headless, slow_mo=config.slow_mo_ms or None)
            try:
                context = await browser.new_context(viewport=config.viewport)
                try:
                    page = await context.new_page()
                    page.set_default_timeout(config.action_timeout_ms)
                    page.set_default_navigation_timeout(config.navigation_timeout_ms)
                    watchdog = PageWatchdog(page)
                    watchdog.start()
                    try:
                        yield SessionContext(
                            browser=PlaywrightSession(page, watchdog, action_timeout_ms=config.action_timeout_ms),
                            viewport=(config.viewport_width, config.viewport_height),
                        )
                    finally:
                        watchdog.stop()
                        log.debug("Closing session: %s", watchdog.snapshot())
                finally:
                    await context.close()
            finally:
                await browser.close()
