import asyncio
from typing import Any, Dict, Optional

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from portal.browser import PlaywrightSession
from workflow.errors import (
    SessionClosedError,
    TargetNotFoundError,
    TargetNotInteractableError,
    TransportError,
)


class StubLocator:
    def __init__(self, *, count: int = 1, value: Any = "v1", error: Optional[Exception] = None) -> None:
        self._count = count
        self._value = value
        self._error = error

    @property
    def first(self) -> "StubLocator":
        return self

    async def count(self) -> int:
        if self._error is not None:
            raise self._error
        return self._count

    async def is_visible(self) -> bool:
        return self._count > 0

    async def evaluate(self, script: str, arg: Any = None, *, timeout: Optional[int] = None) -> Any:
        return self._value


class StubPage:
    def __init__(self, locators: Dict[str, StubLocator], *, goto_error: Optional[Exception] = None) -> None:
        self.url = "https://portal.example/home"
        self.locators = locators
        self.goto_error = goto_error
        self.closed = False

    def locator(self, selector: str) -> StubLocator:
        return self.locators.get(selector, StubLocator(count=0))

    def is_closed(self) -> bool:
        return self.closed

    async def goto(self, url: str, **kwargs: Any) -> None:
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url


class StubWatchdog:
    crashed = False
    closed = False

    def inflight_requests(self) -> int:
        return 4


def _session(page: StubPage, watchdog: Optional[StubWatchdog] = None) -> PlaywrightSession:
    return PlaywrightSession(page, watchdog or StubWatchdog(), action_timeout_ms=100)


def test_queries_pass_through() -> None:
    session = _session(StubPage({"#vs": StubLocator(value="state-1")}))

    assert asyncio.run(session.count("#vs")) == 1
    assert asyncio.run(session.is_visible("#vs")) is True
    assert asyncio.run(session.read_value("#vs")) == "state-1"
    assert session.inflight_requests() == 4
    assert session.url == "https://portal.example/home"


def test_read_value_of_missing_element_is_none() -> None:
    assert asyncio.run(_session(StubPage({})).read_value("#vs")) is None


def test_playwright_errors_are_mapped() -> None:
    page = StubPage(
        {
            "#slow": StubLocator(error=PlaywrightTimeoutError("Timeout 100ms exceeded")),
            "#detached": StubLocator(error=PlaywrightError("Element is not attached to the DOM")),
        }
    )
    session = _session(page)

    with pytest.raises(TargetNotFoundError):
        asyncio.run(session.count("#slow"))
    with pytest.raises(TargetNotInteractableError):
        asyncio.run(session.count("#detached"))


def test_errors_on_a_crashed_page_mean_session_closed() -> None:
    watchdog = StubWatchdog()
    watchdog.crashed = True
    session = _session(StubPage({"#x": StubLocator(error=PlaywrightError("Target crashed"))}), watchdog)

    assert session.closed
    with pytest.raises(SessionClosedError):
        asyncio.run(session.count("#x"))


def test_navigation_failure_is_transport_error() -> None:
    session = _session(StubPage({}, goto_error=PlaywrightError("net::ERR_CONNECTION_RESET")))

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(session.navigate("https://odv.adm.gov.it/"))
    assert excinfo.value.details == {"url": "https://odv.adm.gov.it/"}


def test_navigation_after_close_is_session_closed() -> None:
    page = StubPage({}, goto_error=PlaywrightError("Target page, context or browser has been closed"))
    page.closed = True

    with pytest.raises(SessionClosedError):
        asyncio.run(_session(page).navigate("https://odv.adm.gov.it/"))
