"""In-memory stand-ins for the session capability used across the suite."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from portal import stages
from workflow.dsl import VisibilityProbe
from workflow.errors import SessionClosedError, TargetNotFoundError, TargetNotInteractableError
from workflow.probes import ReadinessProbe
from workflow.session import SessionContext

Hook = Callable[["FakeBrowser"], Any]


class FakeBrowser:
    """Scriptable page model.

    ``elements`` maps selectors to ``{"count", "visible", "text",
    "interactable"}``; ``values`` holds field values; ``hooks`` run after
    ``("navigate", url)``, ``("click", selector)`` or ``("select", selector)``.
    """

    def __init__(self, *, url: str = "about:blank") -> None:
        self.url = url
        self.closed = False
        self.elements: Dict[str, Dict[str, Any]] = {}
        self.values: Dict[str, Optional[str]] = {}
        self.options: Dict[str, List[Tuple[str, str]]] = {}
        self.inflight = 0
        self.page_title = "Fake page"
        self.hooks: Dict[Tuple[str, str], Hook] = {}
        self.errors: Dict[str, Exception] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.screenshots: List[Path] = []

    # -- scripting helpers -------------------------------------------------

    def add(self, selector: str, *, count: int = 1, visible: bool = True, text: str = "", interactable: bool = True) -> None:
        self.elements[selector] = {"count": count, "visible": visible, "text": text, "interactable": interactable}

    def remove(self, selector: str) -> None:
        self.elements.pop(selector, None)

    def later(self, delay_s: float, hook: Hook) -> None:
        asyncio.get_running_loop().call_later(delay_s, hook, self)

    def calls_to(self, name: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    def _maybe_fail(self, name: str) -> None:
        if self.closed:
            raise SessionClosedError("fake browser closed")
        error = self.errors.get(name)
        if error is not None:
            raise error

    def _require(self, selector: str) -> None:
        element = self.elements.get(selector)
        if not element or element["count"] == 0:
            raise TargetNotFoundError(f"{selector} not found", details={"selector": selector})
        if not element["interactable"] or not element["visible"]:
            raise TargetNotInteractableError(f"{selector} not interactable", details={"selector": selector})

    def _fire(self, kind: str, key: str) -> None:
        hook = self.hooks.get((kind, key))
        if hook is not None:
            hook(self)

    # -- capability ----------------------------------------------------------

    def inflight_requests(self) -> int:
        return self.inflight

    async def navigate(self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        self.calls.append(("navigate", url))
        self._maybe_fail("navigate")
        self.url = url
        self._fire("navigate", url)

    async def count(self, selector: str) -> int:
        self._maybe_fail("count")
        element = self.elements.get(selector)
        return element["count"] if element else 0

    async def is_visible(self, selector: str) -> bool:
        self._maybe_fail("is_visible")
        element = self.elements.get(selector)
        return bool(element and element["count"] and element["visible"])

    async def read_value(self, selector: str) -> Optional[str]:
        self._maybe_fail("read_value")
        return self.values.get(selector)

    async def inner_text(self, selector: str) -> str:
        element = self.elements.get(selector)
        return element["text"] if element else ""

    async def title(self) -> str:
        self._maybe_fail("title")
        return self.page_title

    async def fill(self, selector: str, value: str, *, timeout_ms: Optional[int] = None) -> None:
        self.calls.append(("fill", selector, value))
        self._maybe_fail("fill")
        self._require(selector)
        self.values[selector] = value

    async def click(self, selector: str, *, timeout_ms: Optional[int] = None) -> None:
        self.calls.append(("click", selector))
        self._maybe_fail("click")
        self._require(selector)
        self._fire("click", selector)

    async def option_entries(self, selector: str, *, timeout_ms: Optional[int] = None) -> List[Tuple[str, str]]:
        self._maybe_fail("option_entries")
        self._require(selector)
        return list(self.options.get(selector, []))

    async def select_option(
        self,
        selector: str,
        *,
        value: Optional[str] = None,
        label: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self.calls.append(("select_option", selector, value, label))
        self._maybe_fail("select_option")
        self._require(selector)
        self.values[selector] = value
        self._fire("select", selector)

    async def dispatch_change(self, selector: str, events: List[str]) -> None:
        self.calls.append(("dispatch_change", selector, tuple(events)))
        self._maybe_fail("dispatch_change")
        self._require(selector)
        self._fire("dispatch", selector)

    async def hide(self, selector: str) -> int:
        self.calls.append(("hide", selector))
        self._maybe_fail("hide")
        element = self.elements.get(selector)
        if not element or not element["count"]:
            return 0
        element["visible"] = False
        return element["count"]

    async def settle(self, timeout_ms: int) -> None:
        self.calls.append(("settle", timeout_ms))

    async def screenshot(self, path: Path) -> None:
        self._maybe_fail("screenshot")
        Path(path).write_bytes(b"\x89PNG fake")
        self.screenshots.append(Path(path))


class FakeSessionFactory:
    """Counts opens and teardowns; every run gets a brand new ``FakeBrowser``."""

    def __init__(
        self,
        setup: Optional[Callable[[FakeBrowser], None]] = None,
        *,
        open_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
    ) -> None:
        self.setup = setup
        self.open_error = open_error
        self.close_error = close_error
        self.opened = 0
        self.teardowns = 0
        self.browsers: List[FakeBrowser] = []

    @asynccontextmanager
    async def __call__(self):
        if self.open_error is not None:
            raise self.open_error
        browser = FakeBrowser()
        if self.setup is not None:
            self.setup(browser)
        self.browsers.append(browser)
        self.opened += 1
        try:
            yield SessionContext(browser=browser)
        finally:
            self.teardowns += 1
            browser.closed = True
            if self.close_error is not None:
                raise self.close_error


class ScriptedProbe(ReadinessProbe):
    """Probe that matches ``match_after_ms`` into each evaluation (or never)."""

    def __init__(
        self,
        probe_id: str,
        *,
        timeout_ms: int = 300,
        match_after_ms: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__(VisibilityProbe(id=probe_id, selector=f"#{probe_id}", timeout_ms=timeout_ms, poll_interval_ms=10))
        self.match_after_ms = match_after_ms
        self.error = error
        self.samples = 0
        self.evaluations = 0

    async def evaluate(self, session, baseline=None):
        self.evaluations += 1
        return await super().evaluate(session, baseline)

    async def sample(self, session, baseline, state):
        self.samples += 1
        if self.error is not None:
            raise self.error
        loop = asyncio.get_running_loop()
        started = state.setdefault("started", loop.time())
        if self.match_after_ms is None:
            return False
        return (loop.time() - started) * 1000 >= self.match_after_ms

    async def describe(self, session):
        return {"text": f"{self.probe_id} text"}


HOME_URL = "https://www.adm.gov.it/portale/home"


def fake_portal(
    config,
    *,
    login_ok: bool = True,
    cookie_bar: bool = True,
    close_link: bool = True,
    dashboard_alert: bool = False,
    postback_on: str = "select",
) -> FakeSessionFactory:
    """Session factory whose browsers behave like the ADM portal pages.

    ``postback_on="dispatch"`` models a select whose onchange only fires for
    synthetic events; ``close_link=False`` renders the cookie bar without any
    recognisable close link.
    """

    def _login_page(b: FakeBrowser) -> None:
        b.add(stages.USER_INPUT)
        b.add(stages.PASS_INPUT)
        b.add(stages.SUBMIT_BUTTON)

    def _submit(b: FakeBrowser) -> None:
        if not login_ok:
            b.add(stages.LOGIN_ERROR, text="Authentication failed")
            return
        b.url = HOME_URL
        if dashboard_alert:
            b.add(stages.LOGIN_ERROR, text="Scheduled maintenance on Sunday")
        if cookie_bar:
            b.add(stages.COOKIE_BAR)
            if close_link:
                b.add(stages.COOKIE_CLOSE_LINKS[0])

    def _close_cookies(b: FakeBrowser) -> None:
        b.elements[stages.COOKIE_BAR]["visible"] = False

    def _sso(b: FakeBrowser) -> None:
        b.url = "https://odv.adm.gov.it/ODV_OHP/"

    def _upload(b: FakeBrowser) -> None:
        b.add(stages.PROVIDER_SELECT)
        b.options[stages.PROVIDER_SELECT] = [("", "-- select --"), ("7", "SISAL SPA"), ("9", "Lottomatica")]
        b.values[stages.VIEW_STATE] = "-1:1"

    def _postback(b: FakeBrowser) -> None:
        b.values[stages.VIEW_STATE] = "-1:2"
        b.add(stages.FILE_INPUT)

    def _setup(browser: FakeBrowser) -> None:
        browser.hooks[("navigate", config.login_url)] = _login_page
        browser.hooks[("click", stages.SUBMIT_BUTTON)] = _submit
        browser.hooks[("click", stages.COOKIE_CLOSE_LINKS[0])] = _close_cookies
        browser.hooks[("navigate", config.sso_url)] = _sso
        browser.hooks[("navigate", config.upload_url)] = _upload
        browser.hooks[(postback_on, stages.PROVIDER_SELECT)] = _postback

    return FakeSessionFactory(_setup)
