"""Page event listeners: crash/close detection, dialogs and in-flight requests."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Set, Tuple

from playwright.async_api import Dialog, Error as PlaywrightError, Page, Request

log = logging.getLogger(__name__)


class PageWatchdog:
    """Attach Playwright event listeners and keep a small record of what happened.

    ``inflight_requests()`` feeds the network-quiescence probe. ``crashed`` and
    ``closed`` let the session capability report a dead page as
    ``SessionClosedError`` instead of as an ordinary element failure.
    """

    def __init__(self, page: Page, *, default_dialog_action: str = "accept") -> None:
        self.page = page
        self.default_dialog_action = default_dialog_action
        self.dialog_events: List[Dict[str, Any]] = []
        self.page_errors: List[Dict[str, Any]] = []
        self.crashed = False
        self.closed = False
        self._inflight: Set[int] = set()
        self._listeners: List[Tuple[str, Callable[..., Any]]] = []
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._register_async("dialog", self._handle_dialog)
        self._register("pageerror", self._handle_page_error)
        self._register("crash", self._handle_crash)
        self._register("close", self._handle_close)
        self._register("request", self._handle_request)
        self._register("requestfinished", self._handle_request_done)
        self._register("requestfailed", self._handle_request_done)

    def stop(self) -> None:
        if not self._started:
            return
        for event, handler in self._listeners:
            try:
                self.page.remove_listener(event, handler)
            except (KeyError, ValueError) as exc:
                log.debug("Listener %s already gone: %s", event, exc)
        self._listeners.clear()
        self._inflight.clear()
        self._started = False

    def inflight_requests(self) -> int:
        return len(self._inflight)

    def snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"inflight": len(self._inflight)}
        if self.dialog_events:
            data["dialogs"] = list(self.dialog_events)
        if self.page_errors:
            data["page_errors"] = list(self.page_errors)
        if self.crashed:
            data["crashed"] = True
        return data

    def _register(self, event: str, handler: Callable[..., Any]) -> None:
        self.page.on(event, handler)
        self._listeners.append((event, handler))

    def _register_async(self, event: str, handler: Callable[..., Any]) -> None:
        async def _wrapper(*args: Any, **kwargs: Any) -> None:
            await handler(*args, **kwargs)

        self.page.on(event, _wrapper)
        self._listeners.append((event, _wrapper))

    async def _handle_dialog(self, dialog: Dialog) -> None:
        action = "accept" if dialog.type == "beforeunload" else self.default_dialog_action
        event: Dict[str, Any] = {
            "timestamp": time.time(),
            "type": dialog.type,
            "message": dialog.message,
            "action": action,
        }
        try:
            if action == "accept":
                await dialog.accept()
                event["status"] = "accepted"
            else:
                await dialog.dismiss()
                event["status"] = "dismissed"
        except PlaywrightError as exc:
            event["status"] = "error"
            event["error"] = str(exc)
        log.info("%s dialog %s", dialog.type, event["status"])
        self.dialog_events.append(event)

    def _handle_page_error(self, error: PlaywrightError) -> None:
        message = getattr(error, "message", None) or str(error)
        self.page_errors.append({"timestamp": time.time(), "message": message})

    def _handle_crash(self, *_: Any) -> None:
        log.error("Page crashed")
        self.crashed = True
        self.page_errors.append({"timestamp": time.time(), "message": "Page crashed"})

    def _handle_close(self, *_: Any) -> None:
        self.closed = True

    def _handle_request(self, request: Request) -> None:
        self._inflight.add(id(request))

    def _handle_request_done(self, request: Request) -> None:
        self._inflight.discard(id(request))
