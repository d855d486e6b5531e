import asyncio
from typing import Any, Callable, Dict, List

from portal.watchdogs import PageWatchdog


class FakePage:
    def __init__(self) -> None:
        self.handlers: Dict[str, List[Callable[..., Any]]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event].remove(handler)

    def emit(self, event: str, *args: Any) -> Any:
        results = [handler(*args) for handler in self.handlers.get(event, [])]
        return results[0] if results else None


class FakeDialog:
    type = "confirm"
    message = "Confermi?"

    def __init__(self) -> None:
        self.accepted = False

    async def accept(self) -> None:
        self.accepted = True

    async def dismiss(self) -> None:  # pragma: no cover - not used
        pass


def test_inflight_requests_follow_request_events() -> None:
    page = FakePage()
    watchdog = PageWatchdog(page)
    watchdog.start()
    first, second = object(), object()

    page.emit("request", first)
    page.emit("request", second)
    assert watchdog.inflight_requests() == 2

    page.emit("requestfinished", first)
    page.emit("requestfailed", second)
    assert watchdog.inflight_requests() == 0


def test_crash_and_close_flags() -> None:
    page = FakePage()
    watchdog = PageWatchdog(page)
    watchdog.start()

    page.emit("crash", page)
    page.emit("close", page)

    assert watchdog.crashed
    assert watchdog.closed
    assert watchdog.snapshot()["crashed"] is True


def test_dialogs_are_accepted_and_recorded() -> None:
    page = FakePage()
    watchdog = PageWatchdog(page)
    watchdog.start()
    dialog = FakeDialog()

    asyncio.run(page.emit("dialog", dialog))

    assert dialog.accepted
    assert watchdog.dialog_events[0]["status"] == "accepted"
    assert watchdog.snapshot()["dialogs"][0]["message"] == "Confermi?"


def test_stop_detaches_every_listener() -> None:
    page = FakePage()
    watchdog = PageWatchdog(page)
    watchdog.start()
    watchdog.start()
    assert sum(len(handlers) for handlers in page.handlers.values()) == 7

    watchdog.stop()

    assert sum(len(handlers) for handlers in page.handlers.values()) == 0
    page.emit("request", object())
    assert watchdog.inflight_requests() == 0
