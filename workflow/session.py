"""Session context shared by the stages of one workflow run.

The engine never talks to a browser directly. It goes through a capability
object (``SessionContext.browser``) exposing:

* ``url`` (property), ``closed`` (property), ``inflight_requests()``
* ``navigate(url, *, wait_until, timeout_ms)``
* ``count(selector)``, ``is_visible(selector)``, ``read_value(selector)``,
  ``inner_text(selector)``, ``title()``
* ``fill(selector, value, *, timeout_ms)``, ``click(selector, *, timeout_ms)``
* ``option_entries(selector, *, timeout_ms)``,
  ``select_option(selector, *, value, label, timeout_ms)``
* ``dispatch_change(selector, events)``, ``hide(selector)``
* ``settle(timeout_ms)``, ``screenshot(path)``

Everything except the three properties/queries on the first line is a
coroutine. ``portal.browser.PlaywrightSession`` is the production
implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from .errors import SessionClosedError


@dataclass(slots=True)
class SessionContext:
    browser: Any
    viewport: Tuple[int, int] = (1366, 900)
    markers: Dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str:
        return str(self.browser.url or "")

    @property
    def closed(self) -> bool:
        return bool(self.browser.closed)

    def ensure_open(self) -> None:
        if self.closed:
            raise SessionClosedError("browser session is closed")
