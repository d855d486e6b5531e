"""Readiness probes: bounded, polling checks against the live session."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type

from .dsl import registry
from .dsl.models import (
    ElementCountProbe,
    NetworkQuiescenceProbe,
    ProbeBase,
    UrlPatternProbe,
    ValueChangeProbe,
    VisibilityProbe,
)
from .errors import SessionClosedError
from .session import SessionContext

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProbeResult:
    probe_id: str
    matched: bool
    elapsed_ms: int
    detail: Dict[str, Any] = field(default_factory=dict)


class ReadinessProbe:
    """Runtime behaviour for one probe descriptor.

    Instances hold no per-evaluation state, so one probe can serve several
    concurrent workflow runs. Anything an evaluation needs to remember between
    samples lives in the ``state`` dict handed to :meth:`sample`.
    """

    def __init__(self, spec: ProbeBase) -> None:
        self.spec = spec

    @property
    def probe_id(self) -> str:
        return self.spec.probe_id

    @property
    def timeout_ms(self) -> int:
        return self.spec.timeout_ms

    async def capture(self, session: SessionContext) -> Any:
        """Record the pre-action baseline. Most probes do not need one."""
        return None

    async def sample(self, session: SessionContext, baseline: Any, state: Dict[str, Any]) -> bool:
        raise NotImplementedError

    async def describe(self, session: SessionContext) -> Dict[str, Any]:
        return {}

    async def check(
        self,
        session: SessionContext,
        baseline: Any,
        *,
        timeout_s: float,
        state: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Take a single bounded sample. Transient failures count as unmatched."""

        session.ensure_open()
        if timeout_s <= 0:
            return False
        if self.spec.url_contains and self.spec.url_contains not in session.url:
            return False
        try:
            return bool(
                await asyncio.wait_for(self.sample(session, baseline, state if state is not None else {}), timeout=timeout_s)
            )
        except SessionClosedError:
            raise
        except asyncio.TimeoutError:
            return False
        except Exception as exc:
            if session.closed:
                raise SessionClosedError(f"session closed while sampling {self.probe_id}") from exc
            log.debug("Probe %s sample failed: %s", self.probe_id, exc)
            return False

    async def evaluate(self, session: SessionContext, baseline: Any = None) -> ProbeResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.timeout_ms / 1000
        poll = self.spec.poll_interval_ms / 1000
        state: Dict[str, Any] = {}

        def _elapsed() -> int:
            return int((loop.time() - started) * 1000)

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return ProbeResult(self.probe_id, False, _elapsed())
            if await self.check(session, baseline, timeout_s=remaining, state=state):
                return ProbeResult(self.probe_id, True, _elapsed())
            remaining = deadline - loop.time()
            if remaining <= 0:
                return ProbeResult(self.probe_id, False, _elapsed())
            await asyncio.sleep(min(poll, remaining))


class VisibilityCheck(ReadinessProbe):
    spec: VisibilityProbe

    async def sample(self, session: SessionContext, baseline: Any, state: Dict[str, Any]) -> bool:
        visible = await session.browser.is_visible(self.spec.selector)
        return visible if self.spec.state == "visible" else not visible

    async def describe(self, session: SessionContext) -> Dict[str, Any]:
        try:
            text = await session.browser.inner_text(self.spec.selector)
        except Exception as exc:
            log.debug("Could not read text for %s: %s", self.spec.selector, exc)
            return {}
        return {"text": (text or "").strip()} if text else {}


class UrlPatternCheck(ReadinessProbe):
    spec: UrlPatternProbe

    def __init__(self, spec: UrlPatternProbe) -> None:
        super().__init__(spec)
        self._regex = re.compile(spec.pattern) if spec.mode in {"matches", "not-matches"} else None

    async def sample(self, session: SessionContext, baseline: Any, state: Dict[str, Any]) -> bool:
        url = session.url
        mode = self.spec.mode
        if mode == "contains":
            return self.spec.pattern in url
        if mode == "excludes":
            return self.spec.pattern not in url
        found = self._regex.search(url) is not None
        return found if mode == "matches" else not found

    async def describe(self, session: SessionContext) -> Dict[str, Any]:
        return {"url": session.url}


class NetworkQuiescenceCheck(ReadinessProbe):
    spec: NetworkQuiescenceProbe

    async def sample(self, session: SessionContext, baseline: Any, state: Dict[str, Any]) -> bool:
        now = time.monotonic()
        if session.browser.inflight_requests() > 0:
            state.pop("quiet_since", None)
            return False
        quiet_since = state.setdefault("quiet_since", now)
        return (now - quiet_since) * 1000 >= self.spec.quiet_ms


class ValueChangeCheck(ReadinessProbe):
    spec: ValueChangeProbe

    async def capture(self, session: SessionContext) -> Any:
        value = await session.browser.read_value(self.spec.selector)
        session.markers[self.spec.selector] = value
        return value

    async def sample(self, session: SessionContext, baseline: Any, state: Dict[str, Any]) -> bool:
        current = await session.browser.read_value(self.spec.selector)
        if current is None or current == baseline:
            return False
        session.markers[self.spec.selector] = current
        return True


class ElementCountCheck(ReadinessProbe):
    """Matches once more elements are present than before the action.

    With a zero baseline this is the zero to nonzero crossing of a newly
    rendered control; with a nonzero baseline one additional match is enough.
    """

    spec: ElementCountProbe

    async def capture(self, session: SessionContext) -> Any:
        return await session.browser.count(self.spec.selector)

    async def sample(self, session: SessionContext, baseline: Any, state: Dict[str, Any]) -> bool:
        return await session.browser.count(self.spec.selector) > int(baseline or 0)


PROBE_TYPES: Dict[Type[ProbeBase], Type[ReadinessProbe]] = {
    VisibilityProbe: VisibilityCheck,
    UrlPatternProbe: UrlPatternCheck,
    NetworkQuiescenceProbe: NetworkQuiescenceCheck,
    ValueChangeProbe: ValueChangeCheck,
    ElementCountProbe: ElementCountCheck,
}


def build_probe(spec: Any) -> ReadinessProbe:
    parsed = registry.probes.parse(spec)
    return PROBE_TYPES[type(parsed)](parsed)
