"""Concurrent probe race with guard precedence."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .errors import SessionClosedError
from .probes import ReadinessProbe
from .session import SessionContext

log = logging.getLogger(__name__)

# Upper bound for the single guard sample taken before success is reported.
GUARD_SWEEP_MS = 1_000


@dataclass(frozen=True, slots=True)
class RaceResult:
    matched: bool
    elapsed_ms: int
    matched_probe: Optional[str] = None
    rejected_by: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def rejected(self) -> bool:
        return self.rejected_by is not None


class ProbeRace:
    """Run success probes and guards concurrently on the current event loop.

    Resolution rules:

    * the first success probe to match wins, unless a guard matches too;
    * a guard match resolves the race as rejected, even in the same step;
    * once every success probe has timed out (or ``timeout_ms`` elapses) the
      race fails. Guards alone never keep it running.

    Unfinished probe tasks are cancelled whichever way the race resolves.
    """

    def __init__(
        self,
        probes: Sequence[ReadinessProbe],
        guards: Sequence[ReadinessProbe] = (),
        *,
        timeout_ms: Optional[int] = None,
    ) -> None:
        if not probes:
            raise ValueError("a race needs at least one probe")
        self.probes = tuple(probes)
        self.guards = tuple(guards)
        self.timeout_ms = timeout_ms

    @property
    def members(self) -> Sequence[ReadinessProbe]:
        return (*self.probes, *self.guards)

    async def capture(self, session: SessionContext) -> Dict[str, Any]:
        """Snapshot every member's baseline. Call strictly before the action."""

        session.ensure_open()
        baselines: Dict[str, Any] = {}
        for probe in self.members:
            try:
                baselines[probe.probe_id] = await probe.capture(session)
            except SessionClosedError:
                raise
            except Exception as exc:
                if session.closed:
                    raise SessionClosedError(f"session closed while capturing {probe.probe_id}") from exc
                log.debug("Baseline capture for %s failed: %s", probe.probe_id, exc)
                baselines[probe.probe_id] = None
        return baselines

    async def run(self, session: SessionContext, baselines: Optional[Mapping[str, Any]] = None) -> RaceResult:
        baselines = baselines or {}
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.timeout_ms / 1000 if self.timeout_ms is not None else None

        def _elapsed() -> int:
            return int((loop.time() - started) * 1000)

        roles: Dict[asyncio.Task, Tuple[bool, ReadinessProbe]] = {}
        for probe in self.probes:
            task = asyncio.create_task(probe.evaluate(session, baselines.get(probe.probe_id)))
            roles[task] = (False, probe)
        for guard in self.guards:
            task = asyncio.create_task(guard.evaluate(session, baselines.get(guard.probe_id)))
            roles[task] = (True, guard)

        pending = set(roles)
        try:
            while any(not roles[task][0] for task in pending):
                timeout = None if deadline is None else max(deadline - loop.time(), 0)
                done, pending = await asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
                if not done:
                    log.debug("Race timeout of %sms exhausted", self.timeout_ms)
                    break

                finished = sorted(done, key=lambda t: not roles[t][0])
                for task in finished:
                    is_guard, probe = roles[task]
                    result = task.result()
                    if not result.matched:
                        continue
                    if is_guard:
                        return await self._reject(session, probe, _elapsed())
                    guard = await self._sweep_guards(session, baselines)
                    if guard is not None:
                        return await self._reject(session, guard, _elapsed())
                    log.debug("Probe %s matched after %sms", probe.probe_id, result.elapsed_ms)
                    return RaceResult(matched=True, matched_probe=probe.probe_id, elapsed_ms=_elapsed())

            return RaceResult(matched=False, elapsed_ms=_elapsed())
        finally:
            leftovers = [task for task in roles if not task.done()]
            for task in leftovers:
                task.cancel()
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)

    async def _sweep_guards(
        self, session: SessionContext, baselines: Mapping[str, Any]
    ) -> Optional[ReadinessProbe]:
        if not self.guards:
            return None
        checks = [
            guard.check(
                session,
                baselines.get(guard.probe_id),
                timeout_s=min(guard.timeout_ms, GUARD_SWEEP_MS) / 1000,
            )
            for guard in self.guards
        ]
        results = await asyncio.gather(*checks)
        for guard, matched in zip(self.guards, results):
            if matched:
                return guard
        return None

    async def _reject(self, session: SessionContext, guard: ReadinessProbe, elapsed_ms: int) -> RaceResult:
        detail: Dict[str, Any] = {"guard": guard.probe_id}
        detail.update(await guard.describe(session))
        log.info("Race rejected by guard %s", guard.probe_id)
        return RaceResult(matched=False, rejected_by=guard.probe_id, elapsed_ms=elapsed_ms, detail=detail)
