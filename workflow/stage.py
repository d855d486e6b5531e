"""Stage state machine: act, race, optionally correct once, re-race."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from .actions import ActionExecutor
from .dsl.models import StageDefinition
from .dsl.registry import parse_stage
from .probes import ReadinessProbe, build_probe
from .race import ProbeRace, RaceResult
from .results import FailureReason, StageOutcome, StageState
from .session import SessionContext

log = logging.getLogger(__name__)


class Stage:
    """Runtime for one :class:`StageDefinition`.

    Transitions::

        PENDING -> ACTING -> RACING -> SUCCESS
                                    -> FALLBACK_ACTING -> FALLBACK_RACING -> SUCCESS | FAILED
                                    -> FAILED

    An action flagged ``best_effort`` moves on to RACING even when it was not
    performed. A stage never retries beyond the single fallback cycle. It keeps no
    per-execution state, so one instance may run in several sessions at once.
    """

    def __init__(self, definition: Any, *, executor: Optional[ActionExecutor] = None) -> None:
        self.definition: StageDefinition = parse_stage(definition)
        self.executor = executor or ActionExecutor()
        self.race = ProbeRace(
            [build_probe(spec) for spec in self.definition.probes],
            [build_probe(spec) for spec in self.definition.guards],
            timeout_ms=self.definition.timeout_ms,
        )
        self.precondition: Optional[ReadinessProbe] = (
            build_probe(self.definition.precondition) if self.definition.precondition is not None else None
        )

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def checkpoint(self) -> Optional[str]:
        return self.definition.checkpoint

    async def execute(self, session: SessionContext, inputs: Optional[Mapping[str, Any]] = None) -> StageOutcome:
        loop = asyncio.get_running_loop()
        started = loop.time()
        states: List[StageState] = [StageState.PENDING]

        def _elapsed() -> int:
            return int((loop.time() - started) * 1000)

        def _failed(reason: FailureReason, detail: Dict[str, Any], *, fallback_used: bool = False) -> StageOutcome:
            states.append(StageState.FAILED)
            outcome = StageOutcome.failure(
                self.name, reason, _elapsed(), states=states, fallback_used=fallback_used, detail=detail
            )
            log.info("Stage %s failed (%s) after %sms", self.name, reason.value, outcome.elapsed_ms)
            return outcome

        def _succeeded(race: RaceResult, detail: Dict[str, Any], *, fallback_used: bool = False) -> StageOutcome:
            states.append(StageState.SUCCESS)
            outcome = StageOutcome(
                name=self.name,
                succeeded=True,
                elapsed_ms=_elapsed(),
                matched_probe=race.matched_probe,
                fallback_used=fallback_used,
                states=tuple(states),
                detail=detail,
            )
            log.info("Stage %s ready via %s after %sms", self.name, race.matched_probe, outcome.elapsed_ms)
            return outcome

        if self.precondition is not None:
            gate = await self.precondition.evaluate(session, await self.precondition.capture(session))
            if not gate.matched:
                states.append(StageState.SUCCESS)
                log.info("Stage %s skipped: precondition %s not met", self.name, gate.probe_id)
                return StageOutcome(
                    name=self.name,
                    succeeded=True,
                    elapsed_ms=_elapsed(),
                    skipped=True,
                    states=tuple(states),
                    detail={"precondition": gate.probe_id},
                )

        baselines = await self.race.capture(session)

        states.append(StageState.ACTING)
        action = await self.executor.perform(session, self.definition.action, inputs)
        detail: Dict[str, Any] = {"action": action.as_dict()}
        if not action.performed:
            if not self.definition.action.best_effort:
                return _failed(FailureReason.ACTION_NOT_PERFORMED, detail)
            log.info("Best-effort action for stage %s did not perform; racing anyway", self.name)

        states.append(StageState.RACING)
        race = await self.race.run(session, baselines)
        if race.matched:
            return _succeeded(race, detail)
        if race.rejected:
            return _failed(FailureReason.REJECTED, {**detail, **race.detail})
        if self.definition.fallback is None:
            return _failed(FailureReason.NO_READINESS_SIGNAL, detail)

        states.append(StageState.FALLBACK_ACTING)
        fallback = await self.executor.perform(session, self.definition.fallback, inputs)
        detail["fallback"] = fallback.as_dict()
        if not fallback.performed:
            log.info("Fallback for stage %s did not perform; re-racing anyway", self.name)

        states.append(StageState.FALLBACK_RACING)
        race = await self.race.run(session, baselines)
        if race.matched:
            return _succeeded(race, detail, fallback_used=True)
        if race.rejected:
            return _failed(FailureReason.REJECTED, {**detail, **race.detail}, fallback_used=True)
        return _failed(FailureReason.FALLBACK_EXHAUSTED, detail, fallback_used=True)
