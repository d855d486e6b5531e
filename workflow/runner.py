"""Workflow runner: ordered stages over one session, halting at the first failure."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncContextManager, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

from .actions import ActionExecutor
from .dsl.registry import parse_workflow
from .errors import WorkflowConfigError
from .results import FailureReason, StageOutcome, WorkflowResult
from .session import SessionContext
from .stage import Stage
from .structured_logging import StructuredLogger

log = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[SessionContext]]


class ArtifactSink(Protocol):
    async def store(self, name: str, session: SessionContext) -> str:
        ...


class WorkflowRunner:
    """Execute stages strictly in order against a freshly opened session.

    ``run`` never raises for remote-application behaviour: action failures,
    silent probes, guard rejections and crashed sessions all come back as
    stage outcomes. ``WorkflowConfigError`` is raised for malformed stage
    definitions (at construction) and for missing run inputs (before any
    session is opened).
    """

    def __init__(
        self,
        stages: Sequence[Any],
        *,
        session_factory: SessionFactory,
        artifact_sink: Optional[ArtifactSink] = None,
        event_log: Optional[StructuredLogger] = None,
        executor: Optional[ActionExecutor] = None,
    ) -> None:
        if not stages:
            raise WorkflowConfigError("a workflow needs at least one stage")
        built = [stage if isinstance(stage, Stage) else Stage(stage, executor=executor) for stage in stages]
        names = [stage.name for stage in built]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise WorkflowConfigError(f"duplicate stage names: {', '.join(duplicates)}")
        self.stages: Tuple[Stage, ...] = tuple(built)
        self.session_factory = session_factory
        self.artifact_sink = artifact_sink
        self.event_log = event_log

    @classmethod
    def from_definition(cls, definition: Any, **kwargs: Any) -> "WorkflowRunner":
        workflow = parse_workflow(definition)
        return cls(workflow.stages, **kwargs)

    def required_inputs(self) -> Set[str]:
        names: Set[str] = set()
        for stage in self.stages:
            names |= stage.definition.required_inputs()
        return names

    async def run(
        self,
        inputs: Optional[Mapping[str, Any]] = None,
        *,
        artifact_sink: Optional[ArtifactSink] = None,
        event_log: Optional[StructuredLogger] = None,
    ) -> WorkflowResult:
        inputs = dict(inputs or {})
        missing = sorted(name for name in self.required_inputs() if inputs.get(name) is None)
        if missing:
            raise WorkflowConfigError(f"missing run inputs: {', '.join(missing)}")

        sink = artifact_sink or self.artifact_sink
        events = event_log or self.event_log
        outcomes: List[StageOutcome] = []
        artifacts: Dict[str, str] = {}
        final_url: Optional[str] = None
        title: Optional[str] = None
        error: Optional[str] = None
        opened = False
        finished = False

        try:
            async with self.session_factory() as session:
                opened = True
                for index, stage in enumerate(self.stages):
                    outcome = await self._run_stage(stage, session, inputs)
                    reference = await self._checkpoint(stage, session, sink)
                    if reference is not None:
                        artifacts[stage.checkpoint] = reference
                    outcomes.append(outcome)
                    self._log_stage(events, index, stage, outcome, reference)
                    if not outcome.succeeded:
                        log.info("Workflow halted at stage %s (%s)", index, stage.name)
                        break
                final_url, title = await self._describe(session)
                finished = True
        except Exception as exc:
            if not opened:
                log.warning("Session could not be opened: %s", exc)
                error = f"session open failed: {exc}"
                outcomes = [self._session_failure(self.stages[0], exc, 0)]
            elif finished:
                log.warning("Session teardown failed: %s", exc)
                error = f"session teardown failed: {exc}"
            else:
                log.warning("Workflow aborted: %s", exc)
                error = str(exc)
                if len(outcomes) < len(self.stages) and (not outcomes or outcomes[-1].succeeded):
                    outcomes.append(self._session_failure(self.stages[len(outcomes)], exc, 0))

        result = WorkflowResult.from_outcomes(
            outcomes, artifacts=artifacts, final_url=final_url, title=title, error=error
        )
        if events is not None:
            try:
                events.log_result(result)
            except OSError as exc:
                log.debug("Could not write run summary: %s", exc)
        return result

    async def _run_stage(self, stage: Stage, session: SessionContext, inputs: Mapping[str, Any]) -> StageOutcome:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            return await stage.execute(session, inputs)
        except Exception as exc:
            elapsed_ms = int((loop.time() - started) * 1000)
            log.warning("Stage %s aborted by %s: %s", stage.name, type(exc).__name__, exc)
            return self._session_failure(stage, exc, elapsed_ms)

    @staticmethod
    def _session_failure(stage: Stage, exc: BaseException, elapsed_ms: int) -> StageOutcome:
        return StageOutcome.failure(
            stage.name,
            FailureReason.SESSION_FAILURE,
            elapsed_ms,
            detail={"error": str(exc), "type": type(exc).__name__},
        )

    async def _checkpoint(self, stage: Stage, session: SessionContext, sink: Optional[ArtifactSink]) -> Optional[str]:
        if sink is None or not stage.checkpoint:
            return None
        try:
            return await sink.store(stage.checkpoint, session)
        except Exception as exc:
            log.warning("Checkpoint %s not stored: %s", stage.checkpoint, exc)
            return None

    @staticmethod
    def _log_stage(
        events: Optional[StructuredLogger],
        index: int,
        stage: Stage,
        outcome: StageOutcome,
        reference: Optional[str],
    ) -> None:
        if events is None:
            return
        try:
            events.log_stage(index, outcome, checkpoint=stage.checkpoint, artifact=reference)
        except OSError as exc:
            log.debug("Could not write stage event: %s", exc)

    @staticmethod
    async def _describe(session: SessionContext) -> Tuple[Optional[str], Optional[str]]:
        if session.closed:
            return None, None
        url = session.url or None
        try:
            title = await session.browser.title()
        except Exception as exc:
            log.debug("Could not read page title: %s", exc)
            title = None
        return url, title
