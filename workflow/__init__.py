"""Stage-readiness workflow engine."""

from .actions import ActionExecutor, ActionFailure, ActionResult
from .errors import (
    ActionError,
    SessionClosedError,
    TargetNotFoundError,
    TargetNotInteractableError,
    TransportError,
    WorkflowConfigError,
)
from .probes import ProbeResult, ReadinessProbe, build_probe
from .race import ProbeRace, RaceResult
from .results import FailureReason, StageOutcome, StageState, WorkflowResult
from .runner import ArtifactSink, WorkflowRunner
from .session import SessionContext
from .stage import Stage
from .structured_logging import StructuredLogger

__all__ = [
    "ActionError",
    "ActionExecutor",
    "ActionFailure",
    "ActionResult",
    "ArtifactSink",
    "FailureReason",
    "ProbeRace",
    "ProbeResult",
    "RaceResult",
    "ReadinessProbe",
    "SessionClosedError",
    "SessionContext",
    "Stage",
    "StageOutcome",
    "StageState",
    "StructuredLogger",
    "TargetNotFoundError",
    "TargetNotInteractableError",
    "TransportError",
    "WorkflowConfigError",
    "WorkflowResult",
    "WorkflowRunner",
    "build_probe",
]
