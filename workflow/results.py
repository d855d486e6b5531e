"""Immutable outcome records produced by stages and workflow runs.

``as_dict`` renders the stable caller contract::

    {
        "succeeded": bool,
        "haltedAtStage": int | None,
        "stages": [{"name", "succeeded", "failureReason", "elapsedMs", ...}],
        "artifacts": {checkpoint_name: reference},
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


class FailureReason(str, Enum):
    ACTION_NOT_PERFORMED = "action-not-performed"
    NO_READINESS_SIGNAL = "no-readiness-signal"
    FALLBACK_EXHAUSTED = "fallback-exhausted"
    REJECTED = "rejected"
    SESSION_FAILURE = "session-failure"


class StageState(str, Enum):
    PENDING = "PENDING"
    ACTING = "ACTING"
    RACING = "RACING"
    FALLBACK_ACTING = "FALLBACK_ACTING"
    FALLBACK_RACING = "FALLBACK_RACING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class StageOutcome:
    name: str
    succeeded: bool
    elapsed_ms: int
    matched_probe: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    skipped: bool = False
    fallback_used: bool = False
    states: Tuple[StageState, ...] = ()
    detail: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.succeeded and self.failure_reason is not None:
            raise ValueError("a succeeded stage cannot carry a failure reason")
        if not self.succeeded and self.failure_reason is None:
            raise ValueError("a failed stage needs a failure reason")

    @classmethod
    def failure(
        cls,
        name: str,
        reason: FailureReason,
        elapsed_ms: int,
        *,
        states: Sequence[StageState] = (),
        fallback_used: bool = False,
        detail: Optional[Mapping[str, Any]] = None,
    ) -> "StageOutcome":
        return cls(
            name=name,
            succeeded=False,
            elapsed_ms=elapsed_ms,
            failure_reason=reason,
            fallback_used=fallback_used,
            states=tuple(states),
            detail=dict(detail or {}),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "succeeded": self.succeeded,
            "failureReason": self.failure_reason.value if self.failure_reason else None,
            "elapsedMs": self.elapsed_ms,
            "matchedProbe": self.matched_probe,
            "skipped": self.skipped,
            "fallbackUsed": self.fallback_used,
            "detail": dict(self.detail),
        }


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    succeeded: bool
    halted_at_stage: Optional[int]
    stages: Tuple[StageOutcome, ...]
    artifacts: Mapping[str, str] = field(default_factory=dict)
    final_url: Optional[str] = None
    title: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        first_failed = next((i for i, outcome in enumerate(self.stages) if not outcome.succeeded), None)
        if self.halted_at_stage != first_failed:
            raise ValueError("halted_at_stage must point at the first failed stage")
        if first_failed is not None and first_failed != len(self.stages) - 1:
            raise ValueError("no stage outcome may follow the halting stage")
        if self.succeeded != (first_failed is None):
            raise ValueError("succeeded must be false exactly when a stage failed")

    @classmethod
    def from_outcomes(
        cls,
        outcomes: Sequence[StageOutcome],
        *,
        artifacts: Optional[Mapping[str, str]] = None,
        final_url: Optional[str] = None,
        title: Optional[str] = None,
        error: Optional[str] = None,
    ) -> "WorkflowResult":
        halted = next((i for i, outcome in enumerate(outcomes) if not outcome.succeeded), None)
        return cls(
            succeeded=halted is None,
            halted_at_stage=halted,
            stages=tuple(outcomes),
            artifacts=dict(artifacts or {}),
            final_url=final_url,
            title=title,
            error=error,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "haltedAtStage": self.halted_at_stage,
            "stages": [outcome.as_dict() for outcome in self.stages],
            "artifacts": dict(self.artifacts),
            "finalUrl": self.final_url,
            "title": self.title,
            "error": self.error,
        }
