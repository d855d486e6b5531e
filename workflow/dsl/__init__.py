"""Typed stage definition DSL."""

from .matching import OptionMatch, match_option
from .models import (
    ActionBase,
    ActionSpec,
    ClickAction,
    DispatchChangeAction,
    ElementCountProbe,
    FillAction,
    HideAction,
    NavigateAction,
    NetworkQuiescenceProbe,
    ProbeBase,
    ProbeSpec,
    SelectOptionAction,
    SequenceAction,
    StageDefinition,
    UrlPatternProbe,
    ValueChangeProbe,
    VisibilityProbe,
)
from .registry import WorkflowDefinition, actions, parse_stage, parse_workflow, probes

__all__ = [
    "ActionBase",
    "ActionSpec",
    "ClickAction",
    "DispatchChangeAction",
    "ElementCountProbe",
    "FillAction",
    "HideAction",
    "NavigateAction",
    "NetworkQuiescenceProbe",
    "OptionMatch",
    "ProbeBase",
    "ProbeSpec",
    "SelectOptionAction",
    "SequenceAction",
    "StageDefinition",
    "UrlPatternProbe",
    "ValueChangeProbe",
    "VisibilityProbe",
    "WorkflowDefinition",
    "actions",
    "match_option",
    "parse_stage",
    "parse_workflow",
    "probes",
]
