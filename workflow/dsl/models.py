"""Typed models describing probes, actions and stages."""

from __future__ import annotations

import re
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Set, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

DEFAULT_PROBE_TIMEOUT_MS = 10_000
DEFAULT_POLL_INTERVAL_MS = 100


# ---------------------------------------------------------------------------
# Probes


class ProbeBase(BaseModel):
    """Base class for readiness probe descriptors."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    __probe_kind__: ClassVar[str]

    id: Optional[str] = None
    timeout_ms: int = Field(
        default=DEFAULT_PROBE_TIMEOUT_MS,
        ge=0,
        alias="timeout_ms",
        validation_alias=AliasChoices("timeout_ms", "timeout"),
    )
    poll_interval_ms: int = Field(default=DEFAULT_POLL_INTERVAL_MS, ge=10, alias="poll_interval_ms")
    # Only sample while the current URL contains this text.
    url_contains: Optional[str] = Field(default=None, min_length=1)

    @property
    def probe_id(self) -> str:
        return self.id or f"{self.__probe_kind__}:{self.target}"

    @property
    def target(self) -> str:
        return ""

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class VisibilityProbe(ProbeBase):
    __probe_kind__ = "visibility"

    kind: Literal["visibility"] = "visibility"
    selector: str = Field(min_length=1)
    state: Literal["visible", "hidden"] = "visible"

    @property
    def target(self) -> str:
        return self.selector if self.state == "visible" else f"{self.selector}!hidden"


class UrlPatternProbe(ProbeBase):
    __probe_kind__ = "url-pattern"

    kind: Literal["url-pattern"] = "url-pattern"
    pattern: str = Field(min_length=1)
    mode: Literal["contains", "excludes", "matches", "not-matches"] = "matches"

    @model_validator(mode="after")
    def _check_regex(self) -> "UrlPatternProbe":
        if self.mode in {"matches", "not-matches"}:
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ValueError(f"invalid url pattern {self.pattern!r}: {exc}") from exc
        return self

    @property
    def target(self) -> str:
        return f"{self.mode}:{self.pattern}"


class NetworkQuiescenceProbe(ProbeBase):
    __probe_kind__ = "network-quiescence"

    kind: Literal["network-quiescence"] = "network-quiescence"
    quiet_ms: int = Field(default=500, ge=0)

    @property
    def target(self) -> str:
        return f"{self.quiet_ms}ms"


class ValueChangeProbe(ProbeBase):
    __probe_kind__ = "value-change"

    kind: Literal["value-change"] = "value-change"
    selector: str = Field(min_length=1)

    @property
    def target(self) -> str:
        return self.selector


class ElementCountProbe(ProbeBase):
    __probe_kind__ = "element-count"

    kind: Literal["element-count"] = "element-count"
    selector: str = Field(min_length=1)

    @property
    def target(self) -> str:
        return self.selector


ProbeSpec = Annotated[
    Union[VisibilityProbe, UrlPatternProbe, NetworkQuiescenceProbe, ValueChangeProbe, ElementCountProbe],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Actions


class ActionBase(BaseModel):
    """Base class for actions performed against the session."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    __action_name__: ClassVar[str]

    timeout_ms: Optional[int] = Field(default=None, ge=0, alias="timeout_ms")
    settle_ms: Optional[int] = Field(default=None, ge=0, alias="settle_ms")
    # A stage whose best-effort action fails still races its probes.
    best_effort: bool = False

    @property
    def action_name(self) -> str:
        return self.__action_name__

    def required_inputs(self) -> Set[str]:
        return set()

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NavigateAction(ActionBase):
    __action_name__ = "navigate"

    type: Literal["navigate"] = "navigate"
    url: str = Field(min_length=1, alias="url", validation_alias=AliasChoices("url", "target"))
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded"


class FillAction(ActionBase):
    __action_name__ = "fill"

    type: Literal["fill"] = "fill"
    selector: str = Field(min_length=1, alias="selector", validation_alias=AliasChoices("selector", "target"))
    value: Optional[str] = None
    value_from: Optional[str] = None

    @model_validator(mode="after")
    def _one_value_source(self) -> "FillAction":
        if (self.value is None) == (self.value_from is None):
            raise ValueError("fill needs exactly one of 'value' or 'value_from'")
        return self

    def required_inputs(self) -> Set[str]:
        return {self.value_from} if self.value_from else set()


class ClickAction(ActionBase):
    __action_name__ = "click"

    type: Literal["click"] = "click"
    selectors: List[str] = Field(
        min_length=1,
        alias="selectors",
        validation_alias=AliasChoices("selectors", "selector", "target"),
    )

    @field_validator("selectors", mode="before")
    @classmethod
    def _coerce_single(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class SelectOptionAction(ActionBase):
    __action_name__ = "select-option"

    type: Literal["select-option"] = "select-option"
    selector: str = Field(min_length=1, alias="selector", validation_alias=AliasChoices("selector", "target"))
    option: Optional[str] = None
    option_from: Optional[str] = None

    @model_validator(mode="after")
    def _one_option_source(self) -> "SelectOptionAction":
        if (self.option is None) == (self.option_from is None):
            raise ValueError("select-option needs exactly one of 'option' or 'option_from'")
        return self

    def required_inputs(self) -> Set[str]:
        return {self.option_from} if self.option_from else set()


class DispatchChangeAction(ActionBase):
    __action_name__ = "dispatch-change"

    type: Literal["dispatch-change"] = "dispatch-change"
    selector: str = Field(min_length=1, alias="selector", validation_alias=AliasChoices("selector", "target"))
    events: List[str] = Field(default_factory=lambda: ["input", "change"], min_length=1)


class HideAction(ActionBase):
    __action_name__ = "hide"

    type: Literal["hide"] = "hide"
    selector: str = Field(min_length=1, alias="selector", validation_alias=AliasChoices("selector", "target"))


class SequenceAction(ActionBase):
    __action_name__ = "sequence"

    type: Literal["sequence"] = "sequence"
    steps: List["ActionSpec"] = Field(min_length=1)

    def required_inputs(self) -> Set[str]:
        names: Set[str] = set()
        for step in self.steps:
            names |= step.required_inputs()
        return names


ActionSpec = Annotated[
    Union[
        NavigateAction,
        FillAction,
        ClickAction,
        SelectOptionAction,
        DispatchChangeAction,
        HideAction,
        SequenceAction,
    ],
    Field(discriminator="type"),
]

SequenceAction.model_rebuild()


# ---------------------------------------------------------------------------
# Stages


class StageDefinition(BaseModel):
    """One action plus the probes that decide when its effect has landed."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    action: ActionSpec
    probes: List[ProbeSpec] = Field(min_length=1)
    guards: List[ProbeSpec] = Field(default_factory=list)
    precondition: Optional[ProbeSpec] = None
    fallback: Optional[ActionSpec] = None
    timeout_ms: Optional[int] = Field(default=None, ge=0)
    checkpoint: Optional[str] = None

    @field_validator("name", "checkpoint")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @model_validator(mode="after")
    def _unique_probe_ids(self) -> "StageDefinition":
        seen: Set[str] = set()
        for probe in [*self.probes, *self.guards]:
            if probe.probe_id in seen:
                raise ValueError(f"duplicate probe id {probe.probe_id!r} in stage {self.name!r}")
            seen.add(probe.probe_id)
        return self

    def required_inputs(self) -> Set[str]:
        names = self.action.required_inputs()
        if self.fallback is not None:
            names |= self.fallback.required_inputs()
        return names
