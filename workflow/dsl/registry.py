"""Definition registries and parse helpers built on top of pydantic models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from ..errors import WorkflowConfigError
from .models import (
    ActionBase,
    ClickAction,
    DispatchChangeAction,
    ElementCountProbe,
    FillAction,
    HideAction,
    NavigateAction,
    NetworkQuiescenceProbe,
    ProbeBase,
    SelectOptionAction,
    SequenceAction,
    StageDefinition,
    UrlPatternProbe,
    ValueChangeProbe,
    VisibilityProbe,
)


@dataclass(slots=True)
class SpecEntry:
    name: str
    model: Type[BaseModel]
    description: str | None = None

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description or "",
            "fields": sorted(self.model.model_fields),
        }


M = TypeVar("M", bound=BaseModel)


class SpecRegistry(Generic[M]):
    """Name -> model registry producing a validating union adapter."""

    def __init__(self, base: Type[M], name_attr: str) -> None:
        self._base = base
        self._name_attr = name_attr
        self._entries: Dict[str, SpecEntry] = {}
        self._adapter: Optional[TypeAdapter[Any]] = None

    def register(self, model: Type[M], *, description: str | None = None) -> Type[M]:
        if not issubclass(model, self._base):
            raise TypeError(f"model must subclass {self._base.__name__}")
        name = getattr(model, self._name_attr, None) or model.__name__
        self._entries[name] = SpecEntry(name=name, model=model, description=description)
        self._adapter = None
        return model

    def get(self, name: str) -> SpecEntry:
        try:
            return self._entries[name]
        except KeyError as exc:
            raise KeyError(f"Unknown kind '{name}'") from exc

    def __contains__(self, name: str) -> bool:  # pragma: no cover - trivial
        return name in self._entries

    def __iter__(self) -> Iterator[SpecEntry]:  # pragma: no cover - trivial
        return iter(self._entries.values())

    def _ensure_adapter(self) -> TypeAdapter[Any]:
        if self._adapter is None:
            if not self._entries:
                raise RuntimeError("No specs registered")
            models = tuple(entry.model for entry in self._entries.values())
            union = models[0]
            for model in models[1:]:
                union = union | model  # type: ignore[operator]
            self._adapter = TypeAdapter(union)
        return self._adapter

    def parse(self, data: Any) -> M:
        if isinstance(data, self._base):
            return data
        try:
            return self._ensure_adapter().validate_python(data)
        except ValidationError as exc:
            raise WorkflowConfigError(f"invalid {self._base.__name__}: {exc}") from exc

    def schema(self) -> Dict[str, Any]:
        return {name: entry.to_metadata() for name, entry in self._entries.items()}


probes: SpecRegistry[ProbeBase] = SpecRegistry(ProbeBase, "__probe_kind__")
probes.register(VisibilityProbe, description="element present and rendered (or gone)")
probes.register(UrlPatternProbe, description="current URL satisfies a predicate")
probes.register(NetworkQuiescenceProbe, description="no in-flight requests for a quiet window")
probes.register(ValueChangeProbe, description="field value differs from its pre-action baseline")
probes.register(
    ElementCountProbe,
    description="element count rises above its pre-action baseline (zero to nonzero for a new control)",
)

actions: SpecRegistry[ActionBase] = SpecRegistry(ActionBase, "__action_name__")
actions.register(NavigateAction)
actions.register(FillAction)
actions.register(ClickAction, description="click the first usable candidate selector")
actions.register(SelectOptionAction, description="choose an option by value, then by label")
actions.register(DispatchChangeAction)
actions.register(HideAction, description="force-hide an element")
actions.register(SequenceAction)


class WorkflowDefinition(BaseModel):
    """Named, ordered list of stages."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(default="workflow", min_length=1)
    stages: List[StageDefinition] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _coerce_stages(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {"stages": value}
        return value

    @model_validator(mode="after")
    def _unique_stage_names(self) -> "WorkflowDefinition":
        names = [stage.name for stage in self.stages]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate stage names: {', '.join(duplicates)}")
        return self


def parse_stage(data: Any) -> StageDefinition:
    if isinstance(data, StageDefinition):
        return data
    try:
        return StageDefinition.model_validate(data)
    except ValidationError as exc:
        raise WorkflowConfigError(f"invalid stage definition: {exc}") from exc


def parse_workflow(data: Any) -> WorkflowDefinition:
    if isinstance(data, WorkflowDefinition):
        return data
    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as exc:
        raise WorkflowConfigError(f"invalid workflow definition: {exc}") from exc
