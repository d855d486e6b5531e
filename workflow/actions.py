"""Action executor: performs one mutating action and reports whether it happened."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .dsl import registry
from .dsl.matching import match_option
from .dsl.models import (
    ActionBase,
    ClickAction,
    DispatchChangeAction,
    FillAction,
    HideAction,
    NavigateAction,
    SelectOptionAction,
    SequenceAction,
)
from .errors import (
    ActionError,
    SessionClosedError,
    TargetNotFoundError,
    TargetNotInteractableError,
    WorkflowConfigError,
)
from .session import SessionContext

log = logging.getLogger(__name__)


class ActionFailure(str, Enum):
    TARGET_NOT_FOUND = "target-not-found"
    TARGET_NOT_INTERACTABLE = "target-not-interactable"
    TRANSPORT_FAILURE = "transport-failure"


@dataclass(frozen=True, slots=True)
class ActionResult:
    performed: bool
    detail: Dict[str, Any] = field(default_factory=dict)
    failure: Optional[ActionFailure] = None

    @classmethod
    def ok(cls, **detail: Any) -> "ActionResult":
        return cls(performed=True, detail=detail)

    @classmethod
    def failed(cls, failure: ActionFailure, message: str, **detail: Any) -> "ActionResult":
        return cls(performed=False, detail={"message": message, **detail}, failure=failure)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"performed": self.performed, "detail": dict(self.detail)}
        if self.failure is not None:
            payload["failure"] = self.failure.value
        return payload


class ActionExecutor:
    """Map action specs onto the session capability.

    Element and navigation errors raised by the capability become
    ``ActionResult`` failures. ``SessionClosedError`` propagates untouched.
    """

    def __init__(
        self,
        *,
        action_timeout_ms: int = 10_000,
        navigation_timeout_ms: int = 30_000,
        settle_timeout_ms: int = 2_000,
    ) -> None:
        self.action_timeout_ms = action_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_timeout_ms = settle_timeout_ms

    async def perform(
        self,
        session: SessionContext,
        action: Any,
        inputs: Optional[Mapping[str, Any]] = None,
    ) -> ActionResult:
        spec = registry.actions.parse(action)
        inputs = inputs or {}
        session.ensure_open()

        handler = getattr(self, f"_perform_{spec.action_name.replace('-', '_')}")
        try:
            result = await handler(session, spec, inputs)
        except SessionClosedError:
            raise
        except ActionError as exc:
            if session.closed:
                raise SessionClosedError(f"session closed during {spec.action_name}") from exc
            log.info("Action %s not performed: %s", spec.action_name, exc)
            try:
                failure = ActionFailure(exc.code)
            except ValueError:
                failure = ActionFailure.TRANSPORT_FAILURE
            detail = {**exc.details, "action": spec.action_name}
            detail.pop("message", None)
            return ActionResult.failed(failure, str(exc), **detail)

        if result.performed and not isinstance(spec, SequenceAction):
            await self._settle(session, spec)
        return result

    # ------------------------------------------------------------------
    # helpers

    def _timeout(self, spec: ActionBase) -> int:
        return spec.timeout_ms if spec.timeout_ms is not None else self.action_timeout_ms

    @staticmethod
    def _lookup(inputs: Mapping[str, Any], key: str) -> str:
        if key not in inputs or inputs[key] is None:
            raise WorkflowConfigError(f"missing run input '{key}'")
        return str(inputs[key])

    async def _settle(self, session: SessionContext, spec: ActionBase) -> None:
        timeout_ms = spec.settle_ms if spec.settle_ms is not None else self.settle_timeout_ms
        if timeout_ms <= 0:
            return
        try:
            await session.browser.settle(timeout_ms)
        except SessionClosedError:
            raise
        except Exception as exc:
            log.debug("Settle after %s ignored: %s", spec.action_name, exc)

    # ------------------------------------------------------------------
    # handlers

    async def _perform_navigate(self, session: SessionContext, spec: NavigateAction, inputs: Mapping[str, Any]) -> ActionResult:
        timeout_ms = spec.timeout_ms if spec.timeout_ms is not None else self.navigation_timeout_ms
        await session.browser.navigate(spec.url, wait_until=spec.wait_until, timeout_ms=timeout_ms)
        return ActionResult.ok(action=spec.action_name, url=session.url)

    async def _perform_fill(self, session: SessionContext, spec: FillAction, inputs: Mapping[str, Any]) -> ActionResult:
        value = spec.value if spec.value_from is None else self._lookup(inputs, spec.value_from)
        await session.browser.fill(spec.selector, value, timeout_ms=self._timeout(spec))
        # Values may be credentials; only the selector is reported.
        return ActionResult.ok(action=spec.action_name, selector=spec.selector)

    async def _perform_click(self, session: SessionContext, spec: ClickAction, inputs: Mapping[str, Any]) -> ActionResult:
        timeout_ms = self._timeout(spec)
        present = []
        for selector in spec.selectors:
            if await session.browser.count(selector) > 0:
                present.append(selector)

        if not present:
            # Nothing rendered yet: give the first candidate the full wait.
            await session.browser.click(spec.selectors[0], timeout_ms=timeout_ms)
            return ActionResult.ok(action=spec.action_name, selector=spec.selectors[0])

        errors: Dict[str, str] = {}
        blocked = False
        for selector in present:
            try:
                await session.browser.click(selector, timeout_ms=timeout_ms)
            except (TargetNotFoundError, TargetNotInteractableError) as exc:
                blocked = blocked or isinstance(exc, TargetNotInteractableError)
                errors[selector] = str(exc)
                log.debug("Click candidate %s failed: %s", selector, exc)
                continue
            return ActionResult.ok(action=spec.action_name, selector=selector)

        error_cls = TargetNotInteractableError if blocked else TargetNotFoundError
        raise error_cls("no click candidate could be used", details={"candidates": errors})

    async def _perform_select_option(
        self, session: SessionContext, spec: SelectOptionAction, inputs: Mapping[str, Any]
    ) -> ActionResult:
        target = spec.option if spec.option_from is None else self._lookup(inputs, spec.option_from)
        timeout_ms = self._timeout(spec)
        entries = await session.browser.option_entries(spec.selector, timeout_ms=timeout_ms)
        if not (target or "").strip():
            return ActionResult.failed(
                ActionFailure.TARGET_NOT_FOUND, "empty option target", action=spec.action_name, reason="empty-target"
            )
        match = match_option(entries, target)
        if match is None:
            return ActionResult.failed(
                ActionFailure.TARGET_NOT_FOUND,
                f"no option matches {target!r}",
                action=spec.action_name,
                reason="no-match-found",
                target=target,
                options=len(entries),
            )
        await session.browser.select_option(spec.selector, value=match.value, label=match.label, timeout_ms=timeout_ms)
        return ActionResult.ok(
            action=spec.action_name, selector=spec.selector, value=match.value, label=match.label, tier=match.tier
        )

    async def _perform_dispatch_change(
        self, session: SessionContext, spec: DispatchChangeAction, inputs: Mapping[str, Any]
    ) -> ActionResult:
        await session.browser.dispatch_change(spec.selector, list(spec.events))
        return ActionResult.ok(action=spec.action_name, selector=spec.selector, events=list(spec.events))

    async def _perform_hide(self, session: SessionContext, spec: HideAction, inputs: Mapping[str, Any]) -> ActionResult:
        hidden = await session.browser.hide(spec.selector)
        if not hidden:
            raise TargetNotFoundError(f"nothing to hide for {spec.selector}", details={"selector": spec.selector})
        return ActionResult.ok(action=spec.action_name, selector=spec.selector, hidden=hidden)

    async def _perform_sequence(self, session: SessionContext, spec: SequenceAction, inputs: Mapping[str, Any]) -> ActionResult:
        steps = []
        for index, step in enumerate(spec.steps):
            result = await self.perform(session, step, inputs)
            steps.append(result.as_dict())
            if not result.performed:
                return ActionResult(
                    performed=False,
                    detail={"action": spec.action_name, "failedStep": index, "steps": steps},
                    failure=result.failure,
                )
        return ActionResult.ok(action=spec.action_name, steps=steps)
