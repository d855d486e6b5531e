import asyncio
from typing import Any, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from portal.safe_interactions import (
    dispatch_events,
    hide_elements,
    read_options,
    safe_click,
    safe_fill,
    safe_select,
)
from workflow.errors import TargetNotFoundError, TargetNotInteractableError


class MockLocator:
    def __init__(
        self,
        identifier: str,
        *,
        record: List[tuple[str, str, Dict[str, Any]]],
        attached: bool = True,
        visible: bool = True,
        enabled: bool = True,
        fail: Optional[Dict[str, int]] = None,
        options: Optional[List[List[str]]] = None,
    ) -> None:
        self.identifier = identifier
        self._record = record
        self.attached = attached
        self.visible = visible
        self.enabled = enabled
        # action -> how many calls raise before one succeeds
        self.fail = dict(fail or {})
        self.options = options or []
        self.value = ""
        self.selected: Optional[Dict[str, Any]] = None

    def _log(self, action: str, **details: Any) -> None:
        self._record.append((self.identifier, action, details))

    def _maybe_fail(self, action: str) -> None:
        if self.fail.get(action, 0) > 0:
            self.fail[action] -= 1
            raise PlaywrightError(f"{action} intercepted")

    @property
    def first(self) -> "MockLocator":
        return self

    async def wait_for(self, *, state: Optional[str] = None, timeout: Optional[int] = None) -> None:
        self._log("wait_for", state=state, timeout=timeout)
        if state == "attached" and not self.attached:
            raise PlaywrightTimeoutError(f"waiting for {self.identifier} to be attached")
        if state == "visible" and not self.visible:
            raise PlaywrightTimeoutError(f"waiting for {self.identifier} to be visible")

    async def scroll_into_view_if_needed(self, *, timeout: Optional[int] = None) -> None:
        self._log("scroll_into_view_if_needed", timeout=timeout)

    async def is_enabled(self) -> bool:
        return self.enabled

    async def click(self, **kwargs: Any) -> None:
        self._log("click", **kwargs)
        self._maybe_fail("click")

    async def fill(self, value: str, **kwargs: Any) -> None:
        self._log("fill", value=value, **kwargs)
        self._maybe_fail("fill")
        self.value = value

    async def input_value(self) -> str:
        return self.value

    async def press(self, key: str, **kwargs: Any) -> None:
        self._log("press", key=key)

    async def type(self, text: str, **kwargs: Any) -> None:
        self._log("type", text=text)
        self.value = text

    async def select_option(self, **kwargs: Any) -> None:
        self._log("select_option", **kwargs)
        self._maybe_fail("select_option")
        self.selected = kwargs

    async def evaluate(self, script: str, *args: Any) -> Any:
        self._log("evaluate", args=args)
        self._maybe_fail("evaluate")
        if "options" in script:
            return self.options
        if args and isinstance(args[0], str):
            # JavaScript fallback write.
            self.value = args[0]
        return None

    async def evaluate_all(self, script: str) -> int:
        self._log("evaluate_all")
        return 2 if self.attached else 0


def _actions(record, action):
    return [entry for entry in record if entry[1] == action]


def test_safe_click_happy_path() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    button = MockLocator("submit", record=record)

    asyncio.run(safe_click(button, timeout=500))

    assert [details for _, _, details in _actions(record, "click")] == [{"timeout": 500}]
    assert {details["state"] for _, _, details in _actions(record, "wait_for")} == {"attached", "visible"}


def test_safe_click_retries_with_force_then_js() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    button = MockLocator("submit", record=record, fail={"click": 2})

    asyncio.run(safe_click(button))

    clicks = [details for _, _, details in _actions(record, "click")]
    assert clicks[1]["force"] is True
    assert len(_actions(record, "evaluate")) == 1


def test_safe_click_raises_when_every_strategy_fails() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    button = MockLocator("submit", record=record, fail={"click": 2, "evaluate": 1})

    with pytest.raises(TargetNotInteractableError):
        asyncio.run(safe_click(button))


def test_missing_element_is_target_not_found() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    button = MockLocator("submit", record=record, attached=False)

    with pytest.raises(TargetNotFoundError):
        asyncio.run(safe_click(button, timeout=10))
    assert _actions(record, "click") == []


def test_hidden_or_disabled_element_is_not_interactable() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    with pytest.raises(TargetNotInteractableError):
        asyncio.run(safe_click(MockLocator("hidden", record=record, visible=False), timeout=10))
    with pytest.raises(TargetNotInteractableError):
        asyncio.run(safe_click(MockLocator("disabled", record=record, enabled=False), timeout=10))


def test_safe_fill_clears_then_fills() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    field = MockLocator("user", record=record)

    asyncio.run(safe_fill(field, "mario"))

    assert [details["value"] for _, _, details in _actions(record, "fill")] == ["", "mario"]
    assert field.value == "mario"


def test_safe_fill_falls_back_to_js_setter() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    field = MockLocator("user", record=record, fail={"fill": 1})

    asyncio.run(safe_fill(field, "mario"))

    assert field.value == "mario"
    assert _actions(record, "evaluate")[0][2]["args"] == ("mario",)


def test_read_options_returns_pairs() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    select = MockLocator("provider", record=record, options=[["", "--"], ["7", "SISAL"]])

    assert asyncio.run(read_options(select)) == [("", "--"), ("7", "SISAL")]


def test_safe_select_falls_back_to_label() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    select = MockLocator("provider", record=record, fail={"select_option": 1})

    asyncio.run(safe_select(select, value="7", label="SISAL"))

    assert select.selected == {"label": "SISAL", "timeout": 10_000}


def test_safe_select_without_target_fails() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    with pytest.raises(TargetNotInteractableError):
        asyncio.run(safe_select(MockLocator("provider", record=record)))


def test_dispatch_events_and_hide() -> None:
    record: List[tuple[str, str, Dict[str, Any]]] = []
    select = MockLocator("provider", record=record)

    asyncio.run(dispatch_events(select, ["input", "change"]))
    assert _actions(record, "evaluate")[0][2]["args"] == (["input", "change"],)

    assert asyncio.run(hide_elements(select)) == 2
    assert asyncio.run(hide_elements(MockLocator("gone", record=record, attached=False))) == 0
