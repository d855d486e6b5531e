"""Shared interaction helpers for robust element manipulation.

Every helper reports problems through the engine's typed errors:
``TargetNotFoundError`` when the element never attaches and
``TargetNotInteractableError`` when it exists but cannot be used.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError, Locator, TimeoutError as PlaywrightTimeoutError

from workflow.errors import TargetNotFoundError, TargetNotInteractableError

log = logging.getLogger(__name__)

DEFAULT_ACTION_TIMEOUT = 10_000

_JS_SET_VALUE = """
    (el, value) => {
        const proto = Object.getPrototypeOf(el);
        const descriptor = proto && Object.getOwnPropertyDescriptor(proto, 'value');
        if (descriptor && descriptor.set) {
            descriptor.set.call(el, value);
        } else {
            el.value = value;
        }
        el.dispatchEvent(new Event('input', { bubbles: true }));
        el.dispatchEvent(new Event('change', { bubbles: true }));
    }
"""

_JS_DISPATCH = """
    (el, events) => {
        for (const name of events) {
            el.dispatchEvent(new Event(name, { bubbles: true }));
        }
    }
"""

_JS_OPTIONS = """
    el => Array.from(el.options || []).map(o => [o.value || '', (o.textContent || '').trim()])
"""

_JS_HIDE = """
    els => {
        els.forEach(el => el.style.setProperty('display', 'none', 'important'));
        return els.length;
    }
"""


async def prepare_locator(locator: Locator, timeout: Optional[int] = None) -> Locator:
    """Ensure the locator points to an attached, visible and enabled element."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = locator.first
    try:
        await target.wait_for(state="attached", timeout=timeout)
    except PlaywrightTimeoutError as exc:
        raise TargetNotFoundError(f"element did not appear within {timeout}ms") from exc
    try:
        await target.scroll_into_view_if_needed(timeout=timeout)
        await target.wait_for(state="visible", timeout=timeout)
    except PlaywrightTimeoutError as exc:
        raise TargetNotInteractableError("element is present but not visible") from exc
    if not await target.is_enabled():
        raise TargetNotInteractableError("element is not enabled for interaction")
    return target


async def safe_click(locator: Locator, *, timeout: Optional[int] = None) -> None:
    """Click an element: normal click, then forced click, then a DOM click."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(locator, timeout)

    try:
        await target.click(timeout=timeout)
        return
    except PlaywrightError as exc:
        log.warning("Click retry with force due to: %s", exc)
        first_error = exc

    try:
        await target.click(timeout=timeout, force=True)
        return
    except PlaywrightError as force_error:
        try:
            await target.evaluate("el => el.click()")
        except PlaywrightError as js_error:
            raise TargetNotInteractableError(
                f"Click failed - Original: {first_error}, Force: {force_error}, JS: {js_error}"
            ) from js_error


async def safe_fill(locator: Locator, value: str, *, timeout: Optional[int] = None) -> None:
    """Fill a text field, verify the value, and fall back to typing or a JS setter."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(locator, timeout)

    try:
        await target.click(timeout=timeout)
        await target.fill("", timeout=timeout)
        await target.fill(value, timeout=timeout)
        if await target.input_value() != value:
            await target.press("Control+a")
            await target.type(value, delay=50)
        return
    except PlaywrightError as exc:
        log.warning("Fill retry with JS setter due to: %s", exc)
        first_error = exc

    try:
        await target.evaluate(_JS_SET_VALUE, value)
    except PlaywrightError as js_error:
        raise TargetNotInteractableError(f"Fill failed - Original: {first_error}, JS: {js_error}") from js_error


async def read_options(locator: Locator, *, timeout: Optional[int] = None) -> List[Tuple[str, str]]:
    """Return ``(value, label)`` pairs of a ``<select>`` in document order."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(locator, timeout)
    rows = await target.evaluate(_JS_OPTIONS)
    return [(str(value), str(label)) for value, label in rows or []]


async def safe_select(
    locator: Locator,
    *,
    value: Optional[str] = None,
    label: Optional[str] = None,
    timeout: Optional[int] = None,
) -> None:
    """Select an option by value, falling back to its label."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(locator, timeout)

    errors: List[str] = []
    if value:
        try:
            await target.select_option(value=value, timeout=timeout)
            return
        except PlaywrightError as exc:
            log.warning("Select retry by label due to: %s", exc)
            errors.append(f"Value: {exc}")
    if label:
        try:
            await target.select_option(label=label, timeout=timeout)
            log.info("Select fallback successful: label-based selection for '%s'", label)
            return
        except PlaywrightError as exc:
            errors.append(f"Label: {exc}")
    raise TargetNotInteractableError("Select failed - " + ", ".join(errors or ["no value or label given"]))


async def dispatch_events(locator: Locator, events: Sequence[str], *, timeout: Optional[int] = None) -> None:
    """Fire synthetic DOM events on the element (e.g. to wake up a JSF listener)."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = locator.first
    try:
        await target.wait_for(state="attached", timeout=timeout)
    except PlaywrightTimeoutError as exc:
        raise TargetNotFoundError(f"element did not appear within {timeout}ms") from exc
    await target.evaluate(_JS_DISPATCH, list(events))


async def hide_elements(locator: Locator) -> int:
    """Force ``display:none`` on every match. Returns how many were hidden."""

    return int(await locator.evaluate_all(_JS_HIDE) or 0)
