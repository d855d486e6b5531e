"""Bounded, best-effort settle helpers run after every performed action."""

from __future__ import annotations

import logging

from playwright.async_api import Page

log = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT = 2_000

# Milliseconds without DOM mutations that count as idle.
DOM_IDLE_THRESHOLD_MS = 300

_DOM_IDLE_SCRIPT = """
    ([timeoutMs, thresholdMs]) => new Promise(resolve => {
        let last = Date.now();
        const ob = new MutationObserver(() => (last = Date.now()));
        ob.observe(document, {subtree: true, childList: true, attributes: true});
        const start = Date.now();
        (function check() {
            if (Date.now() - last > thresholdMs) {
                ob.disconnect();
                resolve(true);
                return;
            }
            if (Date.now() - start > timeoutMs) {
                ob.disconnect();
                resolve(false);
                return;
            }
            setTimeout(check, 50);
        })();
    })
"""


async def wait_dom_idle(page: Page, timeout_ms: int = DEFAULT_SETTLE_TIMEOUT) -> bool:
    """Wait until DOM mutations have been idle for a short threshold.

    Returns ``False`` when the page kept mutating (or navigated away) until
    ``timeout_ms`` ran out.
    """

    try:
        return bool(await page.evaluate(_DOM_IDLE_SCRIPT, [timeout_ms, DOM_IDLE_THRESHOLD_MS]))
    except Exception as exc:
        log.debug("DOM idle wait interrupted: %s", exc)
        await page.wait_for_timeout(100)
        return False


async def stabilize_page(page: Page, timeout: int = DEFAULT_SETTLE_TIMEOUT) -> None:
    """Give the page a bounded chance to finish network and DOM work."""

    try:
        await page.wait_for_load_state("networkidle", timeout=timeout)
    except Exception as exc:
        log.debug("Network did not go idle within %sms: %s", timeout, exc)
    await wait_dom_idle(page, timeout_ms=timeout)
