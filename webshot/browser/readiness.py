"""Render-readiness — a best-effort wait before rasterizing a page.

Each phase is time-boxed on its own and reports a PhaseOutcome. A phase
that times out or errors is logged and the next phase runs; the detector
as a whole never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from webshot.models.config import ReadinessConfig

logger = logging.getLogger(__name__)

PhaseStatus = Literal["ok", "timeout", "skipped", "error"]

# Resolves true when React devtools is absent or not profiling.
_FRAMEWORK_IDLE_JS = """() => {
    const hook = window.__REACT_DEVTOOLS_GLOBAL_HOOK__;
    if (!hook) return true;
    return !hook.isProfiling;
}"""

_HAS_FRAMEWORK_HOOK_JS = "() => !!window.__REACT_DEVTOOLS_GLOBAL_HOOK__"

_IDLE_CALLBACK_JS = """(timeoutMs) => new Promise(resolve => {
    if (typeof window.requestIdleCallback === 'function') {
        window.requestIdleCallback(() => resolve('idle'), { timeout: timeoutMs });
    } else {
        setTimeout(() => resolve('timer'), 100);
    }
})"""

_DOM_QUIET_JS = """({ quietMs, timeoutMs }) => new Promise(resolve => {
    const root = document.documentElement || document;
    let mutations = 0;
    let quietTimer = null;
    const started = Date.now();
    const finish = (quiet) => {
        observer.disconnect();
        clearTimeout(quietTimer);
        clearTimeout(hardTimer);
        resolve({ quiet, mutations, elapsed: Date.now() - started });
    };
    const observer = new MutationObserver(records => {
        mutations += records.length;
        clearTimeout(quietTimer);
        quietTimer = setTimeout(() => finish(true), quietMs);
    });
    observer.observe(root, { childList: true, subtree: true, attributes: true, characterData: true });
    quietTimer = setTimeout(() => finish(true), quietMs);
    const hardTimer = setTimeout(() => finish(false), timeoutMs);
})"""


@dataclass
class PhaseOutcome:
    name: str
    status: PhaseStatus
    elapsed_ms: int
    detail: str = ""


async def _run_phase(name: str, phase: Callable[[], Awaitable[str | None]]) -> PhaseOutcome:
    """Run one phase; map its result or failure onto a PhaseOutcome.

    A phase returns None for success, or a status string ("timeout" /
    "skipped") when it ended without reaching its goal.
    """
    start = time.monotonic()
    status: PhaseStatus = "ok"
    detail = ""
    try:
        result = await phase()
        if result in ("timeout", "skipped"):
            status = result
    except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
        status = "timeout"
        detail = str(e).splitlines()[0] if str(e) else ""
    except PlaywrightError as e:
        status = "error"
        detail = str(e).splitlines()[0] if str(e) else ""

    outcome = PhaseOutcome(name, status, int((time.monotonic() - start) * 1000), detail)
    if status in ("ok", "skipped"):
        logger.debug("Readiness phase %s: %s (%dms)", name, status, outcome.elapsed_ms)
    else:
        logger.info("Readiness phase %s: %s after %dms (%s), continuing",
                    name, status, outcome.elapsed_ms, detail or "no detail")
    return outcome


async def wait_for_render_ready(page: Page, config: ReadinessConfig | None = None) -> list[PhaseOutcome]:
    """Wait until the page has probably finished rendering."""
    config = config or ReadinessConfig()

    async def dom_content_loaded() -> str | None:
        if config.dom_content_loaded_ms <= 0:
            return "skipped"
        await page.wait_for_load_state("domcontentloaded", timeout=config.dom_content_loaded_ms)

    async def network_idle() -> str | None:
        if config.network_idle_ms <= 0:
            return "skipped"
        await page.wait_for_load_state("networkidle", timeout=config.network_idle_ms)

    async def framework_idle() -> str | None:
        has_hook = await asyncio.wait_for(
            page.evaluate(_HAS_FRAMEWORK_HOOK_JS), timeout=config.framework_idle_ms / 1000,
        )
        if has_hook:
            await page.wait_for_function(_FRAMEWORK_IDLE_JS, timeout=config.framework_idle_ms)
        await asyncio.wait_for(
            page.evaluate(_IDLE_CALLBACK_JS, config.idle_callback_ms),
            timeout=config.idle_callback_ms / 1000 + 0.5,
        )
        return None

    async def dom_quiet() -> str | None:
        result = await asyncio.wait_for(
            page.evaluate(
                _DOM_QUIET_JS,
                {"quietMs": config.dom_quiet_window_ms, "timeoutMs": config.dom_quiet_timeout_ms},
            ),
            timeout=config.dom_quiet_timeout_ms / 1000 + 1,
        )
        if isinstance(result, dict) and not result.get("quiet", False):
            return "timeout"
        return None

    async def settle() -> str | None:
        if config.settle_ms <= 0:
            return "skipped"
        await page.wait_for_timeout(config.settle_ms)

    outcomes = [
        await _run_phase("dom_content_loaded", dom_content_loaded),
        await _run_phase("network_idle", network_idle),
        await _run_phase("framework_idle", framework_idle),
        await _run_phase("dom_quiet", dom_quiet),
        await _run_phase("settle", settle),
    ]
    return outcomes
