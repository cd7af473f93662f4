"""Browser session — one Playwright Chromium instance owned by its creator."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from webshot.errors import BrowserNotInitializedError

logger = logging.getLogger(__name__)

_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
]


class BrowserSession:
    """Starts and stops Playwright + Chromium and hands out isolated contexts."""

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None

    @property
    def is_active(self) -> bool:
        return self.browser is not None

    async def start(self) -> Browser:
        if self.browser is not None:
            return self.browser
        self._playwright = await async_playwright().start()
        try:
            self.browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=_LAUNCH_ARGS,
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        logger.debug("Launched Chromium (headless=%s)", self.headless)
        return self.browser

    async def new_context(
        self,
        viewport: dict,
        user_agent: Optional[str] = None,
    ) -> BrowserContext:
        """Create a fresh context; cookies and headers never leak between captures."""
        if self.browser is None:
            raise BrowserNotInitializedError("Browser session is not started. Call start() first.")
        context_kwargs: dict = {"viewport": viewport}
        if user_agent:
            context_kwargs["user_agent"] = user_agent
        return await self.browser.new_context(**context_kwargs)

    async def close(self) -> None:
        try:
            if self.browser is not None:
                await self.browser.close()
                logger.debug("Closed Chromium")
        finally:
            self.browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
