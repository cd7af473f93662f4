"""Authentication state machine — basic, form, cookie and header strategies.

Only form login needs interaction. After the submit click, success is
decided by trying detection strategies in order:

1. url_change     — location changes (polling)
2. wait_selector  — the configured post-login selector appears and no
                    password input is left (only when configured)
3. form_gone      — no password/credential input remains
4. title_change   — document title differs from the pre-submit title

A visible error/alert element after that fails the login outright. When no
strategy fired and no error is visible, the login is assumed to have worked
(low confidence) so the capture can proceed.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from webshot.errors import AuthenticationError, ConfigurationError, NavigationError
from webshot.models.auth import BasicAuth, CookieAuth, FormAuth, HeaderAuth, ensure_complete

logger = logging.getLogger(__name__)

PASSWORD_INPUT_SELECTOR = 'input[type="password"]'

ERROR_ELEMENT_SELECTOR = (
    '.error, .error-message, .alert-danger, .alert-error, [role="alert"]'
)

_FORM_GONE_JS = """() => !document.querySelector(
    'input[type="password"], input[name*="password" i], input[name*="passwd" i], '
    + 'input[autocomplete="current-password"]'
)"""

_TITLE_CHANGED_JS = "(before) => document.title !== before"


class AuthState(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass
class AuthTimings:
    """Budgets for the form login success detection (milliseconds)."""

    url_change_ms: int = 10000
    poll_interval_ms: int = 100
    url_settle_ms: int = 1000
    wait_selector_ms: int = 5000
    form_gone_ms: int = 3000
    title_change_ms: int = 3000
    fallback_delay_ms: int = 3000
    network_idle_ms: int = 10000


@dataclass
class AuthResult:
    """Result of a successful authentication."""

    auth_type: str
    strategy: str
    post_login_url: Optional[str] = None
    confident: bool = True


def location_changed(before: str, current: str) -> bool:
    """True when the location differs or a fragment appeared where there was none."""
    if current != before:
        return True
    return bool(urlparse(current).fragment) and not urlparse(before).fragment


class Authenticator:
    """Runs one AuthConfig against a page, tracking the state transitions."""

    def __init__(self, page: Page, timings: Optional[AuthTimings] = None):
        self.page = page
        self.timings = timings or AuthTimings()
        self.state = AuthState.IDLE

    async def authenticate(
        self,
        config: BasicAuth | FormAuth | CookieAuth | HeaderAuth,
        target_url: Optional[str] = None,
    ) -> AuthResult:
        if not isinstance(config, (BasicAuth, FormAuth, CookieAuth, HeaderAuth)):
            self.state = AuthState.FAILED
            raise ConfigurationError(
                f"Unsupported authentication type: {getattr(config, 'type', type(config).__name__)}"
            )
        try:
            ensure_complete(config)
        except ConfigurationError:
            self.state = AuthState.FAILED
            raise

        self.state = AuthState.AUTHENTICATING
        logger.info("Authenticating (%s)", config.type)
        try:
            match config:
                case BasicAuth():
                    result = await self._basic(config)
                case FormAuth():
                    result = await self._form(config)
                case CookieAuth():
                    result = await self._cookie(config, target_url)
                case HeaderAuth():
                    result = await self._header(config)
        except Exception:
            self.state = AuthState.FAILED
            raise

        self.state = AuthState.AUTHENTICATED
        logger.info("Authenticated (%s via %s)", result.auth_type, result.strategy)
        return result

    # ------------------------------------------------------------------
    # Stateless strategies
    # ------------------------------------------------------------------

    async def _basic(self, config: BasicAuth) -> AuthResult:
        token = base64.b64encode(f"{config.username}:{config.password}".encode()).decode()
        await self.page.set_extra_http_headers({"Authorization": f"Basic {token}"})
        return AuthResult("basic", "header")

    async def _header(self, config: HeaderAuth) -> AuthResult:
        await self.page.set_extra_http_headers(dict(config.headers))
        return AuthResult("header", "header")

    async def _cookie(self, config: CookieAuth, target_url: Optional[str]) -> AuthResult:
        # The page is usually still about:blank here, so fall back to the target host.
        host = urlparse(self.page.url).hostname
        if not host and target_url:
            host = urlparse(target_url).hostname

        cookies = []
        for cookie in config.cookies:
            domain = cookie.domain or host
            if not domain:
                raise ConfigurationError(
                    f"Cookie '{cookie.name}' has no domain and none can be derived"
                )
            cookies.append({
                "name": cookie.name,
                "value": cookie.value,
                "domain": domain,
                "path": cookie.path or "/",
            })
        await self.page.context.add_cookies(cookies)
        logger.debug("Injected %d cookies", len(cookies))
        return AuthResult("cookie", "cookies")

    # ------------------------------------------------------------------
    # Form login
    # ------------------------------------------------------------------

    async def _form(self, config: FormAuth) -> AuthResult:
        timeout = config.timeout_ms
        if config.login_url:
            logger.info("Form auth: opening login page %s", config.login_url)
            try:
                await self.page.goto(config.login_url, wait_until="networkidle", timeout=timeout)
            except PlaywrightError as e:
                raise NavigationError(f"Could not open login page {config.login_url}: {e}") from e

        try:
            await self.page.wait_for_selector(config.username_selector, timeout=timeout)
            await self.page.fill(config.username_selector, config.username)
            await self.page.wait_for_selector(config.password_selector, timeout=timeout)
            await self.page.fill(config.password_selector, config.password)

            before_url = self.page.url
            before_title = await self.page.title()
            logger.debug("Form auth: submitting via %s", config.submit_selector)
            await self.page.click(config.submit_selector, timeout=timeout)
        except PlaywrightError as e:
            raise AuthenticationError(f"Login form interaction failed: {e}") from e

        strategy = await self._detect_login_success(config, before_url, before_title)
        await self._raise_on_error_element()

        confident = strategy is not None
        if strategy is None:
            logger.warning(
                "Form auth: no success signal detected, assuming login worked after %dms (low confidence)",
                self.timings.fallback_delay_ms,
            )
            await self.page.wait_for_timeout(self.timings.fallback_delay_ms)
            strategy = "fallback"

        try:
            await self.page.wait_for_load_state("networkidle", timeout=self.timings.network_idle_ms)
        except PlaywrightTimeoutError:
            logger.debug("Form auth: network did not go idle after login")

        return AuthResult("form", strategy, post_login_url=self.page.url, confident=confident)

    async def _detect_login_success(
        self, config: FormAuth, before_url: str, before_title: str,
    ) -> Optional[str]:
        strategies = [("url_change", lambda: self._url_changed(before_url))]
        if config.wait_for_selector:
            strategies.append(
                ("wait_selector", lambda: self._wait_selector(config.wait_for_selector))
            )
        strategies.append(("form_gone", self._form_gone))
        strategies.append(("title_change", lambda: self._title_changed(before_title)))

        for name, check in strategies:
            if await check():
                logger.info("Form auth: login detected via %s", name)
                return name
            logger.debug("Form auth: %s gave no signal", name)
        return None

    async def _url_changed(self, before_url: str) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timings.url_change_ms / 1000
        while True:
            if location_changed(before_url, self.page.url):
                logger.debug("Form auth: location changed to %s", self.page.url)
                await self.page.wait_for_timeout(self.timings.url_settle_ms)
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.timings.poll_interval_ms / 1000)

    async def _wait_selector(self, selector: str) -> bool:
        try:
            await self.page.wait_for_selector(selector, timeout=self.timings.wait_selector_ms)
        except PlaywrightError as e:
            logger.debug("Form auth: wait selector %s not found: %s", selector, e)
            return False
        # The marker may exist on the login page too; a password box means we are still there.
        return await self.page.query_selector(PASSWORD_INPUT_SELECTOR) is None

    async def _form_gone(self) -> bool:
        try:
            await self.page.wait_for_function(_FORM_GONE_JS, timeout=self.timings.form_gone_ms)
        except PlaywrightError:
            return False
        return True

    async def _title_changed(self, before_title: str) -> bool:
        try:
            await self.page.wait_for_function(
                _TITLE_CHANGED_JS, arg=before_title, timeout=self.timings.title_change_ms,
            )
        except PlaywrightError:
            return False
        return True

    async def _raise_on_error_element(self) -> None:
        try:
            elements = await self.page.query_selector_all(ERROR_ELEMENT_SELECTOR)
        except PlaywrightError as e:
            logger.debug("Form auth: error element lookup failed: %s", e)
            return

        for element in elements:
            try:
                if not await element.is_visible():
                    continue
                text = (await element.inner_text()).strip()
            except PlaywrightError:
                continue
            message = "Login failed: error message shown after submit"
            if text:
                message += f": {text[:200]}"
            raise AuthenticationError(message)
