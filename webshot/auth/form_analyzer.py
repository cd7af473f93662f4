"""Login form analysis — proposes a form auth config for a login page.

The result is only a candidate: nothing here runs during capture. Forms are
scored with simple heuristics (password field, text/email field, small field
count, submit button, login-ish action). When no ``<form>`` scores high
enough, password inputs outside any form (common in SPAs) are tried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from pydantic import BaseModel, Field

from webshot.auth.authenticator import Authenticator, AuthTimings
from webshot.errors import WebshotError
from webshot.models.auth import FormAuth

logger = logging.getLogger(__name__)

MIN_LOGIN_SCORE = 12

_LOGIN_ACTION_KEYWORDS = ("login", "signin", "sign-in", "sign_in", "auth", "session")
_USERNAME_NAME_KEYWORDS = ("user", "email", "login", "account", "mail")

COMMON_CONTENT_SELECTORS = [
    ".dashboard",
    ".main-content",
    ".content",
    ".app-content",
    '[role="main"]',
    ".MuiContainer-root",
    ".container",
    ".home",
    '[data-testid="dashboard"]',
    '[data-testid="home"]',
]

_FORMS_JS = """() => {
    const selectorFor = (el, fi, tag) => {
        if (el.id) return '#' + CSS.escape(el.id);
        if (el.name) return `${tag}[name="${el.name}"]`;
        const form = el.closest('form');
        const index = form ? Array.from(form.querySelectorAll(tag)).indexOf(el) + 1 : 1;
        return `form:nth-of-type(${fi + 1}) ${tag}:nth-of-type(${index})`;
    };
    return Array.from(document.querySelectorAll('form')).map((form, fi) => {
        const fields = [];
        for (const inp of form.querySelectorAll('input')) {
            const fieldType = (inp.getAttribute('type') || 'text').toLowerCase();
            if (['hidden', 'submit', 'button', 'reset', 'image', 'checkbox', 'radio'].includes(fieldType)) continue;
            fields.push({
                name: inp.name || inp.id || '',
                placeholder: inp.placeholder || '',
                field_type: fieldType,
                selector: selectorFor(inp, fi, 'input'),
            });
        }

        let submitSelector = '';
        const buttons = Array.from(form.querySelectorAll('button, input[type="submit"]'));
        const looksLikeLogin = b => {
            const text = (b.textContent || b.value || '').toLowerCase();
            const cls = (b.className || '').toString().toLowerCase();
            return b.type === 'submit' || /log ?in|sign ?in/.test(text) || /login|submit/.test(cls);
        };
        const submitBtn = buttons.find(looksLikeLogin) || buttons[0];
        if (submitBtn) {
            const tag = submitBtn.tagName.toLowerCase();
            if (submitBtn.id && !submitBtn.id.includes(':')) submitSelector = '#' + CSS.escape(submitBtn.id);
            else if (submitBtn.type === 'submit') submitSelector = `form:nth-of-type(${fi + 1}) ${tag}[type="submit"]`;
            else submitSelector = `form:nth-of-type(${fi + 1}) ${tag}`;
        }

        return {
            action: form.action || '',
            fields: fields,
            submit_selector: submitSelector,
        };
    });
}"""

_ORPHAN_LOGIN_JS = """() => {
    const visible = el => {
        const rect = el.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0;
    };
    const pwInput = Array.from(document.querySelectorAll('input[type="password"]')).find(visible);
    if (!pwInput || pwInput.closest('form')) return null;

    const selectorFor = (el, fallback) => {
        if (el.id) return '#' + CSS.escape(el.id);
        if (el.name) return 'input[name="' + el.name + '"]';
        return fallback;
    };

    const container = pwInput.closest('div, section, main, [role="dialog"], [class*="login"], [class*="auth"]') || document.body;
    const userInput = Array.from(container.querySelectorAll('input[type="text"], input[type="email"], input[type="tel"], input:not([type])'))
        .find(visible);
    if (!userInput) return null;

    const buttons = Array.from(container.querySelectorAll('button, input[type="submit"], [role="button"]')).filter(visible);
    const submitBtn = buttons.find(b => b.type === 'submit') || buttons[0];
    if (!submitBtn) return null;
    let submit = submitBtn.type === 'submit' ? 'button[type="submit"]' : 'button';
    if (submitBtn.id) submit = '#' + CSS.escape(submitBtn.id);

    return {
        username: selectorFor(userInput, 'input[type="' + (userInput.type || 'text') + '"]'),
        password: selectorFor(pwInput, 'input[type="password"]'),
        submit: submit,
    };
}"""

_SUGGEST_WAIT_JS = """(selectors) => selectors.filter(sel => {
    let el;
    try { el = document.querySelector(sel); } catch (e) { return false; }
    if (!el || !(el.textContent || '').trim()) return false;
    return !el.querySelector('input[type="password"]');
})"""


@dataclass
class FormField:
    name: str
    field_type: str
    selector: str
    placeholder: str = ""


@dataclass
class FormCandidate:
    action: str
    fields: list[FormField] = field(default_factory=list)
    submit_selector: str = ""


class FormAnalysis(BaseModel):
    url: str
    has_login_form: bool = False
    username_selector: Optional[str] = None
    password_selector: Optional[str] = None
    submit_selector: Optional[str] = None
    score: int = 0
    suggested_wait_selectors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class LoginCheck(BaseModel):
    success: bool
    strategy: Optional[str] = None
    post_login_url: Optional[str] = None
    suggested_wait_selectors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


def score_login_form(form: FormCandidate) -> int:
    """Score a form on how likely it is to be a login form."""
    score = 0

    has_password = any(f.field_type == "password" for f in form.fields)
    has_text_or_email = any(f.field_type in ("text", "email") for f in form.fields)
    field_count = len(form.fields)

    if has_password:
        score += 10
    if has_text_or_email:
        score += 5
    if 1 <= field_count <= 4:
        score += 3
    if field_count < 6:
        score += 1
    if form.submit_selector:
        score += 2

    action_lower = (form.action or "").lower()
    if any(kw in action_lower for kw in _LOGIN_ACTION_KEYWORDS):
        score += 3

    return score


def find_password_field(form: FormCandidate) -> Optional[str]:
    for f in form.fields:
        if f.field_type == "password" and f.selector:
            return f.selector
    return None


def find_username_field(form: FormCandidate) -> Optional[str]:
    """Email field, then a username-like name or placeholder, then the first text field."""
    text_fields = [
        f for f in form.fields
        if f.field_type in ("text", "email", "tel") and f.selector
    ]
    for f in text_fields:
        if f.field_type == "email":
            return f.selector
    for f in text_fields:
        hint = f"{f.name} {f.placeholder}".lower()
        if any(kw in hint for kw in _USERNAME_NAME_KEYWORDS):
            return f.selector
    if text_fields:
        return text_fields[0].selector
    return None


async def _collect_forms(page: Page) -> list[FormCandidate]:
    raw_forms = await page.evaluate(_FORMS_JS)
    return [
        FormCandidate(
            action=raw.get("action", ""),
            fields=[FormField(**f) for f in raw.get("fields", [])],
            submit_selector=raw.get("submit_selector", ""),
        )
        for raw in raw_forms or []
    ]


async def suggest_wait_selectors(page: Page) -> list[str]:
    """Common content containers present on the page, excluding ones holding a password box."""
    try:
        return list(await page.evaluate(_SUGGEST_WAIT_JS, COMMON_CONTENT_SELECTORS))
    except PlaywrightError as e:
        logger.debug("Wait selector suggestion failed: %s", e)
        return []


async def analyze_login_form(page: Page, url: str, timeout_ms: int = 30000) -> FormAnalysis:
    """Open ``url`` and look for a login form."""
    analysis = FormAnalysis(url=url)
    await page.goto(url, wait_until="networkidle", timeout=timeout_ms)

    try:
        forms = await _collect_forms(page)
    except PlaywrightError as e:
        logger.error("Form analysis failed: %s", e)
        forms = []
    analysis.recommendations.append(f"Found {len(forms)} form(s) on the page")

    best_form: Optional[FormCandidate] = None
    for form in forms:
        score = score_login_form(form)
        if score > analysis.score:
            analysis.score = score
            best_form = form

    if best_form is not None and analysis.score >= MIN_LOGIN_SCORE:
        analysis.username_selector = find_username_field(best_form)
        analysis.password_selector = find_password_field(best_form)
        analysis.submit_selector = best_form.submit_selector or "button[type='submit'], button"
    else:
        logger.debug("No form scored high enough (best=%d), trying fields outside forms", analysis.score)
        try:
            orphan = await page.evaluate(_ORPHAN_LOGIN_JS)
        except PlaywrightError as e:
            logger.debug("Orphan login field detection failed: %s", e)
            orphan = None
        if orphan:
            analysis.username_selector = orphan["username"]
            analysis.password_selector = orphan["password"]
            analysis.submit_selector = orphan["submit"]
            analysis.recommendations.append("Login fields found outside a <form> element")

    analysis.has_login_form = bool(
        analysis.username_selector and analysis.password_selector and analysis.submit_selector
    )
    if not analysis.has_login_form:
        analysis.recommendations.append("No login form detected")
        return analysis

    analysis.recommendations.extend([
        f"Username field: {analysis.username_selector}",
        f"Password field: {analysis.password_selector}",
        f"Submit button: {analysis.submit_selector}",
    ])
    analysis.suggested_wait_selectors = await suggest_wait_selectors(page)
    return analysis


def build_form_auth(analysis: FormAnalysis, username: str, password: str) -> FormAuth:
    """Turn a successful analysis into a FormAuth config.

    ``wait_for_selector`` is left unset so login detection relies on the
    URL, form and title signals.
    """
    if not analysis.has_login_form:
        raise WebshotError(f"No login form detected on {analysis.url}")
    return FormAuth(
        username=username,
        password=password,
        username_selector=analysis.username_selector,
        password_selector=analysis.password_selector,
        submit_selector=analysis.submit_selector,
        login_url=analysis.url,
    )


async def verify_login(page: Page, config: FormAuth, timings: Optional[AuthTimings] = None) -> LoginCheck:
    """Try the candidate config and report what the post-login page looks like."""
    authenticator = Authenticator(page, timings)
    try:
        result = await authenticator.authenticate(config)
    except WebshotError as e:
        return LoginCheck(success=False, recommendations=[f"Login failed: {e}"])

    check = LoginCheck(
        success=True,
        strategy=result.strategy,
        post_login_url=result.post_login_url,
    )
    if result.strategy == "url_change":
        check.recommendations.append(f"URL changed to {result.post_login_url}")
    elif not result.confident:
        check.recommendations.append("Login could not be confirmed; consider setting waitForSelector")

    check.suggested_wait_selectors = await suggest_wait_selectors(page)
    for selector in check.suggested_wait_selectors:
        check.recommendations.append(f"Suggested wait selector: {selector}")
    return check
