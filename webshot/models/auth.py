"""Authentication configuration — a closed union over the four supported strategies."""

from __future__ import annotations

import os
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from webshot.errors import ConfigurationError


def _resolve_env_password(v: str) -> str:
    if isinstance(v, str) and v.startswith("env:"):
        env_var = v[4:]
        resolved = os.environ.get(env_var)
        if resolved is None:
            raise ConfigurationError(f"Environment variable '{env_var}' not set")
        return resolved
    return v


class BasicAuth(BaseModel):
    type: Literal["basic"] = "basic"
    username: str = ""
    password: str = ""

    @field_validator("password", mode="before")
    @classmethod
    def resolve_env_password(cls, v: str) -> str:
        return _resolve_env_password(v)

    def missing_fields(self) -> list[str]:
        return [name for name in ("username", "password") if not getattr(self, name)]


class FormAuth(BaseModel):
    type: Literal["form"] = "form"
    username: str = ""
    password: str = ""
    username_selector: str = ""
    password_selector: str = ""
    submit_selector: str = ""
    login_url: Optional[str] = None
    wait_for_selector: Optional[str] = None  # explicit post-login marker
    timeout_ms: int = 30000

    @field_validator("password", mode="before")
    @classmethod
    def resolve_env_password(cls, v: str) -> str:
        return _resolve_env_password(v)

    def missing_fields(self) -> list[str]:
        required = (
            "username",
            "password",
            "username_selector",
            "password_selector",
            "submit_selector",
        )
        return [name for name in required if not getattr(self, name)]


class CookieSpec(BaseModel):
    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None


class CookieAuth(BaseModel):
    type: Literal["cookie"] = "cookie"
    cookies: list[CookieSpec] = Field(default_factory=list)

    def missing_fields(self) -> list[str]:
        return [] if self.cookies else ["cookies"]


class HeaderAuth(BaseModel):
    type: Literal["header"] = "header"
    headers: dict[str, str] = Field(default_factory=dict)

    def missing_fields(self) -> list[str]:
        return [] if self.headers else ["headers"]


AuthConfig = Annotated[
    Union[BasicAuth, FormAuth, CookieAuth, HeaderAuth],
    Field(discriminator="type"),
]

_auth_adapter: TypeAdapter = TypeAdapter(AuthConfig)

AUTH_TYPES = ("basic", "form", "cookie", "header")


def coerce_auth_config(value):
    """Validate a flat auth mapping; shape errors become ConfigurationError."""
    if not isinstance(value, dict):
        return value
    try:
        return _auth_adapter.validate_python(value)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid authentication config: {e}") from e


def ensure_complete(config: BasicAuth | FormAuth | CookieAuth | HeaderAuth) -> None:
    """Raise ConfigurationError when the variant's required fields are empty."""
    missing = config.missing_fields()
    if missing:
        raise ConfigurationError(
            f"{config.type} authentication requires: {', '.join(missing)}"
        )


def parse_auth_config(data: dict) -> BasicAuth | FormAuth | CookieAuth | HeaderAuth:
    """Build an auth config from its JSON file shape.

    The file shape nests credentials and form selectors::

        {"type": "form",
         "credentials": {"username": "...", "password": "..."},
         "formSelectors": {"usernameSelector": "...", "passwordSelector": "...",
                           "submitSelector": "...", "loginUrl": "..."},
         "waitForSelector": ".dashboard", "timeout": 30000}
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Authentication config must be a JSON object")

    auth_type = data.get("type")
    if auth_type not in AUTH_TYPES:
        raise ConfigurationError(f"Unsupported authentication type: {auth_type}")

    credentials = data.get("credentials") or {}
    flat: dict = {"type": auth_type}
    match auth_type:
        case "basic":
            flat["username"] = credentials.get("username", "")
            flat["password"] = credentials.get("password", "")
        case "form":
            selectors = data.get("formSelectors") or {}
            flat["username"] = credentials.get("username", "")
            flat["password"] = credentials.get("password", "")
            flat["username_selector"] = selectors.get("usernameSelector", "")
            flat["password_selector"] = selectors.get("passwordSelector", "")
            flat["submit_selector"] = selectors.get("submitSelector", "")
            flat["login_url"] = selectors.get("loginUrl")
            flat["wait_for_selector"] = data.get("waitForSelector")
            if data.get("timeout"):
                flat["timeout_ms"] = data["timeout"]
        case "cookie":
            flat["cookies"] = data.get("cookies") or []
        case "header":
            flat["headers"] = data.get("headers") or {}

    try:
        config = _auth_adapter.validate_python(flat)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {auth_type} authentication config: {e}") from e

    ensure_complete(config)
    return config


def dump_auth_config(config: BasicAuth | FormAuth | CookieAuth | HeaderAuth) -> dict:
    """Inverse of parse_auth_config — the JSON file shape."""
    match config:
        case BasicAuth():
            return {
                "type": "basic",
                "credentials": {"username": config.username, "password": config.password},
            }
        case FormAuth():
            data: dict = {
                "type": "form",
                "credentials": {"username": config.username, "password": config.password},
                "formSelectors": {
                    "usernameSelector": config.username_selector,
                    "passwordSelector": config.password_selector,
                    "submitSelector": config.submit_selector,
                },
                "timeout": config.timeout_ms,
            }
            if config.login_url:
                data["formSelectors"]["loginUrl"] = config.login_url
            if config.wait_for_selector:
                data["waitForSelector"] = config.wait_for_selector
            return data
        case CookieAuth():
            return {
                "type": "cookie",
                "cookies": [c.model_dump(exclude_none=True) for c in config.cookies],
            }
        case HeaderAuth():
            return {"type": "header", "headers": dict(config.headers)}
    raise ConfigurationError(f"Unsupported authentication config: {config!r}")
