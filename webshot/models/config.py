"""Capture configuration models and environment-derived defaults."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from webshot.errors import ConfigurationError
from webshot.models.auth import (
    AuthConfig,
    BasicAuth,
    CookieAuth,
    FormAuth,
    HeaderAuth,
    coerce_auth_config,
    parse_auth_config,
)

DEFAULT_OUTPUT_DIR = "./screenshots"


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720


class ReadinessConfig(BaseModel):
    """Per-phase budgets for the render-readiness wait (milliseconds)."""

    dom_content_loaded_ms: int = 10000
    network_idle_ms: int = 15000
    framework_idle_ms: int = 5000
    idle_callback_ms: int = 3000
    dom_quiet_window_ms: int = 500
    dom_quiet_timeout_ms: int = 10000
    settle_ms: int = 1000


class CaptureOptions(BaseModel):
    url: str
    output_dir: Optional[str] = None
    prefix: Optional[str] = None  # replaces the URL hash as identifier
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    full_page: bool = True
    diff_threshold: float = 1.0  # percent of changed pixels
    timeout_ms: int = 30000
    auth: Optional[AuthConfig] = None
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)

    @field_validator("auth", mode="before")
    @classmethod
    def validate_auth(cls, v):
        return coerce_auth_config(v)


class WebshotDefaults(BaseModel):
    """Defaults read from WEBSHOT_* environment variables."""

    output_dir: str = DEFAULT_OUTPUT_DIR
    prefix: Optional[str] = None

    @classmethod
    def from_env(cls) -> "WebshotDefaults":
        return cls(
            output_dir=os.environ.get("WEBSHOT_OUTPUT_DIR") or DEFAULT_OUTPUT_DIR,
            prefix=os.environ.get("WEBSHOT_PREFIX") or None,
        )


def auth_from_env(kind: str = "basic") -> BasicAuth | HeaderAuth | None:
    """Build an auth config from the environment, or None when unset."""
    if kind == "basic":
        username = os.environ.get("WEBSHOT_USERNAME")
        password = os.environ.get("WEBSHOT_PASSWORD")
        if username and password:
            return BasicAuth(username=username, password=password)
    elif kind == "header":
        header = os.environ.get("WEBSHOT_AUTH_HEADER")
        value = os.environ.get("WEBSHOT_AUTH_VALUE")
        if header and value:
            return HeaderAuth(headers={header: value})
    else:
        raise ConfigurationError(f"Unsupported environment auth kind: {kind}")
    return None


def load_auth_config(path: str | Path) -> BasicAuth | FormAuth | CookieAuth | HeaderAuth:
    """Load an authentication config from a JSON file."""
    path = Path(path)
    if path.suffix.lower() != ".json":
        raise ConfigurationError(
            f"Unsupported config file format '{path.suffix}'. Use .json"
        )
    if not path.exists():
        raise ConfigurationError(f"Auth config file not found: {path}")
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Failed to parse auth config {path}: {e}") from e
    return parse_auth_config(data)
