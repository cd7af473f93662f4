"""Request/response models shared by the HTTP service and the MCP server."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from webshot.models.auth import parse_auth_config
from webshot.models.config import CaptureOptions, ViewportConfig, WebshotDefaults
from webshot.orchestrator import ScreenshotCapture

logger = logging.getLogger(__name__)


class RequestOptions(BaseModel):
    viewport_width: int = 1920
    viewport_height: int = 1080
    full_page: bool = True
    timeout: int = 30000  # navigation, ms
    diff_threshold: float = 0.1  # percent


class CaptureRequest(BaseModel):
    url: str
    output_dir: Optional[str] = None
    prefix: Optional[str] = None
    # Same shape as an auth config file: type, credentials, formSelectors, cookies, headers
    auth: Optional[dict[str, Any]] = None
    options: RequestOptions = Field(default_factory=RequestOptions)


class DiffResultPayload(BaseModel):
    has_diff: bool = False
    diff_pixels: int = 0
    diff_percentage: float = 0.0


class CaptureResponse(BaseModel):
    success: bool
    message: str
    screenshot_path: str = ""
    evidence_path: str = ""
    diff_result: DiffResultPayload = Field(default_factory=DiffResultPayload)

    @classmethod
    def failure(cls, message: str) -> "CaptureResponse":
        return cls(success=False, message=message)


def to_capture_options(request: CaptureRequest, defaults: Optional[WebshotDefaults] = None) -> CaptureOptions:
    """Translate a wire request, filling gaps from the WEBSHOT_* environment."""
    defaults = defaults or WebshotDefaults.from_env()
    auth = None
    if request.auth:
        auth_type = str(request.auth.get("type") or "none").lower()
        if auth_type != "none":
            auth = parse_auth_config({**request.auth, "type": auth_type})
    return CaptureOptions(
        url=request.url,
        output_dir=request.output_dir or defaults.output_dir,
        prefix=request.prefix or defaults.prefix,
        viewport=ViewportConfig(
            width=request.options.viewport_width,
            height=request.options.viewport_height,
        ),
        full_page=request.options.full_page,
        diff_threshold=request.options.diff_threshold,
        timeout_ms=request.options.timeout,
        auth=auth,
    )


async def run_capture(capture: ScreenshotCapture, request: CaptureRequest) -> CaptureResponse:
    """Run one capture on an initialized ScreenshotCapture; failures become success=False."""
    try:
        options = to_capture_options(request)
        result = await capture.capture(options)
    except Exception as e:
        logger.error("Capture of %s failed: %s", request.url, e)
        return CaptureResponse.failure(str(e))

    return CaptureResponse(
        success=True,
        message="Screenshot captured successfully",
        screenshot_path=result.logs_path,
        evidence_path=result.evidence_path or "",
        diff_result=DiffResultPayload(
            has_diff=result.diff.has_diff,
            diff_pixels=result.diff.diff_pixels,
            diff_percentage=result.diff.diff_percentage,
        ),
    )
