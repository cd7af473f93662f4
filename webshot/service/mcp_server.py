"""MCP tool server: capture_screenshot, extract_images, get_capture_info."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from webshot.errors import WebshotError
from webshot.models.config import WebshotDefaults
from webshot.orchestrator import ScreenshotCapture
from webshot.records.extract import extract_all, extract_image
from webshot.records.info import collect_info
from webshot.service.requests import CaptureRequest, CaptureResponse, RequestOptions, run_capture

logger = logging.getLogger(__name__)

mcp = FastMCP("webshot")


@mcp.tool()
async def capture_screenshot(
    url: str,
    output_dir: Optional[str] = None,
    prefix: Optional[str] = None,
    auth: Optional[dict[str, Any]] = None,
    viewport_width: int = 1920,
    viewport_height: int = 1080,
    full_page: bool = True,
    timeout: int = 30000,
    diff_threshold: float = 0.1,
) -> dict:
    """Capture a screenshot of a web page with optional authentication and diff detection.

    ``auth`` uses the auth config file shape: ``type`` plus ``credentials``,
    ``formSelectors``, ``cookies`` or ``headers``.
    """
    request = CaptureRequest(
        url=url,
        output_dir=output_dir,
        prefix=prefix,
        auth=auth,
        options=RequestOptions(
            viewport_width=viewport_width,
            viewport_height=viewport_height,
            full_page=full_page,
            timeout=timeout,
            diff_threshold=diff_threshold,
        ),
    )
    capture = ScreenshotCapture(output_dir or WebshotDefaults.from_env().output_dir)
    try:
        await capture.init()
    except Exception as e:
        logger.error("Browser startup failed: %s", e)
        return CaptureResponse.failure(f"Browser startup failed: {e}").model_dump()
    try:
        response = await run_capture(capture, request)
    finally:
        await capture.close()
    return response.model_dump()


@mcp.tool()
def extract_images(input_path: str, output_dir: Optional[str] = None) -> dict:
    """Extract PNG images from a capture record, or from every record in a directory."""
    try:
        source = Path(input_path)
        if source.is_dir():
            files = extract_all(source, output_dir)
        else:
            target = Path(output_dir) / f"{source.stem}.png" if output_dir else None
            files = extract_image(source, target)
    except WebshotError as e:
        return {"success": False, "message": str(e), "extracted_files": []}
    return {
        "success": True,
        "message": f"Successfully extracted {len(files)} image(s)",
        "extracted_files": files,
    }


@mcp.tool()
def get_capture_info(directory: Optional[str] = None, identifier_prefix: Optional[str] = None) -> dict:
    """List capture records with totals for logs, evidence and unique identifiers."""
    directory = directory or WebshotDefaults.from_env().output_dir
    try:
        info = collect_info(directory, identifier_prefix)
    except (WebshotError, ValidationError) as e:
        return {"success": False, "message": str(e)}
    return {
        "success": True,
        "message": f"Found {info.summary.total_files} record file(s)",
        **info.model_dump(),
    }


def run_mcp_server() -> None:
    logger.info("Starting webshot MCP server (stdio)")
    mcp.run()
