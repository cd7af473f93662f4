"""FastAPI application exposing capture, streaming capture and record info.

``POST /capture`` starts a fresh browser for every request. The
``/capture/stream`` WebSocket keeps one browser for the whole connection:
each JSON request message gets exactly one JSON response message.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from webshot.errors import WebshotError
from webshot.models.config import WebshotDefaults
from webshot.models.record import CaptureInfo
from webshot.orchestrator import ScreenshotCapture
from webshot.records.info import collect_info
from webshot.service.requests import CaptureRequest, CaptureResponse, run_capture

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"
APP_TITLE = "webshot"


class InfoResponse(BaseModel):
    success: bool
    message: str
    info: Optional[CaptureInfo] = None


async def _start_capture(output_dir: str) -> ScreenshotCapture:
    capture = ScreenshotCapture(output_dir)
    await capture.init()
    return capture


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=APP_TITLE,
        description="Web page screenshots with perceptual diff and evidence records.",
        version=APP_VERSION,
    )

    @app.get("/health", tags=["System"])
    async def health_check():
        return {"status": "healthy", "version": APP_VERSION}

    @app.post("/capture", response_model=CaptureResponse, tags=["Capture"])
    async def capture_screenshot(request: CaptureRequest) -> CaptureResponse:
        output_dir = request.output_dir or WebshotDefaults.from_env().output_dir
        try:
            capture = await _start_capture(output_dir)
        except Exception as e:
            logger.error("Browser startup failed: %s", e)
            return CaptureResponse.failure(f"Browser startup failed: {e}")
        try:
            return await run_capture(capture, request)
        finally:
            await capture.close()

    @app.websocket("/capture/stream")
    async def capture_stream(websocket: WebSocket):
        await websocket.accept()
        capture: Optional[ScreenshotCapture] = None
        handled = 0
        try:
            while True:
                message = await websocket.receive_text()
                try:
                    request = CaptureRequest.model_validate(json.loads(message))
                except (json.JSONDecodeError, ValidationError) as e:
                    await websocket.send_json(
                        CaptureResponse.failure(f"Invalid request: {e}").model_dump()
                    )
                    continue

                if capture is None:
                    output_dir = request.output_dir or WebshotDefaults.from_env().output_dir
                    try:
                        capture = await _start_capture(output_dir)
                    except Exception as e:
                        logger.error("Browser startup failed: %s", e)
                        await websocket.send_json(
                            CaptureResponse.failure(f"Browser startup failed: {e}").model_dump()
                        )
                        continue

                response = await run_capture(capture, request)
                handled += 1
                await websocket.send_json(response.model_dump())
        except WebSocketDisconnect:
            logger.info("Capture stream closed after %d request(s)", handled)
        finally:
            if capture is not None:
                await capture.close()

    @app.get("/info", response_model=InfoResponse, tags=["Records"])
    async def capture_info(
        directory: Optional[str] = None,
        identifier_prefix: Optional[str] = None,
    ) -> InfoResponse:
        directory = directory or WebshotDefaults.from_env().output_dir
        try:
            info = collect_info(directory, identifier_prefix)
        except (WebshotError, ValidationError) as e:
            return InfoResponse(success=False, message=str(e))
        return InfoResponse(
            success=True,
            message=f"Found {info.summary.total_files} record file(s)",
            info=info,
        )

    return app


def run_server(host: str = "127.0.0.1", port: int = 8000) -> None:
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port, log_level="info")
