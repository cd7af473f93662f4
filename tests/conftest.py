"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
import io
from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from webshot.auth.authenticator import AuthTimings
from webshot.models.config import ViewportConfig
from webshot.models.record import CaptureRecord, CaptureResult, DiffOutcome, RecordMetadata
from webshot.records.store import RecordStore, record_filename


# ============================================================================
# Image Fixtures
# ============================================================================


def _make_png(
    width: int = 20,
    height: int = 10,
    color: tuple = (255, 255, 255, 255),
    pixels: Optional[dict] = None,
) -> bytes:
    img = Image.new("RGBA", (width, height), color)
    for (x, y), value in (pixels or {}).items():
        img.putpixel((x, y), value)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    """Factory for small PNGs: solid color with optional per-pixel overrides."""
    return _make_png


@pytest.fixture
def white_png() -> bytes:
    return _make_png()


@pytest.fixture
def changed_png() -> bytes:
    """Same size as white_png with the left half black (50% different)."""
    return _make_png(pixels={(x, y): (0, 0, 0, 255) for x in range(10) for y in range(10)})


# ============================================================================
# Record Fixtures
# ============================================================================


@pytest.fixture
def store(tmp_path) -> RecordStore:
    return RecordStore(tmp_path)


@pytest.fixture
def make_record() -> Callable[..., CaptureRecord]:
    def _make(
        identifier: str = "site",
        sequence: int = 1,
        kind: str = "logs",
        image: bytes = b"",
        url: str = "https://example.com",
        diff_percentage: Optional[float] = 100.0,
        diff_image: Optional[bytes] = None,
    ) -> CaptureRecord:
        image = image or _make_png()
        return CaptureRecord(
            metadata=RecordMetadata(
                url=url,
                timestamp="2026-01-01T00:00:00.000Z",
                sequence=sequence,
                hash=identifier,
                filename=record_filename(identifier, sequence, kind),
                viewport=ViewportConfig(),
                full_page=True,
                has_diff=diff_percentage is not None and diff_percentage > 1.0,
                diff_percentage=diff_percentage,
                logs_filename=record_filename(identifier, sequence, "logs") if kind == "evidence" else None,
            ),
            image_base64=base64.b64encode(image).decode(),
            html="<html></html>",
            diff_image_base64=base64.b64encode(diff_image).decode() if diff_image else None,
        )

    return _make


@pytest.fixture
def capture_result(make_record) -> CaptureResult:
    logs = make_record()
    evidence = make_record(kind="evidence")
    return CaptureResult(
        logs=logs,
        logs_path="/tmp/shots/site_001_logs.json",
        diff=DiffOutcome(has_diff=True, diff_percentage=100.0, diff_pixels=0),
        evidence=evidence,
        evidence_path="/tmp/shots/site_001_evidence.json",
    )


# ============================================================================
# Browser Fixtures
# ============================================================================


@pytest.fixture
def fast_auth_timings() -> AuthTimings:
    return AuthTimings(
        url_change_ms=50,
        poll_interval_ms=10,
        url_settle_ms=0,
        wait_selector_ms=10,
        form_gone_ms=10,
        title_change_ms=10,
        fallback_delay_ms=0,
        network_idle_ms=10,
    )


@pytest.fixture
def mock_page(white_png) -> AsyncMock:
    """A blank page whose navigation succeeds and that has no error elements."""
    page = AsyncMock()
    page.url = "about:blank"
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.title = AsyncMock(return_value="Login")
    page.query_selector = AsyncMock(return_value=None)
    page.query_selector_all = AsyncMock(return_value=[])
    page.screenshot = AsyncMock(return_value=white_png)
    page.content = AsyncMock(return_value="<html><body>hello</body></html>")
    return page


@pytest.fixture
def mock_context(mock_page) -> AsyncMock:
    context = AsyncMock()
    context.new_page = AsyncMock(return_value=mock_page)
    return context


@pytest.fixture
def mock_session(mock_context) -> MagicMock:
    """A started BrowserSession stand-in handing out mock_context."""
    session = MagicMock()
    session.is_active = True
    session.start = AsyncMock()
    session.close = AsyncMock()
    session.new_context = AsyncMock(return_value=mock_context)
    return session
