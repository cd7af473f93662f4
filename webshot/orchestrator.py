"""Capture orchestrator — authenticate, navigate, wait, rasterize, diff, persist."""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from webshot.auth.authenticator import Authenticator, AuthTimings
from webshot.browser.readiness import wait_for_render_ready
from webshot.browser.session import BrowserSession
from webshot.diff.perceptual import compare_images
from webshot.errors import BrowserNotInitializedError, ComparisonError, NavigationError
from webshot.identity import derive_identifier
from webshot.models.config import DEFAULT_OUTPUT_DIR, CaptureOptions
from webshot.models.record import CaptureRecord, CaptureResult, DiffOutcome, RecordMetadata
from webshot.records.store import RecordStore, record_filename

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ScreenshotCapture:
    """Owns one browser session and runs captures against it sequentially."""

    def __init__(
        self,
        output_dir: str = DEFAULT_OUTPUT_DIR,
        session: Optional[BrowserSession] = None,
        auth_timings: Optional[AuthTimings] = None,
    ):
        self.output_dir = output_dir
        self.session = session or BrowserSession()
        self.auth_timings = auth_timings

    async def init(self, headless: bool = True) -> None:
        self.session.headless = headless
        await self.session.start()
        logger.info("Browser initialized (headless=%s)", headless)

    async def close(self) -> None:
        await self.session.close()

    async def __aenter__(self) -> "ScreenshotCapture":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def capture(self, options: CaptureOptions) -> CaptureResult:
        if not self.session.is_active:
            raise BrowserNotInitializedError("Browser not initialized. Call init() first.")

        identifier = derive_identifier(options.url, options.prefix)
        store = RecordStore(options.output_dir or self.output_dir)
        store.ensure()
        sequence = store.next_sequence(identifier)
        logger.info("Capturing %s as %s #%03d", options.url, identifier, sequence)

        context = await self.session.new_context(viewport=options.viewport.model_dump())
        try:
            page = await context.new_page()
            if options.auth is not None:
                authenticator = Authenticator(page, self.auth_timings)
                await authenticator.authenticate(options.auth, target_url=options.url)

            await self._navigate(page, options)
            await wait_for_render_ready(page, options.readiness)

            image = await page.screenshot(full_page=options.full_page, type="png")
            html = await page.content()
        finally:
            await context.close()

        diff = self._diff_against_previous(store, identifier, sequence, image, options.diff_threshold)
        return self._write_records(store, options, identifier, sequence, image, html, diff)

    async def _navigate(self, page: Page, options: CaptureOptions) -> None:
        # Form login may already have landed on the target.
        if page.url == options.url:
            logger.debug("Already at %s, skipping navigation", options.url)
            return
        try:
            response = await page.goto(
                options.url, wait_until="domcontentloaded", timeout=options.timeout_ms,
            )
        except PlaywrightError as e:
            raise NavigationError(f"Failed to navigate to {options.url}: {e}") from e
        if response is not None and response.status >= 400:
            logger.warning("HTTP %d from %s, capturing anyway", response.status, options.url)

    def _diff_against_previous(
        self,
        store: RecordStore,
        identifier: str,
        sequence: int,
        image: bytes,
        threshold: float,
    ) -> DiffOutcome:
        if sequence == 1:
            logger.info("First capture of %s, flagging as 100%% diff", identifier)
            return DiffOutcome.first_capture()

        previous_path = store.latest_record(identifier)
        if previous_path is None:
            logger.info("No previous logs record for %s, flagging as 100%% diff", identifier)
            return DiffOutcome.first_capture()

        try:
            previous_image = self._load_previous_image(store, previous_path)
        except ComparisonError as e:
            logger.warning("%s, treating as 100%% diff", e)
            return DiffOutcome.maximal()

        logger.debug("Comparing against %s", previous_path.name)
        return compare_images(image, previous_image, threshold)

    @staticmethod
    def _load_previous_image(store: RecordStore, path) -> bytes:
        try:
            record = store.load(path)
            return base64.b64decode(record.image_base64, validate=True)
        except (OSError, ValueError) as e:
            raise ComparisonError(f"Previous record {path} is unreadable: {e}") from e

    def _write_records(
        self,
        store: RecordStore,
        options: CaptureOptions,
        identifier: str,
        sequence: int,
        image: bytes,
        html: str,
        diff: DiffOutcome,
    ) -> CaptureResult:
        logs_filename = record_filename(identifier, sequence, "logs")
        image_base64 = base64.b64encode(image).decode()
        logs = CaptureRecord(
            metadata=RecordMetadata(
                url=options.url,
                timestamp=utc_timestamp(),
                sequence=sequence,
                hash=identifier,
                filename=logs_filename,
                viewport=options.viewport,
                full_page=options.full_page,
                has_diff=diff.has_diff,
                diff_percentage=diff.diff_percentage,
                diff_pixels=diff.diff_pixels,
            ),
            image_base64=image_base64,
            html=html,
        )
        logs_path = store.write(logs)

        evidence = None
        evidence_path = None
        if diff.has_diff:
            metadata = logs.metadata.model_copy(update={
                "filename": record_filename(identifier, sequence, "evidence"),
                "logs_filename": logs_filename,
            })
            evidence = CaptureRecord(
                metadata=metadata,
                image_base64=image_base64,
                html=html,
                diff_image_base64=(
                    base64.b64encode(diff.diff_image).decode() if diff.diff_image else None
                ),
            )
            evidence_path = store.write(evidence)
            logger.info("Change detected (%.2f%% > %.2f%%), evidence saved to %s",
                        diff.diff_percentage, options.diff_threshold, evidence_path)
        else:
            logger.info("No significant change (%.2f%%), logs saved to %s",
                        diff.diff_percentage, logs_path)

        return CaptureResult(
            logs=logs,
            logs_path=str(logs_path),
            diff=diff,
            evidence=evidence,
            evidence_path=str(evidence_path) if evidence_path else None,
        )
