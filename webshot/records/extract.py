"""Extract the PNG images embedded in capture records."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from webshot.errors import ConfigurationError, PersistenceError
from webshot.models.record import CaptureRecord

logger = logging.getLogger(__name__)


def _read_record(record_path: Path) -> CaptureRecord:
    if record_path.suffix.lower() != ".json":
        raise ConfigurationError(f"Not a capture record (expected .json): {record_path}")
    try:
        with open(record_path, encoding="utf-8") as f:
            return CaptureRecord.model_validate(json.load(f))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Record not found: {record_path}") from e
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Failed to read record {record_path}: {e}") from e


def _write_png(data_base64: str, path: Path) -> None:
    try:
        data = base64.b64decode(data_base64, validate=True)
    except binascii.Error as e:
        raise ConfigurationError(f"Embedded image for {path.name} is not valid base64: {e}") from e
    try:
        path.write_bytes(data)
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e


def extract_image(record_path: str | Path, output_path: str | Path | None = None) -> list[str]:
    """Write a record's screenshot (and diff image, if any) as PNG files.

    The screenshot goes to ``output_path`` or next to the record as
    ``{basename}.png``; a diff image is written beside it as
    ``{basename}_diff.png``. Returns the written paths.
    """
    record_path = Path(record_path)
    record = _read_record(record_path)

    image_path = Path(output_path) if output_path else record_path.with_suffix(".png")
    image_path.parent.mkdir(parents=True, exist_ok=True)
    _write_png(record.image_base64, image_path)
    written = [str(image_path)]

    if record.diff_image_base64:
        diff_path = image_path.with_name(f"{image_path.stem}_diff.png")
        _write_png(record.diff_image_base64, diff_path)
        written.append(str(diff_path))

    logger.debug("Extracted %d image(s) from %s", len(written), record_path.name)
    return written


def extract_all(directory: str | Path, output_dir: Optional[str | Path] = None) -> list[str]:
    """Extract every record in ``directory``; unreadable records are skipped and logged."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigurationError(f"Directory does not exist: {directory}")
    target = Path(output_dir) if output_dir else directory / "extracted"
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PersistenceError(f"Cannot create output directory {target}: {e}") from e

    extracted: list[str] = []
    for record_path in sorted(directory.glob("*.json")):
        try:
            extracted.extend(extract_image(record_path, target / f"{record_path.stem}.png"))
        except ConfigurationError as e:
            logger.error("Skipping %s: %s", record_path.name, e)
    logger.info("Extracted %d image(s) from %s into %s", len(extracted), directory, target)
    return extracted
