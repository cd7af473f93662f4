"""Enumerate capture records in a directory with aggregate counts."""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from webshot.errors import ConfigurationError
from webshot.models.record import CaptureInfo, CaptureInfoSummary, RecordInfo
from webshot.records.store import RecordStore

logger = logging.getLogger(__name__)


def _read_metadata(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Could not read metadata from %s: %s", path.name, e)
        return {}
    metadata = data.get("metadata") if isinstance(data, dict) else None
    return metadata if isinstance(metadata, dict) else {}


def _field(metadata: dict, key: str, types: tuple, path: Path):
    """metadata[key] if it has one of ``types``, else None (logged)."""
    value = metadata.get(key)
    if value is None:
        return None
    # bool is an int subclass
    if not isinstance(value, types) or (isinstance(value, bool) and bool not in types):
        logger.debug("Ignoring %s=%r in %s: unexpected type", key, value, path.name)
        return None
    return value


def collect_info(directory: str | Path, identifier_prefix: Optional[str] = None) -> CaptureInfo:
    """List records sorted by identifier then sequence, with per-identifier counts."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigurationError(f"Directory does not exist: {directory}")

    files: list[RecordInfo] = []
    for path, identifier, sequence, kind in RecordStore(directory).iter_records():
        if identifier_prefix and not identifier.startswith(identifier_prefix):
            continue
        stat = path.stat()
        metadata = _read_metadata(path)
        timestamp = _field(metadata, "timestamp", (str,), path) or datetime.fromtimestamp(
            stat.st_mtime, tz=timezone.utc
        ).isoformat()
        files.append(RecordInfo(
            filename=path.name,
            filepath=str(path),
            identifier=identifier,
            sequence=sequence,
            kind=kind,
            timestamp=timestamp,
            url=_field(metadata, "url", (str,), path),
            has_diff=_field(metadata, "hasDiff", (bool,), path),
            diff_percentage=_field(metadata, "diffPercentage", (int, float), path),
            size=stat.st_size,
        ))

    files.sort(key=lambda f: (f.identifier, f.sequence, f.kind != "logs"))
    by_identifier = Counter(f.identifier for f in files if f.kind == "logs")
    summary = CaptureInfoSummary(
        total_files=len(files),
        logs_files=sum(1 for f in files if f.kind == "logs"),
        evidence_files=sum(1 for f in files if f.kind == "evidence"),
        unique_identifiers=len({f.identifier for f in files}),
    )
    return CaptureInfo(
        directory=str(directory.resolve()),
        files=files,
        summary=summary,
        by_identifier=dict(by_identifier),
    )
