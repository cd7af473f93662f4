"""Record store — JSON capture records on disk, one directory per store.

Layout: ``{identifier}_{NNN}_logs.json`` for every capture and
``{identifier}_{NNN}_evidence.json`` for captures flagged as changed.

Sequence numbers come from scanning the directory, so the store assumes a
single writer per identifier. Two concurrent captures of the same
identifier can pick the same sequence and overwrite each other.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Iterator, Optional

from webshot.errors import PersistenceError
from webshot.models.record import CaptureRecord, RecordKind

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 3
RECORD_RE = re.compile(r"^(?P<identifier>.+)_(?P<sequence>\d{3,})_(?P<kind>logs|evidence)\.json$")


def record_filename(identifier: str, sequence: int, kind: RecordKind) -> str:
    return f"{identifier}_{sequence:0{SEQUENCE_WIDTH}d}_{kind}.json"


def parse_record_filename(filename: str) -> Optional[tuple[str, int, RecordKind]]:
    """Split a record file name into (identifier, sequence, kind), or None."""
    match = RECORD_RE.match(filename)
    if not match:
        return None
    return match["identifier"], int(match["sequence"]), match["kind"]


class RecordStore:
    """Reads and writes capture records in one output directory."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir).resolve()

    def ensure(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create output directory {self.output_dir}: {e}") from e

    def iter_records(self) -> Iterator[tuple[Path, str, int, RecordKind]]:
        """Yield (path, identifier, sequence, kind) for every record file."""
        try:
            entries = sorted(self.output_dir.iterdir())
        except OSError:
            return
        for path in entries:
            parsed = parse_record_filename(path.name)
            if parsed is None or not path.is_file():
                continue
            yield (path, *parsed)

    def _sequences(self, identifier: str, kind: RecordKind | None = None) -> Iterator[tuple[int, Path]]:
        for path, ident, sequence, record_kind in self.iter_records():
            if ident != identifier:
                continue
            if kind is not None and record_kind != kind:
                continue
            yield sequence, path

    def next_sequence(self, identifier: str) -> int:
        """max(existing sequence) + 1, or 1 when nothing readable exists."""
        return max((seq for seq, _ in self._sequences(identifier)), default=0) + 1

    def latest_record(self, identifier: str) -> Optional[Path]:
        """Path of the logs record with the highest sequence for this identifier."""
        latest = max(self._sequences(identifier, "logs"), default=None, key=lambda item: item[0])
        return latest[1] if latest else None

    def load(self, path: str | Path) -> CaptureRecord:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return CaptureRecord.model_validate(data)

    def write(self, record: CaptureRecord) -> Path:
        path = self.output_dir / record.metadata.filename
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(record.to_json_dict(), f, indent=2)
        except OSError as e:
            raise PersistenceError(f"Failed to write record {path}: {e}") from e
        logger.debug("Wrote record %s", path)
        return path
