"""Persisted capture records and diff outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from webshot.models.config import ViewportConfig

RecordKind = Literal["logs", "evidence"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecordMetadata(_CamelModel):
    url: str
    timestamp: str  # ISO-8601 UTC
    sequence: int
    hash: str  # identifier: URL hash or caller prefix
    filename: str
    viewport: ViewportConfig
    full_page: bool
    has_diff: Optional[bool] = None
    diff_percentage: Optional[float] = None
    diff_pixels: Optional[int] = None
    logs_filename: Optional[str] = None  # evidence records point back to their logs record


class CaptureRecord(_CamelModel):
    metadata: RecordMetadata
    image_base64: str
    html: Optional[str] = None
    diff_image_base64: Optional[str] = None

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class DiffOutcome:
    has_diff: bool
    diff_percentage: float
    diff_pixels: int = 0
    diff_image: Optional[bytes] = None  # PNG, only produced when has_diff

    @classmethod
    def maximal(cls) -> "DiffOutcome":
        """Treat as fully different: first capture, size mismatch, unreadable input."""
        return cls(has_diff=True, diff_percentage=100.0)

    @classmethod
    def first_capture(cls) -> "DiffOutcome":
        return cls.maximal()


@dataclass
class CaptureResult:
    logs: CaptureRecord
    logs_path: str
    diff: DiffOutcome
    evidence: Optional[CaptureRecord] = None
    evidence_path: Optional[str] = None


class RecordInfo(BaseModel):
    filename: str
    filepath: str
    identifier: str
    sequence: int
    kind: RecordKind
    timestamp: str
    url: Optional[str] = None
    has_diff: Optional[bool] = None
    diff_percentage: Optional[float] = None
    size: int


class CaptureInfoSummary(BaseModel):
    total_files: int = 0
    logs_files: int = 0
    evidence_files: int = 0
    unique_identifiers: int = 0


class CaptureInfo(BaseModel):
    directory: str
    files: list[RecordInfo]
    summary: CaptureInfoSummary
    by_identifier: dict[str, int]
