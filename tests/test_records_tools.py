"""Tests for record image extraction and record enumeration."""

from __future__ import annotations

import json

import pytest

from webshot.errors import ConfigurationError
from webshot.records.extract import extract_all, extract_image
from webshot.records.info import collect_info


# ============================================================================
# Extraction
# ============================================================================


class TestExtractImage:
    def test_writes_png_next_to_record(self, store, tmp_path, make_record, white_png):
        path = store.write(make_record(image=white_png))
        written = extract_image(path)

        assert written == [str(tmp_path / "site_001_logs.png")]
        assert (tmp_path / "site_001_logs.png").read_bytes() == white_png

    def test_explicit_output_path(self, store, tmp_path, make_record):
        path = store.write(make_record())
        target = tmp_path / "out" / "shot.png"
        assert extract_image(path, target) == [str(target)]
        assert target.exists()

    def test_evidence_diff_image_written_too(self, store, tmp_path, make_record, changed_png):
        path = store.write(make_record(kind="evidence", diff_image=changed_png))
        written = extract_image(path)

        assert len(written) == 2
        assert (tmp_path / "site_001_evidence_diff.png").read_bytes() == changed_png

    def test_rejects_non_json(self, tmp_path):
        other = tmp_path / "shot.png"
        other.write_bytes(b"x")
        with pytest.raises(ConfigurationError):
            extract_image(other)

    def test_missing_record(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            extract_image(tmp_path / "missing_001_logs.json")

    def test_malformed_record(self, tmp_path):
        bad = tmp_path / "site_001_logs.json"
        bad.write_text('{"metadata": {}}')
        with pytest.raises(ConfigurationError):
            extract_image(bad)


class TestExtractAll:
    def test_defaults_to_extracted_subdirectory(self, store, tmp_path, make_record):
        store.write(make_record(sequence=1))
        store.write(make_record(sequence=2))
        written = extract_all(tmp_path)

        assert len(written) == 2
        assert (tmp_path / "extracted" / "site_001_logs.png").exists()
        assert (tmp_path / "extracted" / "site_002_logs.png").exists()

    def test_skips_unreadable_records(self, store, tmp_path, make_record):
        store.write(make_record(sequence=1))
        (tmp_path / "site_002_logs.json").write_text("{broken")
        written = extract_all(tmp_path, tmp_path / "images")

        assert written == [str(tmp_path / "images" / "site_001_logs.png")]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            extract_all(tmp_path / "nope")


# ============================================================================
# Enumeration
# ============================================================================


class TestCollectInfo:
    def test_summary_counts(self, store, tmp_path, make_record):
        store.write(make_record(identifier="aaaa1111", sequence=1))
        store.write(make_record(identifier="aaaa1111", sequence=1, kind="evidence"))
        store.write(make_record(identifier="aaaa1111", sequence=2, diff_percentage=0.0))
        store.write(make_record(identifier="bbbb2222", sequence=1))
        (tmp_path / "notes.json").write_text("{}")

        info = collect_info(tmp_path)
        assert info.summary.total_files == 4
        assert info.summary.logs_files == 3
        assert info.summary.evidence_files == 1
        assert info.summary.unique_identifiers == 2
        assert info.by_identifier == {"aaaa1111": 2, "bbbb2222": 1}

    def test_sorted_by_identifier_then_sequence(self, store, tmp_path, make_record):
        store.write(make_record(identifier="b", sequence=1))
        store.write(make_record(identifier="a", sequence=2))
        store.write(make_record(identifier="a", sequence=1))
        store.write(make_record(identifier="a", sequence=1, kind="evidence"))

        names = [f.filename for f in collect_info(tmp_path).files]
        assert names == ["a_001_logs.json", "a_001_evidence.json", "a_002_logs.json", "b_001_logs.json"]

    def test_prefix_filter(self, store, tmp_path, make_record):
        store.write(make_record(identifier="aaaa1111"))
        store.write(make_record(identifier="bbbb2222"))

        info = collect_info(tmp_path, identifier_prefix="aaaa")
        assert [f.identifier for f in info.files] == ["aaaa1111"]

    def test_reads_metadata(self, store, tmp_path, make_record):
        store.write(make_record(url="https://example.com/a", diff_percentage=12.5))
        record = collect_info(tmp_path).files[0]

        assert record.url == "https://example.com/a"
        assert record.diff_percentage == 12.5
        assert record.has_diff is True
        assert record.timestamp == "2026-01-01T00:00:00.000Z"
        assert record.size > 0

    def test_unreadable_record_still_listed(self, tmp_path):
        (tmp_path / "site_001_logs.json").write_text("{broken")
        record = collect_info(tmp_path).files[0]
        assert record.url is None
        assert record.sequence == 1

    def test_wrongly_typed_metadata_is_ignored(self, tmp_path):
        (tmp_path / "site_001_logs.json").write_text(json.dumps({
            "metadata": {"timestamp": 12345, "diffPercentage": "n/a", "hasDiff": "yes", "url": 7},
        }))
        record = collect_info(tmp_path).files[0]

        assert record.timestamp != 12345
        assert isinstance(record.timestamp, str)
        assert record.diff_percentage is None
        assert record.has_diff is None
        assert record.url is None

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            collect_info(tmp_path / "nope")
