"""Tests for atomic file writes."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from propharvest.utils.atomic import atomic_write_json, atomic_write_text


@pytest.mark.unit
class TestAtomicUtils:
    def test_atomic_write_text_creates_parents(self, tmp_path):
        target_file = tmp_path / "nested" / "deep" / "page.txt"

        atomic_write_text(target_file, "hello")

        assert target_file.read_text(encoding="utf-8") == "hello"

    def test_atomic_write_text_overwrites(self, tmp_path):
        target_file = tmp_path / "page.txt"
        target_file.write_text("old")

        atomic_write_text(target_file, "new")

        assert target_file.read_text() == "new"

    def test_atomic_write_json_preserves_non_ascii(self, tmp_path):
        target_file = tmp_path / "records.json"
        data = [{"ownerName": "श्री राम", "slNo": "1"}]

        atomic_write_json(target_file, data)

        raw = target_file.read_text(encoding="utf-8")
        assert "श्री राम" in raw
        assert json.loads(raw) == data

    def test_atomic_write_json_rejects_unserialisable_data(self, tmp_path):
        target_file = tmp_path / "bad.json"

        with pytest.raises((TypeError, ValueError)):
            atomic_write_json(target_file, {"path": object()})

        assert not target_file.exists()

    def test_failed_replace_keeps_original_and_cleans_up(self, tmp_path):
        target_file = tmp_path / "page.txt"
        target_file.write_text("original")

        with patch("propharvest.utils.atomic.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                atomic_write_text(target_file, "replacement")

        assert target_file.read_text() == "original"
        assert [p.name for p in Path(tmp_path).iterdir()] == ["page.txt"]
