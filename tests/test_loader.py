"""Tests for heapscope.snapshot.loader."""

import json

import pytest

from heapscope.errors import MalformedSchemaError
from heapscope.snapshot.loader import load_snapshot

from _snapshots import chain_snapshot


class TestLoadSnapshot:
    def test_load_valid_file(self, tmp_path):
        path = tmp_path / "app.heapsnapshot"
        path.write_text(json.dumps(chain_snapshot()), encoding="utf-8")
        data = load_snapshot(str(path))
        assert data["strings"][0] == "(root)"
        assert data["snapshot"]["meta"]["edge_fields"] == ["type", "name_or_index", "to_node"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_snapshot(tmp_path / "missing.heapsnapshot")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.heapsnapshot"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MalformedSchemaError) as excinfo:
            load_snapshot(path)
        assert excinfo.value.context["line"] == 1

    def test_top_level_not_object(self, tmp_path):
        path = tmp_path / "list.heapsnapshot"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(MalformedSchemaError):
            load_snapshot(path)
