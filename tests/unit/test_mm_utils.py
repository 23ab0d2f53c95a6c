"""
Unit tests for utils module

Tests cover:
- Output directory creation
- NumPy to native conversion for JSON
- CSV writing
"""

import csv
import json
import os

import numpy as np
import pytest

from motion_matching.core.utils import (
    convert_numpy_to_native,
    ensure_output_dir,
    prepare_output_file,
    write_dict_list_to_csv,
)


@pytest.mark.unit
class TestOutputFiles:
    """Test output path helpers."""

    def test_ensure_output_dir_creates_parents(self, temp_output_dir):
        path = os.path.join(temp_output_dir, "a", "b", "asset.json")
        ensure_output_dir(path)
        assert os.path.isdir(os.path.join(temp_output_dir, "a", "b"))

    def test_ensure_output_dir_bare_filename(self, temp_output_dir, monkeypatch):
        """Test that a path without a directory is accepted."""
        monkeypatch.chdir(temp_output_dir)
        ensure_output_dir("asset.json")

    def test_prepare_output_file_removes_stale_file(self, temp_output_dir):
        path = os.path.join(temp_output_dir, "report.csv")
        with open(path, "w") as f:
            f.write("stale")

        prepare_output_file(path)
        assert not os.path.exists(path)


@pytest.mark.unit
class TestConvertNumpyToNative:
    """Test JSON conversion."""

    def test_nested_structure(self):
        """Test that nested NumPy values become JSON-serializable."""
        data = {
            "count": np.int64(3),
            "ratio": np.float32(0.5),
            "flag": np.bool_(True),
            "matrix": np.eye(2),
            "items": (np.int32(1), [np.float64(2.5)]),
        }
        native = convert_numpy_to_native(data)

        assert native == {"count": 3, "ratio": 0.5, "flag": True, "matrix": [[1.0, 0.0], [0.0, 1.0]], "items": [1, [2.5]]}
        assert isinstance(native["flag"], bool)
        json.dumps(native)

    def test_plain_values_unchanged(self):
        assert convert_numpy_to_native("walk") == "walk"
        assert convert_numpy_to_native(None) is None


@pytest.mark.unit
class TestWriteCsv:
    """Test CSV export."""

    def test_rows_written_in_order(self, temp_output_dir):
        path = os.path.join(temp_output_dir, "out", "rows.csv")
        write_dict_list_to_csv([{"a": 1, "b": np.float64(2.5)}, {"a": 2, "b": 3.0}], path)

        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows == [{"a": "1", "b": "2.5"}, {"a": "2", "b": "3.0"}]

    def test_empty_rows_with_fieldnames(self, temp_output_dir):
        """Test that a header-only file is written when fieldnames are given."""
        path = os.path.join(temp_output_dir, "empty.csv")
        write_dict_list_to_csv([], path, fieldnames=["query", "distance"])

        with open(path) as f:
            assert f.read().strip() == "query,distance"

    def test_empty_rows_without_fieldnames(self, temp_output_dir):
        """Test that nothing is written without rows or fieldnames."""
        path = os.path.join(temp_output_dir, "none.csv")
        write_dict_list_to_csv([], path)
        assert not os.path.exists(path)
