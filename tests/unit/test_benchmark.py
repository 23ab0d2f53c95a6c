"""
Unit tests for benchmark module

Tests cover:
- Strategy agreement on exact corpus windows
- Query file loading and validation
- CSV report layout
"""

import csv
import json
import os

import pytest

from motion_matching.core.benchmark import (
    BENCHMARK_FIELDS,
    benchmark_strategies,
    export_benchmark_csv,
    load_queries,
)
from motion_matching.core.config import MatchConfig
from motion_matching.core.transforms import Transform2d

from conftest import window_query


def write_queries(asset, windows, path):
    entries = []
    for chunk_index, chunk_offset in windows:
        translations, transform2d = window_query(asset, chunk_index, chunk_offset)
        entries.append(
            {
                "trajectory": translations.tolist(),
                "transform2d": {"translation": transform2d.translation.tolist(), "angle": transform2d.angle},
            }
        )
    with open(path, "w") as f:
        json.dump(entries, f)
    return path


@pytest.mark.unit
class TestLoadQueries:
    """Test the queries file."""

    def test_load(self, walk_asset, temp_output_dir):
        path = write_queries(walk_asset, [(0, 0), (1, 4)], os.path.join(temp_output_dir, "queries.json"))
        queries = load_queries(path)

        assert len(queries) == 2
        translations, transform2d = queries[1]
        assert len(translations) == walk_asset.trajectory_config.num_points
        assert isinstance(transform2d, Transform2d)

    def test_transform_defaults_to_origin(self, temp_output_dir):
        path = os.path.join(temp_output_dir, "queries.json")
        with open(path, "w") as f:
            json.dump([{"trajectory": [[0.0, 0.0]] * 7}], f)

        _, transform2d = load_queries(path)[0]
        assert transform2d.angle == 0.0
        assert list(transform2d.translation) == [0.0, 0.0]

    def test_missing_trajectory_rejected(self, temp_output_dir):
        path = os.path.join(temp_output_dir, "queries.json")
        with open(path, "w") as f:
            json.dump([{"transform2d": {"angle": 1.0}}], f)

        with pytest.raises(ValueError):
            load_queries(path)

    def test_missing_file(self, temp_output_dir):
        with pytest.raises(FileNotFoundError):
            load_queries(os.path.join(temp_output_dir, "missing.json"))


@pytest.mark.unit
class TestBenchmarkStrategies:
    """Test strategy comparison."""

    def test_exact_windows(self, walk_asset, temp_output_dir):
        """Test that every strategy finds an exact corpus window."""
        path = write_queries(walk_asset, [(1, 2), (1, 4), (1, 8)], os.path.join(temp_output_dir, "queries.json"))
        results = benchmark_strategies(walk_asset, load_queries(path), MatchConfig(centroid_threshold=4.0))

        assert [row["query"] for row in results] == [0, 1, 2]
        for row in results:
            assert row["brute_chunk"] == 1
            assert row["kdtree_exact"]
            assert row["kmeans_within_threshold"]
            assert row["brute_distance"] == pytest.approx(0.0, abs=1e-6)

    def test_wrong_length_query_skipped(self, walk_asset):
        """Test that queries of the wrong length are left out of the report."""
        translations, transform2d = window_query(walk_asset, 0, 0)
        results = benchmark_strategies(walk_asset, [(translations[:4], transform2d), (translations, transform2d)])

        assert [row["query"] for row in results] == [1]

    def test_csv_report(self, walk_asset, temp_output_dir):
        """Test that the CSV carries one row per query in the fixed column order."""
        translations, transform2d = window_query(walk_asset, 1, 4)
        results = benchmark_strategies(walk_asset, [(translations, transform2d)])
        path = os.path.join(temp_output_dir, "reports", "benchmark.csv")
        export_benchmark_csv(results, path)

        with open(path, newline="") as f:
            reader = csv.DictReader(f)
            rows = list(reader)
        assert reader.fieldnames == BENCHMARK_FIELDS
        assert len(rows) == 1
        assert rows[0]["kdtree_exact"] == "True"

    def test_empty_report_has_header(self, temp_output_dir):
        path = os.path.join(temp_output_dir, "benchmark.csv")
        export_benchmark_csv([], path)

        with open(path) as f:
            assert f.readline().strip() == ",".join(BENCHMARK_FIELDS)
