"""
Unit tests for the command line interface

Tests cover:
- build: clip files to a saved motion asset
- inspect: asset summary
- benchmark: strategy report
- Exit codes on failures
"""

import json
import os

import pytest

from motion_matching.cli import main
from motion_matching.core.motion_asset import MotionAsset

from conftest import window_query


@pytest.fixture
def asset_path(clip_files, temp_output_dir):
    path = os.path.join(temp_output_dir, "corpus", "asset.json")
    assert main(["build", *clip_files, "-o", path]) == 0
    return path


@pytest.mark.unit
class TestBuildCommand:
    """Test `build`."""

    def test_build(self, asset_path):
        asset = MotionAsset.load(asset_path)
        assert asset.num_chunks == 3
        assert asset.clip_names == ["walk_straight", "turn_left", "walk_loop"]

    def test_load_failures_do_not_abort(self, clip_files, temp_output_dir, capsys):
        """Test that a missing clip is reported while the rest still build."""
        path = os.path.join(temp_output_dir, "asset.json")
        missing = os.path.join(temp_output_dir, "missing.json")

        assert main(["build", clip_files[0], missing, "-o", path]) == 0
        out = capsys.readouterr().out
        assert "Load failures:  1" in out
        assert "missing.json: failed to load" in out

    def test_nothing_loaded(self, temp_output_dir):
        """Test exit code 1 when no clip loads."""
        path = os.path.join(temp_output_dir, "asset.json")
        assert main(["build", os.path.join(temp_output_dir, "missing.json"), "-o", path]) == 1
        assert not os.path.exists(path)

    def test_every_clip_skipped(self, clip_files, temp_output_dir):
        """Test exit code 1 when no clip is usable at the configured rate."""
        config_path = os.path.join(temp_output_dir, "config.json")
        with open(config_path, "w") as f:
            json.dump({"pose_interval": 1.0 / 30.0}, f)

        path = os.path.join(temp_output_dir, "asset.json")
        assert main(["build", *clip_files, "-o", path, "--config", config_path]) == 1

    def test_invalid_config(self, clip_files, temp_output_dir):
        config_path = os.path.join(temp_output_dir, "config.json")
        with open(config_path, "w") as f:
            json.dump({"trajectory": {"num_points": 1}}, f)

        path = os.path.join(temp_output_dir, "asset.json")
        assert main(["build", *clip_files, "-o", path, "--config", config_path]) == 1


@pytest.mark.unit
class TestInspectCommand:
    """Test `inspect`."""

    def test_inspect(self, asset_path, capsys):
        capsys.readouterr()
        assert main(["inspect", asset_path]) == 0

        out = capsys.readouterr().out
        assert "Chunks: 3" in out
        assert "walk_loop" in out
        assert "(loop)" in out

    def test_missing_asset(self, temp_output_dir):
        assert main(["inspect", os.path.join(temp_output_dir, "missing.json")]) == 1


@pytest.mark.unit
class TestBenchmarkCommand:
    """Test `benchmark`."""

    def test_benchmark(self, asset_path, temp_output_dir, capsys):
        asset = MotionAsset.load(asset_path)
        translations, transform2d = window_query(asset, 1, 4)
        queries_path = os.path.join(temp_output_dir, "queries.json")
        query = {
            "trajectory": translations.tolist(),
            "transform2d": {"translation": transform2d.translation.tolist(), "angle": transform2d.angle},
        }
        with open(queries_path, "w") as f:
            json.dump([query], f)

        report = os.path.join(temp_output_dir, "report.csv")
        assert main(["benchmark", asset_path, queries_path, "-o", report]) == 0
        assert os.path.exists(report)
        assert "kd-tree exact: 1/1" in capsys.readouterr().out

    def test_no_usable_queries(self, asset_path, temp_output_dir):
        """Test exit code 1 when every query is skipped."""
        queries_path = os.path.join(temp_output_dir, "queries.json")
        with open(queries_path, "w") as f:
            json.dump([{"trajectory": [[0.0, 0.0]] * 3}], f)

        report = os.path.join(temp_output_dir, "report.csv")
        assert main(["benchmark", asset_path, queries_path, "-o", report]) == 1
