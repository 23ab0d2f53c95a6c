"""
Unit tests for features module

Tests cover:
- Window feature layout and count
- Rotation / translation invariance
- Live trajectory features matching corpus windows
"""

import numpy as np
import pytest

from motion_matching.core.config import TrajectoryConfig
from motion_matching.core.features import (
    collect_window_features,
    offsets_from_local_points,
    trajectory_features,
    window_features,
)
from motion_matching.core.motion_asset import build_motion_asset
from motion_matching.core.transforms import Transform2d

from conftest import WALK_SPEED, window_query


@pytest.mark.unit
class TestWindowFeatures:
    """Test corpus-side feature extraction."""

    def test_offsets_from_local_points(self):
        """Test consecutive differences flattened per window."""
        points = np.array([[[0.0, 0.0], [1.0, 2.0], [3.0, 3.0]]])
        np.testing.assert_allclose(offsets_from_local_points(points), [[1.0, 2.0, 2.0, 1.0]])

    def test_straight_walk_features(self, make_clip, config):
        """Test that a straight walk encodes as equal forward steps in world units."""
        asset = build_motion_asset([make_clip(duration=2.0)], config)
        features = collect_window_features(asset)

        step = WALK_SPEED * config.trajectory.interval_time * config.scale_ratio
        expected = np.tile([0.0, step], config.trajectory.num_segments)
        assert features.feature_dim == 12
        np.testing.assert_allclose(features.features, np.tile(expected, (len(features), 1)), atol=1e-6)

    def test_window_count(self, walk_asset):
        """Test that a chunk of N points yields N - num_points + 1 windows."""
        features = collect_window_features(walk_asset)
        num_points = walk_asset.trajectory_config.num_points
        expected = sum(walk_asset.trajectory_data.chunk_len(i) - num_points + 1 for i in range(walk_asset.num_chunks))

        assert len(features) == expected
        np.testing.assert_array_equal(features.keys[0], [0, 0])
        assert features.keys[-1, 0] == 2

    def test_rotation_invariance(self, make_clip, config):
        """Test that the same walk facing another way has the same features."""
        north = build_motion_asset([make_clip(duration=2.0, turn_rate=15.0)], config)
        east = build_motion_asset([make_clip(duration=2.0, turn_rate=15.0, start_heading=90.0)], config)

        np.testing.assert_allclose(
            collect_window_features(north).features, collect_window_features(east).features, atol=1e-9
        )

    def test_short_chunk_has_no_windows(self):
        """Test that fewer points than a window give an empty feature block."""
        config = TrajectoryConfig()
        matrices = np.tile(np.eye(4), (config.num_points - 1, 1, 1))
        assert window_features(matrices, config, 0.01).shape == (0, config.feature_dim)


@pytest.mark.unit
class TestTrajectoryFeatures:
    """Test live-side feature extraction."""

    def test_matches_corpus_window(self, walk_asset):
        """Test that a world-space copy of a window encodes identically."""
        translations, transform2d = window_query(walk_asset, 1, 4)
        features = collect_window_features(walk_asset)
        row = int(np.flatnonzero((features.keys[:, 0] == 1) & (features.keys[:, 1] == 4))[0])

        np.testing.assert_allclose(trajectory_features(translations, transform2d), features.features[row], atol=1e-9)

    def test_independent_of_character_placement(self):
        """Test that moving and turning character and path together changes nothing."""
        local = np.array([[0.0, -0.2], [0.0, 0.0], [0.1, 0.3], [0.3, 0.5]])
        here = Transform2d([0.0, 0.0], 0.0)
        there = Transform2d([4.0, -2.0], 2.1)

        np.testing.assert_allclose(
            trajectory_features(here.transform_points(local), here),
            trajectory_features(there.transform_points(local), there),
            atol=1e-12,
        )
