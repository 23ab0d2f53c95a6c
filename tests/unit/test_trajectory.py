"""
Unit tests for trajectory module
"""

import numpy as np
import pytest

from motion_matching.core.trajectory import Trajectory, TrajectoryPoint


@pytest.mark.unit
class TestTrajectory:
    """Test the live trajectory container."""

    def test_from_arrays(self):
        trajectory = Trajectory.from_arrays([[0.0, 0.0], [0.0, 1.0], [0.5, 2.0]])

        assert len(trajectory) == 3
        np.testing.assert_allclose(trajectory[2].translation, [0.5, 2.0])
        np.testing.assert_allclose(trajectory.velocities, np.zeros((3, 2)))

    def test_mismatched_velocities_rejected(self):
        with pytest.raises(ValueError):
            Trajectory.from_arrays(np.zeros((3, 2)), np.zeros((2, 2)))

    def test_empty(self):
        trajectory = Trajectory()
        assert trajectory.translations.shape == (0, 2)

    def test_distance_ignores_placement(self):
        """Test that shifting a whole path leaves only velocity differences."""
        path = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 2.0]])
        a = Trajectory.from_arrays(path, [[0.0, 1.0]] * 3)
        b = Trajectory.from_arrays(path + [10.0, -4.0], [[0.0, 3.0]] * 3)

        assert a.distance(b) == pytest.approx(2.0)

    def test_distance_of_segment_offsets(self):
        a = Trajectory.from_arrays([[0.0, 0.0], [0.0, 1.0], [0.0, 2.0]])
        b = Trajectory.from_arrays([[0.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        # Second segments differ by (1, -1)
        assert a.distance(b) == pytest.approx(np.sqrt(2.0) / 2.0)

    def test_distance_length_mismatch(self):
        a = Trajectory([TrajectoryPoint(), TrajectoryPoint()])
        b = Trajectory([TrajectoryPoint()] * 3)
        with pytest.raises(ValueError):
            a.distance(b)
