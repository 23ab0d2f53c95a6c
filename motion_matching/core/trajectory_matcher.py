"""
Trajectory Matcher Module

Turns the live desired trajectory into a feature vector and searches the
index for the clip segments whose root path best continues it.
"""

import logging
from typing import List

import numpy as np

from motion_matching.core.features import collect_window_features, trajectory_features
from motion_matching.core.nearest_index import MatchCandidate, NearestTrajectoryIndex
from motion_matching.core.transforms import Transform2d

logger = logging.getLogger(__name__)


def _live_translations(live_trajectory, num_points: int) -> np.ndarray:
    translations = getattr(live_trajectory, "translations", live_trajectory)
    translations = np.asarray(translations, dtype=float).reshape(-1, 2)
    if len(translations) != num_points:
        raise ValueError(f"Live trajectory has {len(translations)} points, expected {num_points}")
    return translations


def match_trajectory(
    index: NearestTrajectoryIndex, live_trajectory, transform2d: Transform2d
) -> List[MatchCandidate]:
    """
    Top candidates for the live trajectory.

    Args:
        index: Index built from the corpus
        live_trajectory: Trajectory or (num_points, 2) world-space samples
        transform2d: Character's current planar transform

    Returns:
        list: MatchCandidate sorted by ascending distance (may be empty)

    Raises:
        ValueError: If the trajectory length differs from the configured window
    """
    if index.is_empty:
        return []

    translations = _live_translations(live_trajectory, index.trajectory_config.num_points)
    candidates = index.query_features(trajectory_features(translations, transform2d))

    # Candidates always come from the index's own asset; guard anyway
    num_chunks = index.asset.num_chunks
    candidates = [c for c in candidates if 0 <= c.chunk_index < num_chunks]
    logger.debug("Trajectory match: %d candidates %s", len(candidates), candidates)
    return candidates


def find_nearest_trajectories(asset, live_trajectory, transform2d: Transform2d, count: int = 1) -> List[MatchCandidate]:
    """
    Exhaustive search for the `count` nearest windows, without a threshold.

    Slow reference path; use an index for per-frame matching.

    Raises:
        ValueError: If count is 0 or the trajectory length is wrong
    """
    if count < 1:
        raise ValueError("Unable to find nearest trajectories if the number requested is 0")

    translations = _live_translations(live_trajectory, asset.trajectory_config.num_points)
    query = trajectory_features(translations, transform2d)

    feature_set = collect_window_features(asset)
    if len(feature_set) == 0:
        return []

    distances = np.sum((feature_set.features - query) ** 2, axis=1)
    order = np.argsort(distances, kind="stable")[:count]
    return [
        MatchCandidate(float(distances[i]), int(feature_set.keys[i, 0]), int(feature_set.keys[i, 1])) for i in order
    ]
