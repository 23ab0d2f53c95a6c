"""
Trajectory Feature Module

Encodes trajectory windows as rotation- and translation-invariant
"shape of path" vectors, shared by index building and querying.

For a window of `num_points` samples:
1. Express every point in the planar frame of the anchor point
   (position and heading of point `history_count`)
2. Scale corpus units to world units
3. Take consecutive differences, flattened to 2 * (num_points - 1) floats

Differences make the encoding independent of where the window sits; the
anchor frame makes it independent of which way the character faces.
"""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from motion_matching.core.config import TrajectoryConfig
from motion_matching.core.transforms import Transform2d, headings_from_matrices, rotate2d

logger = logging.getLogger(__name__)


def offsets_from_local_points(local_points: np.ndarray) -> np.ndarray:
    """Consecutive differences of local points, flattened per window."""
    diffs = np.diff(local_points, axis=-2)
    return diffs.reshape(diffs.shape[:-2] + (-1,))


def window_features(matrices: np.ndarray, config: TrajectoryConfig, scale_ratio: float) -> np.ndarray:
    """
    Features of every full window of one trajectory chunk.

    Args:
        matrices: (N, 4, 4) root matrices of one chunk
        config: Trajectory configuration
        scale_ratio: Corpus to world unit ratio

    Returns:
        np.ndarray: (N - num_points + 1, 2 * (num_points - 1)); empty if N < num_points
    """
    matrices = np.asarray(matrices, dtype=float)
    num_windows = len(matrices) - config.num_points + 1
    if num_windows <= 0:
        return np.zeros((0, config.feature_dim))

    translations = matrices[:, [0, 2], 3]
    headings = headings_from_matrices(matrices)

    # (num_windows, 2, num_points) -> (num_windows, num_points, 2)
    windows = sliding_window_view(translations, config.num_points, axis=0).transpose(0, 2, 1)
    anchor = config.history_count
    anchor_pos = translations[anchor : anchor + num_windows]
    anchor_heading = headings[anchor : anchor + num_windows]

    local = rotate2d(windows - anchor_pos[:, None, :], -anchor_heading[:, None]) * scale_ratio
    return offsets_from_local_points(local)


def trajectory_features(translations, transform2d: Transform2d) -> np.ndarray:
    """
    Features of the live trajectory, relative to the character's transform.

    Args:
        translations: (num_points, 2) world-space planar samples
        transform2d: Character's current planar transform

    Returns:
        np.ndarray: (2 * (num_points - 1),)
    """
    local = transform2d.inverse_transform_points(np.asarray(translations, dtype=float).reshape(-1, 2))
    return offsets_from_local_points(local)


@dataclass
class WindowFeatureSet:
    """
    Features of every window of an asset with their locations.

    Attributes:
        features: (num_windows, feature_dim)
        keys: (num_windows, 2) int array of (chunk_index, chunk_offset)
    """

    features: np.ndarray
    keys: np.ndarray

    def __len__(self):
        return len(self.features)

    @property
    def feature_dim(self) -> int:
        return self.features.shape[1]


def collect_window_features(asset) -> WindowFeatureSet:
    """
    Extract features of every valid window of every trajectory chunk.

    Chunks shorter than one window are skipped.
    """
    config = asset.trajectory_config
    features = []
    keys = []

    for chunk_index, chunk in enumerate(asset.trajectory_data.iter_chunk()):
        if len(chunk) < config.num_points:
            logger.warning(
                "Trajectory chunk %d has %d points, fewer than one window (%d); skipped",
                chunk_index,
                len(chunk),
                config.num_points,
            )
            continue

        chunk_features = window_features(chunk["matrix"], config, asset.scale_ratio)
        features.append(chunk_features)
        offsets = np.arange(len(chunk_features))
        keys.append(np.stack([np.full_like(offsets, chunk_index), offsets], axis=1))

    if not features:
        return WindowFeatureSet(np.zeros((0, config.feature_dim)), np.zeros((0, 2), dtype=int))

    return WindowFeatureSet(np.concatenate(features), np.concatenate(keys).astype(int))
