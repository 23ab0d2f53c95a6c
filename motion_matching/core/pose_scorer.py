"""
Pose Scorer Module

Second-pass re-ranking of trajectory candidates by full-body pose similarity.

The pose of a candidate is read at its anchor point (the window's "present"),
which is also where playback starts once the candidate is selected.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from motion_matching.core.nearest_index import MatchCandidate

logger = logging.getLogger(__name__)


def candidate_time(asset, candidate: MatchCandidate) -> float:
    """Clip time of a candidate's anchor point."""
    anchor_offset = candidate.chunk_offset + asset.trajectory_config.history_count
    return asset.trajectory_time(candidate.chunk_index, anchor_offset)


def candidate_pose(asset, candidate: MatchCandidate) -> np.ndarray:
    return asset.sample_pose(candidate.chunk_index, candidate_time(asset, candidate))


def pose_distance(skeleton, pose0, pose1) -> float:
    """
    Two-level RMS distance between two flat poses.

    Per joint: squared channel differences summed then square-rooted;
    joint values are summed and square-rooted again. Rotation differences
    are wrapped to [-180, 180) degrees first.

    Raises:
        ValueError: If a pose length does not match the skeleton
    """
    pose0 = np.asarray(pose0, dtype=float)
    pose1 = np.asarray(pose1, dtype=float)
    if pose0.shape != (skeleton.num_channels,) or pose1.shape != (skeleton.num_channels,):
        raise ValueError(
            f"Pose lengths {pose0.shape} and {pose1.shape} do not match {skeleton.num_channels} channels"
        )

    diff = pose1 - pose0
    rotation_channels = _rotation_channel_mask(skeleton)
    diff[rotation_channels] = (diff[rotation_channels] + 180.0) % 360.0 - 180.0

    per_joint = np.bincount(skeleton.channel_joint_indices, weights=diff**2, minlength=skeleton.num_joints)
    return float(np.sqrt(np.sum(np.sqrt(per_joint))))


def _rotation_channel_mask(skeleton) -> np.ndarray:
    mask = np.zeros(skeleton.num_channels, dtype=bool)
    for joint in skeleton.joints:
        for channel in joint.channels:
            mask[channel.pose_index] = channel.channel_type.is_rotation
    return mask


def score_candidates(asset, candidates: Sequence[MatchCandidate], live_pose) -> List[Tuple[MatchCandidate, float]]:
    """Pose distance of every candidate, in candidate order."""
    return [(c, pose_distance(asset.skeleton, candidate_pose(asset, c), live_pose)) for c in candidates]


def score_poses(asset, candidates: Sequence[MatchCandidate], live_pose) -> Optional[Tuple[MatchCandidate, float]]:
    """
    Candidate whose pose is closest to the character's current pose.

    Args:
        asset: MotionAsset the candidates came from
        candidates: Trajectory candidates (any order)
        live_pose: Current flat pose of the character

    Returns:
        tuple: (best candidate, pose distance), or None if there are no candidates
    """
    if not candidates:
        return None

    scores = score_candidates(asset, candidates, live_pose)
    best, distance = min(scores, key=lambda item: item[1])
    logger.debug("Pose scores: %s -> best %s (%.4f)", [round(s, 4) for _, s in scores], best, distance)
    return best, distance
