"""
Motion Matching - trajectory-driven locomotion clip selection and blending.
"""

__version__ = "1.0.0"

# Convenience imports
from motion_matching.core.blend_player import BlendOutput, BlendPlayer
from motion_matching.core.clip import MotionClip, load_clip_json
from motion_matching.core.config import (
    BlendConfig,
    MatchConfig,
    MotionMatchingConfig,
    TrajectoryConfig,
    load_config,
    save_config,
)
from motion_matching.core.motion_asset import MotionAsset, build_motion_asset
from motion_matching.core.nearest_index import MatchCandidate, MatchStrategy, NearestTrajectoryIndex, build_index
from motion_matching.core.pose_scorer import pose_distance, score_poses
from motion_matching.core.trajectory import Trajectory, TrajectoryPoint
from motion_matching.core.trajectory_matcher import find_nearest_trajectories, match_trajectory
from motion_matching.core.transforms import Transform2d

__all__ = [
    "BlendConfig",
    "BlendOutput",
    "BlendPlayer",
    "MatchCandidate",
    "MatchConfig",
    "MatchStrategy",
    "MotionAsset",
    "MotionClip",
    "MotionMatchingConfig",
    "NearestTrajectoryIndex",
    "Trajectory",
    "TrajectoryConfig",
    "TrajectoryPoint",
    "Transform2d",
    "build_index",
    "build_motion_asset",
    "find_nearest_trajectories",
    "load_clip_json",
    "load_config",
    "match_trajectory",
    "pose_distance",
    "save_config",
    "score_poses",
]
