"""
Motion Asset Module

Builds and persists the matchable motion corpus.

A MotionAsset holds, for every accepted source clip, one chunk of raw
per-frame poses and one chunk of trajectory points resampled at the
trajectory interval. Trajectory points carry the root joint's rigid transform
with its position unwrapped across loop seams, so a looping walk cycle
produces a trajectory that keeps moving forward instead of snapping back.

The asset is built once (offline or at load time) and never mutated afterwards.

Build pipeline per clip:
1. Reject clips whose frame interval differs from the corpus pose interval
2. Reject clips that cannot supply a single full trajectory window
3. Resample the root joint at the trajectory interval (lerp/slerp)
4. Unwrap positions across loop boundaries
5. Append the trajectory chunk, the pose chunk and the loopable flag
"""

import json
import logging
import math
import os
from typing import Dict, Iterable, List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from motion_matching.core.chunk import TimedSeries, sample_count
from motion_matching.core.clip import MotionClip
from motion_matching.core.config import DEFAULT_SCALE_RATIO, MotionMatchingConfig, TrajectoryConfig
from motion_matching.core.skeleton import EULER_ORDER, Skeleton
from motion_matching.core.transforms import slerp_rotations
from motion_matching.core.utils import convert_numpy_to_native, ensure_output_dir

logger = logging.getLogger(__name__)

ASSET_FORMAT = "motion_matching.asset"
ASSET_VERSION = 1

# Keeps sampling strictly before the final frame so an end frame always exists
LARGE_EPSILON = 1e-4

TRAJECTORY_POINT_DTYPE = np.dtype([("matrix", np.float64, (4, 4)), ("velocity", np.float64, (2,))])


# ==============================================================================
# STORES
# ==============================================================================


class TrajectoryData(TimedSeries):
    """Chunks of trajectory points (root matrix + planar velocity)."""

    def __init__(self, config: TrajectoryConfig):
        super().__init__(config.interval_time, dtype=TRAJECTORY_POINT_DTYPE)
        self.config = config

    def append_trajectory_chunk(self, matrices: np.ndarray, velocities: np.ndarray):
        if len(matrices) < self.config.num_points:
            raise ValueError(
                f"A trajectory chunk needs at least {self.config.num_points} points, got {len(matrices)}"
            )
        points = np.zeros(len(matrices), dtype=TRAJECTORY_POINT_DTYPE)
        points["matrix"] = matrices
        points["velocity"] = velocities
        self.push_chunk(points)


class PoseData(TimedSeries):
    """Chunks of raw per-frame poses plus a loopable flag per chunk."""

    def __init__(self, interval: float, num_channels: int):
        super().__init__(interval, item_shape=(num_channels,))
        self.loopables: List[bool] = []

    def append_frames(self, frames: np.ndarray, loopable: bool):
        self.push_chunk(frames)
        self.loopables.append(bool(loopable))

    def is_chunk_loopable(self, chunk_index: int) -> bool:
        self.offsets.get_chunk(chunk_index)
        return self.loopables[chunk_index]


# ==============================================================================
# MOTION ASSET
# ==============================================================================


class MotionAsset:
    """
    Immutable, matchable motion corpus.

    Attributes:
        skeleton: Rig shared by every pose
        trajectory_data: Resampled root trajectory chunks
        pose_data: Raw pose chunks (one per accepted clip)
        clip_names: Source clip name per chunk
        scale_ratio: Corpus unit to world unit ratio
        build_report: One entry per input clip (accepted or skipped + reason)
    """

    def __init__(
        self,
        skeleton: Skeleton,
        trajectory_config: TrajectoryConfig,
        pose_interval: float,
        scale_ratio: float = DEFAULT_SCALE_RATIO,
    ):
        if not scale_ratio > 0.0:
            raise ValueError(f"scale_ratio must be greater than 0, got {scale_ratio}")
        self.skeleton = skeleton
        self.trajectory_data = TrajectoryData(trajectory_config)
        self.pose_data = PoseData(pose_interval, skeleton.num_channels)
        self.clip_names: List[str] = []
        self.scale_ratio = float(scale_ratio)
        self.build_report: List[Dict] = []

    # ---- accessors -----------------------------------------------------------

    def joints(self):
        return self.skeleton.joints

    def get_joint(self, index: int):
        if 0 <= index < self.skeleton.num_joints:
            return self.skeleton.joints[index]
        return None

    @property
    def trajectory_config(self) -> TrajectoryConfig:
        return self.trajectory_data.config

    @property
    def pose_interval(self) -> float:
        return self.pose_data.interval

    @property
    def num_chunks(self) -> int:
        return self.pose_data.num_chunks

    def is_chunk_loopable(self, chunk_index: int) -> bool:
        return self.pose_data.is_chunk_loopable(chunk_index)

    def chunk_duration(self, chunk_index: int) -> float:
        """Playable duration of a clip chunk in seconds."""
        return self.pose_data.chunk_duration(chunk_index)

    def trajectory_time(self, chunk_index: int, chunk_offset: int) -> float:
        """
        Clip time of a trajectory point, wrapped for loopable chunks.

        Trajectory points of loopable chunks continue past the clip end, so
        their time must be folded back into the clip before reading poses.
        """
        time = self.trajectory_data.time_from_chunk_offset(chunk_offset)
        duration = self.chunk_duration(chunk_index)
        if self.is_chunk_loopable(chunk_index) and duration > 0.0:
            time = math.fmod(time, duration)
        return time

    def sample_pose(self, chunk_index: int, time: float, loop: Optional[bool] = None) -> np.ndarray:
        """
        Interpolated pose of a chunk at a clip time.

        Args:
            chunk_index: Pose chunk
            time: Seconds since the chunk start
            loop: Wrap time around the chunk duration (default: chunk's loopable flag)

        Returns:
            np.ndarray: Flat pose vector

        Raises:
            ChunkOutOfRangeError: If chunk_index is invalid
        """
        poses = self.pose_data.get_chunk(chunk_index)
        if len(poses) == 1:
            return poses[0].copy()

        if loop is None:
            loop = self.is_chunk_loopable(chunk_index)

        duration = self.chunk_duration(chunk_index)
        if loop:
            time = math.fmod(time, duration)
            if time < 0.0:
                time += duration
        time = min(max(time, 0.0), duration - LARGE_EPSILON)

        start, factor = self.pose_data.sample_position(time)
        start = min(start, len(poses) - 2)
        return self.skeleton.interpolate_poses(poses[start], poses[start + 1], factor)

    # ---- persistence ---------------------------------------------------------

    def to_dict(self) -> Dict:
        traj_items = self.trajectory_data.items
        return {
            "format": ASSET_FORMAT,
            "version": ASSET_VERSION,
            "skeleton": self.skeleton.to_dict(),
            "scale_ratio": self.scale_ratio,
            "pose_interval": self.pose_interval,
            "trajectory_config": {
                "interval_time": self.trajectory_config.interval_time,
                "num_points": self.trajectory_config.num_points,
                "history_count": self.trajectory_config.history_count,
            },
            "clip_names": list(self.clip_names),
            "loopables": list(self.pose_data.loopables),
            "pose_offsets": self.pose_data.offsets.to_list(),
            "poses": self.pose_data.items.tolist(),
            "trajectory_offsets": self.trajectory_data.offsets.to_list(),
            "trajectory_matrices": traj_items["matrix"].reshape(-1, 16).tolist(),
            "trajectory_velocities": traj_items["velocity"].tolist(),
            "build_report": list(self.build_report),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "MotionAsset":
        if data.get("format") != ASSET_FORMAT:
            raise ValueError(f"Not a motion asset (format={data.get('format')!r})")
        if data.get("version") != ASSET_VERSION:
            raise ValueError(f"Unsupported motion asset version {data.get('version')}, expected {ASSET_VERSION}")

        try:
            asset = cls(
                Skeleton.from_dict(data["skeleton"]),
                TrajectoryConfig(**data["trajectory_config"]),
                data["pose_interval"],
                data["scale_ratio"],
            )

            poses = np.asarray(data["poses"], dtype=float).reshape(-1, asset.skeleton.num_channels)
            pose_offsets = data["pose_offsets"]
            for i, loopable in enumerate(data["loopables"]):
                asset.pose_data.append_frames(poses[pose_offsets[i] : pose_offsets[i + 1]], loopable)

            matrices = np.asarray(data["trajectory_matrices"], dtype=float).reshape(-1, 4, 4)
            velocities = np.asarray(data["trajectory_velocities"], dtype=float).reshape(-1, 2)
            traj_offsets = data["trajectory_offsets"]
            for start, end in zip(traj_offsets, traj_offsets[1:]):
                asset.trajectory_data.append_trajectory_chunk(matrices[start:end], velocities[start:end])

            asset.clip_names = list(data["clip_names"])
            asset.build_report = list(data.get("build_report", []))
        except KeyError as e:
            raise ValueError(f"Motion asset is missing key {e}") from e

        if asset.trajectory_data.num_chunks != asset.pose_data.num_chunks:
            raise ValueError("Motion asset has mismatched trajectory and pose chunk counts")
        return asset

    def to_bytes(self) -> bytes:
        return json.dumps(convert_numpy_to_native(self.to_dict())).encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "MotionAsset":
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Motion asset payload is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def save(self, path):
        ensure_output_dir(path)
        with open(path, "wb") as f:
            f.write(self.to_bytes())

    @classmethod
    def load(cls, path) -> "MotionAsset":
        if not os.path.exists(path):
            raise FileNotFoundError(f"Motion asset not found: {path}")
        with open(path, "rb") as f:
            return cls.from_bytes(f.read())

    def __repr__(self):
        return (
            f"MotionAsset(chunks={self.num_chunks}, poses={len(self.pose_data)}, "
            f"trajectory_points={len(self.trajectory_data)}, skeleton={self.skeleton!r})"
        )


# ==============================================================================
# CORPUS BUILDER
# ==============================================================================


def _check_clip(clip: MotionClip, skeleton: Skeleton, pose_interval: float, config: TrajectoryConfig):
    """Return a skip reason for an unusable clip, or None."""
    if not clip.skeleton.is_compatible(skeleton):
        return "skeleton does not match the corpus skeleton"

    if clip.frames.shape[1] != skeleton.num_channels:
        return f"frames have {clip.frames.shape[1]} channels, expected {skeleton.num_channels}"

    if clip.frame_count < 2:
        return f"needs at least 2 frames, got {clip.frame_count}"

    if not math.isclose(clip.frame_interval, pose_interval, rel_tol=1e-6, abs_tol=1e-9):
        return f"frame interval ({clip.frame_interval}) does not match pose interval ({pose_interval})"

    num_points = sample_count(clip.duration, config.interval_time)
    if not clip.loopable and num_points < config.num_points:
        return (
            f"only {num_points} trajectory points, a full window needs {config.num_points} "
            f"(mark the clip loopable if it loops)"
        )

    return None


def resample_root_trajectory(clip: MotionClip, config: TrajectoryConfig):
    """
    Resample a clip's root joint at the trajectory interval.

    Loopable clips are sampled past their end by wrapping time; every seam
    crossing adds "previous point to last frame" plus "first frame to new
    point" to the unwrapped world position, which keeps velocity continuous.

    Args:
        clip: Source clip (at least 2 frames)
        config: Trajectory configuration

    Returns:
        tuple: (matrices (N, 4, 4), planar velocities (N, 2))
    """
    frame_interval = clip.frame_interval
    duration = clip.duration
    required = sample_count(duration, config.interval_time)
    num_points = max(required, config.num_points)

    times = config.interval_time * np.arange(num_points)
    if clip.loopable:
        times = np.fmod(times, duration)
    times = np.minimum(times, duration - LARGE_EPSILON)

    starts = np.clip((times / frame_interval).astype(int), 0, clip.frame_count - 2)
    ends = starts + 1
    factors = (times - starts * frame_interval) / frame_interval

    skeleton = clip.skeleton
    root_positions = skeleton.channel_positions(clip.frames)[:, 0]
    root_rotations = Rotation.from_euler(EULER_ORDER, skeleton.euler_degrees(clip.frames)[:, 0], degrees=True)

    positions = root_positions[starts] + factors[:, None] * (root_positions[ends] - root_positions[starts])
    rotations = slerp_rotations(root_rotations[starts], root_rotations[ends], factors)
    velocities = ((root_positions[ends] - root_positions[starts]) / frame_interval)[:, [0, 2]]

    # Unwrap: accumulate per-step deltas, bridging the seam when time wrapped
    first_pos = root_positions[0]
    last_pos = root_positions[-1]
    deltas = np.zeros_like(positions)
    deltas[1:] = positions[1:] - positions[:-1]
    wrapped = np.flatnonzero(times[1:] < times[:-1]) + 1
    deltas[wrapped] = (last_pos - positions[wrapped - 1]) + (positions[wrapped] - first_pos)
    world_positions = first_pos + np.cumsum(deltas, axis=0)

    matrices = np.tile(np.eye(4), (num_points, 1, 1))
    matrices[:, :3, :3] = rotations.as_matrix()
    matrices[:, :3, 3] = world_positions
    return matrices, velocities


def build_motion_asset(
    clips: Iterable[MotionClip],
    config: Optional[MotionMatchingConfig] = None,
    skeleton: Optional[Skeleton] = None,
) -> MotionAsset:
    """
    Build a MotionAsset from decoded clips.

    Malformed clips are skipped with a warning; building never aborts on a
    single bad clip. Invariant violations (bad configuration, invalid
    skeleton) raise.

    Args:
        clips: Decoded source clips
        config: Corpus configuration (defaults if None)
        skeleton: Corpus skeleton (default: skeleton of the first clip)

    Returns:
        MotionAsset

    Raises:
        ValueError: If no skeleton can be determined
    """
    config = config or MotionMatchingConfig()
    clips = list(clips)

    if skeleton is None:
        if not clips:
            raise ValueError("Cannot build a motion asset without clips or a skeleton")
        skeleton = clips[0].skeleton

    traj_config = config.trajectory
    asset = MotionAsset(skeleton, traj_config, config.pose_interval, config.scale_ratio)

    for clip in clips:
        logger.info("Building %s...", clip.name)

        reason = _check_clip(clip, skeleton, config.pose_interval, traj_config)
        if reason is not None:
            logger.warning("Skipping clip '%s': %s", clip.name, reason)
            asset.build_report.append({"clip": clip.name, "status": "skipped", "reason": reason})
            continue

        matrices, velocities = resample_root_trajectory(clip, traj_config)
        asset.trajectory_data.append_trajectory_chunk(matrices, velocities)
        asset.pose_data.append_frames(clip.frames, clip.loopable)
        asset.clip_names.append(clip.name)
        asset.build_report.append(
            {
                "clip": clip.name,
                "status": "accepted",
                "reason": "",
                "frames": clip.frame_count,
                "trajectory_points": len(matrices),
            }
        )

    skipped = sum(1 for entry in asset.build_report if entry["status"] == "skipped")
    logger.info(
        "Motion asset built: %d clips accepted, %d skipped, %d trajectory points",
        asset.num_chunks,
        skipped,
        len(asset.trajectory_data),
    )
    if asset.num_chunks == 0:
        logger.warning("Motion asset has no usable clips; matching will never produce a result")

    return asset
