"""
Configuration Module

Validated configuration dataclasses for corpus building, matching and
blending, plus JSON load/save for the whole bundle.

Example config file:

    {
        "pose_interval": 0.016667,
        "scale_ratio": 0.01,
        "trajectory": {"interval_time": 0.1667, "num_points": 7, "history_count": 1},
        "match": {"max_match_count": 5, "match_threshold": 1.0},
        "blend": {"match_interval": 0.4, "blend_duration": 0.3333}
    }
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Optional

# Corpus units (centimetres in most BVH exports) to world units (metres)
DEFAULT_SCALE_RATIO = 0.01
DEFAULT_POSE_INTERVAL = 1.0 / 60.0


@dataclass(frozen=True)
class TrajectoryConfig:
    """
    Shape of a trajectory window.

    Attributes:
        interval_time: Seconds between two trajectory points
        num_points: Points per window (history + present + prediction)
        history_count: Index of the present ("anchor") point inside a window
    """

    interval_time: float = 0.1667
    num_points: int = 7
    history_count: int = 1

    def __post_init__(self):
        if not self.interval_time > 0.0:
            raise ValueError(f"Trajectory interval_time must be greater than 0, got {self.interval_time}")
        if self.num_points < 2:
            raise ValueError(f"Trajectory num_points must be at least 2, got {self.num_points}")
        if not 0 <= self.history_count < self.num_points:
            raise ValueError(
                f"Trajectory history_count must be in [0, num_points), got {self.history_count} "
                f"for num_points={self.num_points}"
            )

    @property
    def predict_count(self) -> int:
        return self.num_points - self.history_count - 1

    @property
    def num_segments(self) -> int:
        return self.num_points - 1

    @property
    def feature_dim(self) -> int:
        return 2 * self.num_segments

    @property
    def history_time(self) -> float:
        return self.interval_time * self.history_count

    @property
    def predict_time(self) -> float:
        return self.interval_time * self.predict_count

    @property
    def total_time(self) -> float:
        return self.interval_time * self.num_segments


@dataclass(frozen=True)
class MatchConfig:
    """
    Nearest-neighbor search settings.

    Attributes:
        max_match_count: Upper bound of candidates returned per query
        match_threshold: Maximum squared feature distance of a candidate
        kmeans_clusters: Number of clusters of the approximate index
        kmeans_iterations: Centroid relocation iterations
        random_seed: Seed of the random initial centroids
        centroid_threshold: Squared distance a centroid may be from the query
            for its cluster to be scanned (None = match_threshold)
    """

    max_match_count: int = 5
    match_threshold: float = 1.0
    kmeans_clusters: int = 8
    kmeans_iterations: int = 10
    random_seed: int = 0
    centroid_threshold: Optional[float] = None

    def __post_init__(self):
        if self.max_match_count < 1:
            raise ValueError(f"max_match_count must be at least 1, got {self.max_match_count}")
        if self.match_threshold < 0.0:
            raise ValueError(f"match_threshold cannot be negative, got {self.match_threshold}")
        if self.kmeans_clusters < 1 or self.kmeans_iterations < 1:
            raise ValueError("kmeans_clusters and kmeans_iterations must be at least 1")
        if self.centroid_threshold is not None and self.centroid_threshold < 0.0:
            raise ValueError(f"centroid_threshold cannot be negative, got {self.centroid_threshold}")

    @property
    def effective_centroid_threshold(self) -> float:
        if self.centroid_threshold is None:
            return self.match_threshold
        return self.centroid_threshold


@dataclass(frozen=True)
class BlendConfig:
    """
    Blend player timing.

    Attributes:
        match_interval: Seconds between periodic re-matches
        blend_duration: Seconds a cross-fade takes (<= match_interval)
        rematch_on_direction_change: Re-match immediately on a sharp input turn
        direction_change_dot: Dot product below which a turn counts as sharp
        direction_min_length_sq: Minimum squared input length to consider
    """

    match_interval: float = 0.4
    blend_duration: float = 0.3333
    rematch_on_direction_change: bool = True
    direction_change_dot: float = 0.5
    direction_min_length_sq: float = 0.1

    def __post_init__(self):
        if not self.match_interval > 0.0:
            raise ValueError(f"match_interval must be greater than 0, got {self.match_interval}")
        if not self.blend_duration > 0.0:
            raise ValueError(f"blend_duration must be greater than 0, got {self.blend_duration}")
        if self.blend_duration > self.match_interval:
            raise ValueError(
                f"blend_duration ({self.blend_duration}) cannot exceed match_interval ({self.match_interval})"
            )


@dataclass(frozen=True)
class MotionMatchingConfig:
    """Everything needed to build a corpus and drive a player."""

    pose_interval: float = DEFAULT_POSE_INTERVAL
    scale_ratio: float = DEFAULT_SCALE_RATIO
    trajectory: TrajectoryConfig = field(default_factory=TrajectoryConfig)
    match: MatchConfig = field(default_factory=MatchConfig)
    blend: BlendConfig = field(default_factory=BlendConfig)

    def __post_init__(self):
        if not self.pose_interval > 0.0:
            raise ValueError(f"pose_interval must be greater than 0, got {self.pose_interval}")
        if not self.scale_ratio > 0.0:
            raise ValueError(f"scale_ratio must be greater than 0, got {self.scale_ratio}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MotionMatchingConfig":
        _reject_unknown_keys(cls, data, "config")
        sections = {"trajectory": TrajectoryConfig, "match": MatchConfig, "blend": BlendConfig}

        kwargs = {}
        for key, value in data.items():
            if key in sections:
                _reject_unknown_keys(sections[key], value, key)
                kwargs[key] = sections[key](**value)
            else:
                kwargs[key] = value
        return cls(**kwargs)


def _reject_unknown_keys(config_cls, data: dict, section: str):
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{section}' must be an object")
    known = {f.name for f in fields(config_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in config section '{section}': {sorted(unknown)}")


def load_config(path) -> MotionMatchingConfig:
    """
    Load a configuration bundle from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or holds invalid values
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file is not valid JSON: {path} ({e})") from e

    return MotionMatchingConfig.from_dict(data)


def save_config(config: MotionMatchingConfig, path):
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
