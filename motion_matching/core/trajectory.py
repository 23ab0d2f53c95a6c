"""
Live Trajectory Module

The desired path of the player character, as produced every frame by the
host's input and movement systems: `history_count` past samples, the present
sample, then predicted samples, all in world space.
"""

from dataclasses import dataclass, field
from typing import Iterable, List

import numpy as np


@dataclass
class TrajectoryPoint:
    """One planar trajectory sample."""

    translation: np.ndarray = field(default_factory=lambda: np.zeros(2))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(2))

    def __post_init__(self):
        self.translation = np.asarray(self.translation, dtype=float).reshape(2)
        self.velocity = np.asarray(self.velocity, dtype=float).reshape(2)


class Trajectory:
    """Ordered planar samples: history, present, prediction."""

    def __init__(self, points: Iterable[TrajectoryPoint] = ()):
        self.points: List[TrajectoryPoint] = list(points)

    @classmethod
    def from_arrays(cls, translations, velocities=None) -> "Trajectory":
        translations = np.asarray(translations, dtype=float).reshape(-1, 2)
        if velocities is None:
            velocities = np.zeros_like(translations)
        velocities = np.asarray(velocities, dtype=float).reshape(-1, 2)
        if len(velocities) != len(translations):
            raise ValueError("Trajectory translations and velocities must have the same length")
        return cls(TrajectoryPoint(t, v) for t, v in zip(translations, velocities))

    @property
    def translations(self) -> np.ndarray:
        if not self.points:
            return np.zeros((0, 2))
        return np.array([p.translation for p in self.points])

    @property
    def velocities(self) -> np.ndarray:
        if not self.points:
            return np.zeros((0, 2))
        return np.array([p.velocity for p in self.points])

    def __len__(self):
        return len(self.points)

    def __getitem__(self, index):
        return self.points[index]

    def __iter__(self):
        return iter(self.points)

    def distance(self, other: "Trajectory") -> float:
        """
        Shape and speed difference of two equal-length trajectories.

        Mean distance between matching segment offsets plus mean distance
        between matching velocities.
        """
        if len(self) != len(other):
            raise ValueError(f"Cannot compare trajectories of length {len(self)} and {len(other)}")
        if len(self) < 2:
            raise ValueError("Trajectories need at least 2 points to compare")

        offsets0 = np.diff(self.translations, axis=0)
        offsets1 = np.diff(other.translations, axis=0)
        offset_distance = np.linalg.norm(offsets1 - offsets0, axis=1).mean()
        velocity_distance = np.linalg.norm(self.velocities - other.velocities, axis=1).mean()
        return float(offset_distance + velocity_distance)
