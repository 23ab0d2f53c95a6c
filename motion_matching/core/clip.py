"""
Motion Clip Module

The decoded form of one motion-capture recording, as handed over by an
external decoder (BVH, FBX, ...). Decoding itself happens outside this package;
`load_clip_json` only reads clips an external tool already exported as JSON:

    {
        "name": "walk_forward",
        "frame_interval": 0.016667,
        "loopable": true,
        "joints": [
            {"name": "Hips", "offset": [0, 90, 0], "parent_index": null,
             "channels": [[0, "Xposition"], [1, "Yposition"], [2, "Zposition"],
                          [3, "Zrotation"], [4, "Xrotation"], [5, "Yrotation"]]},
            ...
        ],
        "frames": [[...], [...]]
    }
"""

import json
import os
from dataclasses import dataclass

import numpy as np

from motion_matching.core.skeleton import Skeleton


@dataclass
class MotionClip:
    """
    One decoded source clip.

    Attributes:
        name: Clip identifier (usually the file stem)
        skeleton: Joint hierarchy of the clip
        frame_interval: Seconds between two frames
        frames: (frame_count, num_channels) channel values
        loopable: Whether the last frame flows back into the first
    """

    name: str
    skeleton: Skeleton
    frame_interval: float
    frames: np.ndarray
    loopable: bool = False

    def __post_init__(self):
        self.frames = np.atleast_2d(np.asarray(self.frames, dtype=float))
        self.frame_interval = float(self.frame_interval)
        self.loopable = bool(self.loopable)

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def duration(self) -> float:
        """Two frames make one segment, hence frame_count - 1."""
        return max(self.frame_count - 1, 0) * self.frame_interval

    def frame(self, index: int) -> np.ndarray:
        return self.frames[index]


def load_clip_json(path, loopable=None) -> MotionClip:
    """
    Read a decoded clip exported as JSON.

    Args:
        path: JSON file path
        loopable: Override the file's loopable flag (None keeps it)

    Returns:
        MotionClip

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required keys are missing or the skeleton is invalid
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Clip file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    missing = [key for key in ("joints", "frame_interval", "frames") if key not in data]
    if missing:
        raise ValueError(f"Clip file {path} is missing keys: {missing}")

    name = data.get("name") or os.path.splitext(os.path.basename(path))[0]
    return MotionClip(
        name=name,
        skeleton=Skeleton.from_dict({"joints": data["joints"]}),
        frame_interval=data["frame_interval"],
        frames=data["frames"],
        loopable=data.get("loopable", False) if loopable is None else loopable,
    )
