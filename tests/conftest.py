"""
Pytest configuration and shared fixtures for Motion Matching tests

Fixtures:
- skeleton: Three-joint rig (Hips with 6 channels, Spine and LeftLeg with 3)
- make_clip: Factory for procedural walking / turning / looping clips
- config: Default configuration at 60 FPS
- walk_asset: Corpus of a straight walk, an accelerating turn and a walk loop
- temp_output_dir: Temporary directory for test outputs
"""

import json
import os
import shutil
import tempfile

import numpy as np
import pytest

from motion_matching.core.clip import MotionClip
from motion_matching.core.config import MotionMatchingConfig
from motion_matching.core.motion_asset import build_motion_asset
from motion_matching.core.skeleton import ChannelRef, ChannelType, Joint, Skeleton
from motion_matching.core.transforms import Transform2d, headings_from_matrices

FRAME_INTERVAL = 1.0 / 60.0
HIP_HEIGHT = 90.0
WALK_SPEED = 150.0  # cm/s

# ========== Skeleton Fixtures ==========


def build_skeleton():
    root_channels = [
        ChannelRef(0, ChannelType.POSITION_X),
        ChannelRef(1, ChannelType.POSITION_Y),
        ChannelRef(2, ChannelType.POSITION_Z),
        ChannelRef(3, ChannelType.ROTATION_Z),
        ChannelRef(4, ChannelType.ROTATION_X),
        ChannelRef(5, ChannelType.ROTATION_Y),
    ]
    spine_channels = [
        ChannelRef(6, ChannelType.ROTATION_Z),
        ChannelRef(7, ChannelType.ROTATION_X),
        ChannelRef(8, ChannelType.ROTATION_Y),
    ]
    leg_channels = [
        ChannelRef(9, ChannelType.ROTATION_Z),
        ChannelRef(10, ChannelType.ROTATION_X),
        ChannelRef(11, ChannelType.ROTATION_Y),
    ]
    return Skeleton(
        [
            Joint("Hips", [0.0, 0.0, 0.0], None, root_channels),
            Joint("Spine", [0.0, 10.0, 0.0], 0, spine_channels),
            Joint("LeftLeg", [8.0, -5.0, 0.0], 0, leg_channels),
        ]
    )


@pytest.fixture
def skeleton():
    """Three-joint rig with 12 channels."""
    return build_skeleton()


# ========== Clip Fixtures ==========


def make_walk_clip(
    skeleton,
    name="walk",
    duration=2.0,
    speed=WALK_SPEED,
    turn_rate=0.0,
    turn_accel=0.0,
    start_heading=0.0,
    loopable=False,
    frame_interval=FRAME_INTERVAL,
):
    """
    Procedural locomotion clip.

    Heading (degrees) follows start + turn_rate * t + turn_accel * t^2 / 2 and
    the root moves along its heading at `speed` cm/s. Spine and leg swing
    sinusoidally so poses differ frame to frame.
    """
    num_frames = int(round(duration / frame_interval)) + 1
    t = np.arange(num_frames) * frame_interval
    heading = np.radians(start_heading + turn_rate * t + 0.5 * turn_accel * t**2)

    velocity = speed * np.stack([np.sin(heading), np.cos(heading)], axis=1)
    planar = np.zeros((num_frames, 2))
    planar[1:] = np.cumsum(velocity[:-1] * frame_interval, axis=0)

    frames = np.zeros((num_frames, skeleton.num_channels))
    frames[:, 0] = planar[:, 0]
    frames[:, 1] = HIP_HEIGHT
    frames[:, 2] = planar[:, 1]
    frames[:, 5] = np.degrees(heading)
    frames[:, 7] = 5.0 * np.sin(2.0 * np.pi * t)
    frames[:, 10] = 30.0 * np.sin(4.0 * np.pi * t)

    return MotionClip(name, skeleton, frame_interval, frames, loopable)


@pytest.fixture
def make_clip(skeleton):
    """Factory: make_clip(**kwargs) -> MotionClip on the shared skeleton."""

    def _make(**kwargs):
        return make_walk_clip(skeleton, **kwargs)

    return _make


def clip_to_json(clip, path):
    """Write a clip in the decoded-clip JSON exchange format."""
    data = {
        "name": clip.name,
        "frame_interval": clip.frame_interval,
        "loopable": clip.loopable,
        "joints": clip.skeleton.to_dict()["joints"],
        "frames": clip.frames.tolist(),
    }
    with open(path, "w") as f:
        json.dump(data, f)
    return path


# ========== Corpus Fixtures ==========


@pytest.fixture
def config():
    """Default configuration at 60 FPS."""
    return MotionMatchingConfig(pose_interval=FRAME_INTERVAL)


@pytest.fixture
def walk_clips(make_clip):
    return [
        make_clip(name="walk_straight", duration=3.0),
        make_clip(name="turn_left", duration=3.0, turn_rate=20.0, turn_accel=30.0),
        make_clip(name="walk_loop", duration=0.5, loopable=True),
    ]


@pytest.fixture
def walk_asset(walk_clips, config):
    """Corpus: straight walk (chunk 0), accelerating turn (chunk 1), walk loop (chunk 2)."""
    return build_motion_asset(walk_clips, config)


def window_query(asset, chunk_index, chunk_offset):
    """
    World-space live trajectory and character transform that reproduce one
    corpus window exactly.
    """
    config = asset.trajectory_config
    matrices = asset.trajectory_data.get_chunk(chunk_index)["matrix"][chunk_offset : chunk_offset + config.num_points]
    translations = matrices[:, [0, 2], 3] * asset.scale_ratio
    anchor = config.history_count
    heading = headings_from_matrices(matrices)[anchor]
    return translations, Transform2d(translations[anchor], heading)


def forward_trajectory(transform2d, num_points=7, history_count=1, step=0.25):
    """Live trajectory running straight ahead of a character transform."""
    local = np.zeros((num_points, 2))
    local[:, 1] = (np.arange(num_points) - history_count) * step
    return transform2d.transform_points(local)


# ========== File System Fixtures ==========


@pytest.fixture
def temp_output_dir():
    """Create a temporary output directory that is cleaned up after test."""
    temp_dir = tempfile.mkdtemp(prefix="motion_matching_test_")
    yield temp_dir
    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clip_files(walk_clips, temp_output_dir):
    """Walk clips written as decoded-clip JSON files."""
    return [clip_to_json(clip, os.path.join(temp_output_dir, f"{clip.name}.json")) for clip in walk_clips]


# ========== Test Markers ==========


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
