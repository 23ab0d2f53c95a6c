"""
Blend Player Module

Two-slot cross-fade player driven by trajectory matching.

Slots A (index 0) and B (index 1) each hold at most one playing match. The
interpolation factor runs from 0 (only A) to 1 (only B) and always moves
toward the target slot. A re-match writes the non-target slot, flips the
target and lets the factor travel from its current value to the new target
over `blend_duration` seconds of blend time.

Root reprojection:
- On match, the slot captures the clip's planar root transform and the
  character's live Transform2d.
- Each frame the slot's clip root is expressed relative to the captured root
  (offset), scaled to world units, and re-applied on top of the captured live
  transform.
- The two slot transforms are blended with the interpolation factor.

The newly written slot starts with a zero offset and the surviving slot is
re-based onto the current character transform, so a re-match never moves
the character, even in the middle of a cross-fade. Loopable slots keep moving
forward across the loop seam: the captured root is re-based on the seam so
the offset stays continuous.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from motion_matching.core.config import BlendConfig
from motion_matching.core.nearest_index import MatchCandidate, NearestTrajectoryIndex
from motion_matching.core.pose_scorer import candidate_time, score_poses
from motion_matching.core.trajectory_matcher import match_trajectory
from motion_matching.core.transforms import Transform2d, heading_from_rotation, rotate2d, slerp_rotations, strip_yaw

logger = logging.getLogger(__name__)

NUM_SLOTS = 2


# ==============================================================================
# PLANAR ROOT HELPERS
# ==============================================================================


def _compose(a: Transform2d, b: Transform2d) -> Transform2d:
    """Planar equivalent of matrix product a * b."""
    return Transform2d(a.translation + rotate2d(b.translation, a.angle), _wrap(a.angle + b.angle))


def _inverse(a: Transform2d) -> Transform2d:
    return Transform2d(-rotate2d(a.translation, -a.angle), -a.angle)


def _wrap(angle: float) -> float:
    return float((angle + np.pi) % (2.0 * np.pi) - np.pi)


def planar_root(skeleton, pose) -> Transform2d:
    """Root joint of a pose projected onto the ground: (x, z) channels and heading."""
    position, rotation = skeleton.get_pos_rot(pose, 0)
    return Transform2d(position[[0, 2]], heading_from_rotation(rotation))


# ==============================================================================
# SLOT
# ==============================================================================


@dataclass
class BlendSlot:
    """
    One half of the dual-buffer player.

    Attributes:
        candidate: Match that started this slot
        chunk_index: Pose chunk being played
        time: Clip time inside the chunk
        elapsed_time: Seconds since the slot was written
        captured_root: Planar clip root at capture (corpus units), re-based on loop seams
        captured_transform2d: Character transform at capture (world units)
        pose: Pose sampled at `time`
        loopable: Whether the chunk loops
    """

    candidate: MatchCandidate
    chunk_index: int
    time: float
    elapsed_time: float
    captured_root: Transform2d
    captured_transform2d: Transform2d
    pose: np.ndarray
    loopable: bool = False

    @classmethod
    def start(cls, asset, candidate: MatchCandidate, transform2d: Transform2d) -> "BlendSlot":
        time = candidate_time(asset, candidate)
        pose = asset.sample_pose(candidate.chunk_index, time)
        return cls(
            candidate=candidate,
            chunk_index=candidate.chunk_index,
            time=time,
            elapsed_time=0.0,
            captured_root=planar_root(asset.skeleton, pose),
            captured_transform2d=transform2d.copy(),
            pose=pose,
            loopable=asset.is_chunk_loopable(candidate.chunk_index),
        )

    def advance(self, asset, dt: float):
        """Move playback forward, crossing loop seams without losing root motion."""
        self.elapsed_time += dt
        self.time += dt

        duration = asset.chunk_duration(self.chunk_index)
        if self.loopable and duration > 0.0 and self.time >= duration:
            poses = asset.pose_data.get_chunk(self.chunk_index)
            first_root = planar_root(asset.skeleton, poses[0])
            last_root = planar_root(asset.skeleton, poses[-1])
            seam = _compose(first_root, _inverse(last_root))
            while self.time >= duration:
                self.time -= duration
                self.captured_root = _compose(seam, self.captured_root)

        self.pose = asset.sample_pose(self.chunk_index, self.time)

    def root_offset(self, skeleton, scale_ratio: float) -> Transform2d:
        """Clip root motion since capture, in the captured root's frame (world units)."""
        offset = _compose(_inverse(self.captured_root), planar_root(skeleton, self.pose))
        return Transform2d(offset.translation * scale_ratio, offset.angle)

    def world_transform2d(self, skeleton, scale_ratio: float) -> Transform2d:
        """Slot's proposed character transform."""
        offset = self.root_offset(skeleton, scale_ratio)
        live = self.captured_transform2d
        return Transform2d(live.translation + rotate2d(offset.translation, live.angle), _wrap(live.angle + offset.angle))

    def rebase(self, skeleton, scale_ratio: float, transform2d: Transform2d):
        """Move the captured character transform so the slot currently proposes `transform2d`."""
        offset = self.root_offset(skeleton, scale_ratio)
        self.captured_transform2d = _compose(transform2d, _inverse(offset))

    def root_local(self, skeleton):
        """
        Root joint transform left once the planar motion is moved to the character.

        Returns:
            tuple: (local height, yaw-stripped Rotation)
        """
        translations, rotations = skeleton.joint_transforms(self.pose)
        return float(translations[0, 1]), strip_yaw(rotations[0])


@dataclass
class BlendOutput:
    """
    Result of one player update.

    Attributes:
        transform2d: Character's world planar transform
        translations: (J, 3) local joint translations (root: height only)
        rotations: Local joint rotations (root: yaw stripped)
        pose: Blended flat pose of the two slots
        interpolation_factor: 0 = slot A only, 1 = slot B only
    """

    transform2d: Transform2d
    translations: np.ndarray
    rotations: Rotation
    pose: np.ndarray
    interpolation_factor: float


# ==============================================================================
# PLAYER
# ==============================================================================


class BlendPlayer:
    """
    Per-character motion matching player.

    Args:
        index: Search index (its asset provides poses and trajectories)
        config: Timing configuration
        transform2d: Initial character transform (origin facing +Z if None)
    """

    def __init__(
        self,
        index: NearestTrajectoryIndex,
        config: Optional[BlendConfig] = None,
        transform2d: Optional[Transform2d] = None,
    ):
        self.index = index
        self.asset = index.asset
        self.config = config or BlendConfig()
        self.transform2d = transform2d.copy() if transform2d is not None else Transform2d()

        self.slots: List[Optional[BlendSlot]] = [None] * NUM_SLOTS
        self.target = 0
        self.interpolation_factor = 0.0
        self.blend_time = 0.0
        self.blend_from = 0.0
        self.match_countdown = 0.0
        self.previous_direction: Optional[np.ndarray] = None
        self.match_count = 0

    @property
    def is_idle(self) -> bool:
        """True until the first successful match (forever with an empty corpus)."""
        return all(slot is None for slot in self.slots)

    # ---- matching ------------------------------------------------------------

    def rematch(self, live_trajectory, live_pose=None) -> Optional[MatchCandidate]:
        """
        Match the live trajectory and start the best candidate in the non-target slot.

        Args:
            live_trajectory: Desired trajectory (world space)
            live_pose: Current flat pose; when given, candidates are re-ranked by pose

        Returns:
            MatchCandidate: The started candidate, or None when nothing matched
                (slots are left unchanged)
        """
        candidates = match_trajectory(self.index, live_trajectory, self.transform2d)
        if not candidates:
            logger.debug("No trajectory match, keeping current slots")
            return None

        best = candidates[0]
        if live_pose is not None:
            best, _ = score_poses(self.asset, candidates, live_pose)

        surviving = self.slots[self.target]
        if surviving is not None:
            surviving.rebase(self.asset.skeleton, self.asset.scale_ratio, self.transform2d)

        slot_index = 1 - self.target
        self.slots[slot_index] = BlendSlot.start(self.asset, best, self.transform2d)
        self.target = slot_index
        self.blend_time = 0.0
        self.blend_from = self.interpolation_factor
        self.match_count += 1

        logger.debug(
            "Match %d: slot %s <- chunk %d offset %d (distance %.4f)",
            self.match_count,
            "AB"[slot_index],
            best.chunk_index,
            best.chunk_offset,
            best.distance,
        )
        return best

    def direction_changed(self, direction) -> bool:
        """Whether the input direction turned sharply since the previous call."""
        direction = np.asarray(direction, dtype=float).reshape(2)
        previous = self.previous_direction
        self.previous_direction = direction

        if previous is None:
            return False
        return (
            float(np.dot(direction, previous)) < self.config.direction_change_dot
            and float(np.dot(direction, direction)) > self.config.direction_min_length_sq
        )

    def tick(self, dt: float, live_trajectory, direction=None, live_pose=None) -> Optional[BlendOutput]:
        """
        Full per-frame step: re-match when due, then advance.

        A re-match is due every `match_interval` seconds, on the first tick,
        and (when enabled) on a sharp change of the input direction.

        Returns:
            BlendOutput, or None while idle
        """
        sharp_turn = False
        if direction is not None:
            sharp_turn = self.direction_changed(direction) and self.config.rematch_on_direction_change

        self.match_countdown -= dt
        if self.match_countdown <= 0.0 or sharp_turn:
            self.rematch(live_trajectory, live_pose)
            self.match_countdown = self.config.match_interval

        return self.advance(dt)

    # ---- playback ------------------------------------------------------------

    def advance(self, dt: float) -> Optional[BlendOutput]:
        """
        Advance both slots and the interpolation factor by `dt` seconds.

        Returns:
            BlendOutput, or None while idle

        Raises:
            ValueError: If dt is negative
        """
        if dt < 0.0:
            raise ValueError(f"Cannot advance by a negative time step ({dt})")

        for slot in self.slots:
            if slot is not None:
                slot.advance(self.asset, dt)

        self.blend_time = min(self.blend_time + dt, self.config.blend_duration)
        progress = self.blend_time / self.config.blend_duration
        self.interpolation_factor = self.blend_from + (float(self.target) - self.blend_from) * progress

        return self.evaluate()

    def evaluate(self) -> Optional[BlendOutput]:
        """Blend the current slot states without advancing time."""
        if self.is_idle:
            return None

        skeleton = self.asset.skeleton
        scale = self.asset.scale_ratio
        slot_a, slot_b = self.slots
        t = self.interpolation_factor

        # Single slot or a settled factor: no blending needed
        if slot_b is None or (slot_a is not None and t <= 0.0):
            t = 0.0
            slot_b = slot_a
        elif slot_a is None or t >= 1.0:
            t = 1.0
            slot_a = slot_b

        world = slot_a.world_transform2d(skeleton, scale).lerp(slot_b.world_transform2d(skeleton, scale), t)
        pose = skeleton.interpolate_poses(slot_a.pose, slot_b.pose, t)

        height_a, root_rot_a = slot_a.root_local(skeleton)
        height_b, root_rot_b = slot_b.root_local(skeleton)

        translations, rotations = skeleton.joint_transforms(pose)
        translations[0] = [0.0, (1.0 - t) * height_a + t * height_b, 0.0]
        quats = rotations.as_quat()
        quats[0] = slerp_rotations(root_rot_a, root_rot_b, t).as_quat()

        self.transform2d = world
        return BlendOutput(
            transform2d=world.copy(),
            translations=translations,
            rotations=Rotation.from_quat(quats),
            pose=pose,
            interpolation_factor=self.interpolation_factor,
        )

    def __repr__(self):
        slots = ", ".join("-" if s is None else f"{s.chunk_index}@{s.time:.3f}" for s in self.slots)
        return f"BlendPlayer(slots=[{slots}], target={'AB'[self.target]}, factor={self.interpolation_factor:.3f})"
