"""
Skeleton Model Module

Rig topology and the mapping between joints and flat pose vectors.

A pose is a flat vector of channel values (one float per degree of freedom,
rotations in degrees). Each joint owns up to six channels, each referencing
one index of that vector. Joints are stored in a flat list and reference their
parent by index only; a parent always precedes its children, so the hierarchy
cannot contain cycles.

Rotation channels are composed as intrinsic X, then Y, then Z regardless of
their order in the source file.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from motion_matching.core.transforms import compose_matrix, slerp_rotations

EULER_ORDER = "XYZ"


class ChannelType(Enum):
    """Degrees of freedom a joint can be driven along."""

    ROTATION_X = "Xrotation"
    ROTATION_Y = "Yrotation"
    ROTATION_Z = "Zrotation"
    POSITION_X = "Xposition"
    POSITION_Y = "Yposition"
    POSITION_Z = "Zposition"

    @property
    def is_rotation(self) -> bool:
        return self in (ChannelType.ROTATION_X, ChannelType.ROTATION_Y, ChannelType.ROTATION_Z)

    @property
    def axis(self) -> int:
        return "XYZ".index(self.value[0])


@dataclass(frozen=True)
class ChannelRef:
    """One joint channel: where its value lives in the pose vector."""

    pose_index: int
    channel_type: ChannelType


@dataclass
class Joint:
    """A joint of the rig."""

    name: str
    offset: np.ndarray
    parent_index: Optional[int]
    channels: List[ChannelRef] = field(default_factory=list)

    def __post_init__(self):
        self.offset = np.asarray(self.offset, dtype=float).reshape(3)

    @property
    def is_root(self) -> bool:
        return self.parent_index is None


class Skeleton:
    """
    Ordered joint list with vectorized pose accessors.

    Args:
        joints: Joints in hierarchy order, root first

    Raises:
        ValueError: If the joint list violates the rig invariants
    """

    def __init__(self, joints: Sequence[Joint]):
        self.joints = list(joints)
        self._validate()

        num_joints = len(self.joints)
        self.num_channels = sum(len(j.channels) for j in self.joints)

        # Index num_channels points at a padding zero (see _gather)
        self._pos_index = np.full((num_joints, 3), self.num_channels, dtype=int)
        self._rot_index = np.full((num_joints, 3), self.num_channels, dtype=int)
        self._has_rotation = np.zeros(num_joints, dtype=bool)
        self._channel_joint = np.zeros(self.num_channels, dtype=int)

        for j, joint in enumerate(self.joints):
            for channel in joint.channels:
                target = self._rot_index if channel.channel_type.is_rotation else self._pos_index
                target[j, channel.channel_type.axis] = channel.pose_index
                self._channel_joint[channel.pose_index] = j
                if channel.channel_type.is_rotation:
                    self._has_rotation[j] = True

        self._offsets = np.array([j.offset for j in self.joints])
        self._name_to_index = {j.name: i for i, j in enumerate(self.joints)}

    def _validate(self):
        if not self.joints:
            raise ValueError("Skeleton has no joints")

        if not self.joints[0].is_root:
            raise ValueError(f"First joint '{self.joints[0].name}' must be the root (no parent)")

        seen_indices = set()
        for i, joint in enumerate(self.joints):
            if i > 0 and joint.is_root:
                raise ValueError(f"Joint '{joint.name}' has no parent, only joint 0 may be the root")
            if joint.parent_index is not None and not 0 <= joint.parent_index < i:
                raise ValueError(
                    f"Joint '{joint.name}' (index {i}) has parent index {joint.parent_index}; "
                    f"parents must precede their children"
                )
            if len(joint.channels) not in (3, 6):
                raise ValueError(f"Joint '{joint.name}' has {len(joint.channels)} channels, expected 3 or 6")
            kinds = {c.channel_type for c in joint.channels}
            if len(kinds) != len(joint.channels):
                raise ValueError(f"Joint '{joint.name}' repeats a channel type")
            for channel in joint.channels:
                if channel.pose_index in seen_indices:
                    raise ValueError(f"Pose index {channel.pose_index} is used by more than one channel")
                seen_indices.add(channel.pose_index)

        if seen_indices != set(range(len(seen_indices))):
            raise ValueError("Channel pose indices must cover 0..num_channels-1 without gaps")

    # ==========================================================================
    # TOPOLOGY
    # ==========================================================================

    @property
    def num_joints(self) -> int:
        return len(self.joints)

    @property
    def root(self) -> Joint:
        return self.joints[0]

    @property
    def joint_names(self) -> List[str]:
        return [j.name for j in self.joints]

    @property
    def channel_joint_indices(self) -> np.ndarray:
        """Owning joint index of every pose channel."""
        return self._channel_joint

    def find_joint(self, name: str) -> Optional[int]:
        return self._name_to_index.get(name)

    def is_compatible(self, other: "Skeleton") -> bool:
        """Same joint names, parents and channel layout."""
        if self.num_joints != other.num_joints or self.num_channels != other.num_channels:
            return False
        for a, b in zip(self.joints, other.joints):
            if a.name != b.name or a.parent_index != b.parent_index or a.channels != b.channels:
                return False
        return True

    # ==========================================================================
    # POSE ACCESS
    # ==========================================================================

    def _gather(self, poses, index: np.ndarray) -> np.ndarray:
        poses = np.asarray(poses, dtype=float)
        padded = np.concatenate([poses, np.zeros(poses.shape[:-1] + (1,))], axis=-1)
        return padded[..., index]

    def channel_positions(self, poses) -> np.ndarray:
        """Position channel values per joint, (..., J, 3). Missing channels are 0."""
        return self._gather(poses, self._pos_index)

    def euler_degrees(self, poses) -> np.ndarray:
        """Rotation channel values per joint, (..., J, 3) in degrees."""
        return self._gather(poses, self._rot_index)

    def rotations(self, pose) -> Rotation:
        """Local rotation of every joint for one pose (stack of J rotations)."""
        return Rotation.from_euler(EULER_ORDER, self.euler_degrees(pose), degrees=True)

    def get_pos_rot(self, pose, joint_index: int = 0):
        """
        Channel position and rotation of one joint.

        Returns:
            tuple: (position (3,), Rotation)
        """
        pose = np.asarray(pose, dtype=float)
        position = self.channel_positions(pose)[joint_index]
        rotation = Rotation.from_euler(EULER_ORDER, self.euler_degrees(pose)[joint_index], degrees=True)
        return position, rotation

    def get_pos(self, pose, joint_index: int = 0) -> np.ndarray:
        return self.channel_positions(pose)[joint_index]

    def joint_transforms(self, pose):
        """
        Local transforms of every joint.

        Returns:
            tuple: (translations (J, 3) = rest offset + position channels, Rotation stack)
        """
        return self._offsets + self.channel_positions(pose), self.rotations(pose)

    def world_matrices(self, pose) -> np.ndarray:
        """Forward kinematics: world matrix of every joint, (J, 4, 4)."""
        translations, rotations = self.joint_transforms(pose)
        world = np.empty((self.num_joints, 4, 4))
        for i, joint in enumerate(self.joints):
            local = compose_matrix(rotations[i], translations[i])
            if joint.parent_index is None:
                world[i] = local
            else:
                world[i] = world[joint.parent_index] @ local
        return world

    def pose_from_transforms(self, translations, rotations: Rotation) -> np.ndarray:
        """
        Inverse of joint_transforms: rebuild a flat pose from local transforms.

        Args:
            translations: (J, 3) local translations including rest offsets
            rotations: Rotation stack of J local rotations

        Returns:
            np.ndarray: Flat pose vector (num_channels,)
        """
        translations = np.asarray(translations, dtype=float)
        euler = rotations.as_euler(EULER_ORDER, degrees=True)
        positions = translations - self._offsets

        pose = np.zeros(self.num_channels + 1)
        pose[self._pos_index] = positions
        pose[self._rot_index] = euler
        return pose[:-1].copy()

    def interpolate_poses(self, pose0, pose1, t: float) -> np.ndarray:
        """
        Blend two poses: linear on positions, spherical on rotations.

        Rotation channels are written back as the Euler triple closest to the
        linear blend of the inputs so values stay continuous frame to frame.
        """
        pose0 = np.asarray(pose0, dtype=float)
        pose1 = np.asarray(pose1, dtype=float)
        if t <= 0.0:
            return pose0.copy()
        if t >= 1.0:
            return pose1.copy()

        blended = (1.0 - t) * pose0 + t * pose1
        joints = np.flatnonzero(self._has_rotation)
        if len(joints) == 0:
            return blended

        rot0 = Rotation.from_euler(EULER_ORDER, self.euler_degrees(pose0)[joints], degrees=True)
        rot1 = Rotation.from_euler(EULER_ORDER, self.euler_degrees(pose1)[joints], degrees=True)
        euler = slerp_rotations(rot0, rot1, t).as_euler(EULER_ORDER, degrees=True)

        reference = self.euler_degrees(blended)[joints]
        euler = _closest_euler(euler, reference)

        padded = np.append(blended, 0.0)
        padded[self._rot_index[joints]] = euler
        return padded[:-1]

    # ==========================================================================
    # SERIALIZATION
    # ==========================================================================

    def to_dict(self) -> Dict:
        return {
            "joints": [
                {
                    "name": j.name,
                    "offset": j.offset.tolist(),
                    "parent_index": j.parent_index,
                    "channels": [[c.pose_index, c.channel_type.value] for c in j.channels],
                }
                for j in self.joints
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Skeleton":
        joints = [
            Joint(
                name=j["name"],
                offset=j["offset"],
                parent_index=j["parent_index"],
                channels=[ChannelRef(int(index), ChannelType(kind)) for index, kind in j["channels"]],
            )
            for j in data["joints"]
        ]
        return cls(joints)

    def __repr__(self):
        return f"Skeleton(joints={self.num_joints}, channels={self.num_channels}, root='{self.root.name}')"


def _closest_euler(euler: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """
    Pick, per joint, the equivalent XYZ Euler triple nearest to a reference.

    (x, y, z) and (x + 180, 180 - y, z + 180) describe the same rotation;
    each component is also free to shift by whole turns.
    """
    alternate = euler + np.array([180.0, 0.0, 180.0])
    alternate[..., 1] = 180.0 - euler[..., 1]

    def _unwrap(angles):
        return reference + (angles - reference + 180.0) % 360.0 - 180.0

    euler = _unwrap(euler)
    alternate = _unwrap(alternate)
    use_alternate = np.sum(np.abs(alternate - reference), axis=-1) < np.sum(np.abs(euler - reference), axis=-1)
    return np.where(use_alternate[..., None], alternate, euler)
