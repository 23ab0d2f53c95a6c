"""
Transform Utilities Module

Rigid transform helpers shared by corpus building, feature extraction and
root reprojection.

Conventions:
- Y is up, the ground plane is XZ.
- Planar vectors are (x, z) pairs.
- A heading angle `a` rotates about +Y; the forward vector is (sin a, cos a),
  so angle 0 faces +Z and the right vector is (cos a, -sin a).
- Quaternions are scipy's scalar-last (x, y, z, w).
"""

from dataclasses import dataclass, field

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

# ==============================================================================
# 3D MATRICES
# ==============================================================================


def compose_matrix(rotation: Rotation, translation) -> np.ndarray:
    """Build a 4x4 rigid matrix from a rotation and a translation."""
    matrix = np.eye(4)
    matrix[:3, :3] = rotation.as_matrix()
    matrix[:3, 3] = translation
    return matrix


def decompose_matrix(matrix: np.ndarray):
    """
    Split a 4x4 rigid matrix.

    Returns:
        tuple: (translation (3,), Rotation)
    """
    matrix = np.asarray(matrix, dtype=float)
    return matrix[:3, 3].copy(), Rotation.from_matrix(matrix[:3, :3])


def invert_rigid(matrix: np.ndarray) -> np.ndarray:
    """Inverse of a rigid (rotation + translation) 4x4 matrix."""
    matrix = np.asarray(matrix, dtype=float)
    rot_t = matrix[:3, :3].T
    inverse = np.eye(4)
    inverse[:3, :3] = rot_t
    inverse[:3, 3] = -rot_t @ matrix[:3, 3]
    return inverse


# ==============================================================================
# HEADINGS
# ==============================================================================


def heading_from_forward(forward) -> float:
    """Heading angle of a planar (x, z) forward vector."""
    return float(np.arctan2(forward[0], forward[1]))


def heading_from_rotation(rotation: Rotation) -> float:
    """
    Heading of a 3D rotation: the angle of its +Z axis projected onto XZ.
    """
    forward = rotation.apply([0.0, 0.0, 1.0])
    return heading_from_forward((forward[0], forward[2]))


def headings_from_matrices(matrices: np.ndarray) -> np.ndarray:
    """Vectorized heading of many 4x4 matrices (N, 4, 4) -> (N,)."""
    # Third column of the rotation block is the rotated +Z axis
    return np.arctan2(matrices[:, 0, 2], matrices[:, 2, 2])


def yaw_rotation(angle: float) -> Rotation:
    return Rotation.from_rotvec([0.0, angle, 0.0])


def strip_yaw(rotation: Rotation) -> Rotation:
    """Remove the heading from a rotation, keeping pitch and roll."""
    return yaw_rotation(heading_from_rotation(rotation)).inv() * rotation


def wrap_angle(angle):
    """Wrap angles into [-pi, pi)."""
    return (np.asarray(angle) + np.pi) % (2.0 * np.pi) - np.pi


def rotate2d(vectors, angle):
    """
    Rotate planar (x, z) vectors by a heading angle.

    Maps local forward (0, 1) to (sin a, cos a).

    Args:
        vectors: array (..., 2)
        angle: scalar or array broadcastable to vectors[..., 0]
    """
    vectors = np.asarray(vectors, dtype=float)
    c = np.cos(angle)
    s = np.sin(angle)
    x = vectors[..., 0]
    z = vectors[..., 1]
    return np.stack([c * x + s * z, -s * x + c * z], axis=-1)


def slerp_angle(angle0: float, angle1: float, t: float) -> float:
    """Spherical interpolation between two headings (shortest arc)."""
    if t <= 0.0:
        return float(angle0)
    if t >= 1.0:
        return float(angle1)
    keys = Rotation.from_rotvec([[0.0, angle0, 0.0], [0.0, angle1, 0.0]])
    blended = Slerp([0.0, 1.0], keys)([t])[0]
    return heading_from_rotation(blended)


def slerp_rotations(rotations0: Rotation, rotations1: Rotation, t) -> Rotation:
    """
    Element-wise spherical interpolation between two stacks of rotations.

    scipy's Slerp interpolates along one key sequence, so each pair is
    blended through the relative rotation instead.

    Args:
        rotations0: Start rotations
        rotations1: End rotations (same count)
        t: Scalar factor or one factor per rotation
    """
    t = np.asarray(t, dtype=float)
    if t.ndim:
        t = t[..., None]
    relative = rotations0.inv() * rotations1
    return rotations0 * Rotation.from_rotvec(relative.as_rotvec() * t)


# ==============================================================================
# PLANAR TRANSFORM
# ==============================================================================


@dataclass
class Transform2d:
    """Planar character transform: position on the ground and heading."""

    translation: np.ndarray = field(default_factory=lambda: np.zeros(2))
    angle: float = 0.0

    def __post_init__(self):
        self.translation = np.asarray(self.translation, dtype=float).reshape(2)
        self.angle = float(self.angle)

    def copy(self) -> "Transform2d":
        return Transform2d(self.translation.copy(), self.angle)

    def set_direction(self, direction):
        self.angle = heading_from_forward(direction)

    def forward(self) -> np.ndarray:
        return np.array([np.sin(self.angle), np.cos(self.angle)])

    def right(self) -> np.ndarray:
        forward = self.forward()
        return np.array([forward[1], -forward[0]])

    def translation3d(self) -> np.ndarray:
        return np.array([self.translation[0], 0.0, self.translation[1]])

    def direction3d(self) -> np.ndarray:
        forward = self.forward()
        return np.array([forward[0], 0.0, forward[1]])

    def to_matrix(self) -> np.ndarray:
        return compose_matrix(yaw_rotation(self.angle), self.translation3d())

    def transform_points(self, points) -> np.ndarray:
        """Local planar points -> world planar points."""
        return self.translation + rotate2d(points, self.angle)

    def inverse_transform_points(self, points) -> np.ndarray:
        """World planar points -> points in this transform's local frame."""
        return rotate2d(np.asarray(points, dtype=float) - self.translation, -self.angle)

    def lerp(self, other: "Transform2d", t: float) -> "Transform2d":
        """Linear on translation, spherical on heading."""
        translation = (1.0 - t) * self.translation + t * other.translation
        return Transform2d(translation, slerp_angle(self.angle, other.angle, t))

    def distance(self, other: "Transform2d"):
        """
        Returns:
            tuple: (planar distance, absolute heading difference in radians)
        """
        return (
            float(np.linalg.norm(self.translation - other.translation)),
            float(abs(wrap_angle(self.angle - other.angle))),
        )
