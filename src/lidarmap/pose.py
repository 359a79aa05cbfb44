"""SE(3) pose representation and 7-element pose vector helpers.

Poses in the pose graph are stored as flat 7-element vectors:

    [x, y, z, qx, qy, qz, qw]

which is the translation followed by a unit quaternion in scipy's
(x, y, z, w) order. ``SE3`` is the matrix form used for composing and
inverting transforms outside the optimizer.
"""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

POSE_SIZE = 7


@dataclass
class SE3:
    """Sensor pose T_map_sensor as a rotation matrix and a translation.

    Maps sensor-frame points into the map frame: p_map = R @ p_sensor + t.
    """

    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self) -> None:
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(-1)

        if self.rotation.shape != (3, 3):
            raise ValueError(f"SE3 rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(f"SE3 translation must have 3 elements, got {self.translation.shape}")

    @classmethod
    def from_pose_vector(cls, pose: np.ndarray) -> SE3:
        """Build from [x, y, z, qx, qy, qz, qw].

        scipy normalizes the quaternion, so slightly denormalized optimizer
        output is accepted.
        """
        pose = np.asarray(pose, dtype=np.float64).reshape(-1)
        if pose.shape != (POSE_SIZE,):
            raise ValueError(f"Pose vector must have 7 elements, got {pose.shape}")
        return cls(rotation=Rotation.from_quat(pose[3:]).as_matrix(), translation=pose[:3])

    def to_pose_vector(self) -> np.ndarray:
        return np.concatenate([self.translation, Rotation.from_matrix(self.rotation).as_quat()])

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Build from a 4x4 homogeneous transform."""
        T = np.asarray(T, dtype=np.float64)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {T.shape}")
        return cls(rotation=T[:3, :3], translation=T[:3, 3])

    def to_matrix(self) -> np.ndarray:
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def inverse(self) -> SE3:
        rotation_t = self.rotation.T
        return SE3(rotation=rotation_t, translation=-rotation_t @ self.translation)

    def compose(self, other: SE3) -> SE3:
        """Return self @ other, e.g. T_map_prev.compose(T_prev_curr) = T_map_curr."""
        return SE3(
            rotation=self.rotation @ other.rotation,
            translation=self.rotation @ other.translation + self.translation,
        )

    def __matmul__(self, other: SE3) -> SE3:
        return self.compose(other)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Map an Nx3 array of sensor-frame points into the map frame."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return points @ self.rotation.T + self.translation

    @property
    def position(self) -> np.ndarray:
        return self.translation.copy()

    @property
    def rotation_angle(self) -> float:
        """Rotation magnitude in radians (norm of the Rodrigues vector)."""
        rvec, _ = cv2.Rodrigues(self.rotation)
        return float(np.linalg.norm(rvec))


def identity_pose() -> np.ndarray:
    """Return the identity pose vector."""
    return np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0], dtype=np.float64)


def make_pose(
    translation: np.ndarray | list[float],
    quaternion: np.ndarray | list[float] | None = None,
) -> np.ndarray:
    """Build a pose vector from a translation and an optional quaternion.

    Args:
        translation: 3D translation
        quaternion: (qx, qy, qz, qw); identity when omitted

    Returns:
        7-element pose vector with a normalized quaternion
    """
    if quaternion is None:
        quaternion = [0.0, 0.0, 0.0, 1.0]
    quat = np.asarray(quaternion, dtype=np.float64).flatten()
    quat = quat / np.linalg.norm(quat)
    return np.concatenate([np.asarray(translation, dtype=np.float64).flatten(), quat])


def relative_pose(from_pose: np.ndarray, to_pose: np.ndarray) -> np.ndarray:
    """Return the pose delta T_from^{-1} @ T_to as a pose vector."""
    T_from = SE3.from_pose_vector(from_pose)
    T_to = SE3.from_pose_vector(to_pose)
    return T_from.inverse().compose(T_to).to_pose_vector()


def pose_displacement(from_pose: np.ndarray, to_pose: np.ndarray) -> tuple[float, float]:
    """Measure the motion between two poses.

    Args:
        from_pose: Reference pose vector
        to_pose: Target pose vector

    Returns:
        Tuple of (translation distance in meters, rotation angle in radians)
    """
    from_pose = np.asarray(from_pose, dtype=np.float64)
    to_pose = np.asarray(to_pose, dtype=np.float64)
    translation = float(np.linalg.norm(to_pose[:3] - from_pose[:3]))

    T_from = SE3.from_pose_vector(from_pose)
    T_to = SE3.from_pose_vector(to_pose)
    delta = SE3(rotation=T_from.rotation.T @ T_to.rotation, translation=np.zeros(3))
    return translation, delta.rotation_angle


def is_moving(
    pose: np.ndarray,
    previous_pose: np.ndarray,
    translation_threshold: float,
    rotation_threshold: float,
) -> bool:
    """Decide whether the sensor moved between two poses.

    The sensor counts as stationary only when both the translation and the
    rotation stay below their thresholds.

    Args:
        pose: Current pose vector
        previous_pose: Previous pose vector
        translation_threshold: Translation threshold in meters
        rotation_threshold: Rotation threshold in radians

    Returns:
        True if either threshold is reached
    """
    translation, rotation = pose_displacement(previous_pose, pose)
    return translation >= translation_threshold or rotation >= rotation_threshold
