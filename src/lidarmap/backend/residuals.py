"""Cost functions for the pose graph.

All poses are 7-element vectors [x, y, z, qx, qy, qz, qw]. Every cost
returns 6 residuals: 3 translation components followed by 3 rotation
components taken from the vector part of an error quaternion.
"""

from __future__ import annotations

import numpy as np

from ..io.imu_reader import IMUSample
from .quaternion import (
    quat_conjugate,
    quat_error_vector,
    quat_from_euler,
    quat_multiply,
    quat_rotate,
    quat_yaw,
)


class AbsolutePoseError:
    """Residual between a pose and an absolute pose measurement."""

    num_residuals = 6

    def __init__(self, measurement: np.ndarray) -> None:
        """Initialize with the measured pose.

        Args:
            measurement: 7-element pose vector in the world frame
        """
        self.measurement = np.asarray(measurement, dtype=np.float64).copy()
        self._q_meas_inv = quat_conjugate(self.measurement[3:7])

    def __call__(self, pose: np.ndarray) -> np.ndarray:
        residual = np.empty(6, dtype=np.float64)
        residual[:3] = pose[:3] - self.measurement[:3]
        q_error = quat_multiply(self._q_meas_inv, pose[3:7])
        residual[3:] = quat_error_vector(q_error)
        return residual


class RelativePoseError:
    """Residual between the relative transform of two poses and a measured delta."""

    num_residuals = 6

    def __init__(self, measurement: np.ndarray) -> None:
        """Initialize with the measured delta.

        Args:
            measurement: 7-element pose vector T_from^{-1} @ T_to
        """
        self.measurement = np.asarray(measurement, dtype=np.float64).copy()
        self._q_meas_inv = quat_conjugate(self.measurement[3:7])

    def __call__(self, pose_from: np.ndarray, pose_to: np.ndarray) -> np.ndarray:
        q_from_inv = quat_conjugate(pose_from[3:7])

        # Estimated delta: T_from^{-1} @ T_to
        t_delta = quat_rotate(q_from_inv, pose_to[:3] - pose_from[:3])
        q_delta = quat_multiply(q_from_inv, pose_to[3:7])

        residual = np.empty(6, dtype=np.float64)
        residual[:3] = t_delta - self.measurement[:3]
        residual[3:] = quat_error_vector(quat_multiply(self._q_meas_inv, q_delta))
        return residual


class IMUOrientationError:
    """Roll/pitch residual between a pose and an IMU orientation sample.

    Translation is never constrained, so the first three residuals are zero.
    Yaw from inertial integration drifts, so the IMU orientation is rebuilt
    with the pose's own yaw and only roll and pitch pull on the pose.
    """

    num_residuals = 6

    def __init__(self, sample: IMUSample, rotation_stddev: float = 1.0) -> None:
        """Initialize with an IMU sample.

        Args:
            sample: IMU sample providing roll and pitch (radians)
            rotation_stddev: Rotation standard deviation (radians)
        """
        self.roll = float(sample.roll)
        self.pitch = float(sample.pitch)
        self.yaw = float(sample.yaw)
        self.rotation_stddev = rotation_stddev

    def __call__(self, pose: np.ndarray) -> np.ndarray:
        q_pose = pose[3:7]
        q_imu = quat_from_euler(self.roll, self.pitch, quat_yaw(q_pose))
        q_error = quat_multiply(q_pose, quat_conjugate(q_imu))

        residual = np.zeros(6, dtype=np.float64)
        residual[3:] = quat_error_vector(q_error) / self.rotation_stddev
        return residual
