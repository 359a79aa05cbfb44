"""Local parameterizations for parameter blocks in the least-squares problem.

The solver never updates the 7-element pose vectors directly. It searches in
a tangent space and maps each step back through ``plus``:

    x_new = manifold.plus(x, delta)

For poses this is R^3 x S^3: the translation is updated additively and the
quaternion is left-multiplied by exp(delta_rot), so the quaternion stays unit
norm and each pose has 6 degrees of freedom.
"""

from __future__ import annotations

import numpy as np
from scipy.spatial.transform import Rotation


class EuclideanManifold:
    """Plain vector space: x + delta."""

    def __init__(self, size: int) -> None:
        self._size = size

    @property
    def ambient_size(self) -> int:
        return self._size

    @property
    def tangent_size(self) -> int:
        return self._size

    def plus(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray:
        return x + delta


class PoseManifold:
    """Product of R^3 translation and unit quaternion rotation.

    Ambient layout: [x, y, z, qx, qy, qz, qw]
    Tangent layout: [dx, dy, dz, rx, ry, rz] (rotation vector)
    """

    @property
    def ambient_size(self) -> int:
        return 7

    @property
    def tangent_size(self) -> int:
        return 6

    def plus(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray:
        """Apply a tangent step to a pose vector.

        Args:
            x: 7-element pose vector
            delta: 6-element tangent step

        Returns:
            Updated pose vector with a unit quaternion
        """
        result = np.empty(7, dtype=np.float64)
        result[:3] = x[:3] + delta[:3]

        rotation = Rotation.from_rotvec(delta[3:6]) * Rotation.from_quat(x[3:7])
        quat = rotation.as_quat()
        # Keep the sign of the input quaternion so in-place updates stay continuous
        if float(quat @ x[3:7]) < 0.0:
            quat = -quat
        result[3:7] = quat
        return result


POSE_MANIFOLD = PoseManifold()
