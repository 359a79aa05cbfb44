"""Quaternion helpers on plain arrays in (x, y, z, w) order.

The residual functions run inside the solver's inner loop, so they work on
raw numpy arrays instead of scipy ``Rotation`` objects.
"""

from __future__ import annotations

import numpy as np


def quat_normalize(q: np.ndarray) -> np.ndarray:
    """Return a unit-norm copy of q."""
    return q / np.linalg.norm(q)


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    """Return the conjugate (inverse for unit quaternions)."""
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.float64)


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product a * b."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array(
        [
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
            aw * bw - ax * bx - ay * by - az * bz,
        ],
        dtype=np.float64,
    )


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    """Convert a quaternion to a 3x3 rotation matrix."""
    x, y, z, w = quat_normalize(q)
    return np.array(
        [
            [1 - 2 * y * y - 2 * z * z, 2 * x * y - 2 * z * w, 2 * x * z + 2 * y * w],
            [2 * x * y + 2 * z * w, 1 - 2 * x * x - 2 * z * z, 2 * y * z - 2 * x * w],
            [2 * x * z - 2 * y * w, 2 * y * z + 2 * x * w, 1 - 2 * x * x - 2 * y * y],
        ],
        dtype=np.float64,
    )


def quat_rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate a 3D vector by q."""
    return quat_to_matrix(q) @ v


def quat_from_euler(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Compose yaw, then pitch, then roll: q = Rz(yaw) * Ry(pitch) * Rx(roll)."""
    cr, sr = np.cos(roll / 2), np.sin(roll / 2)
    cp, sp = np.cos(pitch / 2), np.sin(pitch / 2)
    cy, sy = np.cos(yaw / 2), np.sin(yaw / 2)
    return np.array(
        [
            sr * cp * cy - cr * sp * sy,
            cr * sp * cy + sr * cp * sy,
            cr * cp * sy - sr * sp * cy,
            cr * cp * cy + sr * sp * sy,
        ],
        dtype=np.float64,
    )


def quat_yaw(q: np.ndarray) -> float:
    """Return the yaw (rotation about Z) of q in the Z-Y-X convention."""
    x, y, z, w = quat_normalize(q)
    return float(np.arctan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z)))


def quat_error_vector(q: np.ndarray) -> np.ndarray:
    """Return 2 * vec(q) for an error quaternion, taking the short way round.

    For small rotations this approximates the rotation vector of q.
    """
    q = quat_normalize(q)
    if q[3] < 0.0:
        q = -q
    return 2.0 * q[:3]
