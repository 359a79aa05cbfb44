"""Constant-displacement motion model for seeding the next registration."""

from __future__ import annotations

import numpy as np

from .quaternion import quat_conjugate, quat_multiply, quat_normalize


def predict(current: np.ndarray, previous: np.ndarray) -> np.ndarray:
    """Extrapolate the next pose assuming the last displacement repeats.

    The translation step and the relative rotation from ``previous`` to
    ``current`` are applied once more on top of ``current``. Frames are
    assumed evenly spaced; no timestamps are involved.

    Args:
        current: Latest pose [x, y, z, qx, qy, qz, qw]
        previous: Pose before ``current``

    Returns:
        Predicted next pose
    """
    current = np.asarray(current, dtype=np.float64)
    previous = np.asarray(previous, dtype=np.float64)

    q_delta = quat_multiply(quat_conjugate(previous[3:7]), current[3:7])
    q_next = quat_normalize(quat_multiply(current[3:7], q_delta))

    next_pose = np.empty(7, dtype=np.float64)
    next_pose[:3] = current[:3] + (current[:3] - previous[:3])
    next_pose[3:7] = q_next
    return next_pose


class ConstantDistancePredictor:
    """Stateless predictor used by the frame processor."""

    @staticmethod
    def predict(current: np.ndarray, previous: np.ndarray) -> np.ndarray:
        return predict(current, previous)
