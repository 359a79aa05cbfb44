"""Interfaces between the frame processor and scan registration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np


@dataclass
class RegistrationResult:
    """Result of aligning one scan.

    Attributes:
        pose: Aligned sensor pose [x, y, z, qx, qy, qz, qw] in the target frame
        num_inliers: Source points with a target voxel within the correspondence distance
        converged: True if the optimizer converged before the iteration limit
        fitness: Registration error per inlier, inf if there were no inliers
    """

    pose: np.ndarray
    num_inliers: int = 0
    converged: bool = False
    fitness: float = float("inf")


class LocalMap(Protocol):
    """Target point set maintained by a registration."""

    def fold_in(self, cloud: np.ndarray, pose: np.ndarray) -> None: ...

    def points(self) -> np.ndarray: ...


class Registration(Protocol):
    """Scan registration against a maintained local map."""

    def initialize(self, cloud: np.ndarray, pose: np.ndarray) -> bool: ...

    def register(self, cloud: np.ndarray, seed_pose: np.ndarray) -> RegistrationResult: ...

    def get_local_map(self) -> LocalMap: ...
