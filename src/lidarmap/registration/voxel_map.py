"""Gaussian voxel local map.

Wraps ``small_gicp.GaussianVoxelMap``: every voxel holds the mean and
covariance of the points folded into it. Voxels not touched during the last
``lru_horizon`` insertions are dropped, checked every ``lru_clear_cycle``
insertions.
"""

from __future__ import annotations

import logging

import numpy as np
import small_gicp

from ..config import RegistrationConfig
from ..pose import SE3
from .preprocess import preprocess

logger = logging.getLogger(__name__)


class VoxelMap:
    """Bounded voxel map used as the registration target."""

    def __init__(self, config: RegistrationConfig | None = None) -> None:
        self._config = config or RegistrationConfig()
        self._voxelmap = self._create()

    def _create(self) -> small_gicp.GaussianVoxelMap:
        voxelmap = small_gicp.GaussianVoxelMap(self._config.voxel_size)
        voxelmap.set_lru(
            horizon=self._config.lru_horizon,
            clear_cycle=self._config.lru_clear_cycle,
        )
        return voxelmap

    def insert(self, cloud: small_gicp.PointCloud, pose: np.ndarray) -> None:
        """Insert a preprocessed cloud observed at ``pose``."""
        self._voxelmap.insert(cloud, SE3.from_pose_vector(pose).to_matrix())

    def fold_in(self, cloud: np.ndarray, pose: np.ndarray) -> None:
        """Preprocess a raw sensor-frame cloud and insert it at ``pose``.

        Clouds with too few points in range are ignored.
        """
        source = preprocess(cloud, self._config)
        if source is None:
            logger.debug("Nothing to fold in at %s", np.round(np.asarray(pose)[:3], 3))
            return
        self.insert(source, pose)

    def points(self) -> np.ndarray:
        """Voxel means as an Nx3 array."""
        if self._voxelmap.size() == 0:
            return np.empty((0, 3), dtype=np.float64)
        return np.asarray(self._voxelmap.voxel_points(), dtype=np.float64)[:, :3]

    def clear(self) -> None:
        self._voxelmap = self._create()

    @property
    def voxelmap(self) -> small_gicp.GaussianVoxelMap:
        """Underlying small_gicp map, the target passed to ``small_gicp.align``."""
        return self._voxelmap

    @property
    def num_voxels(self) -> int:
        return self._voxelmap.size()

    def __len__(self) -> int:
        return self.num_voxels
