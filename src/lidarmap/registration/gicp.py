"""Voxelized GICP registration against a Gaussian voxel map.

Scans are range-cropped, downsampled and given per-point covariances, then
aligned to the voxel map with ``small_gicp.align``. The same class serves as
the scan-to-map registration (the prior map loaded once) and the scan-to-scan
registration (recent scans folded in, old voxels dropped by LRU).
"""

from __future__ import annotations

import logging

import numpy as np
import small_gicp

from ..config import RegistrationConfig
from ..pose import SE3
from .base import RegistrationResult
from .preprocess import downsample, preprocess
from .voxel_map import VoxelMap

logger = logging.getLogger(__name__)


class GICPRegistration:
    """Registration of scans against a maintained voxel map.

    Example usage:
        gicp = GICPRegistration(RegistrationConfig())
        gicp.initialize(map_points, identity_pose())
        result = gicp.register(scan, seed_pose)
    """

    def __init__(self, config: RegistrationConfig | None = None) -> None:
        self._config = config or RegistrationConfig()
        self._map = VoxelMap(self._config)

    def initialize(self, cloud: np.ndarray, pose: np.ndarray) -> bool:
        """Reset the local map to a single cloud observed at ``pose``.

        The cloud is downsampled but not range-cropped, so whole prior maps
        can be loaded at the identity pose.

        Returns:
            True if the local map holds any voxels
        """
        self._map.clear()
        cloud = downsample(cloud, self._config)
        if cloud is not None:
            self._map.insert(cloud, pose)
        logger.debug("Local map initialized with %d voxels", len(self._map))
        return len(self._map) > 0

    def get_local_map(self) -> VoxelMap:
        return self._map

    def register(self, cloud: np.ndarray, seed_pose: np.ndarray) -> RegistrationResult:
        """Align a sensor-frame scan to the local map.

        Args:
            cloud: Nx3 scan in the sensor frame
            seed_pose: Initial pose estimate

        Returns:
            RegistrationResult; the seed pose with zero inliers if there is
            nothing to align
        """
        seed_pose = np.asarray(seed_pose, dtype=np.float64)
        source = preprocess(cloud, self._config)
        if source is None or len(self._map) == 0:
            return RegistrationResult(pose=seed_pose.copy())

        result = small_gicp.align(
            self._map.voxelmap,
            source,
            init_T_target_source=SE3.from_pose_vector(seed_pose).to_matrix(),
            max_correspondence_distance=self._config.max_correspondence_distance,
            num_threads=self._config.num_threads,
            max_iterations=self._config.max_iterations,
        )

        num_inliers = int(result.num_inliers)
        if num_inliers == 0:
            logger.debug("No correspondences within %.2f m", self._config.max_correspondence_distance)
            return RegistrationResult(pose=seed_pose.copy())

        return RegistrationResult(
            pose=SE3.from_matrix(result.T_target_source).to_pose_vector(),
            num_inliers=num_inliers,
            converged=bool(result.converged),
            fitness=float(result.error) / num_inliers,
        )
