"""Scan preprocessing: range cropping, downsampling and covariance estimation."""

from __future__ import annotations

import numpy as np
import small_gicp

from ..config import RegistrationConfig

MIN_POINTS = 5


def crop_range(points: np.ndarray, min_range: float, max_range: float) -> np.ndarray:
    """Keep points whose distance from the sensor is within [min_range, max_range]."""
    if len(points) == 0:
        return points
    ranges = np.linalg.norm(points, axis=1)
    mask = (ranges >= min_range) & (ranges <= max_range) & np.isfinite(ranges)
    return points[mask]


def downsample(points: np.ndarray, config: RegistrationConfig) -> small_gicp.PointCloud | None:
    """Voxel-grid downsample and estimate per-point covariances.

    Args:
        points: Nx3 array
        config: Registration settings (downsampling resolution, neighbors, threads)

    Returns:
        small_gicp point cloud ready for registration, or None if fewer than
        MIN_POINTS points are given
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    points = points[np.isfinite(points).all(axis=1)]
    if len(points) < MIN_POINTS:
        return None

    cloud, _ = small_gicp.preprocess_points(
        np.ascontiguousarray(points),
        downsampling_resolution=config.downsample_resolution,
        num_neighbors=config.num_neighbors,
        num_threads=config.num_threads,
    )
    return cloud


def preprocess(points: np.ndarray, config: RegistrationConfig) -> small_gicp.PointCloud | None:
    """Crop then downsample a scan in the sensor frame."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return downsample(crop_range(points, config.min_range, config.max_range), config)
