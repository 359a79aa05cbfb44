"""Point cloud and trajectory file I/O.

Supported inputs:
- KITTI Velodyne scans (.bin): float32 records (x, y, z, intensity)
- PCD and PLY clouds (.pcd, .ply), read with Open3D (ascii, binary and
  binary_compressed PCD)
- numpy arrays (.npy): Nx3 (or wider) arrays

Trajectories are written as CSV with one row per frame, columns
x, y, z, qx, qy, qz, qw and no header.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import open3d as o3d

logger = logging.getLogger(__name__)

SCAN_EXTENSIONS = (".bin", ".pcd", ".ply", ".npy")


def _as_xyz(points: np.ndarray, path: Path) -> np.ndarray:
    """Keep the first three columns as a contiguous float64 Nx3 array."""
    points = np.asarray(points)
    if points.ndim != 2 or points.shape[1] < 3:
        raise ValueError(f"Expected an Nx3 point array in {path}, got shape {points.shape}")
    return np.ascontiguousarray(points[:, :3], dtype=np.float64)


def load_pcd(path: str | Path) -> np.ndarray:
    """Load the point positions of a PCD or PLY file.

    Args:
        path: Path to .pcd or .ply file

    Returns:
        Nx3 float64 array

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Point cloud not found: {path}")

    pcd = o3d.io.read_point_cloud(str(path))
    return np.asarray(pcd.points, dtype=np.float64).reshape(-1, 3)


def load_kitti_bin(path: str | Path) -> np.ndarray:
    """Load a KITTI Velodyne scan, dropping the intensity channel.

    Args:
        path: Path to .bin file

    Returns:
        Nx3 float64 array
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Scan not found: {path}")

    raw = np.fromfile(path, dtype=np.float32)
    if raw.size % 4 != 0:
        raise ValueError(
            f"KITTI scan {path} has {raw.size} floats, not a multiple of 4"
        )
    return raw.reshape(-1, 4)[:, :3].astype(np.float64)


def _load_cloud(path: str | Path) -> np.ndarray:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Point cloud not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".bin":
        return load_kitti_bin(path)
    if suffix in (".pcd", ".ply"):
        return load_pcd(path)
    if suffix == ".npy":
        return _as_xyz(np.load(path), path)

    raise ValueError(
        f"Unsupported point cloud format '{suffix}': {path}\n"
        f"Supported formats: {', '.join(SCAN_EXTENSIONS)}"
    )


def load_map_cloud(path: str | Path) -> np.ndarray:
    """Load the prior map.

    Args:
        path: Path to .pcd, .ply, .npy or .bin file

    Returns:
        Nx3 float64 array

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the format is unsupported or the map is empty
    """
    cloud = _load_cloud(path)
    if len(cloud) == 0:
        raise ValueError(f"Map point cloud is empty: {path}")

    logger.info("Loaded map with %d points from %s", len(cloud), path)
    return cloud


def load_scan_cloud(path: str | Path) -> np.ndarray:
    """Load one scan.

    Args:
        path: Path to .bin, .pcd, .ply or .npy file

    Returns:
        Nx3 float64 array (may be empty)
    """
    return _load_cloud(path)


def list_scan_files(directory: str | Path) -> list[Path]:
    """List scan files in a directory in lexicographic order.

    Args:
        directory: Directory containing one file per scan

    Returns:
        Sorted scan paths

    Raises:
        FileNotFoundError: If the directory doesn't exist
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Scan directory not found: {directory}")

    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in SCAN_EXTENSIONS
    )


def write_trajectory_csv(path: str | Path, poses: list[np.ndarray]) -> None:
    """Write poses as CSV rows x,y,z,qx,qy,qz,qw without a header.

    Args:
        path: Output file path (parent directories are created)
        poses: Pose vectors in output order
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = (
        np.array([np.asarray(p, dtype=np.float64)[:7] for p in poses])
        if poses
        else np.empty((0, 7), dtype=np.float64)
    )
    np.savetxt(path, data, fmt="%.9f", delimiter=",")
    logger.info("Wrote %d poses to %s", len(data), path)


def load_trajectory_csv(path: str | Path) -> np.ndarray:
    """Load a trajectory written by write_trajectory_csv.

    Args:
        path: CSV file path

    Returns:
        Nx7 float64 array
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Trajectory not found: {path}")
    if path.stat().st_size == 0:
        return np.empty((0, 7), dtype=np.float64)

    data = np.loadtxt(path, delimiter=",", dtype=np.float64, ndmin=2)
    if data.shape[1] != 7:
        raise ValueError(f"Expected 7 columns in {path}, got {data.shape[1]}")
    return data
