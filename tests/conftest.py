"""Shared fixtures: scripted registrations and on-disk scan sequences."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from lidarmap.config import LidarMapConfig
from lidarmap.pose import make_pose
from lidarmap.registration.base import RegistrationResult


class RecordingLocalMap:
    """Local map that records fold_in calls."""

    def __init__(self) -> None:
        self.folded: list[np.ndarray] = []

    def fold_in(self, cloud: np.ndarray, pose: np.ndarray) -> None:
        self.folded.append(np.array(pose, dtype=np.float64))

    def points(self) -> np.ndarray:
        return np.empty((0, 3), dtype=np.float64)


class ScriptedRegistration:
    """Registration returning pre-recorded (translation, inliers) results in order."""

    def __init__(
        self,
        results: list[tuple[list[float], int]],
        initialize_ok: bool = True,
    ) -> None:
        self.results = list(results)
        self.initialize_ok = initialize_ok
        self.local_map = RecordingLocalMap()
        self.register_seeds: list[np.ndarray] = []
        self.initialized_with: np.ndarray | None = None

    def initialize(self, cloud: np.ndarray, pose: np.ndarray) -> bool:
        self.initialized_with = np.array(pose, dtype=np.float64)
        return self.initialize_ok

    def register(self, cloud: np.ndarray, seed_pose: np.ndarray) -> RegistrationResult:
        self.register_seeds.append(np.array(seed_pose, dtype=np.float64))
        translation, inliers = self.results.pop(0)
        return RegistrationResult(
            pose=make_pose(translation),
            num_inliers=inliers,
            converged=True,
            fitness=0.0,
        )

    def get_local_map(self) -> RecordingLocalMap:
        return self.local_map


def write_kitti_scan(path: Path, points: np.ndarray) -> None:
    """Write Nx3 points as a KITTI .bin scan with zero intensity."""
    records = np.zeros((len(points), 4), dtype=np.float32)
    records[:, :3] = points
    records.tofile(path)


def make_scan_dataset(root: Path, num_scans: int, empty: tuple[int, ...] = ()) -> tuple[Path, Path]:
    """Create a map file and a directory of scans.

    Args:
        root: Directory to write into
        num_scans: Number of scan files
        empty: Scan positions to write without points

    Returns:
        Tuple of (map path, scans directory)
    """
    rng = np.random.default_rng(7)
    map_path = root / "map.npy"
    np.save(map_path, rng.uniform(-20.0, 20.0, size=(200, 3)))

    scans_dir = root / "velodyne"
    scans_dir.mkdir()
    for i in range(num_scans):
        points = np.empty((0, 3)) if i in empty else rng.uniform(-10.0, 10.0, size=(50, 3))
        write_kitti_scan(scans_dir / f"{i:06d}.bin", points)

    return map_path, scans_dir


@pytest.fixture
def config() -> LidarMapConfig:
    return LidarMapConfig()


@pytest.fixture
def two_scan_dataset(tmp_path: Path) -> tuple[Path, Path]:
    return make_scan_dataset(tmp_path, 2)


@pytest.fixture
def three_scan_dataset(tmp_path: Path) -> tuple[Path, Path]:
    return make_scan_dataset(tmp_path, 3)
