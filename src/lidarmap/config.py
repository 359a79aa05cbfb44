"""Configuration for the pose graph, registration and frame processing.

Defaults reproduce the tuning used for KITTI-style scans registered against
a prior map. A YAML file can override any field:

    solver:
      num_iterations: 20
      sliding_window_size: 30
    pipeline:
      translation_threshold: 0.2
    scan2map:
      max_correspondence_distance: 2.0
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any

import yaml

EMPTY_FRAME_POLICIES = ("abort", "skip")


@dataclass
class SolverConfig:
    """Configuration for the sliding-window pose graph optimizer."""

    num_iterations: int = 10  # Max solver iterations per optimize() call
    num_threads: int = 4  # Worker threads requested from the solver
    verbose: bool = False  # Print solver progress
    use_sliding_window: bool = True
    sliding_window_size: int = 20  # Poses kept free in the optimization
    absolute_loss_scale: float = 1.0  # Tukey scale for map-anchored poses
    relative_loss_scale: float = 1.0  # Cauchy scale for scan-to-scan deltas
    imu_loss_scale: float = 1.0  # Cauchy scale for IMU orientation
    imu_rotation_stddev: float = 1.0  # Radians

    def __post_init__(self) -> None:
        """Validate option values."""
        # A window of one pose holds only the fixed pose, nothing is optimized
        if self.sliding_window_size < 2:
            raise ValueError(
                f"sliding_window_size must be >= 2, got {self.sliding_window_size}"
            )
        if self.num_iterations < 1:
            raise ValueError(f"num_iterations must be >= 1, got {self.num_iterations}")
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be >= 1, got {self.num_threads}")
        for name in (
            "absolute_loss_scale",
            "relative_loss_scale",
            "imu_loss_scale",
            "imu_rotation_stddev",
        ):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")


@dataclass
class RegistrationConfig:
    """Configuration for one small_gicp VGICP registration instance."""

    voxel_size: float = 1.0  # Gaussian voxel map resolution (m)
    downsample_resolution: float = 0.25  # Scan downsampling voxel (m)
    num_neighbors: int = 10  # Neighbors for per-point covariance estimation
    min_range: float = 1.0  # Points closer than this are dropped (m)
    max_range: float = 100.0  # Points farther than this are dropped (m)
    max_correspondence_distance: float = 1.0  # m
    max_iterations: int = 20
    num_threads: int = 4
    lru_horizon: int = 1_000_000  # Voxels untouched for this many insertions are evicted
    lru_clear_cycle: int = 10  # Insertions between eviction passes

    def __post_init__(self) -> None:
        """Validate option values."""
        for name in ("voxel_size", "downsample_resolution", "max_correspondence_distance"):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("num_neighbors", "max_iterations", "num_threads", "lru_horizon", "lru_clear_cycle"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if not 0.0 <= self.min_range < self.max_range:
            raise ValueError(
                f"Range limits must satisfy 0 <= min_range < max_range, "
                f"got {self.min_range}, {self.max_range}"
            )


@dataclass
class PipelineConfig:
    """Configuration for the frame processor."""

    translation_threshold: float = 0.1  # Motion gate (m)
    rotation_threshold: float = math.radians(0.5)  # Motion gate (rad)
    min_inliers: int = 50  # Scan-to-map inliers needed for an absolute constraint
    empty_frame_policy: str = "abort"  # "abort" or "skip"
    use_imu: bool = True  # Add IMU orientation constraints when samples exist
    snapshot_queue_size: int = 4

    def __post_init__(self) -> None:
        """Validate option values."""
        if self.empty_frame_policy not in EMPTY_FRAME_POLICIES:
            raise ValueError(
                f"empty_frame_policy must be one of {EMPTY_FRAME_POLICIES}, "
                f"got '{self.empty_frame_policy}'"
            )


def _scan2scan_defaults() -> RegistrationConfig:
    # Keep only the voxels seen during the last 100 scans
    return RegistrationConfig(lru_horizon=100)


@dataclass
class LidarMapConfig:
    """Top-level configuration."""

    solver: SolverConfig = field(default_factory=SolverConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    scan2scan: RegistrationConfig = field(default_factory=_scan2scan_defaults)
    scan2map: RegistrationConfig = field(default_factory=RegistrationConfig)


def _apply_overrides(config: Any, overrides: dict[str, Any], prefix: str) -> Any:
    """Return a copy of a config dataclass with overrides applied (recursive)."""
    known = {f.name: f for f in fields(config)}
    changes: dict[str, Any] = {}

    for key, value in overrides.items():
        if key not in known:
            raise ValueError(f"Unknown config key: {prefix}{key}")

        current = getattr(config, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ValueError(f"Config section {prefix}{key} must be a mapping")
            changes[key] = _apply_overrides(current, value, f"{prefix}{key}.")
        else:
            changes[key] = value

    return replace(config, **changes)


def config_from_dict(data: dict[str, Any]) -> LidarMapConfig:
    """Build a configuration from a nested dictionary over the defaults.

    Args:
        data: Nested mapping of section -> field -> value

    Returns:
        LidarMapConfig with overrides applied

    Raises:
        ValueError: If a key does not name a config field
    """
    return _apply_overrides(LidarMapConfig(), data, "")


def load_config(config_path: str | Path) -> LidarMapConfig:
    """Load a YAML configuration file.

    Args:
        config_path: Path to YAML file

    Returns:
        LidarMapConfig with the file's values merged over the defaults

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file contains unknown keys or is not a mapping
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return config_from_dict(data)
