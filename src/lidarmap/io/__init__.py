"""I/O utilities for scans, maps, trajectories and inertial data."""

from .imu_reader import IMUSample, OxtsReader
from .point_cloud_io import (
    list_scan_files,
    load_map_cloud,
    load_scan_cloud,
    load_trajectory_csv,
    write_trajectory_csv,
)

__all__ = [
    "IMUSample",
    "OxtsReader",
    "list_scan_files",
    "load_map_cloud",
    "load_scan_cloud",
    "load_trajectory_csv",
    "write_trajectory_csv",
]
