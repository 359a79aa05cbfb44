"""Scan registration against local and prior maps."""

from .base import LocalMap, Registration, RegistrationResult
from .gicp import GICPRegistration
from .preprocess import crop_range, downsample, preprocess
from .voxel_map import VoxelMap

__all__ = [
    "GICPRegistration",
    "LocalMap",
    "Registration",
    "RegistrationResult",
    "VoxelMap",
    "crop_range",
    "downsample",
    "preprocess",
]
