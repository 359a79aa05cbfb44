"""Python LiDAR map localization - sliding-window pose graph over map registration."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import (
    LidarMapConfig,
    PipelineConfig,
    RegistrationConfig,
    SolverConfig,
    load_config,
)
from .exceptions import EmptyFrameError, InitializationError, PipelineError, SolverError
from .pose import SE3, identity_pose, make_pose
from .io import IMUSample, OxtsReader
from .backend import ConstantDistancePredictor, ConstraintKind, PoseGraph
from .registration import GICPRegistration, RegistrationResult, VoxelMap
from .pipeline import (
    FrameOutcome,
    FrameProcessor,
    FrameSnapshot,
    LidarMapPipeline,
    RunState,
    RunStatus,
)
from .visualization import RerunVisualizer

__all__ = [
    "__version__",
    # Configuration
    "LidarMapConfig",
    "SolverConfig",
    "RegistrationConfig",
    "PipelineConfig",
    "load_config",
    # Errors
    "PipelineError",
    "InitializationError",
    "SolverError",
    "EmptyFrameError",
    # Pose
    "SE3",
    "identity_pose",
    "make_pose",
    # I/O
    "IMUSample",
    "OxtsReader",
    # Backend
    "PoseGraph",
    "ConstraintKind",
    "ConstantDistancePredictor",
    # Registration
    "GICPRegistration",
    "RegistrationResult",
    "VoxelMap",
    # Pipeline
    "FrameProcessor",
    "FrameOutcome",
    "FrameSnapshot",
    "LidarMapPipeline",
    "RunState",
    "RunStatus",
    # Visualization
    "RerunVisualizer",
]
