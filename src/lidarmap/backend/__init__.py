"""Sliding-window pose graph backend."""

from .manifold import POSE_MANIFOLD, EuclideanManifold, PoseManifold
from .motion_predictor import ConstantDistancePredictor, predict
from .pose_graph import Constraint, ConstraintKind, PoseGraph
from .residuals import AbsolutePoseError, IMUOrientationError, RelativePoseError
from .robust_loss import TRIVIAL_LOSS, RobustLoss
from .solver import (
    Problem,
    ResidualBlockId,
    SolverOptions,
    SolverSummary,
    TerminationType,
    solve,
)

__all__ = [
    # Pose graph
    "PoseGraph",
    "Constraint",
    "ConstraintKind",
    # Cost functions
    "AbsolutePoseError",
    "RelativePoseError",
    "IMUOrientationError",
    "RobustLoss",
    "TRIVIAL_LOSS",
    # Solver
    "Problem",
    "ResidualBlockId",
    "SolverOptions",
    "SolverSummary",
    "TerminationType",
    "solve",
    "EuclideanManifold",
    "PoseManifold",
    "POSE_MANIFOLD",
    # Motion model
    "ConstantDistancePredictor",
    "predict",
]
