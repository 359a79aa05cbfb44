"""Sliding-window pose graph optimization.

The pose graph fuses three kinds of measurements into the trajectory:

- ABSOLUTE: a pose registered against the prior map (Tukey loss, since
  low-overlap map registrations can be confidently wrong)
- RELATIVE: the scan-to-scan motion between consecutive poses (Cauchy loss)
- IMU: roll and pitch from the inertial unit (Cauchy loss)

Only the most recent ``sliding_window_size`` poses are optimized. When the
window moves forward, every constraint touching a pose behind it is removed
from the problem and the oldest pose in the window is held constant. That
bounds each solve to O(window) poses while older poses keep their values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from ..config import SolverConfig
from ..io.imu_reader import IMUSample
from .manifold import POSE_MANIFOLD
from .residuals import AbsolutePoseError, IMUOrientationError, RelativePoseError
from .robust_loss import RobustLoss
from .solver import Problem, ResidualBlockId, SolverOptions, SolverSummary, solve

logger = logging.getLogger(__name__)


class ConstraintKind(Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    IMU = "imu"


@dataclass(frozen=True)
class Constraint:
    """An active constraint in the pose graph.

    Attributes:
        kind: Constraint kind
        from_index: Source pose index (same as to_index for unary constraints)
        to_index: Target pose index; at most one constraint per kind and target
        block_id: Residual block handle in the solver problem
    """

    kind: ConstraintKind
    from_index: int
    to_index: int
    block_id: ResidualBlockId

    def references_below(self, index: int) -> bool:
        return min(self.from_index, self.to_index) < index


class PoseGraph:
    """Pose graph over a pose arena owned by the caller.

    The ``poses`` list is shared, not copied: ``optimize()`` writes optimized
    values into the existing arrays, and the caller appends new poses to the
    same list.
    """

    def __init__(self, poses: list[np.ndarray], config: SolverConfig | None = None) -> None:
        """Initialize the pose graph.

        Args:
            poses: Pose arena of 7-element float64 arrays, appended to by the caller
            config: Solver and sliding window configuration
        """
        self._poses = poses
        self._config = config or SolverConfig()
        self._options = SolverOptions(
            max_num_iterations=self._config.num_iterations,
            num_threads=self._config.num_threads,
            verbose=self._config.verbose,
        )
        self._problem = Problem()

        # Per target index: kind -> constraint
        self._constraints: list[dict[ConstraintKind, Constraint]] = []
        self._fixed_index = -1
        self._last_summary: SolverSummary | None = None

        self._absolute_loss = RobustLoss("tukey", self._config.absolute_loss_scale)
        self._relative_loss = RobustLoss("cauchy", self._config.relative_loss_scale)
        self._imu_loss = RobustLoss("cauchy", self._config.imu_loss_scale)

    def add_constraint(
        self,
        from_index: int,
        to_index: int,
        measurement: np.ndarray,
        kind: ConstraintKind,
    ) -> Constraint:
        """Add an absolute or relative constraint.

        Args:
            from_index: Source pose index (ignored for ABSOLUTE)
            to_index: Target pose index
            measurement: Absolute pose (ABSOLUTE) or pose delta
                T_from^{-1} @ T_to (RELATIVE)
            kind: ConstraintKind.ABSOLUTE or ConstraintKind.RELATIVE

        Returns:
            The constraint that was added

        Raises:
            IndexError: If an index is outside the pose arena
            ValueError: If the target pose is frozen behind the window, or
                kind is IMU (use add_imu_constraint)
        """
        if kind == ConstraintKind.IMU:
            raise ValueError("IMU constraints are added with add_imu_constraint()")

        if kind == ConstraintKind.ABSOLUTE:
            from_index = to_index

        for index in (from_index, to_index):
            if not 0 <= index < len(self._poses):
                raise IndexError(
                    f"Pose index {index} out of range for {len(self._poses)} poses"
                )
        if min(from_index, to_index) < self._fixed_index:
            raise ValueError(
                f"Constraint ({from_index}, {to_index}) references a pose behind "
                f"the sliding window (fixed index {self._fixed_index})"
            )

        if kind == ConstraintKind.ABSOLUTE:
            block_id = self._problem.add_residual_block(
                AbsolutePoseError(measurement),
                self._absolute_loss,
                *self._register_poses(to_index),
            )
        else:
            block_id = self._problem.add_residual_block(
                RelativePoseError(measurement),
                self._relative_loss,
                *self._register_poses(from_index, to_index),
            )

        constraint = self._store(Constraint(kind, from_index, to_index, block_id))
        self.manage_sliding_window()
        return constraint

    def add_imu_constraint(self, index: int, sample: IMUSample) -> Constraint | None:
        """Add a roll/pitch constraint from an IMU sample.

        IMU data may lag or lead the trajectory, so samples for poses that do
        not exist yet or are already frozen are dropped.

        Args:
            index: Pose index the sample belongs to
            sample: IMU sample

        Returns:
            The constraint, or None if the sample was dropped
        """
        if index < 0 or index >= len(self._poses) or index < self._fixed_index:
            logger.debug(
                "Dropping IMU constraint for pose %d (poses: %d, fixed: %d)",
                index,
                len(self._poses),
                self._fixed_index,
            )
            return None

        block_id = self._problem.add_residual_block(
            IMUOrientationError(sample, self._config.imu_rotation_stddev),
            self._imu_loss,
            *self._register_poses(index),
        )
        constraint = self._store(Constraint(ConstraintKind.IMU, index, index, block_id))
        self.manage_sliding_window()
        return constraint

    def manage_sliding_window(self) -> None:
        """Anchor the gauge and slide the optimization window forward.

        The first call freezes pose 0 so the graph has a unique solution.
        Afterwards, once the trajectory is longer than the window, every
        constraint touching a pose before ``len(poses) - window_size`` is
        removed and the pose at that boundary becomes the fixed pose.
        """
        if self._fixed_index == -1:
            self._ensure_pose_registered(0)
            self._problem.set_parameter_block_constant(0)
            self._fixed_index = 0

        if not self._config.use_sliding_window:
            return

        window_size = self._config.sliding_window_size
        if len(self._poses) <= window_size:
            return

        oldest_allowed = len(self._poses) - window_size
        if oldest_allowed <= self._fixed_index:
            return

        # Constraints are stored at their target index; a relative constraint
        # at oldest_allowed still reaches back to oldest_allowed - 1
        removed = 0
        for index in range(min(oldest_allowed + 1, len(self._constraints))):
            slot = self._constraints[index]
            for kind in list(slot):
                if slot[kind].references_below(oldest_allowed):
                    self._retract(slot, kind)
                    removed += 1

        # The previous anchor has no constraints left, release it
        self._problem.set_parameter_block_variable(self._fixed_index)
        self._ensure_pose_registered(oldest_allowed)
        self._problem.set_parameter_block_constant(oldest_allowed)
        self._fixed_index = oldest_allowed

        logger.debug(
            "Sliding window moved to pose %d, removed %d constraints",
            oldest_allowed,
            removed,
        )

    def optimize(self) -> bool:
        """Optimize all poses in the window in place.

        Returns:
            True if the solver produced a usable solution
        """
        self._last_summary = solve(self._options, self._problem)
        if not self._last_summary.is_usable():
            logger.warning("Pose graph optimization failed: %s", self._last_summary.message)
        return self._last_summary.is_usable()

    def _register_poses(self, *indices: int) -> tuple[int, ...]:
        for index in indices:
            self._ensure_pose_registered(index)
        return indices

    def _ensure_pose_registered(self, index: int) -> None:
        """Bind the arena entry to the problem with the pose manifold."""
        pose = self._poses[index]
        if (
            not self._problem.has_parameter_block(index)
            or self._problem.parameter_block(index) is not pose
        ):
            self._problem.add_parameter_block(index, pose, POSE_MANIFOLD)

    def _store(self, constraint: Constraint) -> Constraint:
        """Record a constraint, replacing any previous one of the same kind."""
        while len(self._constraints) <= constraint.to_index:
            self._constraints.append({})

        slot = self._constraints[constraint.to_index]
        if constraint.kind in slot:
            self._retract(slot, constraint.kind)
        slot[constraint.kind] = constraint
        return constraint

    def _retract(self, slot: dict[ConstraintKind, Constraint], kind: ConstraintKind) -> None:
        constraint = slot.pop(kind)
        self._problem.remove_residual_block(constraint.block_id)

    def constraints(self, kind: ConstraintKind | None = None) -> list[Constraint]:
        """Return active constraints ordered by target index."""
        return [
            constraint
            for slot in self._constraints
            for constraint in slot.values()
            if kind is None or constraint.kind == kind
        ]

    def num_constraints(self, kind: ConstraintKind | None = None) -> int:
        """Number of active constraints (of one kind, if given)."""
        return len(self.constraints(kind))

    def is_pose_fixed(self, index: int) -> bool:
        """Return True if the pose is the current gauge anchor."""
        return index == self._fixed_index

    @property
    def fixed_index(self) -> int:
        """Index of the pose held constant (-1 before the first constraint)."""
        return self._fixed_index

    @property
    def num_poses(self) -> int:
        return len(self._poses)

    @property
    def last_summary(self) -> SolverSummary | None:
        """Summary of the most recent optimize() call."""
        return self._last_summary

    @property
    def problem(self) -> Problem:
        return self._problem
