"""Tests for the sliding-window pose graph."""

import numpy as np
import pytest

from lidarmap.backend.pose_graph import ConstraintKind, PoseGraph
from lidarmap.config import SolverConfig
from lidarmap.io.imu_reader import IMUSample
from lidarmap.pose import identity_pose, make_pose


def build_growing_graph(window: int, num_frames: int) -> tuple[PoseGraph, list[np.ndarray], list[int]]:
    """Add constraints the way the frame processor does, growing the arena.

    Returns:
        Tuple of (graph, poses, fixed index after each frame)
    """
    poses = [identity_pose(), make_pose([1.0, 0.0, 0.0])]
    graph = PoseGraph(poses, SolverConfig(sliding_window_size=window))
    graph.add_constraint(0, 0, poses[0], ConstraintKind.ABSOLUTE)

    fixed_history = [graph.fixed_index]
    for i in range(1, num_frames):
        graph.add_constraint(i - 1, i, make_pose([1.0, 0.0, 0.0]), ConstraintKind.RELATIVE)
        graph.add_constraint(i, i, make_pose([float(i), 0.0, 0.0]), ConstraintKind.ABSOLUTE)
        poses.append(make_pose([float(i + 1), 0.0, 0.0]))
        fixed_history.append(graph.fixed_index)

    return graph, poses, fixed_history


class TestGaugeFixing:
    """Test suite for the fixed pose."""

    def test_no_fixed_pose_before_first_constraint(self):
        """Test that nothing is fixed on an empty graph."""
        graph = PoseGraph([identity_pose()])

        assert graph.fixed_index == -1
        assert graph.num_constraints() == 0

    def test_first_constraint_freezes_pose_zero(self):
        """Test that the first constraint fixes pose 0."""
        poses = [identity_pose(), make_pose([1.0, 0.0, 0.0])]
        graph = PoseGraph(poses)

        graph.add_constraint(0, 1, make_pose([1.0, 0.0, 0.0]), ConstraintKind.RELATIVE)

        assert graph.fixed_index == 0
        assert graph.is_pose_fixed(0)
        assert graph.problem.is_parameter_block_constant(0)
        assert not graph.problem.is_parameter_block_constant(1)

    def test_first_imu_constraint_also_freezes_pose_zero(self):
        """Test that an IMU constraint counts as the first constraint."""
        graph = PoseGraph([identity_pose()])

        constraint = graph.add_imu_constraint(0, IMUSample())

        assert constraint is not None
        assert graph.fixed_index == 0


class TestAddConstraint:
    """Test suite for absolute and relative constraints."""

    def test_index_out_of_range(self):
        """Test that indices outside the arena are rejected."""
        graph = PoseGraph([identity_pose()])

        with pytest.raises(IndexError, match="out of range"):
            graph.add_constraint(0, 1, identity_pose(), ConstraintKind.RELATIVE)

    def test_imu_kind_rejected(self):
        """Test that IMU constraints must go through add_imu_constraint."""
        graph = PoseGraph([identity_pose()])

        with pytest.raises(ValueError, match="add_imu_constraint"):
            graph.add_constraint(0, 0, identity_pose(), ConstraintKind.IMU)

    def test_same_kind_replaces_previous(self):
        """Test that one constraint per kind and target index survives."""
        poses = [identity_pose(), make_pose([1.0, 0.0, 0.0])]
        graph = PoseGraph(poses)

        first = graph.add_constraint(1, 1, make_pose([1.0, 0.0, 0.0]), ConstraintKind.ABSOLUTE)
        second = graph.add_constraint(1, 1, make_pose([1.1, 0.0, 0.0]), ConstraintKind.ABSOLUTE)

        assert graph.num_constraints(ConstraintKind.ABSOLUTE) == 1
        assert graph.problem.num_residual_blocks == 1
        assert not graph.problem.has_residual_block(first.block_id)
        assert graph.problem.has_residual_block(second.block_id)

    def test_absolute_ignores_from_index(self):
        """Test that absolute constraints are unary on the target pose."""
        poses = [identity_pose(), make_pose([1.0, 0.0, 0.0])]
        graph = PoseGraph(poses)

        constraint = graph.add_constraint(0, 1, poses[1], ConstraintKind.ABSOLUTE)

        assert constraint.from_index == constraint.to_index == 1

    def test_constraint_behind_window_rejected(self):
        """Test that frozen poses cannot receive new constraints."""
        graph, _, _ = build_growing_graph(window=3, num_frames=6)

        with pytest.raises(ValueError, match="behind the sliding window"):
            graph.add_constraint(0, 1, make_pose([1.0, 0.0, 0.0]), ConstraintKind.RELATIVE)


class TestIMUConstraint:
    """Test suite for IMU orientation constraints."""

    def test_out_of_range_is_ignored(self):
        """Test that samples for poses that don't exist yet are dropped."""
        poses = [identity_pose(), make_pose([1.0, 0.0, 0.0])]
        graph = PoseGraph(poses)
        graph.add_constraint(0, 0, poses[0], ConstraintKind.ABSOLUTE)

        assert graph.add_imu_constraint(2, IMUSample(roll=0.1)) is None
        assert graph.add_imu_constraint(10, IMUSample(roll=0.1)) is None
        assert graph.num_constraints(ConstraintKind.IMU) == 0

    def test_behind_window_is_ignored(self):
        """Test that samples for frozen poses are dropped."""
        graph, _, _ = build_growing_graph(window=3, num_frames=6)

        assert graph.add_imu_constraint(0, IMUSample()) is None
        assert graph.num_constraints(ConstraintKind.IMU) == 0

    def test_imu_constraint_added(self):
        """Test that an in-range sample adds one constraint per pose."""
        poses = [identity_pose(), make_pose([1.0, 0.0, 0.0])]
        graph = PoseGraph(poses)

        graph.add_imu_constraint(1, IMUSample(roll=0.1))
        graph.add_imu_constraint(1, IMUSample(roll=0.2))

        assert graph.num_constraints(ConstraintKind.IMU) == 1


class TestSlidingWindow:
    """Test suite for sliding window management."""

    def test_window_retracts_old_constraints(self):
        """Test that no constraint references a pose behind the fixed pose."""
        graph, poses, _ = build_growing_graph(window=3, num_frames=6)

        assert len(poses) == 7
        assert graph.fixed_index == 3
        for constraint in graph.constraints():
            assert min(constraint.from_index, constraint.to_index) >= graph.fixed_index

    def test_window_keeps_recent_constraints(self):
        """Test the constraint set that survives the window."""
        graph, _, _ = build_growing_graph(window=3, num_frames=6)

        absolute = [c.to_index for c in graph.constraints(ConstraintKind.ABSOLUTE)]
        relative = [(c.from_index, c.to_index) for c in graph.constraints(ConstraintKind.RELATIVE)]

        assert absolute == [3, 4, 5]
        assert relative == [(3, 4), (4, 5)]
        assert graph.problem.num_residual_blocks == 5

    def test_fixed_index_monotonic(self):
        """Test that the fixed index never decreases."""
        _, _, history = build_growing_graph(window=3, num_frames=10)

        assert history == sorted(history)
        assert history[0] == 0
        assert history[-1] > 0

    def test_single_fixed_pose(self):
        """Test that only the window boundary pose is constant."""
        graph, poses, _ = build_growing_graph(window=3, num_frames=6)

        constant = [
            i
            for i in range(len(poses))
            if graph.problem.has_parameter_block(i)
            and graph.problem.is_parameter_block_constant(i)
        ]
        assert constant == [graph.fixed_index]
        assert not graph.problem.is_parameter_block_constant(0)

    def test_window_disabled(self):
        """Test that disabling the window keeps every constraint."""
        poses = [identity_pose(), make_pose([1.0, 0.0, 0.0])]
        graph = PoseGraph(poses, SolverConfig(use_sliding_window=False, sliding_window_size=2))
        graph.add_constraint(0, 0, poses[0], ConstraintKind.ABSOLUTE)
        for i in range(1, 6):
            graph.add_constraint(i - 1, i, make_pose([1.0, 0.0, 0.0]), ConstraintKind.RELATIVE)
            poses.append(make_pose([float(i + 1), 0.0, 0.0]))

        assert graph.fixed_index == 0
        assert graph.num_constraints(ConstraintKind.RELATIVE) == 5

    def test_short_trajectory_keeps_pose_zero_fixed(self):
        """Test that the window does not move before it is full."""
        graph, _, _ = build_growing_graph(window=20, num_frames=5)

        assert graph.fixed_index == 0
        assert graph.num_constraints(ConstraintKind.ABSOLUTE) == 5


class TestOptimize:
    """Test suite for pose graph optimization."""

    def test_optimize_moves_free_pose(self):
        """Test that a perturbed pose is pulled onto its constraints."""
        poses = [identity_pose(), make_pose([1.3, 0.2, 0.0])]
        graph = PoseGraph(poses)
        graph.add_constraint(0, 0, identity_pose(), ConstraintKind.ABSOLUTE)
        graph.add_constraint(0, 1, make_pose([1.0, 0.0, 0.0]), ConstraintKind.RELATIVE)
        arena_entry = poses[1]

        assert graph.optimize()

        assert poses[1] is arena_entry
        np.testing.assert_allclose(poses[1][:3], [1.0, 0.0, 0.0], atol=1e-2)
        assert np.linalg.norm(poses[1][3:]) == pytest.approx(1.0)
        assert graph.last_summary is not None
        assert graph.last_summary.is_usable()

    def test_optimize_leaves_fixed_pose(self):
        """Test that the fixed pose is not modified."""
        poses = [make_pose([0.5, 0.0, 0.0]), make_pose([1.0, 0.0, 0.0])]
        graph = PoseGraph(poses)
        graph.add_constraint(0, 1, make_pose([2.0, 0.0, 0.0]), ConstraintKind.RELATIVE)

        graph.optimize()

        np.testing.assert_array_equal(poses[0], make_pose([0.5, 0.0, 0.0]))

    def test_optimize_empty_graph(self):
        """Test that an empty graph optimizes trivially."""
        graph = PoseGraph([identity_pose()])

        assert graph.optimize()
