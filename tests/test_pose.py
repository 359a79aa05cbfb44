"""Tests for SE3 and pose vector helpers."""

import math

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from lidarmap.pose import SE3, identity_pose, is_moving, make_pose, pose_displacement, relative_pose


@pytest.fixture
def pose_a() -> np.ndarray:
    return make_pose([1.0, 2.0, 0.5], Rotation.from_euler("z", 0.3).as_quat())


@pytest.fixture
def pose_b() -> np.ndarray:
    return make_pose([3.0, 1.0, 0.0], Rotation.from_euler("xyz", [0.05, -0.02, 0.6]).as_quat())


class TestSE3:
    def test_pose_vector_roundtrip(self, pose_b: np.ndarray):
        recovered = SE3.from_pose_vector(pose_b).to_pose_vector()

        np.testing.assert_allclose(recovered[:3], pose_b[:3])
        assert abs(recovered[3:] @ pose_b[3:]) == pytest.approx(1.0)

    def test_inverse_composes_to_identity(self, pose_a: np.ndarray):
        T = SE3.from_pose_vector(pose_a)

        product = T @ T.inverse()

        np.testing.assert_allclose(product.rotation, np.eye(3), atol=1e-12)
        np.testing.assert_allclose(product.translation, np.zeros(3), atol=1e-12)

    def test_transform_points(self):
        T = SE3.from_pose_vector(make_pose([1.0, 0.0, 0.0], Rotation.from_euler("z", math.pi / 2).as_quat()))

        np.testing.assert_allclose(T.transform_points(np.array([[1.0, 0.0, 0.0]])), [[1.0, 1.0, 0.0]], atol=1e-12)

    def test_matrix_roundtrip(self, pose_a: np.ndarray):
        T = SE3.from_pose_vector(pose_a)

        matrix = T.to_matrix()
        recovered = SE3.from_matrix(matrix)

        np.testing.assert_allclose(matrix[3], [0.0, 0.0, 0.0, 1.0])
        np.testing.assert_allclose(recovered.rotation, T.rotation)
        np.testing.assert_allclose(recovered.translation, pose_a[:3])

    def test_invalid_matrix(self):
        with pytest.raises(ValueError, match="4x4"):
            SE3.from_matrix(np.eye(3))

    def test_invalid_pose_vector(self):
        with pytest.raises(ValueError, match="7 elements"):
            SE3.from_pose_vector(np.zeros(6))


class TestPoseHelpers:
    def test_make_pose_normalizes_quaternion(self):
        pose = make_pose([0.0, 0.0, 0.0], [0.0, 0.0, 0.0, 2.0])

        np.testing.assert_array_equal(pose, identity_pose())

    def test_relative_pose_composes_back(self, pose_a: np.ndarray, pose_b: np.ndarray):
        delta = relative_pose(pose_a, pose_b)

        recomposed = (SE3.from_pose_vector(pose_a) @ SE3.from_pose_vector(delta)).to_pose_vector()

        np.testing.assert_allclose(recomposed[:3], pose_b[:3], atol=1e-12)
        assert abs(recomposed[3:] @ pose_b[3:]) == pytest.approx(1.0)

    def test_displacement(self):
        rotated = make_pose([3.0, 4.0, 0.0], Rotation.from_euler("z", 0.25).as_quat())

        translation, rotation = pose_displacement(identity_pose(), rotated)

        assert translation == pytest.approx(5.0)
        assert rotation == pytest.approx(0.25)


class TestIsMoving:
    def test_below_both_thresholds(self):
        pose = make_pose([0.05, 0.0, 0.0], Rotation.from_euler("z", 0.001).as_quat())

        assert not is_moving(pose, identity_pose(), 0.1, math.radians(0.5))

    def test_translation_alone(self):
        assert is_moving(make_pose([0.2, 0.0, 0.0]), identity_pose(), 0.1, math.radians(0.5))

    def test_rotation_alone(self):
        pose = make_pose([0.0, 0.0, 0.0], Rotation.from_euler("z", math.radians(1.0)).as_quat())

        assert is_moving(pose, identity_pose(), 0.1, math.radians(0.5))
