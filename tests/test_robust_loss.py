"""Tests for robust loss functions."""

import numpy as np
import pytest

from lidarmap.backend.robust_loss import TRIVIAL_LOSS, RobustLoss, cauchy_rho, tukey_rho


class TestRobustLoss:
    @pytest.mark.parametrize("kind", ["trivial", "cauchy", "tukey"])
    def test_zero_at_origin(self, kind: str):
        assert RobustLoss(kind).rho(0.0) == 0.0

    @pytest.mark.parametrize("kind", ["cauchy", "tukey"])
    def test_quadratic_near_origin(self, kind: str):
        """Test that small residuals behave like least squares."""
        assert RobustLoss(kind).rho(1e-6) == pytest.approx(1e-6, rel=1e-3)

    def test_cauchy_value(self):
        assert cauchy_rho(3.0, 1.0) == pytest.approx(np.log(4.0))
        assert cauchy_rho(3.0, 2.0) == pytest.approx(4.0 * np.log1p(0.75))

    def test_tukey_saturates(self):
        """Test that gross outliers contribute a constant cost."""
        assert tukey_rho(1.0, 1.0) == pytest.approx(1.0 / 3.0)
        assert tukey_rho(100.0, 1.0) == pytest.approx(1.0 / 3.0)
        assert tukey_rho(0.5, 1.0) < 1.0 / 3.0

    def test_robust_losses_below_quadratic(self):
        for kind in ("cauchy", "tukey"):
            assert RobustLoss(kind).rho(4.0) < 4.0

    def test_apply_scales_norm(self):
        loss = RobustLoss("cauchy", 1.0)
        residual = np.array([3.0, 4.0])

        scaled = loss.apply(residual)

        assert float(scaled @ scaled) == pytest.approx(loss.rho(25.0))
        np.testing.assert_allclose(scaled / np.linalg.norm(scaled), residual / 5.0)

    def test_trivial_apply_is_identity(self):
        residual = np.array([1.0, -2.0])

        np.testing.assert_array_equal(TRIVIAL_LOSS.apply(residual), residual)

    def test_apply_zero_residual(self):
        np.testing.assert_array_equal(RobustLoss("tukey").apply(np.zeros(6)), np.zeros(6))

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown loss"):
            RobustLoss("arctan")

    def test_non_positive_scale(self):
        with pytest.raises(ValueError, match="scale must be positive"):
            RobustLoss("cauchy", 0.0)
