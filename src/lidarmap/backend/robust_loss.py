"""Robust loss functions for pose graph residual blocks.

Each loss maps a squared residual norm s to rho(s) with rho(0) = 0 and
rho'(0) = 1, so small residuals behave like plain least squares and large
ones are down-weighted:

- cauchy: logarithmic growth, bounded influence
- tukey:  constant past the scale, zero influence for gross outliers
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

LOSS_KINDS = ("trivial", "cauchy", "tukey")


def cauchy_rho(sq_norm: float, scale: float) -> float:
    """Return the Cauchy loss for a squared residual norm."""
    scale_sq = scale * scale
    return float(scale_sq * np.log1p(sq_norm / scale_sq))


def tukey_rho(sq_norm: float, scale: float) -> float:
    """Return the Tukey biweight loss for a squared residual norm."""
    scale_sq = scale * scale
    if sq_norm >= scale_sq:
        return float(scale_sq / 3.0)
    return float(scale_sq / 3.0 * (1.0 - (1.0 - sq_norm / scale_sq) ** 3))


@dataclass(frozen=True)
class RobustLoss:
    """A robust loss shape attached to a residual block.

    Attributes:
        kind: One of "trivial", "cauchy", "tukey"
        scale: Residual norm where the loss starts to down-weight
    """

    kind: str = "trivial"
    scale: float = 1.0

    def __post_init__(self) -> None:
        """Validate the loss parameters."""
        if self.kind not in LOSS_KINDS:
            raise ValueError(f"Unknown loss '{self.kind}', expected one of {LOSS_KINDS}")
        if self.scale <= 0.0:
            raise ValueError(f"Loss scale must be positive, got {self.scale}")

    def rho(self, sq_norm: float) -> float:
        """Evaluate the loss for a squared residual norm."""
        if self.kind == "cauchy":
            return cauchy_rho(sq_norm, self.scale)
        if self.kind == "tukey":
            return tukey_rho(sq_norm, self.scale)
        return float(sq_norm)

    def apply(self, residual: np.ndarray) -> np.ndarray:
        """Rescale a residual so its squared norm equals rho(||r||^2).

        This lets a plain least-squares solver minimize the robust cost of
        each block independently.

        Args:
            residual: Raw residual vector

        Returns:
            Residual vector with the same direction and norm sqrt(rho)
        """
        if self.kind == "trivial":
            return residual

        sq_norm = float(residual @ residual)
        if sq_norm < 1e-24:
            return residual
        return residual * np.sqrt(self.rho(sq_norm) / sq_norm)


TRIVIAL_LOSS = RobustLoss()
