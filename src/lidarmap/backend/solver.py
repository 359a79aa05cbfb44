"""Sparse nonlinear least-squares problem solved with scipy.optimize.least_squares.

A ``Problem`` holds references to parameter arrays owned by the caller and a
set of residual blocks that read them. ``solve`` optimizes every non-constant
parameter block referenced by at least one residual block and writes the
result back into the caller's arrays in place.

The optimization problem:
    minimize sum_k 0.5 * rho_k(||f_k(x_k1, x_k2, ...)||^2)

Where:
- f_k is the cost function of residual block k
- rho_k is its robust loss
- x_ki are the parameter blocks it reads, updated through their manifolds
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Protocol

import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import lil_matrix

from .manifold import EuclideanManifold
from .robust_loss import TRIVIAL_LOSS, RobustLoss

logger = logging.getLogger(__name__)

ResidualBlockId = int


class CostFunction(Protocol):
    """Residual functor evaluated on the current parameter values."""

    num_residuals: int

    def __call__(self, *parameters: np.ndarray) -> np.ndarray: ...


class Manifold(Protocol):
    ambient_size: int
    tangent_size: int

    def plus(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray: ...


@dataclass
class ResidualBlock:
    """A cost function bound to the parameter blocks it reads."""

    id: ResidualBlockId
    cost: CostFunction
    loss: RobustLoss
    keys: tuple[Hashable, ...]

    def evaluate(self, parameters: list[np.ndarray]) -> np.ndarray:
        """Evaluate the robustified residual for the given parameter values."""
        residual = np.asarray(self.cost(*parameters), dtype=np.float64)
        return self.loss.apply(residual)


class Problem:
    """Container of parameter blocks and residual blocks.

    Parameter blocks are referenced, not copied: the arrays passed to
    ``add_parameter_block`` are the ones ``solve`` updates.
    """

    def __init__(self) -> None:
        self._parameters: dict[Hashable, np.ndarray] = {}
        self._manifolds: dict[Hashable, Manifold] = {}
        self._constant: set[Hashable] = set()
        self._residual_blocks: dict[ResidualBlockId, ResidualBlock] = {}
        self._next_block_id: ResidualBlockId = 0

    def add_parameter_block(
        self,
        key: Hashable,
        values: np.ndarray,
        manifold: Manifold | None = None,
    ) -> None:
        """Register (or re-bind) a parameter array under a key.

        Args:
            key: Identifier used by residual blocks
            values: 1D float64 array, updated in place by ``solve``
            manifold: Local parameterization (Euclidean if omitted)
        """
        if values.ndim != 1 or values.dtype != np.float64:
            raise ValueError(
                f"Parameter block {key!r} must be a 1D float64 array, "
                f"got shape {values.shape} dtype {values.dtype}"
            )
        self._parameters[key] = values
        if manifold is not None:
            self.set_manifold(key, manifold)

    def set_manifold(self, key: Hashable, manifold: Manifold) -> None:
        """Attach a manifold to an existing parameter block."""
        values = self.parameter_block(key)
        if manifold.ambient_size != values.size:
            raise ValueError(
                f"Manifold ambient size {manifold.ambient_size} does not match "
                f"parameter block {key!r} of size {values.size}"
            )
        self._manifolds[key] = manifold

    def manifold(self, key: Hashable) -> Manifold:
        """Return the manifold of a parameter block."""
        manifold = self._manifolds.get(key)
        if manifold is None:
            return EuclideanManifold(self.parameter_block(key).size)
        return manifold

    def set_parameter_block_constant(self, key: Hashable) -> None:
        """Exclude a parameter block from optimization."""
        self.parameter_block(key)
        self._constant.add(key)

    def set_parameter_block_variable(self, key: Hashable) -> None:
        """Include a previously constant parameter block in optimization."""
        self._constant.discard(key)

    def is_parameter_block_constant(self, key: Hashable) -> bool:
        return key in self._constant

    def has_parameter_block(self, key: Hashable) -> bool:
        return key in self._parameters

    def parameter_block(self, key: Hashable) -> np.ndarray:
        """Return the array registered under a key.

        Raises:
            KeyError: If no parameter block uses this key
        """
        try:
            return self._parameters[key]
        except KeyError:
            raise KeyError(f"Unknown parameter block: {key!r}") from None

    def add_residual_block(
        self,
        cost: CostFunction,
        loss: RobustLoss | None,
        *keys: Hashable,
    ) -> ResidualBlockId:
        """Add a residual block reading the given parameter blocks.

        Args:
            cost: Cost functor taking one array per key
            loss: Robust loss (plain least squares if None)
            keys: Parameter block keys, in the order ``cost`` expects them

        Returns:
            Handle for ``remove_residual_block``
        """
        if not keys:
            raise ValueError("A residual block needs at least one parameter block")
        for key in keys:
            self.parameter_block(key)

        block_id = self._next_block_id
        self._next_block_id += 1
        self._residual_blocks[block_id] = ResidualBlock(
            id=block_id,
            cost=cost,
            loss=loss if loss is not None else TRIVIAL_LOSS,
            keys=tuple(keys),
        )
        return block_id

    def remove_residual_block(self, block_id: ResidualBlockId) -> None:
        """Remove a residual block.

        Raises:
            KeyError: If the handle is unknown or already removed
        """
        try:
            del self._residual_blocks[block_id]
        except KeyError:
            raise KeyError(f"Unknown residual block: {block_id}") from None

    def has_residual_block(self, block_id: ResidualBlockId) -> bool:
        return block_id in self._residual_blocks

    def residual_blocks(self) -> list[ResidualBlock]:
        """Return active residual blocks in insertion order."""
        return list(self._residual_blocks.values())

    @property
    def num_residual_blocks(self) -> int:
        return len(self._residual_blocks)

    @property
    def num_parameter_blocks(self) -> int:
        return len(self._parameters)


@dataclass
class SolverOptions:
    """Solver configuration.

    Attributes:
        max_num_iterations: Cap on solver iterations
        num_threads: Requested worker threads (residuals are evaluated serially)
        verbose: Print per-iteration progress
        function_tolerance: Relative cost change that counts as converged
        parameter_tolerance: Relative step size that counts as converged
    """

    max_num_iterations: int = 10
    num_threads: int = 1
    verbose: bool = False
    function_tolerance: float = 1e-6
    parameter_tolerance: float = 1e-8


class TerminationType(Enum):
    CONVERGENCE = "convergence"
    NO_CONVERGENCE = "no_convergence"
    FAILURE = "failure"


@dataclass
class SolverSummary:
    """Outcome of a ``solve`` call."""

    termination_type: TerminationType
    initial_cost: float = 0.0
    final_cost: float = 0.0
    iterations: int = 0
    num_residual_blocks: int = 0
    num_parameters: int = 0
    message: str = ""

    def is_usable(self) -> bool:
        """Return True unless the solver failed or diverged.

        Hitting the iteration limit still leaves a usable solution.
        """
        return self.termination_type != TerminationType.FAILURE

    def brief_report(self) -> str:
        return (
            f"{self.termination_type.value}: cost {self.initial_cost:.6g} -> "
            f"{self.final_cost:.6g} in {self.iterations} iterations "
            f"({self.num_residual_blocks} residual blocks, "
            f"{self.num_parameters} parameters)"
        )


def _build_sparsity_matrix(
    blocks: list[ResidualBlock],
    offsets: dict[Hashable, tuple[int, int]],
    n_residuals: int,
    n_params: int,
) -> lil_matrix:
    """Build sparse Jacobian structure for efficient optimization.

    Each residual block only depends on the tangent parameters of the
    non-constant blocks it reads.
    """
    sparsity = lil_matrix((n_residuals, n_params), dtype=int)

    row = 0
    for block in blocks:
        rows = block.cost.num_residuals
        for key in block.keys:
            if key not in offsets:
                continue
            start, size = offsets[key]
            sparsity[row : row + rows, start : start + size] = 1
        row += rows

    return sparsity


def solve(options: SolverOptions, problem: Problem) -> SolverSummary:
    """Optimize all free parameter blocks of a problem in place.

    Args:
        options: Solver configuration
        problem: Problem to optimize

    Returns:
        SolverSummary; the parameters are only written back when the
        solution is usable
    """
    blocks = problem.residual_blocks()
    if not blocks:
        return SolverSummary(
            termination_type=TerminationType.CONVERGENCE,
            message="No residual blocks",
        )

    # Free parameter blocks in first-seen order
    offsets: dict[Hashable, tuple[int, int]] = {}
    n_params = 0
    for block in blocks:
        for key in block.keys:
            if key in offsets or problem.is_parameter_block_constant(key):
                continue
            size = problem.manifold(key).tangent_size
            offsets[key] = (n_params, size)
            n_params += size

    base_values = {key: problem.parameter_block(key).copy() for key in offsets}
    n_residuals = sum(block.cost.num_residuals for block in blocks)

    def residuals(delta: np.ndarray) -> np.ndarray:
        values: dict[Hashable, np.ndarray] = {}
        for key, (start, size) in offsets.items():
            values[key] = problem.manifold(key).plus(
                base_values[key], delta[start : start + size]
            )

        out = np.empty(n_residuals, dtype=np.float64)
        row = 0
        for block in blocks:
            params = [
                values[k] if k in values else problem.parameter_block(k)
                for k in block.keys
            ]
            rows = block.cost.num_residuals
            out[row : row + rows] = block.evaluate(params)
            row += rows
        return out

    x0 = np.zeros(n_params, dtype=np.float64)
    initial_residuals = residuals(x0)
    initial_cost = 0.5 * float(initial_residuals @ initial_residuals)

    if not np.all(np.isfinite(initial_residuals)):
        return SolverSummary(
            termination_type=TerminationType.FAILURE,
            initial_cost=initial_cost,
            final_cost=initial_cost,
            num_residual_blocks=len(blocks),
            num_parameters=n_params,
            message="Residuals are not finite at the initial point",
        )

    if n_params == 0:
        return SolverSummary(
            termination_type=TerminationType.CONVERGENCE,
            initial_cost=initial_cost,
            final_cost=initial_cost,
            num_residual_blocks=len(blocks),
            message="All parameter blocks are constant",
        )

    sparsity = _build_sparsity_matrix(blocks, offsets, n_residuals, n_params)

    try:
        result = least_squares(
            fun=residuals,
            x0=x0,
            jac_sparsity=sparsity,
            method="trf",  # Trust Region Reflective (supports sparse Jacobians)
            loss="linear",  # Robust losses are applied per residual block
            ftol=options.function_tolerance,
            xtol=options.parameter_tolerance,
            max_nfev=max(options.max_num_iterations, 1) + 1,
            verbose=2 if options.verbose else 0,
        )
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.warning("Pose graph solve failed: %s", e)
        return SolverSummary(
            termination_type=TerminationType.FAILURE,
            initial_cost=initial_cost,
            final_cost=initial_cost,
            num_residual_blocks=len(blocks),
            num_parameters=n_params,
            message=f"Optimization failed: {e}",
        )

    final_cost = float(result.cost)

    if result.status < 0 or not np.isfinite(final_cost):
        termination = TerminationType.FAILURE
    elif final_cost > initial_cost * 10 + 1e-12:
        termination = TerminationType.FAILURE
    elif result.status == 0:
        termination = TerminationType.NO_CONVERGENCE
    else:
        termination = TerminationType.CONVERGENCE

    summary = SolverSummary(
        termination_type=termination,
        initial_cost=initial_cost,
        final_cost=final_cost,
        iterations=int(result.nfev),
        num_residual_blocks=len(blocks),
        num_parameters=n_params,
        message=str(result.message),
    )

    if summary.is_usable():
        for key, (start, size) in offsets.items():
            updated = problem.manifold(key).plus(
                base_values[key], result.x[start : start + size]
            )
            problem.parameter_block(key)[:] = updated

    logger.debug("Solver: %s", summary.brief_report())
    return summary
