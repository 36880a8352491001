"""Nonlinear solver contract and a reference Newton-Raphson implementation."""

import logging
import time
import typing
import warnings

import attrs
import numpy as np
from scipy.sparse import csc_matrix
from scipy.sparse.linalg import MatrixRankWarning, spsolve

from poroflow.clock import EpisodeClock
from poroflow.errors import SolverError, ValidationError
from poroflow.problems import Model

__all__ = [
    "SolveAttemptResult",
    "NonlinearSolver",
    "NewtonSolver",
]

logger = logging.getLogger(__name__)


@attrs.frozen(slots=True)
class SolveAttemptResult:
    """
    Outcome of one solve attempt at a fixed time step size.

    Timing contributions are wall-clock seconds spent in each phase of
    the attempt, whether or not it converged.
    """

    converged: bool
    """Whether the nonlinear solve converged."""
    assemble_time: float = 0.0
    """Time spent assembling the residual and Jacobian (seconds)."""
    solve_time: float = 0.0
    """Time spent solving linear systems (seconds)."""
    update_time: float = 0.0
    """Time spent applying updates to the solution (seconds)."""
    iterations: int = 0
    """Number of nonlinear iterations performed."""
    residual_norm: typing.Optional[float] = None
    """Max-norm of the last evaluated residual."""
    message: typing.Optional[str] = None
    """Optional message describing why the attempt failed."""


@typing.runtime_checkable
class NonlinearSolver(typing.Protocol):
    """What the time integration loop needs from a nonlinear solver."""

    def attempt(self, step_size: float) -> SolveAttemptResult:
        """Performs one full solve attempt for the given time step size."""
        ...

    def suggest_next_step_size(self, last_step_size: float) -> float:
        """Suggests a step size for the next macro time step after a converged one."""
        ...


@attrs.define
class NewtonSolver:
    """
    Newton-Raphson solver for the implicit system of a `Model`.

    Each attempt starts from the model's previous (accepted) solution. On
    convergence the new iterate is stored in `model.solution`; on failure
    the model is left untouched so the attempt can be repeated with a
    smaller step size.
    """

    model: Model
    """The model whose residual is driven to zero."""
    clock: EpisodeClock
    """Clock providing the time at the beginning of the step."""
    tolerance: float = 1e-8
    """Convergence tolerance on the max-norm of the Newton update."""
    max_iterations: int = 14
    """Iteration limit after which an attempt is considered diverged."""
    target_iterations: int = 10
    """Desired number of iterations per step."""
    num_iterations: int = attrs.field(init=False, default=0)
    """Iterations used by the most recent attempt."""

    def __attrs_post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValidationError("`max_iterations` must be at least 1.")
        if not 1 <= self.target_iterations <= self.max_iterations:
            raise ValidationError(
                "`target_iterations` must be between 1 and `max_iterations`."
            )

    def attempt(self, step_size: float) -> SolveAttemptResult:
        problem = self.model.problem
        previous_solution = self.model.previous_solution
        solution = previous_solution.copy()
        start_time = self.clock.time

        assemble_time = 0.0
        solve_time = 0.0
        update_time = 0.0
        residual_norm = None
        message = None
        converged = False
        self.num_iterations = 0

        for iteration in range(self.max_iterations):
            tic = time.perf_counter()
            residual = problem.residual(
                solution, previous_solution, step_size, start_time
            )
            residual_norm = float(np.max(np.abs(residual)))
            if not np.isfinite(residual_norm):
                assemble_time += time.perf_counter() - tic
                message = f"Non-finite residual encountered in iteration {iteration}."
                break
            if residual_norm <= self.tolerance:
                assemble_time += time.perf_counter() - tic
                converged = True
                break

            jacobian = problem.jacobian(
                solution, previous_solution, step_size, start_time
            )
            assemble_time += time.perf_counter() - tic

            tic = time.perf_counter()
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", MatrixRankWarning)
                delta = spsolve(csc_matrix(jacobian), residual)
            solve_time += time.perf_counter() - tic
            delta = np.atleast_1d(delta)
            if not np.all(np.isfinite(delta)):
                message = f"Singular Jacobian in iteration {iteration}."
                break

            tic = time.perf_counter()
            solution = solution - delta
            update_norm = float(np.max(np.abs(delta)))
            update_time += time.perf_counter() - tic
            self.num_iterations = iteration + 1

            logger.debug(
                f"Newton iteration {iteration}: residual={residual_norm:.3e}, "
                f"update={update_norm:.3e}"
            )
            if update_norm <= self.tolerance:
                converged = True
                break
        else:
            message = (
                f"Newton solver did not converge within {self.max_iterations} "
                f"iterations. Residual norm: {residual_norm:.3e}"
            )

        if converged:
            self.model.solution = solution

        return SolveAttemptResult(
            converged=converged,
            assemble_time=assemble_time,
            solve_time=solve_time,
            update_time=update_time,
            iterations=self.num_iterations,
            residual_norm=residual_norm,
            message=message,
        )

    def suggest_next_step_size(self, last_step_size: float) -> float:
        """
        Suggests the next time step size based on the iterations of the last solve.

        Steps that needed more iterations than the target shrink the suggestion,
        steps that needed fewer grow it.

        :param last_step_size: The step size of the last converged step.
        :return: The suggested step size in seconds.
        """
        if last_step_size <= 0:
            raise SolverError("Cannot suggest a step size from a non-positive one.")

        target = self.target_iterations
        if self.num_iterations > target:
            percent = (self.num_iterations - target) / target
            return last_step_size / (1.0 + percent)

        percent = (target - self.num_iterations) / target
        return last_step_size * (1.0 + percent / 1.2)
