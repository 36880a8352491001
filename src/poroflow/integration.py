"""Time integration of a single macro time step with step-size halving on divergence."""

import enum
import logging
import typing

import attrs

from poroflow.errors import (
    RetryBudgetExhausted,
    StepSizeFloorViolation,
    TimingError,
    ValidationError,
)
from poroflow.solvers import NonlinearSolver
from poroflow.timing import SimulationTimingTotals, StepSizeController

__all__ = [
    "AdvanceStatus",
    "AdvanceResult",
    "RetryDiagnostic",
    "TimeAdvanceLoop",
]

logger = logging.getLogger(__name__)


class AdvanceStatus(enum.Enum):
    """Terminal outcome of a macro time step."""

    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


@attrs.frozen(slots=True)
class RetryDiagnostic:
    """A rejected attempt and the step size tried next."""

    step_size: float
    """The step size (seconds) at which the solver did not converge."""
    next_step_size: float
    """The step size (seconds) of the following attempt."""

    def __str__(self) -> str:
        return (
            f"Newton solver did not converge with dt={self.step_size} seconds. "
            f"Retrying with time step of {self.next_step_size} seconds"
        )


@attrs.frozen(slots=True)
class AdvanceResult:
    """
    Result of attempting one macro time step.

    Exhaustion is reported as a value rather than raised, so callers may
    either abort or roll back to a restart point.
    """

    status: AdvanceStatus
    """Whether the step converged or every allowed attempt failed."""
    attempts: int
    """Number of solve attempts made, including the first one."""
    step_size: float
    """The last step size attempted (seconds)."""
    diagnostics: typing.Tuple[RetryDiagnostic, ...] = ()
    """One entry per retry, in order."""
    reason: typing.Optional[TimingError] = None
    """Why the loop gave up. Only set for exhausted steps."""

    @property
    def converged(self) -> bool:
        return self.status is AdvanceStatus.CONVERGED

    @property
    def retries(self) -> int:
        return len(self.diagnostics)


@attrs.define
class TimeAdvanceLoop:
    """
    Drives the nonlinear solver through one macro time step.

    Every attempt that does not converge is retried with half the step size,
    up to `max_divisions` times and never below the controller's minimum
    step size. Timing of every attempt, converged or not, is added to `totals`.
    """

    controller: StepSizeController
    """Holds the step size to attempt and applies the halving policy."""
    solver: NonlinearSolver
    """Performs the solve attempts."""
    totals: SimulationTimingTotals
    """Simulation-wide timing accumulators. Only ever added to."""
    max_divisions: int = attrs.field(default=10)
    """Maximum number of step size halvings per macro time step."""
    rank: int = 0
    """Index of this process. Only rank 0 reports diagnostics."""

    def __attrs_post_init__(self) -> None:
        if self.max_divisions < 0:
            raise ValidationError("`max_divisions` must be non-negative.")

    @property
    def reports(self) -> bool:
        return self.rank == 0

    def advance(
        self, is_finishing: bool = False, episode_will_end: bool = False
    ) -> AdvanceResult:
        """
        Attempts a macro time step at the controller's current step size.

        If the current step size is below the minimum and the step neither
        finishes the simulation nor an episode, the minimum step size is
        attempted instead. This adjustment does not count as a retry.

        :param is_finishing: Whether the pending step will end the simulation.
        :param episode_will_end: Whether the pending step will end the current episode.
        :return: The outcome of the macro time step.
        """
        controller = self.controller
        if (
            controller.current() < controller.min_step_size
            and not is_finishing
            and not episode_will_end
        ):
            logger.debug(
                f"Time step size {controller.current()} is below the minimum. "
                f"Using {controller.min_step_size} seconds instead."
            )
            controller.set(controller.min_step_size)

        diagnostics: typing.List[RetryDiagnostic] = []
        attempts = 0
        while True:
            step_size = controller.current()
            logger.debug(f"Attempting time step with size {step_size} seconds...")
            result = self.solver.attempt(step_size)
            attempts += 1
            self.totals.add(result)

            if result.converged:
                logger.debug(
                    f"Time step of size {step_size} converged after {attempts} attempt(s)."
                )
                return AdvanceResult(
                    status=AdvanceStatus.CONVERGED,
                    attempts=attempts,
                    step_size=step_size,
                    diagnostics=tuple(diagnostics),
                )

            if len(diagnostics) >= self.max_divisions:
                reason: TimingError = RetryBudgetExhausted(
                    max_divisions=self.max_divisions, step_size=step_size
                )
                break

            try:
                next_step_size = controller.halve()
            except StepSizeFloorViolation as exc:
                reason = exc
                break

            diagnostic = RetryDiagnostic(
                step_size=step_size, next_step_size=next_step_size
            )
            diagnostics.append(diagnostic)
            if self.reports:
                logger.warning(str(diagnostic))

        if self.reports:
            logger.error(
                f"Newton solver did not converge after {attempts} attempt(s). "
                f"dt={step_size}. {reason}"
            )
        return AdvanceResult(
            status=AdvanceStatus.EXHAUSTED,
            attempts=attempts,
            step_size=step_size,
            diagnostics=tuple(diagnostics),
            reason=reason,
        )
