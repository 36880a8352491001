import typing

__all__ = [
    "PoroflowError",
    "ValidationError",
    "SolverError",
    "SimulationError",
    "TimingError",
    "StepSizeFloorViolation",
    "RetryBudgetExhausted",
    "TimeIntegrationError",
]

class PoroflowError(Exception):
    """Base class for all poroflow-related errors."""

    pass


class ValidationError(PoroflowError, ValueError):
    """Raised when input data fails validation checks."""

    pass


class SolverError(PoroflowError):
    """Raised when a nonlinear solver cannot be set up or evaluated."""

    pass


class SimulationError(PoroflowError):
    """Base class for simulation-related errors."""

    pass


class TimingError(SimulationError):
    """Raised when there is an error related to simulation timing."""

    pass


class StepSizeFloorViolation(TimingError):
    """Raised when halving the time step size would drop it below the minimum."""

    def __init__(self, step_size: float, min_step_size: float) -> None:
        self.step_size = step_size
        self.min_step_size = min_step_size
        super().__init__(
            f"Cannot halve time step of size {step_size} seconds any further. "
            f"Minimum allowed step size is {min_step_size} seconds."
        )


class RetryBudgetExhausted(TimingError):
    """Raised when the maximum number of time step divisions has been used up."""

    def __init__(self, max_divisions: int, step_size: float) -> None:
        self.max_divisions = max_divisions
        self.step_size = step_size
        super().__init__(
            f"Exhausted {max_divisions} time step divisions. "
            f"Last attempted step size was {step_size} seconds."
        )


class TimeIntegrationError(SimulationError):
    """
    Raised by the simulation driver when a macro time step cannot be resolved.

    Continuing past this point would leave the model in an unconverged state,
    so the run is aborted.
    """

    def __init__(
        self,
        attempts: int,
        step_size: float,
        time: float,
        reason: typing.Optional[TimingError] = None,
    ) -> None:
        self.attempts = attempts
        self.step_size = step_size
        self.time = time
        self.reason = reason
        message = (
            f"Newton solver did not converge after {attempts} attempt(s) "
            f"at time {time} seconds. dt={step_size}"
        )
        if reason is not None:
            message += f" ({reason})"
        super().__init__(message)
