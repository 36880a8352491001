import logging
import typing

import attrs

from poroflow.errors import StepSizeFloorViolation, ValidationError

if typing.TYPE_CHECKING:
    from poroflow.solvers import SolveAttemptResult

__all__ = [
    "Time",
    "human_readable_time",
    "SimulationTimingTotals",
    "StepSizeController",
]

logger = logging.getLogger(__name__)


_SECONDS_PER = {
    "milliseconds": 1e-3,
    "seconds": 1.0,
    "minutes": 60.0,
    "hours": 3600.0,
    "days": 86400.0,
    "weeks": 604800.0,
}


def Time(**components: float) -> float:
    """
    Expresses a duration given in mixed units as seconds.

    Example: `Time(hours=1, minutes=30)` is `5400.0`.

    :param components: Amounts keyed by unit, one of `milliseconds`, `seconds`,
        `minutes`, `hours`, `days` or `weeks`.
    :return: Total duration in seconds.
    :raises ValidationError: For unknown units or a negative total.
    """
    total = 0.0
    for unit, amount in components.items():
        if unit not in _SECONDS_PER:
            raise ValidationError(f"Unknown time unit {unit!r}.")
        total += amount * _SECONDS_PER[unit]
    if total < 0:
        raise ValidationError(f"Durations cannot be negative, got {total} seconds.")
    return total


def human_readable_time(seconds: float) -> str:
    """
    Formats a duration for display in diagnostics.

    Durations below a minute are shown in seconds, longer ones are split
    into days, hours, minutes and seconds, e.g. ``"1h 2m 3.5s"``.

    :param seconds: Duration in seconds.
    :return: Formatted duration string.
    """
    if seconds < 60:
        return f"{seconds:.3g}s"

    days, rest = divmod(seconds, 86400.0)
    hours, rest = divmod(rest, 3600.0)
    minutes, secs = divmod(rest, 60.0)
    parts = []
    if days:
        parts.append(f"{int(days)}d")
    if hours:
        parts.append(f"{int(hours)}h")
    if minutes:
        parts.append(f"{int(minutes)}m")
    if secs:
        parts.append(f"{secs:.3g}s")
    return " ".join(parts)


@attrs.define
class SimulationTimingTotals:
    """
    Cumulative CPU time spent in the nonlinear solver over a whole simulation.

    Every solve attempt adds to these totals, including attempts that
    did not converge.
    """

    assemble_time: float = 0.0
    """Total time spent linearizing the system (seconds)."""
    solve_time: float = 0.0
    """Total time spent solving linear systems (seconds)."""
    update_time: float = 0.0
    """Total time spent applying Newton updates (seconds)."""

    @property
    def total(self) -> float:
        return self.assemble_time + self.solve_time + self.update_time

    def add(self, result: "SolveAttemptResult") -> None:
        """Adds the timing contributions of a single solve attempt."""
        self.assemble_time += result.assemble_time
        self.solve_time += result.solve_time
        self.update_time += result.update_time

    def reset(self) -> None:
        """Zeroes all totals. Only meant to be called at simulation start."""
        self.assemble_time = 0.0
        self.solve_time = 0.0
        self.update_time = 0.0


@attrs.define
class StepSizeController:
    """
    Holds the candidate time step size and applies the shrink policy.

    Halving is the only way the controller reduces the step size within a
    macro time step. Growing the step size between macro steps is the
    simulation driver's business (see `clamp`).
    """

    min_step_size: float
    """Minimum allowable time step size in seconds."""
    max_step_size: float
    """Maximum allowable time step size in seconds."""
    step_size: float
    """Time step size (in seconds) to attempt next."""

    def __attrs_post_init__(self) -> None:
        if self.min_step_size <= 0:
            raise ValidationError("`min_step_size` must be positive.")
        if self.max_step_size < self.min_step_size:
            raise ValidationError(
                "`max_step_size` must not be smaller than `min_step_size`."
            )
        if self.step_size <= 0:
            raise ValidationError("`step_size` must be positive.")

    def current(self) -> float:
        """Returns the step size to attempt next."""
        return self.step_size

    def set(self, new_size: float) -> None:
        """
        Sets an explicit step size.

        :param new_size: The new step size in seconds. Must be positive.
        """
        if new_size <= 0:
            raise ValidationError(f"Time step size must be positive, got {new_size}.")
        self.step_size = new_size

    def halve(self) -> float:
        """
        Divides the current step size by two.

        The current step size is left unchanged if the halved size would fall
        below `min_step_size`, so calling this repeatedly after a failure is safe.

        :return: The new step size in seconds.
        :raises StepSizeFloorViolation: If the halved step size is below the minimum.
        """
        next_step_size = self.step_size / 2
        if next_step_size < self.min_step_size:
            raise StepSizeFloorViolation(
                step_size=self.step_size, min_step_size=self.min_step_size
            )
        self.step_size = next_step_size
        return next_step_size

    def clamp(self, suggested: float) -> float:
        """Limits a suggested step size to `max_step_size`."""
        return min(suggested, self.max_step_size)
