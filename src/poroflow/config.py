import typing

import attrs

from poroflow.errors import ValidationError

__all__ = ["Config"]


def _validate_positive(instance, attribute, value) -> None:
    if value <= 0:
        raise ValidationError(f"`{attribute.name}` must be positive, got {value}.")


@attrs.frozen
class Config:
    """Simulation run configuration and parameters."""

    initial_step_size: float = attrs.field(validator=_validate_positive)
    """Size of the first time step attempted (seconds)."""
    end_time: float = attrs.field(validator=_validate_positive)
    """Total simulated time (seconds)."""
    min_step_size: float = attrs.field(default=1e-3, validator=_validate_positive)
    """The minimum size to which all time steps are limited to (seconds)."""
    max_step_size: float = attrs.field(default=float("inf"))
    """The maximum size to which all time steps are limited to (seconds)."""
    max_time_step_divisions: int = attrs.field(
        default=10, validator=attrs.validators.ge(0)
    )
    """
    The maximum number of divisions by two of the time step size before the
    simulation bails out.

    Each macro time step makes at most `max_time_step_divisions + 1` attempts.
    """
    episode_length: typing.Optional[float] = attrs.field(
        default=None,
        validator=attrs.validators.optional(_validate_positive),
    )
    """Length of each simulation episode (seconds). `None` means one episode for the whole run."""
    newton_tolerance: float = attrs.field(
        default=1e-8,
        validator=attrs.validators.and_(
            attrs.validators.gt(0), attrs.validators.le(1e-2)
        ),
    )
    """Convergence tolerance on the max-norm of the Newton update."""
    newton_max_iterations: int = attrs.field(
        default=14,
        validator=attrs.validators.and_(
            attrs.validators.ge(1), attrs.validators.le(500)
        ),
    )
    """
    Maximum number of Newton iterations per attempt.

    An attempt that needs more iterations is treated as diverged and the
    time step is retried with half the size.
    """
    newton_target_iterations: int = attrs.field(
        default=10, validator=attrs.validators.ge(1)
    )
    """Desired number of Newton iterations per step. Drives the step size suggestion."""
    output_interval: int = attrs.field(default=1, validator=attrs.validators.ge(1))
    """Frequency (in time steps) at which simulation states are yielded."""
    restart_interval: int = attrs.field(default=10, validator=attrs.validators.ge(0))
    """Frequency (in time steps) at which restart points are flagged. 0 disables restarts."""
    log_interval: int = attrs.field(default=3, validator=attrs.validators.ge(1))
    """Interval (in time steps) at which to log simulation progress."""
    rank: int = attrs.field(default=0, validator=attrs.validators.ge(0))
    """Index of this process. Only rank 0 reports diagnostics."""

    def __attrs_post_init__(self) -> None:
        if self.max_step_size < self.min_step_size:
            raise ValidationError(
                f"`max_step_size` ({self.max_step_size}) must not be smaller than "
                f"`min_step_size` ({self.min_step_size})."
            )
        if self.initial_step_size > self.max_step_size:
            raise ValidationError(
                f"`initial_step_size` ({self.initial_step_size}) must not exceed "
                f"`max_step_size` ({self.max_step_size})."
            )
        if self.newton_target_iterations > self.newton_max_iterations:
            raise ValidationError(
                "`newton_target_iterations` cannot exceed `newton_max_iterations`."
            )
