"""Simulation time and episode bookkeeping."""

import logging
import typing

import attrs

from poroflow.errors import TimingError, ValidationError

__all__ = ["EpisodeClock"]

logger = logging.getLogger(__name__)

_EPSILON = 1e-10


def _will_reach(time: float, step_size: float, target: float) -> bool:
    return time + step_size >= target * (1.0 - _EPSILON)


@attrs.define
class EpisodeClock:
    """
    Tracks simulation time, the pending time step size and episode boundaries.

    An episode is a driver-defined phase of the simulation, e.g. the period
    between two scheduled events. Step sizes set through `set_step_size` never
    cross the end of the current episode or of the run.
    """

    end_time: float
    """Time at which the simulation ends (seconds)."""
    step_size: float
    """Size of the pending time step (seconds)."""
    episode_length: typing.Optional[float] = None
    """Length of the current episode. `None` means the episode lasts until the end of the run."""
    time: float = 0.0
    """Current simulation time (seconds)."""
    step_index: int = attrs.field(init=False, default=0)
    """Number of time steps completed so far."""
    episode_index: int = attrs.field(init=False, default=0)
    """Index of the current episode."""
    episode_start_time: float = attrs.field(init=False)
    """Time at which the current episode started."""
    _episode_started: bool = attrs.field(init=False, default=False)

    def __attrs_post_init__(self) -> None:
        if self.end_time <= self.time:
            raise ValidationError("`end_time` must lie after the start time.")
        if self.step_size <= 0:
            raise ValidationError("`step_size` must be positive.")
        self.episode_start_time = self.time
        self.set_step_size(self.step_size)

    @property
    def episode_end_time(self) -> float:
        if self.episode_length is None:
            return self.end_time
        return min(self.episode_start_time + self.episode_length, self.end_time)

    def max_step_size(self) -> float:
        """Largest step size that neither overshoots the episode nor the run."""
        return max(min(self.episode_end_time, self.end_time) - self.time, 0.0)

    def set_step_size(self, step_size: float) -> None:
        """
        Sets the size of the pending time step.

        The size is limited so that the step ends no later than the current
        episode and the simulation.
        """
        if step_size <= 0:
            raise ValidationError(f"Time step size must be positive, got {step_size}.")
        limit = self.max_step_size()
        if limit > 0:
            step_size = min(step_size, limit)
        self.step_size = step_size

    def will_be_finished(self) -> bool:
        """Whether the pending time step will bring the simulation to its end."""
        return _will_reach(self.time, self.step_size, self.end_time)

    def episode_will_be_over(self) -> bool:
        """Whether the pending time step will bring the current episode to its end."""
        return _will_reach(self.time, self.step_size, self.episode_end_time)

    def finished(self) -> bool:
        """Whether the simulation has reached its end time."""
        return self.time >= self.end_time * (1.0 - _EPSILON)

    def episode_is_over(self) -> bool:
        """Whether the current episode has reached its end."""
        return self.time >= self.episode_end_time * (1.0 - _EPSILON)

    def episode_starts(self) -> bool:
        """
        Whether the upcoming time step is the first of a new episode.

        Returns True exactly once per episode.
        """
        if self._episode_started:
            return False
        self._episode_started = True
        return True

    def start_next_episode(self, length: typing.Optional[float] = None) -> None:
        """
        Begins a new episode at the current time.

        :param length: Length of the new episode. Defaults to the length of the previous one.
        """
        if length is not None:
            if length <= 0:
                raise ValidationError("Episode length must be positive.")
            self.episode_length = length
        self.episode_index += 1
        self.episode_start_time = self.time
        self._episode_started = False
        logger.debug(
            f"Starting episode {self.episode_index} at time {self.time} seconds."
        )

    def advance(self, step_size: typing.Optional[float] = None) -> None:
        """
        Moves the simulation time forward by the step that was solved.

        A step landing within round-off of the end of the episode or run is
        snapped onto that boundary. A step raised to the minimum step size may
        carry the time past a boundary.

        :param step_size: Size of the accepted step. Defaults to the pending step size.
        """
        if self.finished():
            raise TimingError("Cannot advance a clock that has already finished.")
        if step_size is not None:
            self.step_size = step_size
        new_time = self.time + self.step_size
        for boundary in (self.end_time, self.episode_end_time):
            if abs(new_time - boundary) <= _EPSILON * boundary:
                new_time = boundary
                break
        self.time = new_time
        self.step_index += 1
