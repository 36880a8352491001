"""Unit tests for poroflow.clock.EpisodeClock."""

from __future__ import annotations

import pytest

from poroflow.clock import EpisodeClock
from poroflow.errors import TimingError, ValidationError


def test_step_size_is_limited_by_end_time() -> None:
    clock = EpisodeClock(end_time=10.0, step_size=4.0)
    clock.time = 8.0

    clock.set_step_size(4.0)

    assert clock.step_size == 2.0
    assert clock.will_be_finished()


def test_step_size_is_limited_by_episode_end() -> None:
    clock = EpisodeClock(end_time=100.0, step_size=4.0, episode_length=10.0)
    clock.time = 8.0

    clock.set_step_size(4.0)

    assert clock.step_size == 2.0
    assert clock.episode_will_be_over()
    assert not clock.will_be_finished()


def test_advance_accumulates_time_and_steps() -> None:
    clock = EpisodeClock(end_time=10.0, step_size=4.0)

    clock.advance()
    clock.advance()

    assert clock.time == 8.0
    assert clock.step_index == 2
    assert not clock.finished()

    clock.set_step_size(4.0)
    clock.advance()
    assert clock.time == 10.0
    assert clock.finished()

    with pytest.raises(TimingError):
        clock.advance()


def test_episodes_start_once_and_roll_over() -> None:
    clock = EpisodeClock(end_time=30.0, step_size=5.0, episode_length=10.0)

    assert clock.episode_starts()
    assert not clock.episode_starts()

    clock.advance()
    clock.advance()
    assert clock.episode_is_over()

    clock.start_next_episode()
    assert clock.episode_index == 1
    assert clock.episode_start_time == 10.0
    assert clock.episode_end_time == 20.0
    assert not clock.episode_is_over()
    assert clock.episode_starts()


def test_new_episode_length() -> None:
    clock = EpisodeClock(end_time=30.0, step_size=5.0, episode_length=10.0)
    clock.time = 10.0
    clock.start_next_episode(length=15.0)

    assert clock.episode_end_time == 25.0

    with pytest.raises(ValidationError):
        clock.start_next_episode(length=0.0)


def test_without_episodes_the_run_is_one_episode() -> None:
    clock = EpisodeClock(end_time=30.0, step_size=50.0)

    assert clock.step_size == 30.0
    assert clock.episode_end_time == 30.0
    assert clock.episode_will_be_over()
    assert clock.will_be_finished()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"end_time": 0.0, "step_size": 1.0},
        {"end_time": 10.0, "step_size": 0.0},
    ],
)
def test_clock_validation(kwargs) -> None:
    with pytest.raises(ValidationError):
        EpisodeClock(**kwargs)


def test_advance_moves_by_the_accepted_step_size() -> None:
    clock = EpisodeClock(end_time=10.0, step_size=0.5, episode_length=5.0)
    clock.time = 4.0

    clock.advance(1.5)

    assert clock.time == 5.5
    assert clock.step_size == 1.5
    assert clock.episode_is_over()


def test_advance_snaps_onto_boundaries_within_round_off() -> None:
    clock = EpisodeClock(end_time=1.0, step_size=0.1)

    for _ in range(10):
        clock.advance(0.1)

    assert clock.time == 1.0
    assert clock.finished()
