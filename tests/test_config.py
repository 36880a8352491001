"""Unit tests for poroflow.config.Config."""

from __future__ import annotations

import attrs
import pytest

from poroflow.config import Config
from poroflow.errors import ValidationError


def test_defaults() -> None:
    config = Config(initial_step_size=1.0, end_time=10.0)

    assert config.max_time_step_divisions == 10
    assert config.min_step_size == 1e-3
    assert config.max_step_size == float("inf")
    assert config.episode_length is None
    assert config.restart_interval == 10
    assert config.rank == 0


def test_config_is_frozen() -> None:
    config = Config(initial_step_size=1.0, end_time=10.0)

    with pytest.raises(attrs.exceptions.FrozenInstanceError):
        config.min_step_size = 2.0  # type: ignore[misc]

    evolved = attrs.evolve(config, min_step_size=2.0)
    assert evolved.min_step_size == 2.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_step_size": 0.0},
        {"end_time": -1.0},
        {"min_step_size": 0.0},
        {"min_step_size": 2.0, "max_step_size": 1.0},
        {"episode_length": 0.0},
        {"newton_target_iterations": 20, "newton_max_iterations": 10},
        {"initial_step_size": 50.0, "max_step_size": 10.0},
    ],
)
def test_invalid_values_raise_validation_error(kwargs) -> None:
    base = {"initial_step_size": 1.0, "end_time": 10.0}
    base.update(kwargs)

    with pytest.raises(ValidationError):
        Config(**base)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_time_step_divisions": -1},
        {"newton_max_iterations": 0},
        {"log_interval": 0},
        {"newton_tolerance": 0.5},
        {"newton_tolerance": 0.0},
        {"newton_tolerance": -1e-9},
    ],
)
def test_attrs_validators_reject_out_of_range(kwargs) -> None:
    with pytest.raises(ValueError):
        Config(initial_step_size=1.0, end_time=10.0, **kwargs)


def test_zero_divisions_is_allowed() -> None:
    config = Config(initial_step_size=1.0, end_time=10.0, max_time_step_divisions=0)
    assert config.max_time_step_divisions == 0


def test_initial_step_may_equal_max_step_size() -> None:
    config = Config(initial_step_size=10.0, end_time=100.0, max_step_size=10.0)
    assert config.initial_step_size == config.max_step_size
