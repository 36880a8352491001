"""Shared fixtures for poroflow tests."""

from __future__ import annotations

import typing

import pytest

from poroflow.solvers import SolveAttemptResult


class ScriptedSolver:
    """
    Nonlinear solver stand-in whose verdict depends only on the step size.

    Every attempt reports the same fixed timing contributions so that
    accumulated totals can be checked against the number of attempts.
    """

    def __init__(
        self,
        converges: typing.Callable[[float], bool],
        timings: typing.Tuple[float, float, float] = (1.0, 2.0, 3.0),
        growth: float = 2.0,
    ) -> None:
        self.converges = converges
        self.timings = timings
        self.growth = growth
        self.calls: typing.List[float] = []

    def attempt(self, step_size: float) -> SolveAttemptResult:
        self.calls.append(step_size)
        assemble_time, solve_time, update_time = self.timings
        return SolveAttemptResult(
            converged=self.converges(step_size),
            assemble_time=assemble_time,
            solve_time=solve_time,
            update_time=update_time,
        )

    def suggest_next_step_size(self, last_step_size: float) -> float:
        return last_step_size * self.growth


@pytest.fixture
def scripted_solver() -> typing.Type[ScriptedSolver]:
    """Factory for solvers with a scripted convergence verdict."""
    return ScriptedSolver
