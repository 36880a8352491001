"""Tests for the Newton solver and the power injection problem."""

from __future__ import annotations

import inspect

import numpy as np
import pytest

from poroflow.clock import EpisodeClock
from poroflow.errors import SolverError, ValidationError
from poroflow.problems import Model, PowerInjectionProblem, Problem
from poroflow.solvers import NewtonSolver, NonlinearSolver


class _NoRootProblem(Problem):
    """x^2 + 1 = 0 has no real root, so Newton never converges."""

    def initial_solution(self):
        return np.array([1.0])

    def residual(self, solution, previous_solution, step_size, time):
        return solution**2 + 1.0


class _RelaxationProblem(Problem):
    """Implicit Euler for dx/dt = -x, solved with the finite-difference Jacobian."""

    def initial_solution(self):
        return np.array([1.0, 2.0])

    def residual(self, solution, previous_solution, step_size, time):
        return (solution - previous_solution) / step_size + solution


def _make_solver(problem, **kwargs):
    model = Model(problem)
    clock = EpisodeClock(end_time=1000.0, step_size=1.0)
    return NewtonSolver(model=model, clock=clock, **kwargs), model


def test_newton_solver_satisfies_protocol() -> None:
    solver, _ = _make_solver(_RelaxationProblem())
    assert isinstance(solver, NonlinearSolver)


def test_converged_attempt_updates_model_and_reports_timings() -> None:
    solver, model = _make_solver(_RelaxationProblem())

    result = solver.attempt(1.0)

    assert result.converged
    assert result.iterations >= 1
    assert result.message is None
    assert result.assemble_time >= 0.0
    assert result.solve_time >= 0.0
    assert result.update_time >= 0.0
    np.testing.assert_allclose(model.solution, [0.5, 1.0], rtol=1e-6)
    np.testing.assert_allclose(model.previous_solution, [1.0, 2.0])


def test_failed_attempt_leaves_model_untouched() -> None:
    solver, model = _make_solver(_NoRootProblem(), max_iterations=8, target_iterations=4)

    result = solver.attempt(1.0)

    assert not result.converged
    assert result.message is not None
    np.testing.assert_array_equal(model.solution, [1.0])


def test_step_size_suggestion_follows_iteration_count() -> None:
    solver, _ = _make_solver(_RelaxationProblem(), target_iterations=10)

    solver.num_iterations = 10
    assert solver.suggest_next_step_size(6.0) == pytest.approx(6.0)

    solver.num_iterations = 15
    assert solver.suggest_next_step_size(6.0) == pytest.approx(6.0 / 1.5)

    solver.num_iterations = 4
    assert solver.suggest_next_step_size(6.0) == pytest.approx(6.0 * (1 + 0.6 / 1.2))

    with pytest.raises(SolverError):
        solver.suggest_next_step_size(0.0)


def test_solver_validation() -> None:
    with pytest.raises(ValidationError):
        _make_solver(_RelaxationProblem(), max_iterations=5, target_iterations=6)


def test_power_injection_jacobian_matches_finite_differences() -> None:
    problem = PowerInjectionProblem(cells=12, length=12.0)
    rng = np.random.default_rng(0)
    solution = rng.uniform(0.1, 0.9, size=problem.cells)
    previous = rng.uniform(0.1, 0.9, size=problem.cells)

    analytic = problem.jacobian(solution, previous, 2.0, 0.0).toarray()
    numeric = Problem.jacobian(problem, solution, previous, 2.0, 0.0).toarray()

    np.testing.assert_allclose(analytic, numeric, rtol=1e-4, atol=1e-6)


def test_finite_difference_step_is_keyword_only() -> None:
    problem = PowerInjectionProblem(cells=6, length=6.0)
    solution = np.full(problem.cells, 0.5)
    previous = np.full(problem.cells, 0.4)

    assert "epsilon" not in inspect.signature(PowerInjectionProblem.jacobian).parameters
    with pytest.raises(TypeError):
        Problem.jacobian(problem, solution, previous, 1.0, 0.0, 1e-6)

    numeric = Problem.jacobian(problem, solution, previous, 1.0, 0.0, epsilon=1e-6)
    np.testing.assert_allclose(
        numeric.toarray(),
        problem.jacobian(solution, previous, 1.0, 0.0).toarray(),
        rtol=1e-3,
        atol=1e-5,
    )


def test_power_injection_step_conserves_volume() -> None:
    problem = PowerInjectionProblem(cells=20, length=20.0, injection_rate=1e-2)
    solver, model = _make_solver(problem)

    result = solver.attempt(5.0)

    assert result.converged
    # Nothing reaches the right boundary this early
    assert problem.stored_volume(model.solution) == pytest.approx(
        problem.total_injected(5.0), rel=1e-4
    )
    assert model.solution[0] > model.solution[-1]


def test_power_injection_name_and_geometry() -> None:
    problem = PowerInjectionProblem(length=10.0, cells=5)

    assert problem.name == "powerinjection"
    assert problem.cell_size == 2.0
    np.testing.assert_allclose(problem.cell_centers(), [1.0, 3.0, 5.0, 7.0, 9.0])
    np.testing.assert_array_equal(problem.initial_solution(), np.zeros(5))


def test_model_rejects_bad_initial_solution() -> None:
    class _Scalar(_RelaxationProblem):
        def initial_solution(self):
            return np.array(1.0)

    with pytest.raises(ValidationError):
        Model(_Scalar())
