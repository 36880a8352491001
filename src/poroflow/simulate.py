"""Run a transient simulation of a problem with adaptive time stepping."""

import logging
import time
import typing

import attrs

from poroflow.clock import EpisodeClock
from poroflow.config import Config
from poroflow.errors import TimeIntegrationError
from poroflow.integration import AdvanceResult, TimeAdvanceLoop
from poroflow.problems import Model, Problem
from poroflow.solvers import NewtonSolver, NonlinearSolver
from poroflow.timing import (
    SimulationTimingTotals,
    StepSizeController,
    human_readable_time,
)
from poroflow.types import OneDimensionalGrid

__all__ = ["SimulationState", "Simulator", "run"]

logger = logging.getLogger(__name__)


@attrs.frozen
class SimulationState:
    """Snapshot of a simulation after an accepted time step."""

    step: int
    """Number of time steps completed."""
    time: float
    """Simulation time in seconds."""
    step_size: float
    """Size of the time step that led to this state (0 for the initial state)."""
    solution: OneDimensionalGrid = attrs.field(eq=False)
    """Copy of the primary variables."""
    episode_index: int = 0
    """Episode the step belongs to."""
    restart_point: bool = False
    """Whether a restart point should be taken at this state."""


def log_progress(clock: EpisodeClock, retries: int = 0, interval: int = 3) -> None:
    """
    Logs the state of the clock after an accepted time step.

    Steps that needed retries are always reported, other steps only every
    `interval` steps and at the end of the run.
    """
    step = clock.step_index
    if step > 1 and step % interval and not retries and not clock.finished():
        return
    percent_complete = min(clock.time / clock.end_time, 1.0) * 100.0
    message = (
        f"Step {step} (episode {clock.episode_index}): t = {clock.time:.6g}s, "
        f"dt = {clock.step_size:.4g}s, {percent_complete:.2f}% of "
        f"{human_readable_time(clock.end_time)}"
    )
    if retries:
        message += f" after {retries} step size halving(s)"
    logger.info(message)


class Simulator:
    """
    Drives a `Problem` through time.

    Owns the clock, the step size controller and the timing totals for one
    simulation, so independent simulators never share state.
    """

    def __init__(
        self,
        problem: Problem,
        config: Config,
        solver: typing.Optional[NonlinearSolver] = None,
    ) -> None:
        """
        Initialize the simulator.

        :param problem: The problem to simulate.
        :param config: Simulation run configuration and parameters.
        :param solver: Nonlinear solver to use. Defaults to a `NewtonSolver`
            configured from `config`.
        """
        self.problem = problem
        self.config = config
        self.model = Model(problem)
        self.clock = EpisodeClock(
            end_time=config.end_time,
            step_size=config.initial_step_size,
            episode_length=config.episode_length,
        )
        if solver is None:
            solver = NewtonSolver(
                model=self.model,
                clock=self.clock,
                tolerance=config.newton_tolerance,
                max_iterations=config.newton_max_iterations,
                target_iterations=config.newton_target_iterations,
            )
        self.solver = solver
        self.controller = StepSizeController(
            min_step_size=config.min_step_size,
            max_step_size=config.max_step_size,
            step_size=self.clock.step_size,
        )
        self.totals = SimulationTimingTotals()
        self.loop = TimeAdvanceLoop(
            controller=self.controller,
            solver=solver,
            totals=self.totals,
            max_divisions=config.max_time_step_divisions,
            rank=config.rank,
        )
        self.setup_time = 0.0
        self.wall_time = 0.0

    def _snapshot(
        self, step_size: float, restart_point: bool = False
    ) -> SimulationState:
        return SimulationState(
            step=self.clock.step_index,
            time=self.clock.time,
            step_size=step_size,
            solution=self.model.solution.copy(),
            episode_index=self.clock.episode_index,
            restart_point=restart_point,
        )

    def time_integration(self) -> AdvanceResult:
        """
        Advances the model by one macro time step.

        :raises TimeIntegrationError: If the step cannot be resolved.
        """
        clock = self.clock
        min_step_size = self.config.min_step_size
        remaining = clock.max_step_size()
        if clock.step_size < min_step_size and remaining <= min_step_size:
            # Raising the step to the minimum would cross the end of the
            # episode or run, so the step ends exactly there instead.
            clock.set_step_size(remaining)
        self.controller.set(clock.step_size)
        result = self.loop.advance(
            is_finishing=clock.will_be_finished(),
            episode_will_end=clock.episode_will_be_over(),
        )
        if not result.converged:
            raise TimeIntegrationError(
                attempts=result.attempts,
                step_size=result.step_size,
                time=clock.time,
                reason=result.reason,
            )
        clock.step_size = result.step_size
        return result

    def run(self) -> typing.Generator[SimulationState, None, None]:
        """
        Runs the simulation to its end time.

        :yield: The initial state, then the state after every time step for which
            the problem requests output or a restart point.
        :raises TimeIntegrationError: If a time step cannot be resolved. The run
            is aborted since continuing would leave the model unconverged.
        """
        start = time.perf_counter()
        config = self.config
        clock = self.clock
        problem = self.problem
        self.totals.reset()

        logger.info(f"Starting simulation of problem '{problem.name}'...")
        logger.debug(f"Total simulation time: {clock.end_time} seconds")
        logger.debug(
            f"Step size bounds: [{config.min_step_size}, {config.max_step_size}] seconds"
        )
        logger.debug(f"Maximum time step divisions: {config.max_time_step_divisions}")
        self.setup_time = time.perf_counter() - start

        yield self._snapshot(step_size=0.0)

        while not clock.finished():
            if clock.episode_starts():
                logger.debug(f"Beginning episode {clock.episode_index}")
                problem.begin_episode(clock)

            problem.begin_time_step(clock)
            result = self.time_integration()
            step_size = result.step_size
            problem.end_time_step(clock)

            clock.advance(step_size)
            self.model.advance_time_level()
            log_progress(
                clock,
                retries=result.retries,
                interval=config.log_interval,
            )

            restart_point = problem.should_write_restart_file(
                clock, interval=config.restart_interval
            )
            if restart_point:
                logger.debug(f"Restart point reached at time step {clock.step_index}")
            if (
                problem.should_write_output(clock, interval=config.output_interval)
                or restart_point
                or clock.finished()
            ):
                yield self._snapshot(step_size=step_size, restart_point=restart_point)

            if clock.finished():
                break

            if clock.episode_is_over():
                problem.end_episode(clock)
                if clock.episode_is_over():
                    # The problem did not start a new episode
                    clock.start_next_episode()

            suggested = self.solver.suggest_next_step_size(step_size)
            clock.set_step_size(self.controller.clamp(suggested))

        self.wall_time = time.perf_counter() - start
        self.finalize()

    def timing_receipt(self, wall_time: typing.Optional[float] = None) -> str:
        """
        Summarizes where the run time of the simulation went.

        :param wall_time: Total wall clock time. Defaults to the last run's.
        :return: Multi-line receipt.
        """
        if wall_time is None:
            wall_time = self.wall_time
        totals = self.totals

        def share(value: float) -> str:
            if wall_time <= 0:
                return "n/a"
            return f"{value / wall_time * 100:.3g}%"

        overhead = wall_time - totals.total
        return "\n".join(
            [
                f"Simulation of problem '{self.problem.name}' finished.",
                "",
                "-------------- Timing receipt --------------",
                f"  Wall-clock time: {human_readable_time(wall_time)}",
                f"  Setup time: {human_readable_time(self.setup_time)}, {share(self.setup_time)}",
                f"  Linearization time: {human_readable_time(totals.assemble_time)}, {share(totals.assemble_time)}",
                f"  Linear solve time: {human_readable_time(totals.solve_time)}, {share(totals.solve_time)}",
                f"  Newton update time: {human_readable_time(totals.update_time)}, {share(totals.update_time)}",
                f"  Time steps: {self.clock.step_index}",
                "",
                f"Note: Overhead is {share(max(overhead, 0.0))} of total execution time.",
                "--------------------------------------------",
            ]
        )

    def finalize(self) -> None:
        """Called after the simulation has been run successfully."""
        logger.info(
            f"Simulation completed successfully after {self.clock.step_index} time steps"
        )
        if self.config.rank == 0:
            logger.info("\n" + self.timing_receipt())


def run(
    problem: Problem,
    config: Config,
    solver: typing.Optional[NonlinearSolver] = None,
) -> typing.Generator[SimulationState, None, None]:
    """
    Runs a transient simulation of `problem`.

    Shorthand for `Simulator(problem, config, solver).run()`.

    :param problem: The problem to simulate.
    :param config: Simulation run configuration and parameters.
    :param solver: Optional nonlinear solver. Defaults to Newton-Raphson.
    :yield: Simulation states at output intervals.
    """
    simulator = Simulator(problem=problem, config=config, solver=solver)
    yield from simulator.run()
