"""Problem definitions supplying physics and configuration data to a simulation."""

import abc
import logging
import typing

import attrs
import numpy as np
from scipy.sparse import csr_matrix, diags

from poroflow.clock import EpisodeClock
from poroflow.errors import ValidationError
from poroflow.types import OneDimensionalGrid, SparseMatrix

__all__ = ["Problem", "Model", "PowerInjectionProblem"]

logger = logging.getLogger(__name__)


class Problem(abc.ABC):
    """
    Base class for simulation problems.

    A problem describes *what* is simulated: initial and boundary conditions,
    material parameters and the discrete residual. The simulation driver
    decides *how* time is advanced and calls the hooks below at the matching
    points of a run.
    """

    @property
    def name(self) -> str:
        """The problem name, used as a prefix for anything written by the simulation."""
        return type(self).__name__.lower()

    @abc.abstractmethod
    def initial_solution(self) -> OneDimensionalGrid:
        """Returns the vector of primary variables at the start of the simulation."""
        raise NotImplementedError

    @abc.abstractmethod
    def residual(
        self,
        solution: OneDimensionalGrid,
        previous_solution: OneDimensionalGrid,
        step_size: float,
        time: float,
    ) -> OneDimensionalGrid:
        """
        Evaluates the discrete residual of an implicit time step.

        :param solution: Current iterate of the primary variables at the end of the step.
        :param previous_solution: Primary variables at the beginning of the step.
        :param step_size: Time step size in seconds.
        :param time: Simulation time at the beginning of the step in seconds.
        :return: Residual vector. Zero when `solution` solves the step.
        """
        raise NotImplementedError

    def jacobian(
        self,
        solution: OneDimensionalGrid,
        previous_solution: OneDimensionalGrid,
        step_size: float,
        time: float,
        *,
        epsilon: float = 1e-7,
    ) -> SparseMatrix:
        """
        Approximates the Jacobian of the residual by forward differences.

        Problems with a cheaper analytic Jacobian should override this.
        """
        base = self.residual(solution, previous_solution, step_size, time)
        size = solution.size
        columns = np.empty((size, size), dtype=np.float64)
        perturbed = solution.astype(np.float64, copy=True)
        for j in range(size):
            h = epsilon * max(1.0, abs(perturbed[j]))
            original = perturbed[j]
            perturbed[j] = original + h
            columns[:, j] = (
                self.residual(perturbed, previous_solution, step_size, time) - base
            ) / h
            perturbed[j] = original
        return csr_matrix(columns)

    def begin_episode(self, clock: EpisodeClock) -> None:
        """Called at the beginning of a simulation episode."""
        pass

    def begin_time_step(self, clock: EpisodeClock) -> None:
        """Called by the simulator before each time integration."""
        pass

    def end_time_step(self, clock: EpisodeClock) -> None:
        """Called by the simulator after each successful time integration."""
        pass

    def end_episode(self, clock: EpisodeClock) -> None:
        """
        Called when the end of a simulation episode is reached.

        Typically, a new episode is started here.
        """
        logger.warning(
            f"The end of episode {clock.episode_index} is reached, but problem "
            f"'{self.name}' does not override `end_episode`. Starting the next "
            "episode with the same length."
        )
        clock.start_next_episode()

    def should_write_output(self, clock: EpisodeClock, interval: int = 1) -> bool:
        """Whether the state after the latest time step should be reported."""
        return clock.step_index % interval == 0

    def should_write_restart_file(
        self, clock: EpisodeClock, interval: int = 10
    ) -> bool:
        """
        Whether a restart point should be taken after the latest time step.

        The default takes one every `interval` time steps.
        """
        if interval <= 0:
            return False
        return clock.step_index > 0 and clock.step_index % interval == 0


@attrs.define
class Model:
    """Primary variables of a `Problem` at the old and new time level."""

    problem: Problem
    solution: OneDimensionalGrid = attrs.field(init=False)
    """Primary variables at the end of the current time step."""
    previous_solution: OneDimensionalGrid = attrs.field(init=False)
    """Primary variables at the end of the last accepted time step."""

    def __attrs_post_init__(self) -> None:
        initial = np.asarray(self.problem.initial_solution(), dtype=np.float64)
        if initial.ndim != 1 or initial.size == 0:
            raise ValidationError(
                "Initial solution must be a non-empty one-dimensional array."
            )
        self.solution = initial.copy()
        self.previous_solution = initial.copy()

    def advance_time_level(self) -> None:
        """Makes the current solution the starting point of the next time step."""
        self.previous_solution = self.solution.copy()


@attrs.frozen
class PowerInjectionProblem(Problem):
    """
    Injection of a non-wetting phase into a one-dimensional porous column.

    The non-wetting saturation `S` obeys

        porosity * dS/dt - d/dx (D(S) dS/dx) = 0,   D(S) = D0 * S^n + D_min

    on cell-centred finite volumes. A fixed volumetric rate is injected over
    the left boundary and the right boundary is held at the initial state.
    The strongly nonlinear diffusivity makes Newton convergence sensitive to
    the time step size.
    """

    length: float = attrs.field(default=100.0, validator=attrs.validators.gt(0))
    """Length of the column (m)."""
    cells: int = attrs.field(default=100, validator=attrs.validators.ge(2))
    """Number of finite volumes."""
    porosity: float = attrs.field(
        default=0.8,
        validator=attrs.validators.and_(
            attrs.validators.gt(0), attrs.validators.le(1)
        ),
    )
    """Porosity of the medium (fraction)."""
    diffusivity: float = attrs.field(default=1.0, validator=attrs.validators.gt(0))
    """Diffusivity scale `D0` (m²/s)."""
    exponent: float = attrs.field(default=4.0, validator=attrs.validators.ge(0))
    """Power-law exponent `n`."""
    min_diffusivity: float = attrs.field(
        default=1e-6, validator=attrs.validators.gt(0)
    )
    """Regularization `D_min` keeping the diffusivity positive (m²/s)."""
    injection_rate: float = attrs.field(default=1e-2, validator=attrs.validators.ge(0))
    """Volumetric injection flux over the left boundary (m/s)."""
    initial_saturation: float = attrs.field(
        default=0.0,
        validator=attrs.validators.and_(
            attrs.validators.ge(0), attrs.validators.le(1)
        ),
    )
    """Non-wetting saturation of the initial state and the right boundary."""

    @property
    def name(self) -> str:
        return "powerinjection"

    @property
    def cell_size(self) -> float:
        return self.length / self.cells

    def cell_centers(self) -> OneDimensionalGrid:
        dx = self.cell_size
        return np.linspace(dx / 2, self.length - dx / 2, self.cells)

    def initial_solution(self) -> OneDimensionalGrid:
        return np.full(self.cells, self.initial_saturation, dtype=np.float64)

    def _diffusivity(self, saturation: OneDimensionalGrid) -> OneDimensionalGrid:
        clipped = np.clip(saturation, 0.0, 1.0)
        return self.diffusivity * clipped**self.exponent + self.min_diffusivity

    def _diffusivity_derivative(
        self, saturation: OneDimensionalGrid
    ) -> OneDimensionalGrid:
        inside = (saturation > 0.0) & (saturation < 1.0)
        if self.exponent == 0:
            return np.zeros_like(saturation)
        clipped = np.clip(saturation, 0.0, 1.0)
        return np.where(
            inside,
            self.diffusivity * self.exponent * clipped ** (self.exponent - 1),
            0.0,
        )

    def _fluxes(self, saturation: OneDimensionalGrid) -> OneDimensionalGrid:
        """Fluxes (positive to the right) over all `cells + 1` faces."""
        dx = self.cell_size
        d = self._diffusivity(saturation)
        fluxes = np.empty(self.cells + 1, dtype=np.float64)
        fluxes[0] = self.injection_rate
        face_d = 0.5 * (d[:-1] + d[1:])
        fluxes[1:-1] = -face_d * (saturation[1:] - saturation[:-1]) / dx
        boundary_d = 0.5 * (d[-1] + self._boundary_diffusivity())
        fluxes[-1] = (
            -boundary_d * (self.initial_saturation - saturation[-1]) / (dx / 2)
        )
        return fluxes

    def _boundary_diffusivity(self) -> float:
        return float(self._diffusivity(np.array([self.initial_saturation]))[0])

    def residual(
        self,
        solution: OneDimensionalGrid,
        previous_solution: OneDimensionalGrid,
        step_size: float,
        time: float,
    ) -> OneDimensionalGrid:
        dx = self.cell_size
        storage = self.porosity * (solution - previous_solution) * dx / step_size
        fluxes = self._fluxes(solution)
        return storage + fluxes[1:] - fluxes[:-1]

    def jacobian(
        self,
        solution: OneDimensionalGrid,
        previous_solution: OneDimensionalGrid,
        step_size: float,
        time: float,
    ) -> SparseMatrix:
        dx = self.cell_size
        d = self._diffusivity(solution)
        dd = self._diffusivity_derivative(solution)
        gradient = (solution[1:] - solution[:-1]) / dx
        face_d = 0.5 * (d[:-1] + d[1:])

        # Derivatives of interior face fluxes w.r.t. the left (i) and right (i + 1) cell
        dflux_left = -0.5 * dd[:-1] * gradient + face_d / dx
        dflux_right = -0.5 * dd[1:] * gradient - face_d / dx

        boundary_d = 0.5 * (d[-1] + self._boundary_diffusivity())
        boundary_gradient = (self.initial_saturation - solution[-1]) / (dx / 2)
        dflux_boundary = -0.5 * dd[-1] * boundary_gradient + boundary_d / (dx / 2)

        main = np.full(self.cells, self.porosity * dx / step_size)
        # Cell i gains +flux over its right face and -flux over its left face
        main[:-1] += dflux_left
        main[1:] -= dflux_right
        main[-1] += dflux_boundary
        upper = dflux_right.copy()
        lower = -dflux_left
        return diags([lower, main, upper], offsets=[-1, 0, 1], format="csr")

    def total_injected(self, time: float) -> float:
        """Volume (per unit area) injected up to `time`."""
        return self.injection_rate * time

    def stored_volume(self, saturation: OneDimensionalGrid) -> float:
        """Pore volume (per unit area) occupied by the non-wetting phase."""
        return float(self.porosity * np.sum(saturation) * self.cell_size)
