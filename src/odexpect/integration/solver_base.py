# Copyright (C) 2025 Gil Benezer
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
ODE Solver Base - Abstract Interface for the Trajectory Collaborator

The estimators never step an ODE themselves. They delegate to a solver
implementing this interface, which turns one (x0, params) instantiation of
an ODEProblem into a Trajectory, or a whole batch of them in one
vectorized solve.

All solvers must implement:
- solve(): one trajectory, raising IntegrationFailure on failure
- name: solver name for display and result metadata

Solvers that can integrate a stacked batch in a single call also override
solve_ensemble(); the default raises NotImplementedError, and ensemble
executors refuse such solvers.

Failure Contract
----------------
A solve fails when the backend reports failure (step size collapse,
max steps exceeded) or when the saved states contain NaN or inf.
Failures are raised, never replaced by a sentinel trajectory.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np

from odexpect.errors import ConfigurationError, IntegrationFailure
from odexpect.integration.trajectory import Trajectory
from odexpect.types import Backend
from odexpect.types.core import ParameterVector, StateVector

if TYPE_CHECKING:
    from odexpect.problem import ODEProblem


class ODESolverBase(ABC):
    """
    Abstract base class for ODE solvers.

    Parameters
    ----------
    backend : Backend
        Array backend handed to the right-hand side ('numpy', 'torch', 'jax')
    **options : dict
        Solver options:
        - rtol : float
            Relative tolerance (default: 1e-6)
        - atol : float
            Absolute tolerance (default: 1e-8)
        - max_steps : int
            Maximum number of steps, where the backend supports it
            (default: 100000)

    Raises
    ------
    ConfigurationError
        If the backend or a tolerance is invalid
    """

    supports_ensemble: bool = False

    def __init__(self, backend: Backend = "numpy", **options):
        valid_backends = ["numpy", "torch", "jax"]
        if backend not in valid_backends:
            raise ConfigurationError(
                f"Invalid backend '{backend}'. Must be one of {valid_backends}"
            )

        self.backend = backend
        self.options = options
        self.rtol = options.get("rtol", 1e-6)
        self.atol = options.get("atol", 1e-8)
        self.max_steps = options.get("max_steps", 100000)

        if self.rtol <= 0 or self.atol < 0:
            raise ConfigurationError(
                f"Tolerances must satisfy rtol > 0 and atol >= 0, "
                f"got rtol={self.rtol}, atol={self.atol}"
            )

    @abstractmethod
    def solve(
        self,
        problem: "ODEProblem",
        x0: StateVector,
        params: ParameterVector,
    ) -> Trajectory:
        """
        Integrate ``problem`` from ``x0`` with parameters ``params``.

        Parameters
        ----------
        problem : ODEProblem
            Right-hand side, time span and save grid
        x0 : np.ndarray
            Initial state (nx,)
        params : np.ndarray
            Parameters (n_params,)

        Returns
        -------
        Trajectory

        Raises
        ------
        IntegrationFailure
            If the solver cannot complete the integration
        """
        pass

    def solve_ensemble(
        self,
        problem: "ODEProblem",
        x0_batch: np.ndarray,
        params_batch: np.ndarray,
    ) -> List[Trajectory]:
        """
        Integrate a batch of instantiations in one vectorized solve.

        Parameters
        ----------
        problem : ODEProblem
            Problem whose ``rhs`` broadcasts over a leading batch axis
        x0_batch : np.ndarray
            Initial states (batch, nx)
        params_batch : np.ndarray
            Parameters (batch, n_params)

        Returns
        -------
        List[Trajectory]
            One trajectory per batch row, in input order

        Raises
        ------
        IntegrationFailure
            If the stacked solve fails; the whole batch is lost
        NotImplementedError
            If the solver has no vectorized mode
        """
        raise NotImplementedError(f"{self.name} does not support ensemble solves")

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable solver name."""
        pass

    # ========================================================================
    # Common Utilities (Shared by All Solvers)
    # ========================================================================

    def _check_finite(self, x: np.ndarray, x0, params, index: Optional[int] = None):
        """Raise IntegrationFailure if a saved state is NaN or infinite."""
        if not np.all(np.isfinite(x)):
            where = "" if index is None else f" (batch member {index})"
            raise IntegrationFailure(
                f"{self.name} produced non-finite states{where}",
                x0=x0,
                params=params,
                solver_message="non-finite state",
            )

    def _ensemble_tolerances(self, batch: int) -> Tuple[float, float]:
        """
        Tolerances for one stacked solve of ``batch`` members.

        Adaptive steppers accept a step when the RMS of the scaled local
        error over all ``batch * nx`` components is at most 1, which only
        bounds one member's own RMS by ``sqrt(batch)``. Dividing both
        tolerances by ``sqrt(batch)`` restores the acceptance test of an
        individual solve for every member; a batch of one is unchanged.
        """
        scale = float(np.sqrt(max(batch, 1)))
        return self.rtol / scale, self.atol / scale

    def _time_grid(self, problem: "ODEProblem", n_default: int = 101) -> Tuple[np.ndarray, int]:
        """
        Integration grid for backends without dense output.

        The grid always spans the whole ``t_span``: ``t_span[1]`` is
        appended after the last ``t_eval`` point when it is later, and kept
        in the saved output so the end state can be queried. Returns the
        grid and the number of leading points to drop from the saved output
        (1 when t_start had to be prepended to t_eval).
        """
        if problem.t_eval is not None:
            t0, t1 = problem.t_span
            grid = np.asarray(problem.t_eval, dtype=float)
            if grid[-1] < t1:
                grid = np.concatenate([grid, [t1]])
            if grid[0] > t0:
                return np.concatenate([[t0], grid]), 1
            return grid, 0
        return np.linspace(problem.t_span[0], problem.t_span[1], n_default), 0

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"backend={self.backend}, rtol={self.rtol:.1e}, atol={self.atol:.1e})"
        )

    def __str__(self) -> str:
        return f"{self.name} ({self.backend})"
