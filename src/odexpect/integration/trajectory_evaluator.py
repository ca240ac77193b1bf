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
Trajectory Evaluator - One Problem, Many Instantiations

Binds an ODEProblem to a solver and turns concrete (initial state,
parameters) pairs into Trajectories. It is the only place the estimators
touch the solver, and the place trajectory solves are counted.

The evaluator holds no mutable state besides the optional counter (which
is thread-safe), so a single instance is shared by all worker threads of a
batch executor.
"""

from typing import List, Optional

import numpy as np

from odexpect.errors import ConfigurationError
from odexpect.integration.scipy_solver import ScipySolver
from odexpect.integration.solver_base import ODESolverBase
from odexpect.integration.trajectory import Trajectory
from odexpect.problem import ODEProblem
from odexpect.types.core import ParameterVector, StateVector
from odexpect.utils.accumulators import EvaluationCounter


class TrajectoryEvaluator:
    """
    Evaluate trajectories of an ODEProblem.

    Parameters
    ----------
    problem : ODEProblem
        Problem to integrate
    solver : Optional[ODESolverBase]
        Trajectory collaborator (default: ScipySolver())
    counter : Optional[EvaluationCounter]
        Side-channel accumulator of trajectory solves

    Examples
    --------
    >>> evaluator = TrajectoryEvaluator(problem)
    >>> traj = evaluator.evaluate(x0=[2.0], params=[-0.3])
    >>> traj(4.0)
    """

    def __init__(
        self,
        problem: ODEProblem,
        solver: Optional[ODESolverBase] = None,
        counter: Optional[EvaluationCounter] = None,
    ):
        self.problem = problem
        self.solver = solver if solver is not None else ScipySolver()
        self.counter = counter

    def _validate(self, x0, params):
        x0 = np.asarray(x0, dtype=float)
        params = np.asarray(params, dtype=float)
        if x0.shape[-1:] != (self.problem.nx,):
            raise ConfigurationError(
                f"Initial state has shape {x0.shape}, "
                f"expected trailing dimension nx={self.problem.nx}"
            )
        if params.shape[-1:] != (self.problem.n_params,):
            raise ConfigurationError(
                f"Parameters have shape {params.shape}, "
                f"expected trailing dimension n_params={self.problem.n_params}"
            )
        return x0, params

    def evaluate(self, x0: StateVector, params: ParameterVector) -> Trajectory:
        """
        Solve one instantiation.

        Raises
        ------
        IntegrationFailure
            If the solver cannot complete; never replaced by a sentinel
        """
        x0, params = self._validate(x0, params)
        trajectory = self.solver.solve(self.problem, x0, params)
        if self.counter is not None:
            self.counter.record_trajectories(1)
        return trajectory

    def evaluate_ensemble(
        self,
        x0_batch: np.ndarray,
        params_batch: np.ndarray,
        solver: Optional[ODESolverBase] = None,
    ) -> List[Trajectory]:
        """
        Solve a batch of instantiations in one vectorized call.

        Parameters
        ----------
        x0_batch : np.ndarray
            (batch, nx)
        params_batch : np.ndarray
            (batch, n_params)
        solver : Optional[ODESolverBase]
            Ensemble-capable solver overriding the evaluator's own

        Raises
        ------
        ConfigurationError
            If the solver has no ensemble mode
        IntegrationFailure
            If the batch solve fails
        """
        solver = solver if solver is not None else self.solver
        if not solver.supports_ensemble:
            raise ConfigurationError(f"{solver.name} cannot solve ensembles")

        x0_batch = np.atleast_2d(np.asarray(x0_batch, dtype=float))
        params_batch = np.asarray(params_batch, dtype=float).reshape(
            x0_batch.shape[0], self.problem.n_params
        )
        x0_batch, params_batch = self._validate(x0_batch, params_batch)
        if x0_batch.shape[0] == 0:
            return []

        trajectories = solver.solve_ensemble(self.problem, x0_batch, params_batch)
        if self.counter is not None:
            self.counter.record_trajectories(len(trajectories))
        return trajectories

    def __repr__(self) -> str:
        return f"TrajectoryEvaluator(solver={self.solver!r})"
