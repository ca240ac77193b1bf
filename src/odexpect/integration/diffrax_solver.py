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
DiffraxSolver: JAX-based trajectory solver using Diffrax.

Solves ensembles as one batched array solve with an adaptive PID step
size controller, on whatever device JAX is configured for (CPU, GPU, TPU).

The right-hand side receives JAX arrays: ``x`` of shape (batch, nx) and
``p`` of shape (batch, n_params). Use slice indexing (``p[..., 0:1]``)
rather than list indexing, which JAX rejects.

Known Limitations:
- JAX defaults to float32 unless ``jax_enable_x64`` is set by the caller.
- Trajectories are saved on ``problem.t_eval`` plus ``t_span[1]`` (or
  ``n_save`` evenly spaced points) and linearly interpolated in between;
  querying outside the saved grid raises ConfigurationError.
- Tolerances are tightened by sqrt(batch) for stacked solves.
- ``nfev`` reports the number of steps of the whole batched solve.
"""

from typing import TYPE_CHECKING, List

import diffrax as dfx
import jax.numpy as jnp
import numpy as np

from odexpect.errors import ConfigurationError, IntegrationFailure
from odexpect.integration.solver_base import ODESolverBase
from odexpect.integration.trajectory import Trajectory
from odexpect.types.core import ParameterVector, StateVector

if TYPE_CHECKING:
    from odexpect.problem import ODEProblem


class DiffraxSolver(ODESolverBase):
    """
    Batched ODE solver using diffrax.diffeqsolve.

    Parameters
    ----------
    solver : str
        'tsit5' [DEFAULT], 'dopri5', 'dopri8', 'bosh3', 'heun', 'kvaerno5'
    **options
        rtol, atol, max_steps, n_save (default 101)

    Examples
    --------
    >>> solver = DiffraxSolver(solver="tsit5", rtol=1e-6, atol=1e-8)
    >>> trajs = solver.solve_ensemble(problem, x0_batch, params_batch)
    """

    supports_ensemble = True

    _SOLVER_MAP = {
        "tsit5": dfx.Tsit5,
        "dopri5": dfx.Dopri5,
        "dopri8": dfx.Dopri8,
        "bosh3": dfx.Bosh3,
        "heun": dfx.Heun,
        "kvaerno5": dfx.Kvaerno5,
    }

    def __init__(self, solver: str = "tsit5", **options):
        super().__init__(backend="jax", **options)

        if solver not in self._SOLVER_MAP:
            raise ConfigurationError(
                f"Invalid solver '{solver}'. Choose from: {list(self._SOLVER_MAP)}"
            )

        self.solver_name = solver
        self.n_save = options.get("n_save", 101)

    def solve(
        self,
        problem: "ODEProblem",
        x0: StateVector,
        params: ParameterVector,
    ) -> Trajectory:
        x0 = np.asarray(x0, dtype=float)
        params = np.asarray(params, dtype=float)
        return self.solve_ensemble(problem, x0[None, :], params[None, :])[0]

    def solve_ensemble(
        self,
        problem: "ODEProblem",
        x0_batch: np.ndarray,
        params_batch: np.ndarray,
    ) -> List[Trajectory]:
        x0_batch = np.atleast_2d(np.asarray(x0_batch, dtype=float))
        params_batch = np.asarray(params_batch, dtype=float).reshape(
            x0_batch.shape[0], problem.n_params
        )
        batch = x0_batch.shape[0]
        rhs = problem.rhs
        rtol, atol = self._ensemble_tolerances(batch)

        t_grid, drop = self._time_grid(problem, self.n_save)
        t0, t1 = float(problem.t_span[0]), float(t_grid[-1])

        # Define ODE function - MUST accept (t, y, args)
        def ode_func(t, y, args):
            return rhs(t, y, args)

        solution = dfx.diffeqsolve(
            dfx.ODETerm(ode_func),
            self._SOLVER_MAP[self.solver_name](),
            t0=t0,
            t1=t1,
            dt0=(t1 - t0) / 100,
            y0=jnp.asarray(x0_batch),
            args=jnp.asarray(params_batch),
            saveat=dfx.SaveAt(ts=jnp.asarray(t_grid)),
            stepsize_controller=dfx.PIDController(rtol=rtol, atol=atol),
            max_steps=self.max_steps,
            throw=False,
        )

        if not bool(solution.result == dfx.RESULTS.successful):
            raise IntegrationFailure(
                f"{self.name} ensemble of {batch} failed: {solution.result}",
                x0=x0_batch,
                params=params_batch,
                solver_message=str(solution.result),
            )

        states = np.asarray(solution.ys, dtype=float)[drop:]  # (T, batch, nx)
        saved_t = t_grid[drop:]

        trajectories = []
        for i in range(batch):
            self._check_finite(states[:, i, :], x0_batch[i], params_batch[i], index=i)
            trajectories.append(
                Trajectory(
                    t=saved_t,
                    x=states[:, i, :],
                    x0=x0_batch[i],
                    params=params_batch[i],
                    nfev=int(solution.stats.get("num_steps", 0)),
                    solver=self.name,
                )
            )
        return trajectories

    @property
    def name(self) -> str:
        return f"diffrax.{self.solver_name}"

    def __repr__(self) -> str:
        return (
            f"DiffraxSolver(solver='{self.solver_name}', "
            f"rtol={self.rtol:.1e}, atol={self.atol:.1e})"
        )
