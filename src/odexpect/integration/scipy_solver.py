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
Scipy Solver - Adaptive Integration using scipy.integrate.solve_ivp

Default trajectory collaborator. Wraps scipy's adaptive ODE solvers with
error control and dense output, so trajectories can be queried at any
time in the span.

Supported Methods:
- RK45: Explicit Runge-Kutta 5(4) - general purpose
- RK23: Explicit Runge-Kutta 3(2) - low accuracy/fast
- DOP853: Explicit Runge-Kutta 8 - high accuracy
- Radau: Implicit Runge-Kutta (Radau IIA) - stiff systems
- BDF: Backward Differentiation Formula - very stiff systems
- LSODA: Automatic stiffness detection and switching

Ensemble Mode
-------------
``solve_ensemble`` stacks a batch of B instantiations into a single state
vector of length B*nx and integrates it in one call. The right-hand side
is called with ``x`` of shape (B, nx) and ``p`` of shape (B, n_params), so
it must broadcast over the leading axis. Step sizes are shared across the
batch, which is why a single failing member fails the whole batch.
Tolerances are divided by sqrt(B) so that the error norm over the
stacked state bounds each member as tightly as an individual solve.
``nfev`` on each member trajectory is the count of the stacked solve;
every call evaluates all B members once.
"""

from typing import TYPE_CHECKING, Callable, List

import numpy as np
from scipy.integrate import solve_ivp

from odexpect.errors import ConfigurationError, IntegrationFailure
from odexpect.integration.solver_base import ODESolverBase
from odexpect.integration.trajectory import Trajectory
from odexpect.types.core import ParameterVector, StateVector

if TYPE_CHECKING:
    from odexpect.problem import ODEProblem


def _member_interpolant(dense: Callable, index: int, batch: int, nx: int) -> Callable:
    """Slice one batch member out of a stacked dense-output callable."""

    def interpolant(t):
        y = np.asarray(dense(t))
        if y.ndim == 1:
            return y.reshape(batch, nx)[index]
        return y.reshape(batch, nx, -1)[index]

    return interpolant


class ScipySolver(ODESolverBase):
    """
    Adaptive solver using scipy.integrate.solve_ivp.

    Parameters
    ----------
    method : str
        Solver method: 'RK45', 'RK23', 'DOP853', 'Radau', 'BDF', 'LSODA'
    **options : dict
        - rtol: Relative tolerance (default: 1e-6)
        - atol: Absolute tolerance (default: 1e-8)
        - max_step: Maximum step size (default: inf)
        - first_step: Initial step size (default: auto)
        - dense_output: Keep the continuous solution (default: True)

    Examples
    --------
    >>> solver = ScipySolver(method="DOP853", rtol=1e-10, atol=1e-12)
    >>> traj = solver.solve(problem, x0=np.array([5.0]), params=np.array([-0.3]))
    >>> traj(4.0)
    """

    supports_ensemble = True

    def __init__(self, method: str = "RK45", **options):
        super().__init__(backend="numpy", **options)

        valid_methods = ["RK45", "RK23", "DOP853", "Radau", "BDF", "LSODA"]
        if method not in valid_methods:
            raise ConfigurationError(f"Invalid method '{method}'. Choose from: {valid_methods}")

        self.method = method
        self.dense_output = options.get("dense_output", True)

    def _run(self, fun: Callable, problem: "ODEProblem", y0: np.ndarray, rtol=None, atol=None):
        return solve_ivp(
            fun=fun,
            t_span=problem.t_span,
            y0=y0,
            method=self.method,
            t_eval=problem.t_eval,
            dense_output=self.dense_output,
            rtol=self.rtol if rtol is None else rtol,
            atol=self.atol if atol is None else atol,
            max_step=self.options.get("max_step", np.inf),
            first_step=self.options.get("first_step", None),
        )

    def solve(
        self,
        problem: "ODEProblem",
        x0: StateVector,
        params: ParameterVector,
    ) -> Trajectory:
        x0 = np.asarray(x0, dtype=float)
        params = np.asarray(params, dtype=float)
        rhs = problem.rhs

        def ode_func(t: float, x: np.ndarray) -> np.ndarray:
            """Dynamics in scipy's signature: f(t, x) -> dx/dt"""
            return np.asarray(rhs(t, x, params), dtype=float)

        try:
            sol = self._run(ode_func, problem, x0)
        except (ValueError, FloatingPointError, ArithmeticError) as err:
            raise IntegrationFailure(
                f"{self.name} raised during integration: {err}",
                x0=x0,
                params=params,
                solver_message=str(err),
            ) from err

        if not sol.success:
            raise IntegrationFailure(
                f"{self.name} failed: {sol.message}",
                x0=x0,
                params=params,
                solver_message=str(sol.message),
            )

        states = sol.y.T  # scipy returns (nx, T), we want (T, nx)
        self._check_finite(states, x0, params)

        return Trajectory(
            t=sol.t,
            x=states,
            x0=x0,
            params=params,
            interpolant=sol.sol if self.dense_output else None,
            nfev=sol.nfev,
            solver=self.name,
        )

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
        batch, nx = x0_batch.shape
        rhs = problem.rhs
        rtol, atol = self._ensemble_tolerances(batch)

        def ode_func(t: float, y: np.ndarray) -> np.ndarray:
            dx = rhs(t, y.reshape(batch, nx), params_batch)
            return np.asarray(dx, dtype=float).reshape(-1)

        try:
            sol = self._run(ode_func, problem, x0_batch.reshape(-1), rtol=rtol, atol=atol)
        except (ValueError, FloatingPointError, ArithmeticError) as err:
            raise IntegrationFailure(
                f"{self.name} ensemble of {batch} raised during integration: {err}",
                x0=x0_batch,
                params=params_batch,
                solver_message=str(err),
            ) from err

        if not sol.success:
            raise IntegrationFailure(
                f"{self.name} ensemble of {batch} failed: {sol.message}",
                x0=x0_batch,
                params=params_batch,
                solver_message=str(sol.message),
            )

        stacked = sol.y.T.reshape(len(sol.t), batch, nx)

        trajectories = []
        for i in range(batch):
            self._check_finite(stacked[:, i, :], x0_batch[i], params_batch[i], index=i)
            interpolant = (
                _member_interpolant(sol.sol, i, batch, nx) if self.dense_output else None
            )
            trajectories.append(
                Trajectory(
                    t=sol.t,
                    x=stacked[:, i, :],
                    x0=x0_batch[i],
                    params=params_batch[i],
                    interpolant=interpolant,
                    nfev=sol.nfev,
                    solver=self.name,
                )
            )
        return trajectories

    @property
    def name(self) -> str:
        stiff_indicator = " (Stiff)" if self.method in ["Radau", "BDF"] else ""
        auto_indicator = " (Auto-Stiffness)" if self.method == "LSODA" else ""
        return f"scipy.{self.method}{stiff_indicator}{auto_indicator}"

    def __repr__(self) -> str:
        return (
            f"ScipySolver(method='{self.method}', "
            f"rtol={self.rtol:.1e}, atol={self.atol:.1e})"
        )
