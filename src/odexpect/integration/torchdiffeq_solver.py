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
TorchDiffEqSolver: PyTorch-based trajectory solver using torchdiffeq.

Runs whole ensembles as one batched tensor solve, on CPU or on a CUDA
device. This is the collaborator behind GPU-vectorized batch execution.

The right-hand side receives torch tensors: ``x`` of shape (batch, nx)
and ``p`` of shape (batch, n_params). Write it with broadcasting-safe
indexing (``p[..., 0:1] * x``) so the same function serves every backend.

torchdiffeq has no dense output. Trajectories are saved on
``problem.t_eval`` plus ``t_span[1]`` (or an evenly spaced grid of
``n_save`` points) and queried between saved points by linear
interpolation; times outside the saved grid raise ConfigurationError.
Stacked solves tighten both tolerances by sqrt(batch).
"""

from typing import TYPE_CHECKING, List

import numpy as np
import torch
import torchdiffeq

from odexpect.errors import ConfigurationError, IntegrationFailure
from odexpect.integration.solver_base import ODESolverBase
from odexpect.integration.trajectory import Trajectory
from odexpect.types.core import ParameterVector, StateVector

if TYPE_CHECKING:
    from odexpect.problem import ODEProblem


class TorchDiffEqSolver(ODESolverBase):
    """
    Batched ODE solver using torchdiffeq.odeint.

    Parameters
    ----------
    method : str
        'dopri5' [DEFAULT], 'dopri8', 'bosh3', 'adaptive_heun', 'fehlberg2',
        'euler', 'midpoint', 'rk4', 'explicit_adams', 'implicit_adams'
    device : str
        Torch device, e.g. 'cpu', 'cuda', 'cuda:1'
    dtype : torch.dtype
        Floating point precision (default: torch.float64)
    **options
        rtol, atol, n_save (default 101), solver_options (passed to odeint)

    Examples
    --------
    >>> solver = TorchDiffEqSolver(method="dopri5", device="cuda")
    >>> trajs = solver.solve_ensemble(problem, x0_batch, params_batch)
    """

    supports_ensemble = True

    _VALID_METHODS = [
        "dopri5",
        "dopri8",
        "bosh3",
        "adaptive_heun",
        "fehlberg2",
        "euler",
        "midpoint",
        "rk4",
        "explicit_adams",
        "implicit_adams",
    ]

    def __init__(
        self,
        method: str = "dopri5",
        device: str = "cpu",
        dtype: torch.dtype = torch.float64,
        **options,
    ):
        super().__init__(backend="torch", **options)

        if method not in self._VALID_METHODS:
            raise ConfigurationError(
                f"Invalid method '{method}'. Choose from: {self._VALID_METHODS}"
            )

        self.method = method
        self.device = torch.device(device)
        self.dtype = dtype
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
        t = torch.as_tensor(t_grid, dtype=self.dtype, device=self.device)
        y0 = torch.as_tensor(x0_batch, dtype=self.dtype, device=self.device)
        p = torch.as_tensor(params_batch, dtype=self.dtype, device=self.device)

        def func(t_now: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
            return rhs(t_now, y, p)

        try:
            with torch.no_grad():
                ys = torchdiffeq.odeint(
                    func,
                    y0,
                    t,
                    rtol=rtol,
                    atol=atol,
                    method=self.method,
                    options=self.options.get("solver_options"),
                )
        except (AssertionError, RuntimeError) as err:
            raise IntegrationFailure(
                f"{self.name} ensemble of {batch} failed: {err}",
                x0=x0_batch,
                params=params_batch,
                solver_message=str(err),
            ) from err

        states = ys.detach().cpu().numpy()[drop:]  # (T, batch, nx)
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
                    solver=self.name,
                )
            )
        return trajectories

    @property
    def name(self) -> str:
        return f"torchdiffeq.{self.method} ({self.device.type})"

    def __repr__(self) -> str:
        return (
            f"TorchDiffEqSolver(method='{self.method}', device='{self.device}', "
            f"rtol={self.rtol:.1e}, atol={self.atol:.1e})"
        )
