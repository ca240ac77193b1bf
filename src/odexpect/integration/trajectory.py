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
Trajectory - Solution of One ODE Instantiation

A Trajectory is produced by a solver for one concrete (initial state,
parameters) pair. It is immutable, owned by the estimator call that
created it, and discarded once the observable has been applied.

Querying
--------
- ``traj.t``, ``traj.x``: saved time grid (T,) and states (T, nx)
- ``traj(t)``: state at an arbitrary time inside the span. Uses the
  solver's dense output when available, linear interpolation of the saved
  grid otherwise. Without dense output, times outside the saved grid
  raise ConfigurationError rather than being clamped to an endpoint
- ``traj[-1]``: state at the last saved time
"""

from typing import Callable, Optional

import numpy as np

from odexpect.errors import ConfigurationError


class Trajectory:
    """
    Immutable ODE solution for one (x0, params) instantiation.

    Parameters
    ----------
    t : np.ndarray
        Saved time points (T,)
    x : np.ndarray
        Saved states (T, nx), time-major
    x0 : np.ndarray
        Initial state used for the solve
    params : np.ndarray
        Parameters used for the solve
    interpolant : Optional[Callable]
        Dense output ``interpolant(t)`` returning (nx,) for scalar t and
        (nx, n) for an array of n times
    nfev : int
        Right-hand side evaluations spent on this solve. Members of an
        ensemble solve all report the count of the shared batched solve
    solver : str
        Solver name

    Examples
    --------
    >>> traj = evaluator.evaluate(x0=[1.0], params=[-0.3])
    >>> traj(4.0)          # state at t=4
    array([0.30119421])
    >>> traj.x[-1]         # last saved state
    """

    __slots__ = ("_t", "_x", "_x0", "_params", "_interpolant", "nfev", "solver")

    def __init__(
        self,
        t: np.ndarray,
        x: np.ndarray,
        x0: np.ndarray,
        params: np.ndarray,
        interpolant: Optional[Callable] = None,
        nfev: int = 0,
        solver: str = "",
    ):
        t = np.asarray(t, dtype=float)
        x = np.asarray(x, dtype=float)
        if x.ndim == 1:
            x = x.reshape(-1, 1)

        t.setflags(write=False)
        x.setflags(write=False)
        self._t = t
        self._x = x
        self._x0 = np.array(x0, dtype=float)
        self._params = np.array(params, dtype=float)
        self._interpolant = interpolant
        self.nfev = nfev
        self.solver = solver

    @property
    def t(self) -> np.ndarray:
        return self._t

    @property
    def x(self) -> np.ndarray:
        return self._x

    @property
    def x0(self) -> np.ndarray:
        return self._x0.copy()

    @property
    def params(self) -> np.ndarray:
        return self._params.copy()

    @property
    def nx(self) -> int:
        return self._x.shape[1]

    @property
    def has_dense_output(self) -> bool:
        return self._interpolant is not None

    def __call__(self, t) -> np.ndarray:
        """
        State at time(s) ``t``.

        Returns
        -------
        np.ndarray
            (nx,) for scalar ``t``, (n, nx) for an array of n times

        Raises
        ------
        ConfigurationError
            Without dense output, if ``t`` lies outside the saved grid
        """
        scalar = np.ndim(t) == 0
        if self._interpolant is not None:
            y = np.asarray(self._interpolant(t), dtype=float)
        else:
            times = np.atleast_1d(np.asarray(t, dtype=float))
            if np.any(times < self._t[0]) or np.any(times > self._t[-1]):
                raise ConfigurationError(
                    f"t={t} lies outside the saved grid [{self._t[0]:g}, {self._t[-1]:g}] "
                    f"of a trajectory without dense output"
                )
            y = np.array([np.interp(times, self._t, self._x[:, i]) for i in range(self.nx)])
            if scalar:
                y = y[:, 0]
        return y if scalar else y.T

    def __getitem__(self, index) -> np.ndarray:
        return self._x[index]

    def __len__(self) -> int:
        return self._t.shape[0]

    def __repr__(self) -> str:
        return (
            f"Trajectory(nx={self.nx}, n_points={len(self)}, "
            f"t=[{self._t[0]:.4g}, {self._t[-1]:.4g}], solver='{self.solver}')"
        )
