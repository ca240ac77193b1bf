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
ODE Problem Definition

Holds the dynamical system whose observables are averaged: the right-hand
side, the time span, the nominal initial state and the nominal parameters.
Entries of a DistributionSpec left as ``None`` fall back to these nominal
values. The engine only reads a problem; it never mutates it.

Right-hand side signature
-------------------------
``rhs(t, x, p) -> dx/dt``

For node-by-node solving ``x`` has shape (nx,) and ``p`` shape (n_params,).
Ensemble executors stack a batch along a leading axis, so a right-hand side
used with them must also accept ``x`` of shape (batch, nx) and ``p`` of
shape (batch, n_params). Writing ``p[..., 0:1] * x`` instead of
``p[0] * x`` is usually all it takes.

Examples
--------
>>> # Linear decay: dx/dt = p * x
>>> problem = ODEProblem(
...     rhs=lambda t, x, p: p[..., 0:1] * x,
...     x0=[1.0],
...     t_span=(0.0, 4.0),
...     params=[-0.3],
... )
>>> problem.nx, problem.n_params
(1, 1)
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import numpy as np

from odexpect.errors import ConfigurationError
from odexpect.types.core import ArrayLike, TimePoints, TimeSpan


@dataclass(frozen=True)
class ODEProblem:
    """
    Parametrized initial value problem dx/dt = rhs(t, x, p).

    Attributes
    ----------
    rhs : Callable[[float, ArrayLike, ArrayLike], ArrayLike]
        State derivative function
    x0 : np.ndarray
        Nominal initial state (nx,)
    t_span : TimeSpan
        Integration interval (t_start, t_end)
    params : np.ndarray
        Nominal parameters (n_params,), may be empty
    t_eval : Optional[np.ndarray]
        Time grid at which trajectories are saved (saveat). If None the
        solver's own steps are kept and dense output covers the rest
    """

    rhs: Callable[[float, ArrayLike, ArrayLike], ArrayLike]
    x0: np.ndarray
    t_span: TimeSpan
    params: np.ndarray = field(default_factory=lambda: np.zeros(0))
    t_eval: Optional[TimePoints] = None

    def __post_init__(self):
        if not callable(self.rhs):
            raise ConfigurationError(f"rhs must be callable, got {type(self.rhs).__name__}")

        x0 = np.atleast_1d(np.asarray(self.x0, dtype=float))
        if x0.ndim != 1:
            raise ConfigurationError(f"x0 must be a 1-D vector, got shape {x0.shape}")
        object.__setattr__(self, "x0", x0)

        params = np.atleast_1d(np.asarray(self.params, dtype=float))
        if params.ndim != 1:
            raise ConfigurationError(f"params must be a 1-D vector, got shape {params.shape}")
        object.__setattr__(self, "params", params)

        if len(self.t_span) != 2:
            raise ConfigurationError(f"t_span must be (t_start, t_end), got {self.t_span}")
        t0, t1 = float(self.t_span[0]), float(self.t_span[1])
        if not (np.isfinite(t0) and np.isfinite(t1)) or t1 <= t0:
            raise ConfigurationError(f"t_span must satisfy t_start < t_end, got ({t0}, {t1})")
        object.__setattr__(self, "t_span", (t0, t1))

        if self.t_eval is not None:
            t_eval = np.atleast_1d(np.asarray(self.t_eval, dtype=float))
            if t_eval.ndim != 1 or t_eval.size == 0:
                raise ConfigurationError("t_eval must be a non-empty 1-D time grid")
            if np.any(np.diff(t_eval) <= 0):
                raise ConfigurationError("t_eval must be strictly increasing")
            if t_eval[0] < t0 or t_eval[-1] > t1:
                raise ConfigurationError(
                    f"t_eval must lie inside t_span ({t0}, {t1}), "
                    f"got [{t_eval[0]}, {t_eval[-1]}]"
                )
            object.__setattr__(self, "t_eval", t_eval)

    @property
    def nx(self) -> int:
        """Number of state variables."""
        return self.x0.shape[0]

    @property
    def n_params(self) -> int:
        """Number of parameters."""
        return self.params.shape[0]

    def remake(
        self,
        x0: Optional[Sequence[float]] = None,
        params: Optional[Sequence[float]] = None,
    ) -> "ODEProblem":
        """Return a copy with a different nominal initial state or parameters."""
        return ODEProblem(
            rhs=self.rhs,
            x0=self.x0 if x0 is None else x0,
            t_span=self.t_span,
            params=self.params if params is None else params,
            t_eval=self.t_eval,
        )
