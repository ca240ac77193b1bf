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
Nested quad_vec Quadrature - Iterated Adaptive Gauss-Kronrod Integration

Applies ``scipy.integrate.quad_vec`` once per dimension, innermost last.
Each level is adaptive and vector-valued, and quad_vec maps infinite
intervals to finite ones, so unbounded supports are allowed.

Nodes are evaluated one at a time (no batch mode). The number of nodes
grows roughly geometrically with the dimension; prefer cubature beyond
two or three random dimensions.
"""

from typing import Tuple

import numpy as np
from scipy.integrate import quad_vec

from odexpect.errors import ConfigurationError
from odexpect.quadrature.quadrature_base import Integrand, QuadratureBase
from odexpect.types.results import QuadratureResult


class QuadVecQuadrature(QuadratureBase):
    """
    Iterated one-dimensional adaptive quadrature.

    Parameters
    ----------
    limit : int
        Maximum number of subintervals per level (default: 200)
    norm : str
        Vector norm used for error control: 'max' [DEFAULT] or '2'
    """

    supports_infinite = True
    supports_batch = False

    def __init__(self, limit: int = 200, norm: str = "max", **options):
        super().__init__(**options)
        if limit < 1:
            raise ConfigurationError(f"limit must be >= 1, got {limit}")
        if norm not in ("max", "2"):
            raise ConfigurationError(f"norm must be 'max' or '2', got '{norm}'")
        self.limit = limit
        self.norm = norm

    def integrate(
        self,
        f: Integrand,
        lower: np.ndarray,
        upper: np.ndarray,
        nout: int,
        rtol: float,
        atol: float,
    ) -> QuadratureResult:
        lower = np.asarray(lower, dtype=float)
        upper = np.asarray(upper, dtype=float)
        d = lower.shape[0]
        n_nodes = 0
        converged = True
        outer_error = 0.0

        def at_point(z: np.ndarray) -> np.ndarray:
            nonlocal n_nodes
            n_nodes += 1
            return np.asarray(f(z[None, :]), dtype=float).reshape(nout)

        def level(prefix: Tuple[float, ...]) -> np.ndarray:
            nonlocal converged, outer_error
            k = len(prefix)

            if k == d - 1:

                def inner(s):
                    return at_point(np.array(prefix + (s,)))

            else:

                def inner(s):
                    return level(prefix + (s,))

            res, err, info = quad_vec(
                inner,
                lower[k],
                upper[k],
                epsabs=atol,
                epsrel=rtol,
                norm=self.norm,
                limit=self.limit,
                full_output=True,
            )
            if not info.success:
                converged = False
            if k == 0:
                outer_error = float(err)
            return np.asarray(res, dtype=float)

        estimate = level(())
        return QuadratureResult(
            estimate=estimate.reshape(nout),
            error=outer_error,
            converged=converged,
            n_nodes=n_nodes,
            message="converged" if converged else f"subinterval limit ({self.limit}) reached",
        )

    @property
    def name(self) -> str:
        return "quad_vec"
