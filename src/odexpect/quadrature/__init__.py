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
Quadrature strategies for the Koopman estimator.

The set of strategies is closed: cubature (default), quad_vec and
gauss_legendre. Use ``create_quadrature`` to build one by name.
"""

from typing import Dict, Literal, Type, Union

from odexpect.errors import ConfigurationError
from odexpect.quadrature.cubature_quadrature import CubatureQuadrature
from odexpect.quadrature.gauss_legendre_quadrature import GaussLegendreQuadrature
from odexpect.quadrature.quad_vec_quadrature import QuadVecQuadrature
from odexpect.quadrature.quadrature_base import Integrand, QuadratureBase

QuadratureMethod = Literal["cubature", "quad_vec", "gauss_legendre"]

QUADRATURE_STRATEGIES: Dict[str, Type[QuadratureBase]] = {
    "cubature": CubatureQuadrature,
    "quad_vec": QuadVecQuadrature,
    "gauss_legendre": GaussLegendreQuadrature,
}


def create_quadrature(
    method: Union[QuadratureMethod, QuadratureBase] = "cubature", **options
) -> QuadratureBase:
    """
    Create a quadrature strategy by name.

    Instances are passed through unchanged.

    Examples
    --------
    >>> create_quadrature("gauss_legendre", max_order=32).name
    'gauss_legendre(4..32)'
    """
    if isinstance(method, QuadratureBase):
        return method
    try:
        cls = QUADRATURE_STRATEGIES[method]
    except KeyError:
        raise ConfigurationError(
            f"Unknown quadrature '{method}'. Choose from: {list(QUADRATURE_STRATEGIES)}"
        ) from None
    return cls(**options)


__all__ = [
    "QuadratureBase",
    "Integrand",
    "QuadratureMethod",
    "CubatureQuadrature",
    "QuadVecQuadrature",
    "GaussLegendreQuadrature",
    "QUADRATURE_STRATEGIES",
    "create_quadrature",
]
