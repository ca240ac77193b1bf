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
Quadrature Base - Abstract Interface for Adaptive Integration over the
Random Subspace

The Koopman estimator treats quadrature as a black box: "adaptively
refine until the tolerance is met or the node budget is exhausted". Each
strategy declares two capabilities the estimator relies on:

- supports_infinite: can integrate over infinite or semi-infinite boxes
  (through a variable transformation)
- supports_batch: evaluates the integrand on many nodes per call, which
  lets the estimator dispatch those nodes through a batch executor

Integrand Contract
------------------
``f(nodes) -> values`` with nodes of shape (npoints, d) and values of
shape (npoints, nout). Strategies without batch support call it with
npoints == 1.
"""

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from odexpect.types.results import QuadratureResult

Integrand = Callable[[np.ndarray], np.ndarray]


class QuadratureBase(ABC):
    """
    Abstract base class for quadrature strategies.

    All strategies must implement:
    - integrate(): integral of a vector-valued integrand over a box
    - name: strategy name for result metadata
    """

    supports_infinite: bool = False
    supports_batch: bool = False

    def __init__(self, **options):
        self.options = options

    @abstractmethod
    def integrate(
        self,
        f: Integrand,
        lower: np.ndarray,
        upper: np.ndarray,
        nout: int,
        rtol: float,
        atol: float,
    ) -> QuadratureResult:
        """
        Integrate ``f`` over the box [lower, upper].

        Parameters
        ----------
        f : Callable[[np.ndarray], np.ndarray]
            Batched integrand, (npoints, d) -> (npoints, nout)
        lower, upper : np.ndarray
            Box bounds, shape (d,). May be infinite only if
            ``supports_infinite``
        nout : int
            Integrand output length
        rtol, atol : float
            Relative and absolute tolerance on the estimate

        Returns
        -------
        QuadratureResult
            ``converged`` is False when the budget ran out first
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @staticmethod
    def _max_norm(values: np.ndarray) -> float:
        values = np.asarray(values, dtype=float)
        return float(np.max(np.abs(values))) if values.size else 0.0

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"infinite={self.supports_infinite}, batch={self.supports_batch})"
        )
