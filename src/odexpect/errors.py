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
Exceptions and Warnings

Hard failures abort an expectation call and are raised as exceptions.
Soft failures (a quadrature that ran out of budget, a domain the chosen
strategy cannot integrate) are reported with ``warnings.warn`` and a
``reliable=False`` flag on the result.

Taxonomy
--------
- ConfigurationError: invalid inputs (nout mismatch, bad counts,
  unbounded support under ``Koopman(strict=True)``, ...)
- IntegrationFailure: the ODE solver could not produce a trajectory
- EstimationCancelled: the batch executor was cancelled mid-call
- QuadratureNonConvergence: node budget exhausted before tolerance was met
- DegenerateDomainWarning: unbounded support given to a finite-domain
  quadrature strategy

Spurious near-zero results from quadrature that never sampled the
distribution's mass are not detectable and are not reported; truncate
distributions tightly around their mass to avoid them.
"""

from typing import Any, Optional

import numpy as np


class ExpectationError(Exception):
    """Base class for errors raised by odexpect."""

    pass


class ConfigurationError(ExpectationError, ValueError):
    """Raised when an expectation call is configured inconsistently."""

    pass


class IntegrationFailure(ExpectationError, RuntimeError):
    """
    Raised when the ODE solver fails for one (x0, params) instantiation.

    Attributes
    ----------
    x0 : Optional[np.ndarray]
        Initial state of the failed solve
    params : Optional[np.ndarray]
        Parameters of the failed solve
    solver_message : str
        Message reported by the solver
    """

    def __init__(
        self,
        message: str,
        x0: Optional[Any] = None,
        params: Optional[Any] = None,
        solver_message: str = "",
    ):
        super().__init__(message)
        self.x0 = None if x0 is None else np.asarray(x0)
        self.params = None if params is None else np.asarray(params)
        self.solver_message = solver_message


class EstimationCancelled(ExpectationError):
    """Raised when a batch is cancelled; partial results are discarded."""

    pass


class QuadratureNonConvergence(UserWarning):
    """Quadrature exhausted its node budget before meeting tolerance."""

    pass


class DegenerateDomainWarning(UserWarning):
    """Unbounded support passed to a strategy without infinite-domain support."""

    pass
