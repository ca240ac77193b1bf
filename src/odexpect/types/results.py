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
Result Types

All estimator outputs are TypedDicts, following the project design
principle "Result types are TypedDict": they are plain dictionaries at
runtime, with keys documented and checked statically.
"""

from typing import Union

import numpy as np
from typing_extensions import TypedDict

# ============================================================================
# Quadrature
# ============================================================================


class QuadratureResult(TypedDict):
    """
    Result of one adaptive quadrature run.

    Attributes
    ----------
    estimate : np.ndarray
        Integral estimate, shape (nout,)
    error : float
        Error estimate reported by the strategy (max norm)
    converged : bool
        True if the requested tolerance was met within the node budget
    n_nodes : int
        Number of integrand nodes evaluated
    message : str
        Human-readable status
    """

    estimate: np.ndarray
    error: float
    converged: bool
    n_nodes: int
    message: str


# ============================================================================
# Expectation
# ============================================================================


class ExpectationResult(TypedDict, total=False):
    """
    Result of an expectation computation.

    Attributes
    ----------
    expectation : Union[float, np.ndarray]
        Estimated E[g]. A float when nout == 1, otherwise shape (nout,)
    error : Union[float, np.ndarray]
        Monte Carlo: standard error per component.
        Koopman: quadrature error estimate (max norm)
    reliable : bool
        False when quadrature did not converge or the domain was degenerate.
        Callers must check it before trusting a Koopman result
    status : str
        'converged', 'not_converged', 'degenerate_domain' or 'sampled'
    estimator : str
        'monte_carlo' or 'koopman'
    nout : int
        Observable length
    n_trajectories : int
        Number of trajectories solved for this call
    n_nodes : int
        Quadrature nodes visited (Koopman only)
    quadrature : str
        Quadrature strategy name (Koopman only)
    executor : str
        Batch executor name
    computation_time : float
        Wall-clock seconds

    Examples
    --------
    >>> result = expectation(g, problem, spec, Koopman())
    >>> if not result["reliable"]:
    ...     print(result["status"])
    >>> print(result["expectation"], result["error"])
    """

    expectation: Union[float, np.ndarray]
    error: Union[float, np.ndarray]
    reliable: bool
    status: str
    estimator: str
    nout: int
    n_trajectories: int
    n_nodes: int
    quadrature: str
    executor: str
    computation_time: float


# ============================================================================
# Moments
# ============================================================================


class MomentResult(TypedDict):
    """
    Central moments 1..order of an observable's push-forward distribution.

    Convention: ``moments[0]`` (the first central moment) is exactly 0.0.
    The mean is reported separately under ``mean``.

    Attributes
    ----------
    moments : np.ndarray
        Central moments, shape (order,) for a scalar base observable,
        (order, nbase) otherwise
    mean : Union[float, np.ndarray]
        E[X]
    raw_moments : np.ndarray
        E[X^1], ..., E[X^order], same shape as ``moments``
    order : int
        Highest moment order
    reliable : bool
        Reliability flag of the underlying expectation call
    n_trajectories : int
        Trajectories solved (one pass for all orders)
    expectation_result : ExpectationResult
        The underlying vector-valued expectation result
    """

    moments: np.ndarray
    mean: Union[float, np.ndarray]
    raw_moments: np.ndarray
    order: int
    reliable: bool
    n_trajectories: int
    expectation_result: ExpectationResult
