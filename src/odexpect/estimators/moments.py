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
Central Moment Calculator

Raw moments E[X], ..., E[X^k] come from a single vector-valued expectation
call on the augmented observable ``[g, g**2, ..., g**k]``, so computing k
moments solves as many trajectories as computing the mean. Central
moments follow from the binomial expansion

    mu_k = sum_{j=0}^{k} C(k, j) (-mean)^(k-j) E[X^j]

Convention: the first central moment is reported as 0.0 and the mean is
returned separately.

High orders subtract large, nearly equal raw moments. With quadrature
tolerances much looser than the spread of X, expect cancellation error.
"""

import math
from typing import Optional, Tuple

import numpy as np

from odexpect.distributions import DistributionSpec
from odexpect.errors import ConfigurationError
from odexpect.estimators.expectation import Estimator, expectation
from odexpect.estimators.observable import Observable, PowerObservable
from odexpect.execution.batch_executor import BatchExecutor
from odexpect.integration.solver_base import ODESolverBase
from odexpect.problem import ODEProblem
from odexpect.types.results import MomentResult
from odexpect.utils.accumulators import EvaluationCounter


def central_moments_from_raw(raw_moments: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert raw moments to central moments.

    Parameters
    ----------
    raw_moments : np.ndarray
        E[X^1], ..., E[X^order], shape (order,) or (order, nbase)

    Returns
    -------
    moments : np.ndarray
        Central moments, same shape as ``raw_moments``; ``moments[0] == 0``
    mean : np.ndarray
        ``raw_moments[0]``

    Examples
    --------
    >>> moments, mean = central_moments_from_raw(np.array([1.0, 2.0]))
    >>> moments
    array([0., 1.])
    """
    raw = np.asarray(raw_moments, dtype=float)
    order = raw.shape[0]
    if order < 1:
        raise ConfigurationError("At least one raw moment is required")

    mean = raw[0]
    shift = -mean
    moments = np.zeros_like(raw)
    for k in range(2, order + 1):
        total = shift**k
        for j in range(1, k + 1):
            total = total + math.comb(k, j) * shift ** (k - j) * raw[j - 1]
        moments[k - 1] = total
    return moments, mean


def centralmoment(
    order: int,
    observable: Observable,
    problem: ODEProblem,
    spec: DistributionSpec,
    estimator: Estimator,
    nbase: int = 1,
    solver: Optional[ODESolverBase] = None,
    executor: Optional[BatchExecutor] = None,
    counter: Optional[EvaluationCounter] = None,
) -> MomentResult:
    """
    Central moments 1..order of an observable's push-forward distribution.

    Parameters
    ----------
    order : int
        Highest moment order, >= 1
    observable : Callable[[Trajectory], ArrayLike]
        Base observable of length ``nbase``
    problem, spec, estimator, solver, executor, counter
        As for ``expectation``
    nbase : int
        Base observable length; moments are computed elementwise

    Returns
    -------
    MomentResult
        ``moments`` has shape (order,) when nbase == 1, else (order, nbase)

    Raises
    ------
    ConfigurationError
        If ``order`` is not a positive integer

    Examples
    --------
    >>> res = centralmoment(2, lambda traj: traj(4.0)[0], problem, spec, Koopman(rtol=1e-6))
    >>> variance = res["moments"][1]
    """
    if isinstance(order, bool) or not isinstance(order, (int, np.integer)) or order < 1:
        raise ConfigurationError(f"Moment order must be a positive integer, got {order!r}")

    power = PowerObservable(observable, order, nbase)
    result = expectation(
        power,
        problem,
        spec,
        estimator,
        nout=power.nout,
        solver=solver,
        executor=executor,
        counter=counter,
    )

    raw = np.asarray(result["expectation"], dtype=float).reshape(order, nbase)
    moments, mean = central_moments_from_raw(raw)
    if nbase == 1:
        raw, moments, mean = raw[:, 0], moments[:, 0], float(mean[0])

    return MomentResult(
        moments=moments,
        mean=mean,
        raw_moments=raw,
        order=int(order),
        reliable=result["reliable"],
        n_trajectories=result["n_trajectories"],
        expectation_result=result,
    )
