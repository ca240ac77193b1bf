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
Expectation - Estimator Dispatch

``expectation`` is the single entry point: it binds the distribution spec
to the problem, builds the trajectory evaluator, enforces the observable
contract, checks the executor's failure policy, and hands everything to
one of the two estimators (a closed set: MonteCarlo or Koopman).
"""

import time
from typing import Optional, Union

import numpy as np

from odexpect.distributions import DistributionSpec
from odexpect.errors import ConfigurationError
from odexpect.estimators.koopman import Koopman
from odexpect.estimators.monte_carlo import MonteCarlo
from odexpect.estimators.observable import Observable, ObservableWrapper
from odexpect.execution.batch_executor import BatchExecutor, SequentialExecutor, require_fail_fast
from odexpect.integration.solver_base import ODESolverBase
from odexpect.integration.trajectory_evaluator import TrajectoryEvaluator
from odexpect.problem import ODEProblem
from odexpect.types.results import ExpectationResult
from odexpect.utils.accumulators import EvaluationCounter

Estimator = Union[MonteCarlo, Koopman]


def expectation(
    observable: Observable,
    problem: ODEProblem,
    spec: DistributionSpec,
    estimator: Estimator,
    nout: int = 1,
    solver: Optional[ODESolverBase] = None,
    executor: Optional[BatchExecutor] = None,
    counter: Optional[EvaluationCounter] = None,
) -> ExpectationResult:
    """
    Expected value of ``observable`` over the trajectories induced by ``spec``.

    Parameters
    ----------
    observable : Callable[[Trajectory], ArrayLike]
        Maps a trajectory to ``nout`` numbers
    problem : ODEProblem
        Dynamical system; supplies nominal values for unspecified entries
    spec : DistributionSpec
        Distributions (or constants) for the initial state and parameters
    estimator : Union[MonteCarlo, Koopman]
        Estimation strategy
    nout : int
        Observable length (default: 1)
    solver : Optional[ODESolverBase]
        ODE solver (default: ScipySolver())
    executor : Optional[BatchExecutor]
        Fail-fast batch executor (default: SequentialExecutor())
    counter : Optional[EvaluationCounter]
        Receives trajectory and observable call counts

    Returns
    -------
    ExpectationResult
        ``expectation`` and ``error`` are floats when nout == 1

    Raises
    ------
    ConfigurationError
        Unknown estimator, bad ``nout``, observable length mismatch,
        per-element executor, spec not matching the problem
    IntegrationFailure
        A trajectory solve failed
    EstimationCancelled
        The executor was cancelled; call ``executor.reset()`` before reuse

    Examples
    --------
    >>> problem = ODEProblem(lambda t, u, p: p[..., 0:1] * u, [1.0], (0.0, 4.0), [-0.3])
    >>> spec = DistributionSpec(x0=[stats.uniform(0, 10)])
    >>> g = lambda traj: traj(4.0)[0]
    >>> expectation(g, problem, spec, Koopman())["expectation"]
    1.5059...
    >>> expectation(g, problem, spec, MonteCarlo(5000, seed=0))["expectation"]
    1.5...
    """
    if not isinstance(estimator, (MonteCarlo, Koopman)):
        raise ConfigurationError(
            f"Unknown estimator {estimator!r}. Use MonteCarlo(...) or Koopman(...)"
        )
    if spec is None:
        spec = DistributionSpec()
    elif not isinstance(spec, DistributionSpec):
        raise ConfigurationError(f"Expected a DistributionSpec, got {type(spec).__name__}")

    wrapped = ObservableWrapper(observable, nout, counter)
    executor = require_fail_fast(executor if executor is not None else SequentialExecutor())
    evaluator = TrajectoryEvaluator(problem, solver=solver, counter=counter)
    bound = spec.bind(problem)

    start_time = time.time()
    result = estimator.estimate(evaluator, wrapped, bound, executor)
    result["computation_time"] = time.time() - start_time

    result["nout"] = wrapped.nout
    result["executor"] = executor.name
    if wrapped.nout == 1:
        result["expectation"] = float(np.asarray(result["expectation"]).reshape(-1)[0])
        result["error"] = float(np.asarray(result["error"]).reshape(-1)[0])
    return result
