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
Koopman (Quadrature) Estimator

Computes E[g] as the integral of ``g(trajectory(x)) * density(x)`` over
the joint support of the random entries of a distribution spec, using an
adaptive quadrature strategy as a black box.

Support Handling
----------------
- Bounded supports give a finite box.
- Unbounded supports are only accepted by strategies with
  ``supports_infinite``. Other strategies produce a NaN result flagged
  ``reliable=False`` (or a ConfigurationError when ``strict=True``).
- Nodes are clamped into the box before use, and nodes of zero density
  contribute exactly zero without solving a trajectory.

Known Limitation
----------------
A distribution truncated far into its tails can leave every node in a
region of negligible density. The quadrature then converges to a
spuriously small value and reports success. This cannot be detected;
truncate tightly around the mass.

Batch Mode
----------
With ``batch_size > 1`` and a strategy that evaluates many nodes per
call, the nodes of each call are dispatched through the batch executor in
chunks of ``batch_size``. Otherwise nodes are solved one at a time and a
non-sequential executor triggers a UserWarning.
"""

import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

import numpy as np

from odexpect.distributions import DistributionSpec
from odexpect.errors import ConfigurationError, DegenerateDomainWarning, QuadratureNonConvergence
from odexpect.estimators.observable import ObservableWrapper
from odexpect.execution.batch_executor import BatchExecutor, SequentialExecutor
from odexpect.quadrature import QuadratureBase, create_quadrature
from odexpect.types.results import ExpectationResult

if TYPE_CHECKING:
    from odexpect.integration.trajectory_evaluator import TrajectoryEvaluator


@dataclass(frozen=True)
class Koopman:
    """
    Quadrature-based expectation estimator.

    Parameters
    ----------
    rtol : float
        Relative integration tolerance (default: 1e-2)
    atol : float
        Absolute integration tolerance (default: 1e-2)
    quadrature : Union[str, QuadratureBase]
        'cubature' [DEFAULT], 'quad_vec', 'gauss_legendre', or an instance
    batch_size : int
        Nodes per executor dispatch; 0 or 1 solves nodes one at a time
    strict : bool
        Raise ConfigurationError on unbounded support that the strategy
        cannot integrate, instead of returning a flagged NaN result

    Examples
    --------
    >>> estimator = Koopman(rtol=1e-6, atol=1e-8, batch_size=64)
    >>> result = expectation(g, problem, spec, estimator, executor=create_executor("threads"))
    >>> if not result["reliable"]:
    ...     print(result["status"])
    """

    rtol: float = 1e-2
    atol: float = 1e-2
    quadrature: Union[str, QuadratureBase] = "cubature"
    batch_size: int = 0
    strict: bool = False

    name = "koopman"

    def __post_init__(self):
        if self.rtol < 0 or self.atol < 0:
            raise ConfigurationError(
                f"Tolerances must be non-negative, got rtol={self.rtol}, atol={self.atol}"
            )
        if self.rtol == 0 and self.atol == 0:
            raise ConfigurationError("At least one of rtol and atol must be positive")
        if self.batch_size < 0:
            raise ConfigurationError(f"batch_size must be >= 0, got {self.batch_size}")
        object.__setattr__(self, "_strategy", create_quadrature(self.quadrature))

    @property
    def strategy(self) -> QuadratureBase:
        return self._strategy

    def estimate(
        self,
        evaluator: "TrajectoryEvaluator",
        observable: ObservableWrapper,
        spec: DistributionSpec,
        executor: BatchExecutor,
    ) -> ExpectationResult:
        strategy = self.strategy
        nout = observable.nout

        # All entries constant: the expectation is a single trajectory
        if spec.dim == 0:
            x0, params = spec.split(np.zeros(0))
            trajectory = executor.evaluate_many(evaluator, [(x0, params)])[0]
            return ExpectationResult(
                expectation=observable(trajectory),
                error=0.0,
                reliable=True,
                status="converged",
                estimator=self.name,
                n_trajectories=1,
                n_nodes=0,
                quadrature=strategy.name,
            )

        lower, upper = spec.bounds()
        if not spec.is_bounded and not strategy.supports_infinite:
            message = (
                f"{strategy.name} cannot integrate over the unbounded support "
                f"[{lower}, {upper}]; truncate the distribution first"
            )
            if self.strict:
                raise ConfigurationError(message)
            warnings.warn(message, DegenerateDomainWarning, stacklevel=3)
            return ExpectationResult(
                expectation=np.full(nout, np.nan),
                error=np.inf,
                reliable=False,
                status="degenerate_domain",
                estimator=self.name,
                n_trajectories=0,
                n_nodes=0,
                quadrature=strategy.name,
            )

        chunk = 1
        if self.batch_size > 1:
            if strategy.supports_batch:
                chunk = self.batch_size
            else:
                warnings.warn(
                    f"{strategy.name} evaluates one node per call; "
                    f"batch_size={self.batch_size} has no effect",
                    UserWarning,
                    stacklevel=3,
                )
        elif not isinstance(executor, SequentialExecutor):
            warnings.warn(
                f"{executor.name} receives one node per dispatch with batch_size="
                f"{self.batch_size}; set batch_size > 1 to evaluate nodes concurrently",
                UserWarning,
                stacklevel=3,
            )

        solved = 0

        def integrand(nodes: np.ndarray) -> np.ndarray:
            nonlocal solved
            nodes = spec.clip(np.atleast_2d(nodes))
            weights = np.atleast_1d(spec.density(nodes))
            values = np.zeros((nodes.shape[0], nout))

            active = np.flatnonzero(weights > 0)
            if active.size == 0:
                return values

            x0s, params = spec.split(nodes[active])
            pairs = list(zip(x0s, params))
            for start in range(0, len(pairs), chunk):
                trajectories = executor.evaluate_many(evaluator, pairs[start : start + chunk])
                rows = active[start : start + len(trajectories)]
                values[rows] = observable.evaluate_many(trajectories) * weights[rows, None]
            solved += len(pairs)
            return values

        result = strategy.integrate(integrand, lower, upper, nout, self.rtol, self.atol)

        if not result["converged"]:
            warnings.warn(
                f"{strategy.name} did not reach rtol={self.rtol}, atol={self.atol}: "
                f"{result['message']} (error estimate {result['error']:.3g})",
                QuadratureNonConvergence,
                stacklevel=3,
            )

        return ExpectationResult(
            expectation=np.asarray(result["estimate"], dtype=float),
            error=float(result["error"]),
            reliable=bool(result["converged"]),
            status="converged" if result["converged"] else "not_converged",
            estimator=self.name,
            n_trajectories=solved,
            n_nodes=result["n_nodes"],
            quadrature=strategy.name,
        )
