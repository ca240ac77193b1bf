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
Monte Carlo Estimator

Draws i.i.d. (or Latin hypercube) instantiations from the distribution
spec, solves one trajectory per draw, applies the observable and
averages. No adaptive refinement: the sample count is fixed up front and
the statistical error decays as O(1/sqrt(trajectories)).

Fail-fast: a single IntegrationFailure aborts the estimate, since the mean
of an incomplete sample set is biased.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import numpy as np
from scipy.stats import qmc

from odexpect.distributions import DistributionSpec
from odexpect.errors import ConfigurationError
from odexpect.estimators.observable import ObservableWrapper, _check_count
from odexpect.execution.batch_executor import BatchExecutor
from odexpect.types.results import ExpectationResult
from odexpect.utils.accumulators import stable_mean

if TYPE_CHECKING:
    from odexpect.integration.trajectory_evaluator import TrajectoryEvaluator

SAMPLING_METHODS = ("random", "latin_hypercube")


@dataclass(frozen=True)
class MonteCarlo:
    """
    Monte Carlo expectation estimator.

    Parameters
    ----------
    trajectories : int
        Number of samples (trajectory solves), >= 1
    seed : Optional[int]
        Seed for ``np.random.default_rng``; fixes the draws
    sampling : str
        'random' [DEFAULT] for i.i.d. draws, or 'latin_hypercube' for
        stratified draws through each entry's quantile function
    batch_size : int
        Pairs handed to the executor per dispatch; 0 sends all at once

    Examples
    --------
    >>> result = expectation(g, problem, spec, MonteCarlo(10_000, seed=42))
    >>> result["expectation"], result["error"]  # mean, standard error
    """

    trajectories: int
    seed: Optional[int] = None
    sampling: str = "random"
    batch_size: int = 0

    name = "monte_carlo"

    def __post_init__(self):
        _check_count("trajectories", self.trajectories)
        if self.sampling not in SAMPLING_METHODS:
            raise ConfigurationError(
                f"Unknown sampling '{self.sampling}'. Choose from: {list(SAMPLING_METHODS)}"
            )
        if self.batch_size < 0:
            raise ConfigurationError(f"batch_size must be >= 0, got {self.batch_size}")

    def draw(self, spec: DistributionSpec, rng: np.random.Generator) -> np.ndarray:
        """Points of the random subspace, shape (trajectories, spec.dim)."""
        n = self.trajectories
        if spec.dim == 0:
            return np.zeros((n, 0))
        if self.sampling == "random":
            return spec.sample_random(n, rng)
        u = qmc.LatinHypercube(d=spec.dim, rng=rng).random(n)
        return spec.from_unit_cube(u)

    def estimate(
        self,
        evaluator: "TrajectoryEvaluator",
        observable: ObservableWrapper,
        spec: DistributionSpec,
        executor: BatchExecutor,
    ) -> ExpectationResult:
        n = self.trajectories
        rng = np.random.default_rng(self.seed)
        x0s, params = spec.split(self.draw(spec, rng))
        pairs = list(zip(x0s, params))

        values = np.empty((n, observable.nout))
        chunk = self.batch_size or n
        for start in range(0, n, chunk):
            trajectories = executor.evaluate_many(evaluator, pairs[start : start + chunk])
            values[start : start + len(trajectories)] = observable.evaluate_many(trajectories)

        if n > 1:
            error = values.std(axis=0, ddof=1) / np.sqrt(n)
        else:
            error = np.full(observable.nout, np.nan)

        return ExpectationResult(
            expectation=stable_mean(values),
            error=error,
            reliable=True,
            status="sampled",
            estimator=self.name,
            n_trajectories=n,
        )
