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
Accumulators - Instrumentation and Reduction Helpers

EvaluationCounter is the explicit side channel for counting work done
during one expectation call. Pass a fresh counter per call; nothing in
odexpect keeps process-wide counters.

stable_mean reduces per-trajectory results with ``math.fsum``, which is
correctly rounded and therefore independent of the order in which
concurrent evaluations complete.
"""

import math
import threading
from typing import Dict

import numpy as np


class EvaluationCounter:
    """
    Thread-safe counter of trajectory solves and observable calls.

    Examples
    --------
    >>> counter = EvaluationCounter()
    >>> result = expectation(g, problem, spec, Koopman(), counter=counter)
    >>> counter.trajectories == result["n_trajectories"]
    True
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.trajectories = 0
        self.observable_calls = 0

    def record_trajectories(self, n: int = 1):
        with self._lock:
            self.trajectories += n

    def record_observable(self, n: int = 1):
        with self._lock:
            self.observable_calls += n

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                "trajectories": self.trajectories,
                "observable_calls": self.observable_calls,
            }

    def reset(self):
        with self._lock:
            self.trajectories = 0
            self.observable_calls = 0

    def __repr__(self) -> str:
        return (
            f"EvaluationCounter(trajectories={self.trajectories}, "
            f"observable_calls={self.observable_calls})"
        )


def stable_mean(values: np.ndarray) -> np.ndarray:
    """
    Column-wise mean of ``values`` (n, k) using exactly rounded summation.

    Parameters
    ----------
    values : np.ndarray
        Shape (n, k) with n >= 1

    Returns
    -------
    np.ndarray
        Shape (k,)
    """
    values = np.asarray(values, dtype=float)
    n = values.shape[0]
    return np.array([math.fsum(values[:, j]) / n for j in range(values.shape[1])])
