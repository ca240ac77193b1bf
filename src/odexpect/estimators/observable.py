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
Observable Wrappers

An observable maps a Trajectory to a fixed-length numeric vector. The
length (``nout``) is declared up front and must not change within one
expectation call.
"""

from typing import Callable, Optional, Sequence

import numpy as np

from odexpect.errors import ConfigurationError
from odexpect.integration.trajectory import Trajectory
from odexpect.utils.accumulators import EvaluationCounter

Observable = Callable[[Trajectory], object]


def _check_count(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


class ObservableWrapper:
    """
    Enforce the ``nout`` contract and count observable calls.

    Parameters
    ----------
    observable : Callable[[Trajectory], ArrayLike]
        User observable; scalars are treated as length-1 vectors
    nout : int
        Declared output length
    counter : Optional[EvaluationCounter]
        Side-channel accumulator

    Raises
    ------
    ConfigurationError
        From ``__call__`` when the observable returns a vector whose length
        differs from ``nout``
    """

    def __init__(
        self,
        observable: Observable,
        nout: int = 1,
        counter: Optional[EvaluationCounter] = None,
    ):
        if not callable(observable):
            raise ConfigurationError(
                f"Observable must be callable, got {type(observable).__name__}"
            )
        self.observable = observable
        self.nout = _check_count("nout", nout)
        self.counter = counter

    def __call__(self, trajectory: Trajectory) -> np.ndarray:
        value = np.asarray(self.observable(trajectory), dtype=float).reshape(-1)
        if value.shape[0] != self.nout:
            raise ConfigurationError(
                f"Observable returned {value.shape[0]} values, declared nout={self.nout}"
            )
        if self.counter is not None:
            self.counter.record_observable(1)
        return value

    def evaluate_many(self, trajectories: Sequence[Trajectory]) -> np.ndarray:
        """Apply the observable to each trajectory, shape (n, nout)."""
        values = np.empty((len(trajectories), self.nout))
        for i, trajectory in enumerate(trajectories):
            values[i] = self(trajectory)
        return values

    def __repr__(self) -> str:
        return f"ObservableWrapper({self.observable!r}, nout={self.nout})"


class PowerObservable:
    """
    Augment a base observable with its elementwise powers.

    ``PowerObservable(g, order)(traj)`` is
    ``[g(traj), g(traj)**2, ..., g(traj)**order]`` flattened, so one
    expectation call yields every raw moment up to ``order``.

    Parameters
    ----------
    base : Callable[[Trajectory], ArrayLike]
        Base observable of length ``nbase``
    order : int
        Highest power
    nbase : int
        Length of the base observable (default: 1)

    Examples
    --------
    >>> power = PowerObservable(lambda traj: traj(4.0)[0], order=3)
    >>> power.nout
    3
    """

    def __init__(self, base: Observable, order: int, nbase: int = 1):
        self.base = base
        self.order = _check_count("order", order)
        self.nbase = _check_count("nbase", nbase)

    @property
    def nout(self) -> int:
        return self.order * self.nbase

    def __call__(self, trajectory: Trajectory) -> np.ndarray:
        value = np.asarray(self.base(trajectory), dtype=float).reshape(-1)
        if value.shape[0] != self.nbase:
            raise ConfigurationError(
                f"Base observable returned {value.shape[0]} values, declared nbase={self.nbase}"
            )
        return np.concatenate([value**k for k in range(1, self.order + 1)])

    def __repr__(self) -> str:
        return f"PowerObservable({self.base!r}, order={self.order}, nbase={self.nbase})"
