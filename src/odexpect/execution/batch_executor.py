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
Batch Executor - Evaluating Many Trajectories at Once

Executors take a sequence of (initial state, parameters) pairs and return
trajectories in the same order, whatever order the work actually ran in.
Both estimators dispatch through an executor; the quadrature estimator
does so only in batch mode.

Strategies
----------
- SequentialExecutor: one solve after another in the calling thread.
  Failure policy: fail-fast.
- ThreadPoolBatchExecutor: solves on a ``concurrent.futures`` thread
  pool. Failure policy: fail-fast (default) or per-element, where a failed
  element is returned as its IntegrationFailure instead of a Trajectory.
- EnsembleExecutor / GPUEnsembleExecutor (ensemble_executor.py): the
  whole batch as one vectorized solve. Failure policy: fail-fast (one
  failing member fails the batch).

The estimators require fail-fast and reject other policies through
``require_fail_fast``: an expectation over an incomplete set of samples
or nodes is not valid.

Cancellation
------------
``cancel()`` may be called from another thread while ``evaluate_many`` is
running. Pending work is dropped and EstimationCancelled is raised; no
partial results are returned. ``reset()`` re-arms the executor.
"""

import threading
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from odexpect.errors import ConfigurationError, EstimationCancelled, IntegrationFailure
from odexpect.integration.trajectory import Trajectory
from odexpect.types.core import ParameterVector, StateVector

if TYPE_CHECKING:
    from odexpect.integration.trajectory_evaluator import TrajectoryEvaluator

Pair = Tuple[StateVector, ParameterVector]
BatchOutcome = Union[Trajectory, IntegrationFailure]


class FailurePolicy(Enum):
    """
    How a batch reports a failing element.

    Attributes
    ----------
    FAIL_FAST : str
        The first failure aborts the whole batch and is raised
    PER_ELEMENT : str
        Failures are returned in place of the failed element's trajectory
    """

    FAIL_FAST = "fail_fast"
    PER_ELEMENT = "per_element"


class BatchExecutor(ABC):
    """
    Abstract base class for batch trajectory evaluation.

    All executors must implement:
    - evaluate_many(): order-matched evaluation of (x0, params) pairs
    - name: executor name for result metadata
    """

    failure_policy: FailurePolicy = FailurePolicy.FAIL_FAST

    def __init__(self):
        self._cancel_event = threading.Event()

    @abstractmethod
    def evaluate_many(
        self,
        evaluator: "TrajectoryEvaluator",
        pairs: Sequence[Pair],
    ) -> List[BatchOutcome]:
        """
        Evaluate one trajectory per pair.

        Parameters
        ----------
        evaluator : TrajectoryEvaluator
            Problem and solver to evaluate with
        pairs : Sequence[Tuple[np.ndarray, np.ndarray]]
            (initial state, parameters) pairs

        Returns
        -------
        List[Union[Trajectory, IntegrationFailure]]
            ``result[i]`` belongs to ``pairs[i]``. Only PER_ELEMENT
            executors ever return IntegrationFailure entries

        Raises
        ------
        IntegrationFailure
            FAIL_FAST executors, on the first failing element
        EstimationCancelled
            If ``cancel()`` was called
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    # ------------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------------

    def cancel(self):
        """Request cancellation of the batch in flight (thread-safe)."""
        self._cancel_event.set()

    def reset(self):
        """Clear a previous cancellation request."""
        self._cancel_event.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _check_cancelled(self):
        if self._cancel_event.is_set():
            raise EstimationCancelled(f"{self.name} was cancelled; partial results discarded")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(policy={self.failure_policy.value})"


class SequentialExecutor(BatchExecutor):
    """
    Evaluate pairs one by one in the calling thread.

    Examples
    --------
    >>> executor = SequentialExecutor()
    >>> trajs = executor.evaluate_many(evaluator, [(x0_a, p), (x0_b, p)])
    """

    def evaluate_many(
        self,
        evaluator: "TrajectoryEvaluator",
        pairs: Sequence[Pair],
    ) -> List[BatchOutcome]:
        trajectories = []
        for x0, params in pairs:
            self._check_cancelled()
            trajectories.append(evaluator.evaluate(x0, params))
        return trajectories

    @property
    def name(self) -> str:
        return "sequential"


class ThreadPoolBatchExecutor(BatchExecutor):
    """
    Evaluate pairs concurrently on a thread pool.

    Trajectory solves share only read-only inputs, so no locking is
    needed. Useful when the right-hand side releases the GIL (NumPy-heavy
    dynamics, compiled extensions).

    Parameters
    ----------
    max_workers : Optional[int]
        Pool size (default: ``concurrent.futures`` default)
    failure_policy : FailurePolicy
        FAIL_FAST (default) or PER_ELEMENT

    Examples
    --------
    >>> executor = ThreadPoolBatchExecutor(max_workers=8)
    >>> result = expectation(g, problem, spec, MonteCarlo(10_000), executor=executor)
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        failure_policy: FailurePolicy = FailurePolicy.FAIL_FAST,
    ):
        super().__init__()
        if max_workers is not None and max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers
        self.failure_policy = FailurePolicy(failure_policy)

    def _evaluate_one(self, evaluator: "TrajectoryEvaluator", pair: Pair) -> BatchOutcome:
        self._check_cancelled()
        x0, params = pair
        if self.failure_policy is FailurePolicy.PER_ELEMENT:
            try:
                return evaluator.evaluate(x0, params)
            except IntegrationFailure as failure:
                return failure
        return evaluator.evaluate(x0, params)

    def evaluate_many(
        self,
        evaluator: "TrajectoryEvaluator",
        pairs: Sequence[Pair],
    ) -> List[BatchOutcome]:
        self._check_cancelled()
        if len(pairs) == 0:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self._evaluate_one, evaluator, pair) for pair in pairs]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            if pending:
                # An element raised: drop everything not yet started
                for future in pending:
                    future.cancel()
                pool.shutdown(wait=True, cancel_futures=True)

            for future in futures:
                if future.done() and not future.cancelled() and future.exception() is not None:
                    raise future.exception()

        self._check_cancelled()
        return [future.result() for future in futures]

    @property
    def name(self) -> str:
        workers = "auto" if self.max_workers is None else self.max_workers
        return f"threads({workers})"


def require_fail_fast(executor: BatchExecutor) -> BatchExecutor:
    """
    Check that ``executor`` aborts on the first failure.

    Raises
    ------
    ConfigurationError
        If the executor reports failures per element
    """
    if executor.failure_policy is not FailurePolicy.FAIL_FAST:
        raise ConfigurationError(
            f"Expectation estimators require a fail-fast executor; "
            f"{executor.name} uses the '{executor.failure_policy.value}' policy"
        )
    return executor
