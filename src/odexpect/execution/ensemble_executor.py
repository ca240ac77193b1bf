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
Ensemble Executors - Vectorized and GPU Batch Evaluation

Instead of solving pairs one at a time, an ensemble executor stacks the
whole batch and hands it to an ensemble-capable solver in one call:

- EnsembleExecutor: vectorized-array evaluation. With the default scipy
  solver the batch becomes one stacked NumPy state vector.
- GPUEnsembleExecutor: the same on an accelerator, backed by a torch
  solver on a CUDA device.

Failure policy: fail-fast. Members share one adaptive solve, so a member
that fails takes the batch down with it.

The problem's right-hand side must broadcast over a leading batch axis
(see ODEProblem).
"""

from typing import TYPE_CHECKING, List, Optional, Sequence

import numpy as np

from odexpect.errors import ConfigurationError
from odexpect.execution.batch_executor import BatchExecutor, BatchOutcome, FailurePolicy, Pair
from odexpect.integration.solver_base import ODESolverBase

if TYPE_CHECKING:
    from odexpect.integration.trajectory_evaluator import TrajectoryEvaluator


class EnsembleExecutor(BatchExecutor):
    """
    Evaluate a batch as one vectorized ensemble solve.

    Parameters
    ----------
    solver : Optional[ODESolverBase]
        Ensemble-capable solver. If None the evaluator's own solver is used
    max_ensemble_size : Optional[int]
        Split larger batches into ensembles of at most this many members

    Raises
    ------
    ConfigurationError
        If ``solver`` cannot solve ensembles

    Examples
    --------
    >>> executor = EnsembleExecutor()
    >>> result = expectation(
    ...     g, problem, spec, Koopman(batch_size=64), executor=executor
    ... )
    """

    failure_policy = FailurePolicy.FAIL_FAST

    def __init__(
        self,
        solver: Optional[ODESolverBase] = None,
        max_ensemble_size: Optional[int] = None,
    ):
        super().__init__()
        if solver is not None and not solver.supports_ensemble:
            raise ConfigurationError(f"{solver.name} cannot solve ensembles")
        if max_ensemble_size is not None and max_ensemble_size < 1:
            raise ConfigurationError(
                f"max_ensemble_size must be >= 1, got {max_ensemble_size}"
            )
        self.solver = solver
        self.max_ensemble_size = max_ensemble_size

    def evaluate_many(
        self,
        evaluator: "TrajectoryEvaluator",
        pairs: Sequence[Pair],
    ) -> List[BatchOutcome]:
        self._check_cancelled()
        if len(pairs) == 0:
            return []

        x0_batch = np.stack([np.asarray(x0, dtype=float) for x0, _ in pairs])
        params_batch = np.stack([np.asarray(p, dtype=float) for _, p in pairs])

        chunk = self.max_ensemble_size or len(pairs)
        trajectories = []
        for start in range(0, len(pairs), chunk):
            self._check_cancelled()
            trajectories.extend(
                evaluator.evaluate_ensemble(
                    x0_batch[start : start + chunk],
                    params_batch[start : start + chunk],
                    solver=self.solver,
                )
            )
        return trajectories

    @property
    def name(self) -> str:
        solver = "evaluator solver" if self.solver is None else self.solver.name
        return f"ensemble[{solver}]"


class GPUEnsembleExecutor(EnsembleExecutor):
    """
    Ensemble evaluation on a GPU through torchdiffeq.

    Parameters
    ----------
    device : str
        CUDA device (default: 'cuda')
    method : str
        torchdiffeq method (default: 'dopri5')
    **options
        Passed to TorchDiffEqSolver (rtol, atol, n_save, ...)

    Raises
    ------
    ImportError
        If torch or torchdiffeq is not installed
    RuntimeError
        If the requested CUDA device is not available

    Examples
    --------
    >>> executor = GPUEnsembleExecutor(device="cuda:0")
    >>> result = expectation(g, problem, spec, MonteCarlo(100_000), executor=executor)
    """

    def __init__(
        self,
        device: str = "cuda",
        method: str = "dopri5",
        max_ensemble_size: Optional[int] = None,
        **options,
    ):
        try:
            import torch

            from odexpect.integration.torchdiffeq_solver import TorchDiffEqSolver
        except ImportError:
            raise ImportError(
                "torch and torchdiffeq are required for GPUEnsembleExecutor. "
                "Install with: pip install odexpect[torch]"
            )

        if str(device).startswith("cuda") and not torch.cuda.is_available():
            raise RuntimeError(f"CUDA device '{device}' requested but CUDA is not available")

        super().__init__(
            solver=TorchDiffEqSolver(method=method, device=device, **options),
            max_ensemble_size=max_ensemble_size,
        )
        self.device = device

    @property
    def name(self) -> str:
        return f"gpu[{self.solver.name}]"
