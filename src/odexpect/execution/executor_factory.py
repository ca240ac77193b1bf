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
Executor Factory - Choosing a Batch Execution Strategy

Examples
--------
>>> executor = create_executor()                      # sequential
>>> executor = create_executor("threads", max_workers=8)
>>> executor = create_executor("ensemble")            # stacked NumPy solve
>>> executor = create_executor("gpu", device="cuda:0")
"""

from typing import Literal

from odexpect.errors import ConfigurationError
from odexpect.execution.batch_executor import (
    BatchExecutor,
    SequentialExecutor,
    ThreadPoolBatchExecutor,
)
from odexpect.execution.ensemble_executor import EnsembleExecutor, GPUEnsembleExecutor

ExecutorKind = Literal["sequential", "threads", "ensemble", "gpu"]
"""
Batch execution strategy.

- 'sequential': one solve at a time, calling thread
- 'threads': concurrent solves on a thread pool
- 'ensemble': one vectorized solve per batch (CPU arrays)
- 'gpu': one vectorized solve per batch on a CUDA device (torch)
"""

_EXECUTORS = {
    "sequential": SequentialExecutor,
    "threads": ThreadPoolBatchExecutor,
    "ensemble": EnsembleExecutor,
    "gpu": GPUEnsembleExecutor,
}


def create_executor(kind: ExecutorKind = "sequential", **options) -> BatchExecutor:
    """
    Create a batch executor.

    Parameters
    ----------
    kind : ExecutorKind
        Strategy name
    **options
        Passed to the executor constructor

    Raises
    ------
    ConfigurationError
        If ``kind`` is unknown
    """
    if kind not in _EXECUTORS:
        raise ConfigurationError(
            f"Unknown executor '{kind}'. Choose from: {sorted(_EXECUTORS)}"
        )
    return _EXECUTORS[kind](**options)
