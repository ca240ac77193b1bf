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
Types Module - Type Definitions for odexpect

Central import point for the semantic aliases and result TypedDicts.

Module Organization
------------------
- core: Arrays, vectors, time
- results: QuadratureResult, ExpectationResult, MomentResult
"""

from typing import Literal

from .core import (
    ArrayLike,
    NodeArray,
    NumpyArray,
    ObservableVector,
    ParameterVector,
    ScalarLike,
    StateVector,
    TimePoints,
    TimeSpan,
)
from .results import ExpectationResult, MomentResult, QuadratureResult

Backend = Literal["numpy", "torch", "jax"]
"""
Array backend a solver hands to the right-hand side function.

- 'numpy': scipy solvers (CPU)
- 'torch': torchdiffeq solvers (CPU or CUDA)
- 'jax': diffrax solvers (CPU, GPU, TPU)
"""

__all__ = [
    "ArrayLike",
    "Backend",
    "ExpectationResult",
    "MomentResult",
    "NodeArray",
    "NumpyArray",
    "ObservableVector",
    "ParameterVector",
    "QuadratureResult",
    "ScalarLike",
    "StateVector",
    "TimePoints",
    "TimeSpan",
]
