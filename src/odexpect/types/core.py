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
Core Types - Basic Array and Vector Aliases

Semantic aliases shared by every odexpect module. They carry no runtime
behaviour; they document intent at function boundaries.

Shape Conventions
-----------------
- Single state: (nx,)
- Batched states: (batch, nx)
- Single parameter vector: (n_params,)
- Batched parameters: (batch, n_params)
- Quadrature nodes: (npoints, d), d = number of random dimensions
"""

from typing import TYPE_CHECKING, Tuple, Union

import numpy as np

if TYPE_CHECKING:
    import jax.numpy as jnp
    import torch

# ============================================================================
# Basic Arrays
# ============================================================================

ArrayLike = Union[np.ndarray, "torch.Tensor", "jnp.ndarray"]
"""
Array-like type supporting multiple backends.

Solvers running on the torch or jax backend hand their native array type
to the right-hand side function; everything returned to the caller is NumPy.
"""

NumpyArray = np.ndarray

ScalarLike = Union[float, int, np.floating, np.integer]
"""Plain numeric scalar (Python or NumPy)."""

# ============================================================================
# Vectors
# ============================================================================

StateVector = ArrayLike
"""State vector x, shape (nx,) or (batch, nx)."""

ParameterVector = ArrayLike
"""Parameter vector p, shape (n_params,) or (batch, n_params)."""

ObservableVector = np.ndarray
"""Observable value g(trajectory), shape (nout,)."""

NodeArray = np.ndarray
"""Quadrature nodes or samples in the random subspace, shape (npoints, d)."""

# ============================================================================
# Time
# ============================================================================

TimeSpan = Tuple[float, float]
"""Integration interval (t_start, t_end)."""

TimePoints = np.ndarray
"""Monotonic time grid at which a trajectory is saved, shape (T,)."""
