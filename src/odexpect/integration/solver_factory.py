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
Solver Factory - Creating Trajectory Solvers by Backend and Method

The scipy solver is always available. Torch and JAX solvers are imported
only when requested, so their libraries stay optional.

Examples
--------
>>> solver = SolverFactory.create()                          # scipy RK45
>>> solver = SolverFactory.create("numpy", method="LSODA")
>>> solver = SolverFactory.create("torch", device="cuda")    # dopri5 on GPU
>>> solver = SolverFactory.create("jax", method="tsit5")
"""

from typing import Dict, List, Optional

from odexpect.errors import ConfigurationError
from odexpect.integration.scipy_solver import ScipySolver
from odexpect.integration.solver_base import ODESolverBase
from odexpect.types import Backend


class SolverFactory:
    """
    Factory for creating trajectory solvers.

    Supports:
    - Scipy (numpy): RK45, RK23, DOP853, Radau, BDF, LSODA
    - TorchDiffEq (torch): dopri5, dopri8, bosh3, rk4, ...
    - Diffrax (jax): tsit5, dopri5, dopri8, bosh3, heun, kvaerno5
    """

    _BACKEND_DEFAULTS = {
        "numpy": "RK45",
        "torch": "dopri5",
        "jax": "tsit5",
    }

    @classmethod
    def create(
        cls,
        backend: Backend = "numpy",
        method: Optional[str] = None,
        **options,
    ) -> ODESolverBase:
        """
        Create a solver.

        Parameters
        ----------
        backend : Backend
            'numpy', 'torch' or 'jax'
        method : Optional[str]
            Backend-specific method name; the backend default if None
        **options
            Passed to the solver (rtol, atol, device, ...)

        Raises
        ------
        ConfigurationError
            If the backend is unknown
        """
        if backend not in cls._BACKEND_DEFAULTS:
            raise ConfigurationError(
                f"Invalid backend '{backend}'. Must be one of {list(cls._BACKEND_DEFAULTS)}"
            )
        method = method or cls._BACKEND_DEFAULTS[backend]

        if backend == "numpy":
            return ScipySolver(method=method, **options)
        if backend == "torch":
            return cls._create_torch_solver(method, **options)
        return cls._create_jax_solver(method, **options)

    @classmethod
    def _create_torch_solver(cls, method: str, **options) -> ODESolverBase:
        """Create PyTorch-based solver using TorchDiffEq."""
        from odexpect.integration.torchdiffeq_solver import TorchDiffEqSolver

        return TorchDiffEqSolver(method=method, **options)

    @classmethod
    def _create_jax_solver(cls, method: str, **options) -> ODESolverBase:
        """Create JAX-based solver using Diffrax."""
        from odexpect.integration.diffrax_solver import DiffraxSolver

        return DiffraxSolver(solver=method, **options)

    @staticmethod
    def list_backends() -> Dict[str, str]:
        """Default method per backend."""
        return dict(SolverFactory._BACKEND_DEFAULTS)

    @staticmethod
    def available_backends() -> List[str]:
        """Backends whose libraries can be imported in this environment."""
        import importlib.util

        available = ["numpy"]
        if importlib.util.find_spec("torch") and importlib.util.find_spec("torchdiffeq"):
            available.append("torch")
        if importlib.util.find_spec("jax") and importlib.util.find_spec("diffrax"):
            available.append("jax")
        return available
