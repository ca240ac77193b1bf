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
Unit tests for TorchDiffEqSolver

Skipped when torch or torchdiffeq is not installed.
"""

import numpy as np
import pytest

torch = pytest.importorskip("torch")
pytest.importorskip("torchdiffeq")

from odexpect.errors import ConfigurationError  # noqa: E402
from odexpect.integration.torchdiffeq_solver import TorchDiffEqSolver  # noqa: E402
from odexpect.problem import ODEProblem  # noqa: E402


def linear_decay(t, x, p):
    """dx/dt = p*x, works for numpy arrays and torch tensors"""
    return p[..., 0:1] * x


@pytest.fixture
def decay_problem():
    return ODEProblem(linear_decay, x0=[1.0], t_span=(0.0, 4.0), params=[-0.3])


class TestTorchDiffEqSolver:
    """Test the torch ensemble solver on CPU"""

    def test_configuration(self):
        solver = TorchDiffEqSolver()
        assert solver.backend == "torch"
        assert solver.method == "dopri5"
        assert solver.dtype == torch.float64
        assert solver.supports_ensemble

    def test_invalid_method(self):
        with pytest.raises(ConfigurationError, match="Invalid method"):
            TorchDiffEqSolver(method="RK45")

    def test_single_solve(self, decay_problem):
        solver = TorchDiffEqSolver(rtol=1e-8, atol=1e-10)
        traj = solver.solve(decay_problem, np.array([5.0]), np.array([-0.3]))
        assert traj.t.shape == (101,)
        assert traj(4.0)[0] == pytest.approx(5.0 * np.exp(-1.2), rel=1e-6)

    def test_ensemble(self, decay_problem):
        solver = TorchDiffEqSolver(rtol=1e-8, atol=1e-10)
        x0_batch = np.array([[1.0], [2.0], [4.0]])
        params_batch = np.array([[-0.3], [-0.1], [0.1]])
        trajs = solver.solve_ensemble(decay_problem, x0_batch, params_batch)
        finals = np.array([traj[-1][0] for traj in trajs])
        np.testing.assert_allclose(
            finals, x0_batch[:, 0] * np.exp(4.0 * params_batch[:, 0]), rtol=1e-6
        )

    def test_t_eval_without_start_point(self):
        problem = ODEProblem(
            linear_decay, x0=[1.0], t_span=(0.0, 4.0), params=[-0.3], t_eval=[1.0, 2.0, 4.0]
        )
        traj = TorchDiffEqSolver().solve(problem, np.array([1.0]), np.array([-0.3]))
        np.testing.assert_allclose(traj.t, [1.0, 2.0, 4.0])
        np.testing.assert_allclose(traj.x[:, 0], np.exp(-0.3 * traj.t), rtol=1e-5)

    def test_t_eval_short_of_span_end(self):
        problem = ODEProblem(
            linear_decay, x0=[1.0], t_span=(0.0, 4.0), params=[-0.3], t_eval=[0.0, 1.0, 2.0]
        )
        traj = TorchDiffEqSolver(rtol=1e-8, atol=1e-10).solve(
            problem, np.array([1.0]), np.array([-0.3])
        )
        np.testing.assert_allclose(traj.t, [0.0, 1.0, 2.0, 4.0])
        assert traj(4.0)[0] == pytest.approx(np.exp(-1.2), rel=1e-6)
        with pytest.raises(ConfigurationError, match="outside the saved grid"):
            traj(5.0)
