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
Unit tests for ObservableWrapper and PowerObservable
"""

import numpy as np
import pytest

from odexpect.errors import ConfigurationError
from odexpect.estimators.observable import ObservableWrapper, PowerObservable
from odexpect.integration.trajectory import Trajectory
from odexpect.utils.accumulators import EvaluationCounter


@pytest.fixture
def trajectory():
    """x(t) = [2 + t, -t] saved on t = 0..2"""
    t = np.array([0.0, 1.0, 2.0])
    return Trajectory(t=t, x=np.column_stack([2.0 + t, -t]), x0=[2.0, 0.0], params=[])


class TestObservableWrapper:
    """nout contract and counting"""

    def test_scalar_observable(self, trajectory):
        wrapper = ObservableWrapper(lambda traj: traj(2.0)[0], nout=1)
        value = wrapper(trajectory)
        assert value.shape == (1,)
        assert value[0] == pytest.approx(4.0)

    def test_vector_observable(self, trajectory):
        wrapper = ObservableWrapper(lambda traj: traj(1.0), nout=2)
        np.testing.assert_allclose(wrapper(trajectory), [3.0, -1.0])

    def test_list_output_accepted(self, trajectory):
        wrapper = ObservableWrapper(lambda traj: [1, 2, 3], nout=3)
        np.testing.assert_array_equal(wrapper(trajectory), [1.0, 2.0, 3.0])

    def test_length_mismatch(self, trajectory):
        wrapper = ObservableWrapper(lambda traj: traj(1.0), nout=1)
        with pytest.raises(ConfigurationError, match="returned 2 values, declared nout=1"):
            wrapper(trajectory)

    @pytest.mark.parametrize("nout", [0, -1, 1.5, True])
    def test_invalid_nout(self, nout):
        with pytest.raises(ConfigurationError, match="nout"):
            ObservableWrapper(lambda traj: 0.0, nout=nout)

    def test_not_callable(self):
        with pytest.raises(ConfigurationError, match="callable"):
            ObservableWrapper(3.0, nout=1)

    def test_counter(self, trajectory):
        counter = EvaluationCounter()
        wrapper = ObservableWrapper(lambda traj: traj(0.0)[1], nout=1, counter=counter)
        values = wrapper.evaluate_many([trajectory] * 4)
        assert values.shape == (4, 1)
        assert counter.observable_calls == 4


class TestPowerObservable:
    """Augmented observable for raw moments"""

    def test_scalar_powers(self, trajectory):
        power = PowerObservable(lambda traj: traj(1.0)[0], order=4)
        assert power.nout == 4
        np.testing.assert_allclose(power(trajectory), [3.0, 9.0, 27.0, 81.0])

    def test_vector_powers_grouped_by_order(self, trajectory):
        power = PowerObservable(lambda traj: traj(1.0), order=3, nbase=2)
        assert power.nout == 6
        np.testing.assert_allclose(power(trajectory), [3.0, -1.0, 9.0, 1.0, 27.0, -1.0])

    def test_base_length_mismatch(self, trajectory):
        power = PowerObservable(lambda traj: traj(1.0), order=2, nbase=1)
        with pytest.raises(ConfigurationError, match="nbase=1"):
            power(trajectory)

    def test_invalid_order(self):
        with pytest.raises(ConfigurationError, match="order"):
            PowerObservable(lambda traj: 0.0, order=0)
