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
Unit tests for distribution entries and DistributionSpec

Tests cover:
1. PointMass, ScipyDistribution and Truncated entries
2. Entry conversion (numbers, scipy frozen distributions)
3. Binding a spec to a problem (nominal values, dimension checks)
4. Random subspace structure: dim, bounds, density, split, clip
5. Sampling (i.i.d. and unit-cube mapping)
"""

import numpy as np
import pytest
from scipy import stats
from scipy.integrate import trapezoid

from odexpect.distributions import (
    Distribution,
    DistributionSpec,
    PointMass,
    ScipyDistribution,
    Truncated,
    as_distribution,
    truncated,
)
from odexpect.errors import ConfigurationError
from odexpect.problem import ODEProblem

# ============================================================================
# Mock Systems
# ============================================================================


def linear_decay(t, x, p):
    """dx/dt = p*x"""
    return p[..., 0:1] * x


def two_state_system(t, x, p):
    """dx/dt = [-a*x1, -b*x2]"""
    return -p * x


class NoQuantileDistribution(Distribution):
    """Distribution without cdf or quantile"""

    def sample(self, rng, size):
        return rng.uniform(0.0, 1.0, size)

    def density(self, x):
        x = np.asarray(x, dtype=float)
        return np.where((x >= 0.0) & (x <= 1.0), 1.0, 0.0)

    def support_bounds(self):
        return (0.0, 1.0)


@pytest.fixture
def decay_problem():
    return ODEProblem(linear_decay, x0=[1.0], t_span=(0.0, 4.0), params=[-0.3])


@pytest.fixture
def two_state_problem():
    return ODEProblem(two_state_system, x0=[1.0, 2.0], t_span=(0.0, 1.0), params=[0.5, 1.5])


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


# ============================================================================
# Test Class 1: Distribution Entries
# ============================================================================


class TestPointMass:
    """Test the degenerate constant distribution"""

    def test_sample_is_constant(self, rng):
        dist = PointMass(3.5)
        np.testing.assert_array_equal(dist.sample(rng, 4), [3.5, 3.5, 3.5, 3.5])

    def test_support_is_a_single_point(self):
        dist = PointMass(-1.0)
        assert dist.support_bounds() == (-1.0, -1.0)
        assert dist.is_point_mass
        assert dist.is_bounded

    def test_quantile_and_cdf(self):
        dist = PointMass(2.0)
        np.testing.assert_array_equal(dist.quantile(np.array([0.1, 0.9])), [2.0, 2.0])
        np.testing.assert_array_equal(dist.cdf(np.array([1.0, 2.0, 3.0])), [0.0, 1.0, 1.0])

    def test_non_finite_value_rejected(self):
        with pytest.raises(ConfigurationError, match="finite"):
            PointMass(np.inf)


class TestScipyDistribution:
    """Test the wrapper around frozen scipy.stats distributions"""

    def test_uniform_support(self):
        dist = ScipyDistribution(stats.uniform(0, 10))
        assert dist.support_bounds() == (0.0, 10.0)
        assert dist.is_bounded
        assert not dist.is_point_mass

    def test_normal_is_unbounded(self):
        dist = ScipyDistribution(stats.norm(0, 1))
        lower, upper = dist.support_bounds()
        assert np.isneginf(lower) and np.isposinf(upper)
        assert not dist.is_bounded

    def test_density_matches_scipy(self):
        frozen = stats.norm(2.0, 0.5)
        dist = ScipyDistribution(frozen)
        x = np.linspace(0, 4, 7)
        np.testing.assert_allclose(dist.density(x), frozen.pdf(x))

    def test_sampling_is_reproducible(self):
        dist = ScipyDistribution(stats.uniform(-10, 20))
        a = dist.sample(np.random.default_rng(7), 100)
        b = dist.sample(np.random.default_rng(7), 100)
        np.testing.assert_array_equal(a, b)
        assert a.shape == (100,)
        assert np.all((a >= -10) & (a <= 10))

    def test_discrete_distribution_rejected(self):
        with pytest.raises(ConfigurationError):
            ScipyDistribution(stats.poisson(3.0))


class TestTruncated:
    """Test cdf-based truncation"""

    def test_bounds_intersect_base_support(self):
        dist = truncated(stats.expon(), -5.0, 3.0)
        assert dist.support_bounds() == (0.0, 3.0)

    def test_density_integrates_to_one(self):
        dist = truncated(stats.norm(2.0, 1.0), -2.0, 6.0)
        x = np.linspace(-2.0, 6.0, 20001)
        assert trapezoid(dist.density(x), x) == pytest.approx(1.0, rel=1e-6)

    def test_density_zero_outside(self):
        dist = truncated(stats.norm(0.0, 1.0), -1.0, 1.0)
        np.testing.assert_array_equal(dist.density(np.array([-2.0, 1.5])), [0.0, 0.0])

    def test_samples_inside_bounds(self, rng):
        dist = truncated(stats.norm(0.0, 1.0), 0.5, 1.0)
        samples = dist.sample(rng, 500)
        assert np.all((samples >= 0.5) & (samples <= 1.0))

    def test_matches_scipy_truncnorm(self):
        dist = truncated(stats.norm(2.0, 1.0), -2.0, 6.0)
        reference = stats.truncnorm(-4.0, 4.0, loc=2.0, scale=1.0)
        x = np.linspace(-1.5, 5.5, 9)
        np.testing.assert_allclose(dist.density(x), reference.pdf(x), rtol=1e-10)
        np.testing.assert_allclose(dist.cdf(x), reference.cdf(x), rtol=1e-10, atol=1e-14)

    def test_empty_interval_rejected(self):
        with pytest.raises(ConfigurationError, match="does not intersect"):
            Truncated(stats.uniform(0, 1), 2.0, 3.0)

    def test_point_mass_rejected(self):
        with pytest.raises(ConfigurationError):
            truncated(1.0, 0.0, 2.0)

    def test_base_without_cdf_rejected(self):
        with pytest.raises(ConfigurationError, match="Cannot truncate"):
            truncated(NoQuantileDistribution(), 0.2, 0.8)


class TestAsDistribution:
    """Test conversion of spec entries"""

    def test_number_becomes_point_mass(self):
        dist = as_distribution(4)
        assert isinstance(dist, PointMass)
        assert dist.value == 4.0

    def test_numpy_scalar_becomes_point_mass(self):
        assert isinstance(as_distribution(np.float64(0.5)), PointMass)

    def test_frozen_scipy_is_wrapped(self):
        assert isinstance(as_distribution(stats.uniform(0, 1)), ScipyDistribution)

    def test_distribution_passes_through(self):
        dist = PointMass(1.0)
        assert as_distribution(dist) is dist

    @pytest.mark.parametrize("entry", ["1.0", None, True])
    def test_unsupported_entries_rejected(self, entry):
        with pytest.raises(ConfigurationError, match="Unsupported"):
            as_distribution(entry)


# ============================================================================
# Test Class 2: Binding
# ============================================================================


class TestSpecBinding:
    """Test filling unspecified entries from the problem"""

    def test_unbound_spec(self):
        spec = DistributionSpec(x0=[stats.uniform(0, 10)])
        assert not spec.is_bound
        with pytest.raises(ConfigurationError, match="bind"):
            spec.split(np.array([1.0]))

    def test_params_taken_from_problem(self, decay_problem):
        spec = DistributionSpec(x0=[stats.uniform(0, 10)]).bind(decay_problem)
        assert spec.is_bound
        assert spec.nx == 1
        assert spec.n_params == 1
        assert isinstance(spec.entries[1], PointMass)
        assert spec.entries[1].value == -0.3

    def test_empty_spec_is_fully_constant(self, decay_problem):
        spec = DistributionSpec().bind(decay_problem)
        assert spec.dim == 0

    def test_scalar_entry_accepted(self, decay_problem):
        spec = DistributionSpec(x0=stats.uniform(0, 1)).bind(decay_problem)
        assert spec.dim == 1

    def test_state_count_mismatch(self, decay_problem):
        spec = DistributionSpec(x0=[1.0, 2.0])
        with pytest.raises(ConfigurationError, match="nx=1"):
            spec.bind(decay_problem)

    def test_param_count_mismatch(self, decay_problem):
        spec = DistributionSpec(params=[1.0, 2.0])
        with pytest.raises(ConfigurationError, match="n_params=1"):
            spec.bind(decay_problem)

    def test_binding_does_not_mutate(self, decay_problem):
        spec = DistributionSpec(x0=[stats.uniform(0, 10)])
        spec.bind(decay_problem)
        assert not spec.is_bound


# ============================================================================
# Test Class 3: Random Subspace
# ============================================================================


class TestRandomSubspace:
    """Test dim, bounds, density, split and clip"""

    @pytest.fixture
    def mixed_spec(self, two_state_problem):
        return DistributionSpec(
            x0=[stats.uniform(0, 2), 5.0],
            params=[0.5, truncated(stats.norm(1.0, 0.2), 0.5, 1.5)],
        ).bind(two_state_problem)

    def test_dim_counts_random_entries(self, mixed_spec):
        assert mixed_spec.dim == 2
        np.testing.assert_array_equal(mixed_spec.random_indices, [0, 3])

    def test_bounds(self, mixed_spec):
        lower, upper = mixed_spec.bounds()
        np.testing.assert_array_equal(lower, [0.0, 0.5])
        np.testing.assert_array_equal(upper, [2.0, 1.5])
        assert mixed_spec.is_bounded

    def test_unbounded_detected(self, decay_problem):
        spec = DistributionSpec(x0=[stats.norm(0, 1)]).bind(decay_problem)
        assert not spec.is_bounded

    def test_split_fills_constants(self, mixed_spec):
        x0, params = mixed_spec.split(np.array([1.5, 0.9]))
        np.testing.assert_array_equal(x0, [1.5, 5.0])
        np.testing.assert_array_equal(params, [0.5, 0.9])

    def test_split_batch(self, mixed_spec):
        z = np.array([[0.1, 0.6], [1.9, 1.4], [1.0, 1.0]])
        x0, params = mixed_spec.split(z)
        assert x0.shape == (3, 2)
        assert params.shape == (3, 2)
        np.testing.assert_array_equal(x0[:, 1], [5.0, 5.0, 5.0])
        np.testing.assert_array_equal(params[:, 1], z[:, 1])

    def test_split_wrong_dimension(self, mixed_spec):
        with pytest.raises(ConfigurationError, match="dimension 2"):
            mixed_spec.split(np.zeros((4, 3)))

    def test_density_is_product(self, mixed_spec):
        z = np.array([[1.0, 1.0], [0.5, 0.7]])
        normal = truncated(stats.norm(1.0, 0.2), 0.5, 1.5)
        expected = 0.5 * normal.density(z[:, 1])
        np.testing.assert_allclose(mixed_spec.density(z), expected)

    def test_density_single_point_is_scalar(self, mixed_spec):
        assert isinstance(mixed_spec.density(np.array([1.0, 1.0])), float)

    def test_clip_into_support(self, mixed_spec):
        clipped = mixed_spec.clip(np.array([[-1.0, 2.0], [1.0, 1.0]]))
        np.testing.assert_array_equal(clipped, [[0.0, 1.5], [1.0, 1.0]])


# ============================================================================
# Test Class 4: Sampling
# ============================================================================


class TestSpecSampling:
    """Test i.i.d. sampling and unit-cube mapping"""

    def test_sample_shapes(self, two_state_problem, rng):
        spec = DistributionSpec(x0=[stats.uniform(0, 1), stats.uniform(1, 1)]).bind(
            two_state_problem
        )
        x0, params = spec.sample(50, rng)
        assert x0.shape == (50, 2)
        assert params.shape == (50, 2)
        np.testing.assert_array_equal(params, np.tile([0.5, 1.5], (50, 1)))
        assert np.all((x0[:, 1] >= 1.0) & (x0[:, 1] <= 2.0))

    def test_constant_spec_samples(self, decay_problem, rng):
        spec = DistributionSpec().bind(decay_problem)
        assert spec.sample_random(5, rng).shape == (5, 0)
        x0, params = spec.sample(5, rng)
        np.testing.assert_array_equal(x0, np.ones((5, 1)))

    def test_from_unit_cube_uses_quantiles(self, decay_problem):
        spec = DistributionSpec(x0=[stats.uniform(0, 10)]).bind(decay_problem)
        z = spec.from_unit_cube(np.array([[0.0], [0.25], [1.0]]))
        np.testing.assert_allclose(z[:, 0], [0.0, 2.5, 10.0])

    def test_from_unit_cube_without_quantile(self, decay_problem):
        spec = DistributionSpec(x0=[NoQuantileDistribution()]).bind(decay_problem)
        with pytest.raises(ConfigurationError, match="quantile"):
            spec.from_unit_cube(np.array([[0.5]]))
