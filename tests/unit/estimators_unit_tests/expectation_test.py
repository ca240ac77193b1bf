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
Unit tests for the expectation entry point

Tests cover:
1. Linear decay scenarios for both estimators
2. Vector observable equivalence with separate scalar calls
3. Input validation and executor policy
4. Cancellation and failure propagation
5. Instrumentation through EvaluationCounter
6. Result metadata
"""

import numpy as np
import pytest
from scipy import stats

from odexpect import (
    ConfigurationError,
    DistributionSpec,
    EstimationCancelled,
    EvaluationCounter,
    FailurePolicy,
    IntegrationFailure,
    Koopman,
    MonteCarlo,
    ODEProblem,
    ScipySolver,
    SequentialExecutor,
    ThreadPoolBatchExecutor,
    expectation,
)

# ============================================================================
# Mock Systems
# ============================================================================


def linear_decay(t, x, p):
    """u' = p*u"""
    return p[..., 0:1] * x


def final_state(traj):
    return traj(4.0)[0]


def final_square(traj):
    return traj(4.0)[0] ** 2


DECAY = np.exp(-1.2)


@pytest.fixture
def decay_problem():
    return ODEProblem(linear_decay, x0=[1.0], t_span=(0.0, 4.0), params=[-0.3])


@pytest.fixture
def precise_solver():
    return ScipySolver(method="DOP853", rtol=1e-10, atol=1e-12)


@pytest.fixture
def uniform_spec():
    return DistributionSpec(x0=[stats.uniform(0, 10)])


# ============================================================================
# Test Class 1: Linear Decay Scenarios
# ============================================================================


class TestLinearDecayScenarios:
    """E[u(4)] = exp(-1.2) E[u0]"""

    def test_symmetric_uniform_koopman(self, decay_problem):
        spec = DistributionSpec(x0=[stats.uniform(-10, 20)])
        result = expectation(final_state, decay_problem, spec, Koopman())
        assert abs(result["expectation"]) <= 1e-2
        assert result["reliable"]

    def test_symmetric_uniform_monte_carlo(self, decay_problem):
        spec = DistributionSpec(x0=[stats.uniform(-10, 20)])
        result = expectation(final_state, decay_problem, spec, MonteCarlo(2000, seed=5))
        assert abs(result["expectation"]) <= 4 * result["error"]

    def test_shifted_uniform_koopman(self, decay_problem, uniform_spec):
        result = expectation(final_state, decay_problem, uniform_spec, Koopman())
        assert result["expectation"] == pytest.approx(DECAY * 5.0, abs=2e-2)
        assert result["expectation"] == pytest.approx(1.506, abs=2e-2)

    def test_shifted_uniform_monte_carlo(self, decay_problem, uniform_spec):
        result = expectation(final_state, decay_problem, uniform_spec, MonteCarlo(2000, seed=5))
        assert result["expectation"] == pytest.approx(DECAY * 5.0, abs=4 * result["error"])

    def test_tighter_tolerance_is_closer(self, decay_problem, uniform_spec, precise_solver):
        loose = expectation(
            final_state, decay_problem, uniform_spec, Koopman(rtol=1e-2, atol=1e-2)
        )
        tight = expectation(
            final_state,
            decay_problem,
            uniform_spec,
            Koopman(rtol=1e-8, atol=1e-10),
            solver=precise_solver,
        )
        assert tight["expectation"] == pytest.approx(DECAY * 5.0, rel=1e-7)
        assert abs(tight["expectation"] - DECAY * 5.0) <= abs(loose["expectation"] - DECAY * 5.0)

    def test_uncertain_rate(self, decay_problem, precise_solver):
        # E[exp(4p)] for p ~ U(-0.5, -0.1)
        spec = DistributionSpec(params=[stats.uniform(-0.5, 0.4)])
        result = expectation(
            final_state,
            decay_problem,
            spec,
            Koopman(rtol=1e-8, atol=1e-10),
            solver=precise_solver,
        )
        exact = (np.exp(-0.4) - np.exp(-2.0)) / (4 * 0.4)
        assert result["expectation"] == pytest.approx(exact, rel=1e-7)

    def test_koopman_is_repeatable(self, decay_problem, uniform_spec):
        first = expectation(final_state, decay_problem, uniform_spec, Koopman())
        second = expectation(final_state, decay_problem, uniform_spec, Koopman())
        assert first["expectation"] == second["expectation"]
        assert first["n_trajectories"] == second["n_trajectories"]

    def test_spec_none_is_deterministic(self, decay_problem):
        result = expectation(final_state, decay_problem, None, MonteCarlo(3, seed=0))
        assert result["expectation"] == pytest.approx(DECAY, rel=1e-3)


# ============================================================================
# Test Class 2: Vector Observables
# ============================================================================


class TestVectorObservable:
    """One call with [f1, f2] versus two scalar calls"""

    @staticmethod
    def both(traj):
        u = traj(4.0)[0]
        return [u, u**2]

    def test_monte_carlo_same_seed(self, decay_problem, uniform_spec):
        c1, c2, cv = EvaluationCounter(), EvaluationCounter(), EvaluationCounter()
        r1 = expectation(
            final_state, decay_problem, uniform_spec, MonteCarlo(200, seed=8), counter=c1
        )
        r2 = expectation(
            final_square, decay_problem, uniform_spec, MonteCarlo(200, seed=8), counter=c2
        )
        rv = expectation(
            self.both, decay_problem, uniform_spec, MonteCarlo(200, seed=8), nout=2, counter=cv
        )
        np.testing.assert_allclose(rv["expectation"], [r1["expectation"], r2["expectation"]])
        assert cv.trajectories == max(c1.trajectories, c2.trajectories) == 200

    def test_koopman_count_not_sum(self, decay_problem, uniform_spec, precise_solver):
        estimator = Koopman(rtol=1e-6, atol=1e-8, quadrature="gauss_legendre")
        counts = []
        scalars = []
        for g in (final_state, final_square):
            counter = EvaluationCounter()
            res = expectation(
                g, decay_problem, uniform_spec, estimator, solver=precise_solver, counter=counter
            )
            counts.append(counter.trajectories)
            scalars.append(res["expectation"])

        counter = EvaluationCounter()
        vector = expectation(
            self.both,
            decay_problem,
            uniform_spec,
            estimator,
            nout=2,
            solver=precise_solver,
            counter=counter,
        )
        assert counter.trajectories <= max(counts)
        np.testing.assert_allclose(vector["expectation"], scalars, rtol=1e-6)
        np.testing.assert_allclose(
            vector["expectation"], [DECAY * 5.0, DECAY**2 * 100.0 / 3.0], rtol=1e-6
        )

    def test_vector_result_shapes(self, decay_problem, uniform_spec):
        result = expectation(self.both, decay_problem, uniform_spec, Koopman(), nout=2)
        assert result["expectation"].shape == (2,)
        assert np.shape(result["error"]) == (2,) or np.isscalar(result["error"])
        assert result["nout"] == 2


# ============================================================================
# Test Class 3: Validation
# ============================================================================


class TestValidation:
    """Configuration errors abort before any solve"""

    def test_unknown_estimator(self, decay_problem, uniform_spec):
        with pytest.raises(ConfigurationError, match="Unknown estimator"):
            expectation(final_state, decay_problem, uniform_spec, "koopman")

    def test_spec_must_be_distribution_spec(self, decay_problem):
        with pytest.raises(ConfigurationError, match="DistributionSpec"):
            expectation(final_state, decay_problem, {"x0": [1.0]}, MonteCarlo(5))

    def test_nout_mismatch(self, decay_problem, uniform_spec):
        with pytest.raises(ConfigurationError, match="declared nout=3"):
            expectation(final_state, decay_problem, uniform_spec, MonteCarlo(5), nout=3)

    @pytest.mark.parametrize("nout", [0, -1])
    def test_bad_nout(self, decay_problem, uniform_spec, nout):
        with pytest.raises(ConfigurationError, match="nout"):
            expectation(final_state, decay_problem, uniform_spec, MonteCarlo(5), nout=nout)

    def test_per_element_executor_rejected(self, decay_problem, uniform_spec):
        counter = EvaluationCounter()
        executor = ThreadPoolBatchExecutor(2, failure_policy=FailurePolicy.PER_ELEMENT)
        with pytest.raises(ConfigurationError, match="fail-fast"):
            expectation(
                final_state,
                decay_problem,
                uniform_spec,
                MonteCarlo(5),
                executor=executor,
                counter=counter,
            )
        assert counter.trajectories == 0

    def test_spec_length_mismatch(self, decay_problem):
        spec = DistributionSpec(x0=[stats.uniform(0, 1), stats.uniform(0, 1)])
        with pytest.raises(ConfigurationError):
            expectation(final_state, decay_problem, spec, MonteCarlo(5))


# ============================================================================
# Test Class 4: Failures and Cancellation
# ============================================================================


class TestFailurePropagation:
    """Fail-fast: no partial results"""

    def test_integration_failure_propagates(self):
        def blowup(t, x, p):
            return x**2

        problem = ODEProblem(blowup, x0=[1.0], t_span=(0.0, 4.0))
        spec = DistributionSpec(x0=[stats.uniform(1.0, 1.0)])
        with pytest.raises(IntegrationFailure):
            expectation(lambda traj: traj.x[-1, 0], problem, spec, MonteCarlo(4, seed=0))

    def test_cancellation(self, uniform_spec):
        executor = SequentialExecutor()

        def cancelling_rhs(t, x, p):
            executor.cancel()
            return -x

        problem = ODEProblem(cancelling_rhs, x0=[1.0], t_span=(0.0, 4.0))
        with pytest.raises(EstimationCancelled):
            expectation(
                final_state, problem, uniform_spec, MonteCarlo(10, seed=0), executor=executor
            )
        assert executor.cancelled
        executor.reset()
        assert not executor.cancelled

    def test_observable_exception_propagates(self, decay_problem, uniform_spec):
        def broken(traj):
            raise ValueError("observable bug")

        with pytest.raises(ValueError, match="observable bug"):
            expectation(broken, decay_problem, uniform_spec, Koopman())


# ============================================================================
# Test Class 5: Instrumentation
# ============================================================================


class TestInstrumentation:
    """Counters are scoped to one call"""

    def test_monte_carlo_counts(self, decay_problem, uniform_spec):
        counter = EvaluationCounter()
        result = expectation(
            final_state, decay_problem, uniform_spec, MonteCarlo(25, seed=1), counter=counter
        )
        assert counter.snapshot() == {"trajectories": 25, "observable_calls": 25}
        assert result["n_trajectories"] == 25

    def test_koopman_counts(self, decay_problem, uniform_spec):
        counter = EvaluationCounter()
        result = expectation(final_state, decay_problem, uniform_spec, Koopman(), counter=counter)
        assert counter.trajectories == result["n_trajectories"]
        assert counter.observable_calls == counter.trajectories
        assert result["n_nodes"] >= result["n_trajectories"]

    def test_fresh_counters_are_independent(self, decay_problem, uniform_spec):
        a, b = EvaluationCounter(), EvaluationCounter()
        expectation(final_state, decay_problem, uniform_spec, MonteCarlo(5, seed=1), counter=a)
        expectation(final_state, decay_problem, uniform_spec, MonteCarlo(7, seed=1), counter=b)
        assert a.trajectories == 5
        assert b.trajectories == 7


# ============================================================================
# Test Class 6: Metadata
# ============================================================================


class TestMetadata:
    """Fields filled in by the entry point"""

    def test_fields(self, decay_problem, uniform_spec):
        result = expectation(
            final_state,
            decay_problem,
            uniform_spec,
            MonteCarlo(10, seed=0),
            executor=ThreadPoolBatchExecutor(2),
        )
        assert result["estimator"] == "monte_carlo"
        assert result["executor"] == "threads(2)"
        assert result["nout"] == 1
        assert result["computation_time"] >= 0.0
        assert isinstance(result["expectation"], float)
        assert isinstance(result["error"], float)

    def test_koopman_fields(self, decay_problem, uniform_spec):
        result = expectation(final_state, decay_problem, uniform_spec, Koopman())
        assert result["estimator"] == "koopman"
        assert result["executor"] == "sequential"
        assert result["quadrature"].startswith("cubature")
        assert result["status"] == "converged"
