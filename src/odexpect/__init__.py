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
odexpect - Expectations of ODE Observables under Uncertain Inputs

Given an ODE with uncertain initial state and parameters, compute the
expected value (and central moments) of a trajectory observable, either
by Monte Carlo sampling or by Koopman-style quadrature over the input
distribution.

Quick Start
-----------
>>> from scipy import stats
>>> from odexpect import DistributionSpec, Koopman, MonteCarlo, ODEProblem, expectation
>>> problem = ODEProblem(
...     lambda t, u, p: p[..., 0:1] * u, x0=[1.0], t_span=(0.0, 4.0), params=[-0.3]
... )
>>> spec = DistributionSpec(x0=[stats.uniform(0, 10)])
>>> g = lambda traj: traj(4.0)[0]
>>> expectation(g, problem, spec, Koopman())["expectation"]
1.5059...
"""

from odexpect.distributions import (
    Distribution,
    DistributionSpec,
    PointMass,
    ScipyDistribution,
    Truncated,
    as_distribution,
    truncated,
)
from odexpect.errors import (
    ConfigurationError,
    DegenerateDomainWarning,
    EstimationCancelled,
    ExpectationError,
    IntegrationFailure,
    QuadratureNonConvergence,
)
from odexpect.estimators import (
    Koopman,
    MonteCarlo,
    ObservableWrapper,
    PowerObservable,
    central_moments_from_raw,
    centralmoment,
    expectation,
)
from odexpect.execution import (
    BatchExecutor,
    EnsembleExecutor,
    FailurePolicy,
    GPUEnsembleExecutor,
    SequentialExecutor,
    ThreadPoolBatchExecutor,
    create_executor,
)
from odexpect.integration import (
    ODESolverBase,
    ScipySolver,
    SolverFactory,
    Trajectory,
    TrajectoryEvaluator,
)
from odexpect.problem import ODEProblem
from odexpect.quadrature import (
    CubatureQuadrature,
    GaussLegendreQuadrature,
    QuadratureBase,
    QuadVecQuadrature,
    create_quadrature,
)
from odexpect.types import ExpectationResult, MomentResult, QuadratureResult
from odexpect.utils import EvaluationCounter, stable_mean

__version__ = "0.1.0"

__all__ = [
    # Problem and inputs
    "ODEProblem",
    "Distribution",
    "DistributionSpec",
    "PointMass",
    "ScipyDistribution",
    "Truncated",
    "as_distribution",
    "truncated",
    # Estimation
    "expectation",
    "centralmoment",
    "central_moments_from_raw",
    "MonteCarlo",
    "Koopman",
    "ObservableWrapper",
    "PowerObservable",
    # Trajectories
    "Trajectory",
    "TrajectoryEvaluator",
    "ODESolverBase",
    "ScipySolver",
    "SolverFactory",
    # Execution
    "BatchExecutor",
    "SequentialExecutor",
    "ThreadPoolBatchExecutor",
    "EnsembleExecutor",
    "GPUEnsembleExecutor",
    "FailurePolicy",
    "create_executor",
    # Quadrature
    "QuadratureBase",
    "CubatureQuadrature",
    "QuadVecQuadrature",
    "GaussLegendreQuadrature",
    "create_quadrature",
    # Results
    "ExpectationResult",
    "MomentResult",
    "QuadratureResult",
    # Errors
    "ExpectationError",
    "ConfigurationError",
    "IntegrationFailure",
    "EstimationCancelled",
    "QuadratureNonConvergence",
    "DegenerateDomainWarning",
    # Instrumentation
    "EvaluationCounter",
    "stable_mean",
]
