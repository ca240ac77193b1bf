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
Expectation estimators: Monte Carlo sampling, Koopman quadrature, and the
central moment calculator built on either.
"""

from odexpect.estimators.expectation import Estimator, expectation
from odexpect.estimators.koopman import Koopman
from odexpect.estimators.moments import central_moments_from_raw, centralmoment
from odexpect.estimators.monte_carlo import SAMPLING_METHODS, MonteCarlo
from odexpect.estimators.observable import Observable, ObservableWrapper, PowerObservable

__all__ = [
    "Estimator",
    "expectation",
    "MonteCarlo",
    "SAMPLING_METHODS",
    "Koopman",
    "centralmoment",
    "central_moments_from_raw",
    "Observable",
    "ObservableWrapper",
    "PowerObservable",
]
