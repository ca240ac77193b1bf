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
Distribution Specification

Per-component probability distributions over the initial state and the
parameters of an ODEProblem.

Every entry is a ``Distribution``: continuous distributions expose
``sample``, ``density`` and ``support_bounds``; numeric constants are
modelled as a ``PointMass`` so fixed and uncertain components share one
abstraction. Point masses are held fixed and never integrated over; the
remaining entries span the random subspace of dimension ``dim``.

Supported entry types:
- numbers -> PointMass
- frozen ``scipy.stats`` continuous distributions -> ScipyDistribution
- any ``Distribution`` subclass, e.g. ``Truncated``

Components are independent by construction, so the joint density is the
product of the per-entry densities.

Examples
--------
>>> from scipy import stats
>>> spec = DistributionSpec(
...     x0=[stats.uniform(0, 10)],
...     params=[-0.3],
... )
>>> spec.dim
1
>>> spec.bounds()
(array([0.]), array([10.]))
>>>
>>> # Unbounded support can be truncated for finite-domain quadrature
>>> spec = DistributionSpec(x0=[truncated(stats.norm(5, 1), 1, 9)])
"""

import numbers
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from odexpect.errors import ConfigurationError
from odexpect.types.core import NodeArray

# ============================================================================
# Distribution Interface
# ============================================================================


class Distribution(ABC):
    """
    Abstract one-dimensional distribution.

    Subclasses must implement ``sample``, ``density`` and ``support_bounds``.
    ``cdf`` and ``quantile`` are optional; they are needed for truncation
    and for Latin hypercube sampling.
    """

    is_point_mass: bool = False

    @abstractmethod
    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        """Draw ``size`` i.i.d. samples, shape (size,)."""
        pass

    @abstractmethod
    def density(self, x: np.ndarray) -> np.ndarray:
        """Probability density at ``x`` (vectorized)."""
        pass

    @abstractmethod
    def support_bounds(self) -> Tuple[float, float]:
        """Lower and upper support bound, possibly infinite."""
        pass

    def cdf(self, x: np.ndarray) -> np.ndarray:
        raise NotImplementedError(f"{type(self).__name__} does not provide a cdf")

    def quantile(self, q: np.ndarray) -> np.ndarray:
        raise NotImplementedError(f"{type(self).__name__} does not provide a quantile function")

    @property
    def is_bounded(self) -> bool:
        lower, upper = self.support_bounds()
        return bool(np.isfinite(lower) and np.isfinite(upper))


class PointMass(Distribution):
    """
    Dirac point mass at a fixed value.

    Used for every numeric constant in a DistributionSpec. The density is
    taken with respect to the counting measure (1 at the value, 0 elsewhere)
    but is never used for integration: point masses are held fixed.
    """

    is_point_mass = True

    def __init__(self, value: float):
        value = float(value)
        if not np.isfinite(value):
            raise ConfigurationError(f"PointMass value must be finite, got {value}")
        self.value = value

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        return np.full(size, self.value)

    def density(self, x: np.ndarray) -> np.ndarray:
        return np.where(np.asarray(x) == self.value, 1.0, 0.0)

    def support_bounds(self) -> Tuple[float, float]:
        return (self.value, self.value)

    def cdf(self, x: np.ndarray) -> np.ndarray:
        return np.where(np.asarray(x) >= self.value, 1.0, 0.0)

    def quantile(self, q: np.ndarray) -> np.ndarray:
        return np.full(np.shape(q), self.value)

    def __repr__(self) -> str:
        return f"PointMass({self.value})"


class ScipyDistribution(Distribution):
    """
    Adapter for frozen continuous ``scipy.stats`` distributions.

    Parameters
    ----------
    frozen : scipy.stats frozen rv_continuous
        e.g. ``stats.norm(0, 1)`` or ``stats.uniform(-10, 20)``

    Raises
    ------
    ConfigurationError
        If ``frozen`` is not a continuous distribution (no ``pdf``)
    """

    def __init__(self, frozen: Any):
        if not (hasattr(frozen, "pdf") and hasattr(frozen, "rvs") and hasattr(frozen, "support")):
            raise ConfigurationError(
                f"Expected a frozen continuous scipy.stats distribution, "
                f"got {type(frozen).__name__}"
            )
        self.frozen = frozen

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        return np.atleast_1d(self.frozen.rvs(size=size, random_state=rng)).astype(float)

    def density(self, x: np.ndarray) -> np.ndarray:
        return self.frozen.pdf(x)

    def support_bounds(self) -> Tuple[float, float]:
        lower, upper = self.frozen.support()
        return (float(lower), float(upper))

    def cdf(self, x: np.ndarray) -> np.ndarray:
        return self.frozen.cdf(x)

    def quantile(self, q: np.ndarray) -> np.ndarray:
        return self.frozen.ppf(q)

    def __repr__(self) -> str:
        name = getattr(getattr(self.frozen, "dist", None), "name", "distribution")
        return f"ScipyDistribution({name}{tuple(getattr(self.frozen, 'args', ()))})"


class Truncated(Distribution):
    """
    Distribution restricted to [lower, upper] and renormalised.

    Works for any base distribution providing ``cdf`` and ``quantile``.
    Samples are drawn by inverse transform on the truncated cdf range.

    Parameters
    ----------
    base : Distribution or frozen scipy distribution
        Distribution to truncate
    lower, upper : float
        Truncation bounds, intersected with the base support

    Raises
    ------
    ConfigurationError
        If the interval is empty or holds no probability mass

    Notes
    -----
    Truncating far out in the tails (e.g. a unit normal at +-1000) keeps
    the support huge relative to where the mass sits. Quadrature on such a
    domain can miss the mass entirely and return a near-zero result with a
    small error estimate. Truncate within a few standard deviations.
    """

    def __init__(self, base: Any, lower: float = -np.inf, upper: float = np.inf):
        self.base = as_distribution(base)
        if self.base.is_point_mass:
            raise ConfigurationError("Cannot truncate a PointMass")

        base_lower, base_upper = self.base.support_bounds()
        self.lower = max(float(lower), base_lower)
        self.upper = min(float(upper), base_upper)
        if not self.lower < self.upper:
            raise ConfigurationError(
                f"Truncation interval [{lower}, {upper}] does not intersect "
                f"support [{base_lower}, {base_upper}]"
            )

        try:
            self._cdf_lower = float(self.base.cdf(self.lower))
            self._cdf_upper = float(self.base.cdf(self.upper))
        except NotImplementedError as err:
            raise ConfigurationError(f"Cannot truncate {self.base!r}: {err}") from err

        self._mass = self._cdf_upper - self._cdf_lower
        if not self._mass > 0.0:
            raise ConfigurationError(
                f"Truncation interval [{self.lower}, {self.upper}] holds no probability mass"
            )

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        q = rng.uniform(self._cdf_lower, self._cdf_upper, size)
        return np.clip(self.base.quantile(q), self.lower, self.upper)

    def density(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        inside = (x >= self.lower) & (x <= self.upper)
        return np.where(inside, self.base.density(x) / self._mass, 0.0)

    def support_bounds(self) -> Tuple[float, float]:
        return (self.lower, self.upper)

    def cdf(self, x: np.ndarray) -> np.ndarray:
        x = np.clip(np.asarray(x, dtype=float), self.lower, self.upper)
        return np.clip((self.base.cdf(x) - self._cdf_lower) / self._mass, 0.0, 1.0)

    def quantile(self, q: np.ndarray) -> np.ndarray:
        q = np.asarray(q, dtype=float)
        return np.clip(self.base.quantile(self._cdf_lower + q * self._mass), self.lower, self.upper)

    def __repr__(self) -> str:
        return f"Truncated({self.base!r}, {self.lower}, {self.upper})"


def as_distribution(entry: Any) -> Distribution:
    """
    Convert a spec entry into a Distribution.

    Parameters
    ----------
    entry : number, Distribution or frozen scipy.stats distribution

    Returns
    -------
    Distribution

    Raises
    ------
    ConfigurationError
        If the entry type is not supported
    """
    if isinstance(entry, Distribution):
        return entry
    if isinstance(entry, (numbers.Real, np.number)) and not isinstance(entry, bool):
        return PointMass(float(entry))
    if hasattr(entry, "pdf") and hasattr(entry, "rvs"):
        return ScipyDistribution(entry)
    raise ConfigurationError(
        f"Unsupported distribution entry {entry!r} of type {type(entry).__name__}. "
        f"Use a number, a Distribution, or a frozen scipy.stats distribution."
    )


def truncated(dist: Any, lower: float = -np.inf, upper: float = np.inf) -> Truncated:
    """
    Truncate ``dist`` to [lower, upper].

    Examples
    --------
    >>> from scipy import stats
    >>> d = truncated(stats.norm(0, 1), -3, 3)
    >>> d.support_bounds()
    (-3.0, 3.0)
    """
    return Truncated(dist, lower, upper)


def _as_entries(entries: Any) -> Tuple[Distribution, ...]:
    if isinstance(entries, (Distribution, numbers.Real, np.number)) or hasattr(entries, "pdf"):
        entries = [entries]
    return tuple(as_distribution(e) for e in entries)


# ============================================================================
# Distribution Specification
# ============================================================================


class DistributionSpec:
    """
    Joint (product) distribution over initial state and parameters.

    Parameters
    ----------
    x0 : Optional[Sequence]
        One entry per state variable. None: use the problem's nominal x0
    params : Optional[Sequence]
        One entry per parameter. None: use the problem's nominal params

    Notes
    -----
    A spec is immutable. ``bind(problem)`` returns a new, fully populated
    spec; the estimators bind automatically. Quadrature and sampling act
    on the random subspace: the ``dim`` entries that are not point masses,
    in state-then-parameter order.
    """

    def __init__(self, x0: Optional[Sequence[Any]] = None, params: Optional[Sequence[Any]] = None):
        self._x0 = None if x0 is None else _as_entries(x0)
        self._params = None if params is None else _as_entries(params)

        if self.is_bound:
            self._finalize()

    def _finalize(self):
        self._entries = self._x0 + self._params
        self._random_indices = np.array(
            [i for i, e in enumerate(self._entries) if not e.is_point_mass], dtype=int
        )
        self._constants = np.array(
            [e.value if e.is_point_mass else np.nan for e in self._entries], dtype=float
        )

    # ------------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------------

    @property
    def is_bound(self) -> bool:
        """True once both state and parameter entries are known."""
        return self._x0 is not None and self._params is not None

    def bind(self, problem) -> "DistributionSpec":
        """
        Fill unspecified entries from the problem's nominal values.

        Parameters
        ----------
        problem : ODEProblem

        Returns
        -------
        DistributionSpec
            Fully populated spec

        Raises
        ------
        ConfigurationError
            If entry counts do not match the problem dimensions
        """
        x0 = self._x0 if self._x0 is not None else tuple(PointMass(v) for v in problem.x0)
        params = (
            self._params
            if self._params is not None
            else tuple(PointMass(v) for v in problem.params)
        )

        if len(x0) != problem.nx:
            raise ConfigurationError(
                f"DistributionSpec has {len(x0)} initial-state entries, problem has nx={problem.nx}"
            )
        if len(params) != problem.n_params:
            raise ConfigurationError(
                f"DistributionSpec has {len(params)} parameter entries, "
                f"problem has n_params={problem.n_params}"
            )

        return DistributionSpec(x0=x0, params=params)

    def _require_bound(self):
        if not self.is_bound:
            raise ConfigurationError(
                "DistributionSpec is missing state or parameter entries; call bind(problem) first"
            )

    # ------------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------------

    @property
    def entries(self) -> Tuple[Distribution, ...]:
        self._require_bound()
        return self._entries

    @property
    def nx(self) -> int:
        self._require_bound()
        return len(self._x0)

    @property
    def n_params(self) -> int:
        self._require_bound()
        return len(self._params)

    @property
    def random_indices(self) -> np.ndarray:
        """Positions (in state-then-parameter order) of non-constant entries."""
        self._require_bound()
        return self._random_indices

    @property
    def dim(self) -> int:
        """Dimension of the random subspace."""
        return len(self.random_indices)

    def _random_entries(self) -> List[Distribution]:
        return [self._entries[i] for i in self.random_indices]

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Lower and upper support bounds of the random subspace, shape (dim,) each."""
        support = [e.support_bounds() for e in self._random_entries()]
        lower = np.array([s[0] for s in support], dtype=float)
        upper = np.array([s[1] for s in support], dtype=float)
        return lower, upper

    @property
    def is_bounded(self) -> bool:
        lower, upper = self.bounds()
        return bool(np.all(np.isfinite(lower)) and np.all(np.isfinite(upper)))

    # ------------------------------------------------------------------------
    # Evaluation on the random subspace
    # ------------------------------------------------------------------------

    def density(self, z: NodeArray) -> np.ndarray:
        """
        Joint density of random-subspace points.

        Parameters
        ----------
        z : np.ndarray
            Points, shape (dim,) or (npoints, dim)

        Returns
        -------
        np.ndarray or float
            Product of per-entry densities, shape (npoints,) or scalar
        """
        z = np.asarray(z, dtype=float)
        single = z.ndim == 1
        z = np.atleast_2d(z)
        result = np.ones(z.shape[0])
        for column, entry in enumerate(self._random_entries()):
            result = result * entry.density(z[:, column])
        return float(result[0]) if single else result

    def clip(self, z: NodeArray) -> np.ndarray:
        """Clamp points into the support box."""
        lower, upper = self.bounds()
        return np.clip(np.asarray(z, dtype=float), lower, upper)

    def split(self, z: NodeArray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Map random-subspace points back to (initial state, parameters).

        Constant entries are filled with their fixed values.

        Parameters
        ----------
        z : np.ndarray
            Shape (dim,) or (npoints, dim)

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            (x0, params) with shapes (nx,), (n_params,) or
            (npoints, nx), (npoints, n_params)
        """
        self._require_bound()
        z = np.asarray(z, dtype=float)
        single = z.ndim == 1
        z = np.atleast_2d(z)
        if z.shape[1] != self.dim:
            raise ConfigurationError(f"Expected points of dimension {self.dim}, got {z.shape[1]}")

        full = np.tile(self._constants, (z.shape[0], 1))
        full[:, self._random_indices] = z
        x0, params = full[:, : self.nx], full[:, self.nx :]
        if single:
            return x0[0], params[0]
        return x0, params

    def sample_random(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Draw ``n`` i.i.d. points of the random subspace, shape (n, dim)."""
        columns = [entry.sample(rng, n) for entry in self._random_entries()]
        if not columns:
            return np.zeros((n, 0))
        return np.column_stack(columns)

    def from_unit_cube(self, u: np.ndarray) -> np.ndarray:
        """
        Map points of the unit hypercube through each entry's quantile function.

        Raises
        ------
        ConfigurationError
            If an entry has no quantile function
        """
        u = np.atleast_2d(np.asarray(u, dtype=float))
        z = np.empty_like(u)
        for column, entry in enumerate(self._random_entries()):
            try:
                z[:, column] = entry.quantile(u[:, column])
            except NotImplementedError as err:
                raise ConfigurationError(str(err)) from err
        return z

    def sample(self, n: int, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
        """Draw ``n`` full (x0, params) instantiations."""
        return self.split(self.sample_random(n, rng))

    def __repr__(self) -> str:
        return f"DistributionSpec(x0={self._x0!r}, params={self._params!r})"
