"""
Discretized state and control domains.

A :class:`DiscreteGrid` is an immutable, strictly increasing, finite set of
real points.  The position of a point in the grid (0..n-1) is its canonical
identity for table storage.

Nearest-grid-point lookup is implemented exactly once, in
:func:`nearest_indices`, and every caller (backward recursion, forward
replay, result reporting) goes through it so the tie-breaking rule is the
same everywhere:

    * the grid point with the smallest ``|grid[i] - x|`` wins;
    * when two points are equally close the lower index wins;
    * values beyond either end snap to that endpoint.

The lookup is a binary search (``numpy.searchsorted``) followed by a
comparison of the two bracketing neighbours, so it is O(log n) per query.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from core.constants import GRID_STEP_RTOL
from core.exceptions import InvalidGridError


ArrayLike = Union[float, Sequence[float], np.ndarray]


def nearest_indices(points: np.ndarray, x: ArrayLike) -> np.ndarray:
    """Indices of the grid points nearest to each value in *x*.

    Parameters
    ----------
    points : np.ndarray, shape ``(n,)``
        Strictly increasing grid points.
    x : float or array_like
        Query values, any shape.  Must be free of NaN.

    Returns
    -------
    np.ndarray of intp, same shape as *x*
        Ties go to the lower index; out-of-range values snap to the nearest
        endpoint.
    """
    x = np.asarray(x, dtype=np.float64)
    n = points.shape[0]
    right = np.searchsorted(points, x, side="left")
    hi = np.minimum(right, n - 1)
    lo = np.maximum(right - 1, 0)
    d_lo = np.abs(x - points[lo])
    d_hi = np.abs(x - points[hi])
    return np.where(d_lo <= d_hi, lo, hi)


@dataclass(frozen=True, eq=False)
class DiscreteGrid:
    """Strictly increasing, read-only set of grid points.

    Attributes
    ----------
    points : np.ndarray, shape ``(n,)``
        Grid values, float64, write-protected.
    name : str
        Label used in error messages and logs (``"state"``, ``"control"``).
    """
    points: np.ndarray
    name: str = "grid"

    def __post_init__(self) -> None:
        pts = np.array(self.points, dtype=np.float64)
        if pts.ndim != 1:
            raise InvalidGridError(
                f"{self.name} grid must be one-dimensional, got shape {pts.shape}"
            )
        if pts.size == 0:
            raise InvalidGridError(f"{self.name} grid is empty")
        if not np.all(np.isfinite(pts)):
            raise InvalidGridError(f"{self.name} grid contains non-finite values")
        if pts.size > 1 and not np.all(np.diff(pts) > 0.0):
            raise InvalidGridError(f"{self.name} grid is not strictly increasing")
        pts.flags.writeable = False
        object.__setattr__(self, "points", pts)

    # -- constructors -------------------------------------------------------

    @classmethod
    def from_points(cls, points: ArrayLike, name: str = "grid") -> "DiscreteGrid":
        """Build a grid from arbitrary strictly increasing points."""
        if isinstance(points, DiscreteGrid):
            return cls(points.points, name=name)
        return cls(np.atleast_1d(np.asarray(points, dtype=np.float64)), name=name)

    # -- lookup -------------------------------------------------------------

    def nearest_index(self, x: float) -> int:
        """Index of the grid point nearest to the scalar *x*."""
        return int(nearest_indices(self.points, x))

    def nearest_indices(self, x: ArrayLike) -> np.ndarray:
        """Vectorized :meth:`nearest_index` over an array of values."""
        return nearest_indices(self.points, x)

    def snap(self, x: float) -> float:
        """Value of the grid point nearest to *x*."""
        return float(self.points[self.nearest_index(x)])

    # -- properties ---------------------------------------------------------

    @property
    def lower(self) -> float:
        return float(self.points[0])

    @property
    def upper(self) -> float:
        return float(self.points[-1])

    def __len__(self) -> int:
        return int(self.points.shape[0])

    def __getitem__(self, index: int) -> float:
        return float(self.points[index])

    def __iter__(self):
        return iter(self.points.tolist())

    def __repr__(self) -> str:
        return (
            f"DiscreteGrid(name={self.name!r}, n={len(self)}, "
            f"range=[{self.lower:g}, {self.upper:g}])"
        )


def make_grid(lower: float, upper: float, step: float, name: str = "grid") -> DiscreteGrid:
    """Uniform grid ``lower:step:upper`` (both ends inclusive when aligned).

    The number of intervals is ``(upper - lower) / step`` rounded to the
    nearest integer when it is within :data:`GRID_STEP_RTOL` of one, and
    truncated otherwise; points are generated with ``numpy.linspace`` so
    there is no accumulated rounding drift.

    Parameters
    ----------
    lower, upper : float
        Range bounds, ``upper >= lower``.
    step : float
        Positive spacing.
    name : str
        Grid label.

    Raises
    ------
    InvalidGridError
        On a non-positive step, an inverted range or non-finite bounds.
    """
    lower, upper, step = float(lower), float(upper), float(step)
    if not (math.isfinite(lower) and math.isfinite(upper) and math.isfinite(step)):
        raise InvalidGridError(f"{name} grid bounds must be finite")
    if step <= 0.0:
        raise InvalidGridError(f"{name} grid step must be positive, got {step}")
    if upper < lower:
        raise InvalidGridError(
            f"{name} grid upper bound {upper} is below lower bound {lower}"
        )

    n_intervals = (upper - lower) / step
    nearest = round(n_intervals)
    if abs(n_intervals - nearest) <= GRID_STEP_RTOL * max(1.0, n_intervals):
        count = int(nearest)
        end = upper
    else:
        count = int(math.floor(n_intervals))
        end = lower + count * step

    return DiscreteGrid(np.linspace(lower, end, count + 1), name=name)
