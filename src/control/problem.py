"""
Problem Definitions
===================

A control problem is the capability set the solver needs from the caller:

    dynamics(x, u, k)    -> x(k+1)
    stage_cost(x, u, k)  -> V(x, u, k)
    terminal_cost(x, k)  -> S(x, k)

Subclass :class:`ControlProblem` for stateful cost models, or wrap three
plain callables with :class:`FunctionProblem`.

Vectorized problems
-------------------
A problem whose ``vectorized`` attribute is True promises that its three
methods accept NumPy arrays for ``x`` and ``u`` (``k`` stays a Python int)
and return arrays broadcastable to the broadcast shape of the inputs.  The
solver then evaluates a whole block of states against the whole control grid
in a handful of ufunc calls instead of one Python call per (x, u) pair.
"""

from __future__ import annotations

import math
import numbers
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

import numpy as np

from control.lqr import LQSolution, finite_horizon_lq
from core.exceptions import CallbackError


DynamicsFn = Callable[[float, float, int], float]
StageCostFn = Callable[[float, float, int], float]
TerminalCostFn = Callable[[float, int], float]


class ControlProblem(ABC):
    """Abstract dynamics / stage cost / terminal cost provider.

    Subclasses must implement ``dynamics``, ``stage_cost`` and
    ``terminal_cost``.  Implementations are assumed synchronous and free of
    side effects that would make repeated evaluation order-dependent.
    """

    vectorized: bool = False

    @abstractmethod
    def dynamics(self, x, u, k: int):
        """Successor state ``x(k+1)`` for state *x*, control *u*, time *k*."""

    @abstractmethod
    def stage_cost(self, x, u, k: int):
        """Cost incurred at time *k* for the pair (*x*, *u*)."""

    @abstractmethod
    def terminal_cost(self, x, k: int):
        """Cost assigned to the final state *x* at the final time *k*."""


class FunctionProblem(ControlProblem):
    """Adapter turning three plain callables into a :class:`ControlProblem`.

    Parameters
    ----------
    f : callable
        Dynamics ``f(x, u, k)``.
    V : callable
        Stage cost ``V(x, u, k)``.
    S : callable
        Terminal cost ``S(x, k)``.
    vectorized : bool
        True if all three callables broadcast over NumPy arrays.
    """

    def __init__(
        self,
        f: DynamicsFn,
        V: StageCostFn,
        S: TerminalCostFn,
        vectorized: bool = False,
    ) -> None:
        for name, fn in (("f", f), ("V", V), ("S", S)):
            if not callable(fn):
                raise TypeError(f"{name} must be callable, got {type(fn).__name__}")
        self._f = f
        self._V = V
        self._S = S
        self.vectorized = bool(vectorized)

    def dynamics(self, x, u, k: int):
        return self._f(x, u, k)

    def stage_cost(self, x, u, k: int):
        return self._V(x, u, k)

    def terminal_cost(self, x, k: int):
        return self._S(x, k)


class LinearQuadraticProblem(ControlProblem):
    """Scalar linear-quadratic tracking problem.

        x(k+1)     = a x + b u
        V(x, u, k) = q x^2 + r u^2
        S(x, kf)   = p_terminal (x - x_target)^2

    Vectorized, and carries its own closed-form solution (see
    :mod:`control.lqr`) for validating the grid solver.
    """

    vectorized = True

    def __init__(
        self,
        a: float,
        b: float,
        q: float,
        r: float,
        p_terminal: float = 1.0,
        x_target: float = 0.0,
    ) -> None:
        self.a = float(a)
        self.b = float(b)
        self.q = float(q)
        self.r = float(r)
        self.p_terminal = float(p_terminal)
        self.x_target = float(x_target)

    def dynamics(self, x, u, k: int):
        return self.a * x + self.b * u

    def stage_cost(self, x, u, k: int):
        return self.q * x * x + self.r * u * u

    def terminal_cost(self, x, k: int):
        e = x - self.x_target
        return self.p_terminal * e * e

    def closed_form(self, horizon: int) -> LQSolution:
        """Exact finite-horizon solution of this problem."""
        return finite_horizon_lq(
            self.a, self.b, self.q, self.r,
            self.p_terminal, self.x_target, horizon,
        )

    def __repr__(self) -> str:
        return (
            f"LinearQuadraticProblem(a={self.a}, b={self.b}, q={self.q}, "
            f"r={self.r}, p_terminal={self.p_terminal}, x_target={self.x_target})"
        )


# =============================================================================
# Checked evaluation
# =============================================================================

def _invoke(problem: ControlProblem, callback: str, x, u, k: int):
    fn = getattr(problem, callback)
    if u is None:
        return fn(x, k)
    return fn(x, u, k)


def evaluate_point(
    problem: ControlProblem,
    callback: str,
    x: float,
    u: Optional[float],
    k: int,
) -> float:
    """Call one problem method at a single point and validate the result.

    Parameters
    ----------
    problem : ControlProblem
    callback : str
        ``"dynamics"``, ``"stage_cost"`` or ``"terminal_cost"``.
    x : float
    u : float or None
        ``None`` for the terminal cost.
    k : int

    Returns
    -------
    float
        The finite value returned by the callback.

    Raises
    ------
    CallbackError
        If the callback raises, returns something that is not a real number,
        or returns NaN or an infinity.
    """
    try:
        value = _invoke(problem, callback, x, u, k)
    except Exception as exc:
        raise CallbackError(
            callback, x, u, k, f"raised {type(exc).__name__}: {exc}"
        ) from exc

    if isinstance(value, numbers.Complex) and not isinstance(value, numbers.Real):
        raise CallbackError(callback, x, u, k, f"returned non-numeric value {value!r}")
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise CallbackError(
            callback, x, u, k, f"returned non-numeric value {value!r}"
        ) from exc

    if not math.isfinite(value):
        raise CallbackError(callback, x, u, k, f"returned non-finite value {value}")
    return value


def evaluate_block(
    problem: ControlProblem,
    callback: str,
    x: np.ndarray,
    u: Optional[np.ndarray],
    k: int,
    shape: Tuple[int, ...],
) -> np.ndarray:
    """Call one vectorized problem method on a block and validate the result.

    *x* and *u* are broadcast against each other (typically ``(c, 1)`` and
    ``(1, n_u)``) and the result is broadcast to *shape*.  When the result
    holds non-finite entries, the reported triple is the first offending
    element in row-major order, i.e. lowest state index then lowest control
    index.  When the callback itself raises, the triple is the first element
    of the block.
    """
    xb = np.broadcast_to(x, shape)
    ub = None if u is None else np.broadcast_to(u, shape)

    def _at(pos):
        return float(xb[pos]), (None if ub is None else float(ub[pos]))

    try:
        value = _invoke(problem, callback, x, u, k)
    except Exception as exc:
        xi, ui = _at((0,) * len(shape))
        raise CallbackError(
            callback, xi, ui, k, f"raised {type(exc).__name__}: {exc}"
        ) from exc

    if np.iscomplexobj(value):
        xi, ui = _at((0,) * len(shape))
        raise CallbackError(callback, xi, ui, k, "returned complex values")
    try:
        values = np.broadcast_to(np.asarray(value, dtype=np.float64), shape)
    except (TypeError, ValueError) as exc:
        xi, ui = _at((0,) * len(shape))
        raise CallbackError(
            callback, xi, ui, k,
            f"returned a value that is not a real array of shape {shape}",
        ) from exc

    bad = ~np.isfinite(values)
    if bad.any():
        pos = tuple(np.argwhere(bad)[0])
        xi, ui = _at(pos)
        raise CallbackError(
            callback, xi, ui, k, f"returned non-finite value {values[pos]}"
        )
    return values
