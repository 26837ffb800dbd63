"""
Closed-Form Scalar LQ Tracking
==============================

Exact solution of the finite-horizon scalar linear-quadratic tracking
problem, used as the independent reference for the grid solver:

    x(k+1) = a x(k) + b u(k)
    J = sum_{k=0}^{N-1} (q x(k)^2 + r u(k)^2) + p_f (x(N) - x_target)^2

Because the terminal cost is an offset quadratic, the cost-to-go is a
general quadratic in x:

    J_k(x) = p_k x^2 + s_k x + c_k

and the backward (Riccati-type) recursion with D_k = r + p_{k+1} b^2 reads

    p_k = q + p_{k+1} a^2 r / D_k
    s_k = s_{k+1} a r / D_k
    c_k = c_{k+1} - s_{k+1}^2 b^2 / (4 D_k)

with the affine optimal law

    u_k(x) = -K_k x - g_k,   K_k = p_{k+1} a b / D_k,   g_k = s_{k+1} b / (2 D_k)

References
----------
  Bertsekas, D.P. "Dynamic Programming and Optimal Control", Vol. I, 4th ed.
  Anderson, B.D.O., Moore, J.B. "Optimal Control: Linear Quadratic Methods".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class LQSolution:
    """Quadratic cost-to-go coefficients and the affine optimal law.

    Attributes
    ----------
    p, s, c : np.ndarray, shape ``(N + 1,)``
        Cost-to-go coefficients, ``J_k(x) = p[k] x^2 + s[k] x + c[k]``.
    K, g : np.ndarray, shape ``(N,)``
        Feedback gain and feed-forward term, ``u_k = -K[k] x - g[k]``.
    a, b : float
        Dynamics coefficients used to roll the law forward.
    """
    p: np.ndarray
    s: np.ndarray
    c: np.ndarray
    K: np.ndarray
    g: np.ndarray
    a: float
    b: float

    @property
    def horizon(self) -> int:
        return int(self.K.shape[0])

    def cost_to_go(self, x: float, k: int = 0) -> float:
        """Exact optimal cost from state *x* at time *k*."""
        return float(self.p[k] * x * x + self.s[k] * x + self.c[k])

    def control(self, x: float, k: int) -> float:
        """Optimal control at state *x* and time *k*."""
        return float(-self.K[k] * x - self.g[k])

    def simulate(self, x0: float) -> Tuple[np.ndarray, np.ndarray]:
        """Roll the optimal law forward from *x0*.

        Returns
        -------
        x : np.ndarray, shape ``(N + 1,)``
        u : np.ndarray, shape ``(N,)``
        """
        n = self.horizon
        x = np.empty(n + 1)
        u = np.empty(n)
        x[0] = x0
        for k in range(n):
            u[k] = self.control(x[k], k)
            x[k + 1] = self.a * x[k] + self.b * u[k]
        return x, u


def finite_horizon_lq(
    a: float,
    b: float,
    q: float,
    r: float,
    p_terminal: float,
    x_target: float,
    horizon: int,
) -> LQSolution:
    """Solve the scalar LQ tracking problem by backward recursion.

    Parameters
    ----------
    a, b : float
        Dynamics ``x' = a x + b u``.
    q, r : float
        Stage weights, ``r > 0``.
    p_terminal : float
        Terminal weight on ``(x - x_target)^2``, non-negative.
    x_target : float
        Terminal target state.
    horizon : int
        Number of control steps N >= 0.

    Returns
    -------
    LQSolution
    """
    if r <= 0.0:
        raise ValueError(f"control weight r must be positive, got {r}")
    if p_terminal < 0.0:
        raise ValueError(f"terminal weight must be non-negative, got {p_terminal}")
    if horizon < 0:
        raise ValueError(f"horizon must be non-negative, got {horizon}")

    p = np.empty(horizon + 1)
    s = np.empty(horizon + 1)
    c = np.empty(horizon + 1)
    K = np.empty(horizon)
    g = np.empty(horizon)

    # (x - xt)^2 expanded
    p[horizon] = p_terminal
    s[horizon] = -2.0 * p_terminal * x_target
    c[horizon] = p_terminal * x_target * x_target

    for k in range(horizon - 1, -1, -1):
        D = r + p[k + 1] * b * b
        K[k] = p[k + 1] * a * b / D
        g[k] = s[k + 1] * b / (2.0 * D)
        p[k] = q + p[k + 1] * a * a * r / D
        s[k] = s[k + 1] * a * r / D
        c[k] = c[k + 1] - s[k + 1] ** 2 * b * b / (4.0 * D)

    return LQSolution(p=p, s=s, c=c, K=K, g=g, a=float(a), b=float(b))
