"""
Forward Simulator
=================

Replays the policy table produced by :class:`control.backward_solver.BackwardSolver`
from an initial state:

    x[0]   = x0
    u[k]   = U[snap(x[k]), k]
    x[k+1] = f(x[k], u[k], k)

The trajectory is not re-optimized; it mechanically follows the table.
``J_opt`` is read from the table at ``(snap(x0), 0)`` and is *not* the sum
of the realized stage costs.  The two agree in exact arithmetic on a grid
that contains every visited state, and diverge once snapping is involved;
:func:`realized_cost` measures the realized side of that gap.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence, Tuple

import numpy as np

from control.problem import ControlProblem, evaluate_point
from core.data_structures import DPTable
from core.exceptions import InvalidInitialStateError
from core.grid import DiscreteGrid


logger = logging.getLogger(__name__)


def check_initial_state(x0) -> float:
    """Return *x0* as a float, rejecting non-numeric and non-finite values."""
    try:
        value = float(x0)
    except (TypeError, ValueError) as exc:
        raise InvalidInitialStateError(f"initial state must be a real number, got {x0!r}") from exc
    if not math.isfinite(value):
        raise InvalidInitialStateError(f"initial state must be finite, got {value}")
    return value


class ForwardSimulator:
    """Policy replay over a completed :class:`DPTable`.

    Parameters
    ----------
    problem : ControlProblem
        Supplies the dynamics used to advance the state.
    state_grid : DiscreteGrid
        The grid the table was computed on.
    table : DPTable
        Fully populated cost-to-go and policy tables.
    """

    def __init__(
        self,
        problem: ControlProblem,
        state_grid: DiscreteGrid,
        table: DPTable,
    ) -> None:
        if table.n_states != len(state_grid):
            raise ValueError(
                f"table has {table.n_states} state rows but the grid has "
                f"{len(state_grid)} points"
            )
        if not table.is_complete():
            raise RuntimeError("cannot simulate from a partially filled table")
        self.problem = problem
        self.state_grid = state_grid
        self.table = table

    def simulate(self, x0: float) -> Tuple[np.ndarray, np.ndarray, float]:
        """Reconstruct the optimal trajectory starting at *x0*.

        Returns
        -------
        x_opt : np.ndarray, shape ``(N + 1,)``
            Realized states, ``x_opt[0] == x0``.
        u_opt : np.ndarray, shape ``(N,)``
            Controls read from the policy table.
        J_opt : float
            Cost-to-go at the grid point nearest to *x0* at time 0.
        """
        x0 = check_initial_state(x0)
        n_steps = self.table.horizon

        x_opt = np.empty(n_steps + 1, dtype=np.float64)
        u_opt = np.empty(n_steps, dtype=np.float64)
        x_opt[0] = x0

        for k in range(n_steps):
            idx = self.state_grid.nearest_index(x_opt[k])
            u_opt[k] = self.table.control(idx, k)
            x_opt[k + 1] = evaluate_point(
                self.problem, "dynamics", float(x_opt[k]), float(u_opt[k]), k
            )

        J_opt = self.table.cost_to_go(self.state_grid.nearest_index(x0), 0)
        logger.info("Forward replay from x0=%g: J_opt=%.6g", x0, J_opt)
        return x_opt, u_opt, J_opt


def realized_cost(
    problem: ControlProblem,
    x_opt: Sequence[float],
    u_opt: Sequence[float],
) -> float:
    """Sum of stage costs along a trajectory plus the terminal cost.

    Evaluated at the realized (unsnapped) states, so under snapping it can
    differ from the tabulated ``J_opt``.
    """
    x_opt = np.asarray(x_opt, dtype=np.float64)
    u_opt = np.asarray(u_opt, dtype=np.float64)
    n_steps = u_opt.shape[0]
    if x_opt.shape[0] != n_steps + 1:
        raise ValueError(
            f"expected {n_steps + 1} states for {n_steps} controls, got {x_opt.shape[0]}"
        )

    total = 0.0
    for k in range(n_steps):
        total += evaluate_point(problem, "stage_cost", float(x_opt[k]), float(u_opt[k]), k)
    total += evaluate_point(problem, "terminal_cost", float(x_opt[n_steps]), None, n_steps)
    return total
