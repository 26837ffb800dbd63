"""
Dynamic Programming Solver
==========================

Entry points for the grid dynamic-programming optimal controller.

    solve(f, V, S, x0, N, state_grid, control_grid) -> (x_opt, u_opt, J_opt)

is the plain functional interface.  :class:`DynamicProgrammingSolver` is the
object interface: it accepts a :class:`control.problem.ControlProblem` and
returns a :class:`DPResult` that also carries the cost-to-go and policy
tables for inspection.

Both run the two stages in strict sequence:

    1. BackwardSolver    -- cost-to-go table J and policy table U
    2. ForwardSimulator  -- replay of U from x0

Grids and tables are created per call and never shared between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from control.backward_solver import BackwardSolver, check_horizon
from control.forward_simulator import ForwardSimulator, check_initial_state, realized_cost
from control.problem import (
    ControlProblem, DynamicsFn, FunctionProblem, StageCostFn, TerminalCostFn,
)
from core.constants import DEFAULT_CHUNK_SIZE
from core.grid import DiscreteGrid


logger = logging.getLogger(__name__)

GridLike = Union[DiscreteGrid, Sequence[float], np.ndarray]


@dataclass(frozen=True, eq=False)
class DPResult:
    """Outcome of one dynamic-programming solve.

    Attributes
    ----------
    x_opt : np.ndarray, shape ``(N + 1,)``
        Realized optimal state trajectory.
    u_opt : np.ndarray, shape ``(N,)``
        Optimal control sequence.
    J_opt : float
        Tabulated cost-to-go at the grid point nearest to ``x0``, time 0.
    cost_to_go : np.ndarray, shape ``(n_states, N + 1)``
        ``J[i, k]``.
    policy : np.ndarray, shape ``(n_states, N)``
        ``U[i, k]``.
    state_grid, control_grid : DiscreteGrid
    problem : ControlProblem
    """
    x_opt: np.ndarray
    u_opt: np.ndarray
    J_opt: float
    cost_to_go: np.ndarray
    policy: np.ndarray
    state_grid: DiscreteGrid
    control_grid: DiscreteGrid
    problem: ControlProblem

    @property
    def horizon(self) -> int:
        return int(self.u_opt.shape[0])

    def realized_cost(self) -> float:
        """Stage plus terminal cost actually incurred along ``x_opt``."""
        return realized_cost(self.problem, self.x_opt, self.u_opt)

    def as_tuple(self) -> Tuple[np.ndarray, np.ndarray, float]:
        return self.x_opt, self.u_opt, self.J_opt

    def to_dataframe(self) -> pd.DataFrame:
        """Trajectory as a table with columns ``k``, ``x``, ``u``.

        The final row has no control and holds NaN in ``u``.
        """
        u = np.append(self.u_opt, np.nan)
        return pd.DataFrame({
            "k": np.arange(self.horizon + 1),
            "x": self.x_opt,
            "u": u,
        })

    def summary(self) -> str:
        lines = [
            f"Horizon           : {self.horizon}",
            f"State grid        : {self.state_grid}",
            f"Control grid      : {self.control_grid}",
            f"Optimal controls  : {np.array2string(self.u_opt, precision=4)}",
            f"Optimal states    : {np.array2string(self.x_opt, precision=4)}",
            f"Total optimal cost: {self.J_opt:.6f}",
            f"Realized cost     : {self.realized_cost():.6f}",
        ]
        return "\n".join(lines)


class DynamicProgrammingSolver:
    """Grid dynamic-programming optimal controller.

    Parameters
    ----------
    problem : ControlProblem
    state_grid, control_grid : DiscreteGrid or array_like
        Strictly increasing, non-empty point sets.
    workers : int or None
        Threads used inside one backward time step.
    chunk_size : int
        State rows per evaluation block.

    Raises
    ------
    InvalidGridError
        If either grid is empty or not strictly increasing.
    """

    def __init__(
        self,
        problem: ControlProblem,
        state_grid: GridLike,
        control_grid: GridLike,
        workers: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.problem = problem
        self.state_grid = DiscreteGrid.from_points(state_grid, name="state")
        self.control_grid = DiscreteGrid.from_points(control_grid, name="control")
        self._backward = BackwardSolver(
            problem, self.state_grid, self.control_grid,
            workers=workers, chunk_size=chunk_size,
        )

    def run(self, x0: float, horizon: int) -> DPResult:
        """Solve over *horizon* steps and replay from *x0*."""
        x0 = check_initial_state(x0)
        horizon = check_horizon(horizon)

        table = self._backward.solve(horizon)
        simulator = ForwardSimulator(self.problem, self.state_grid, table)
        x_opt, u_opt, J_opt = simulator.simulate(x0)

        return DPResult(
            x_opt=x_opt,
            u_opt=u_opt,
            J_opt=J_opt,
            cost_to_go=table.cost,
            policy=table.policy,
            state_grid=self.state_grid,
            control_grid=self.control_grid,
            problem=self.problem,
        )


def solve(
    f: DynamicsFn,
    V: StageCostFn,
    S: TerminalCostFn,
    x0: float,
    N: int,
    state_grid: GridLike,
    control_grid: GridLike,
    *,
    vectorized: bool = False,
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Tuple[np.ndarray, np.ndarray, float]:
    """Solve a finite-horizon optimal control problem on a grid.

    Parameters
    ----------
    f : callable
        Dynamics ``f(x, u, k) -> x(k+1)``.
    V : callable
        Stage cost ``V(x, u, k)``.
    S : callable
        Terminal cost ``S(x, k)``.
    x0 : float
        Initial state.
    N : int
        Horizon length, N >= 0.
    state_grid, control_grid : array_like or DiscreteGrid
        Strictly increasing discretizations.
    vectorized : bool
        Set when f, V and S broadcast over NumPy arrays.
    workers : int or None
        Threads used inside one backward time step.
    chunk_size : int
        State rows per evaluation block.

    Returns
    -------
    x_opt : np.ndarray, shape ``(N + 1,)``
    u_opt : np.ndarray, shape ``(N,)``
    J_opt : float

    Raises
    ------
    InvalidGridError, InvalidHorizonError, InvalidInitialStateError, CallbackError
    """
    problem = FunctionProblem(f, V, S, vectorized=vectorized)
    solver = DynamicProgrammingSolver(
        problem, state_grid, control_grid, workers=workers, chunk_size=chunk_size,
    )
    return solver.run(x0, N).as_tuple()
