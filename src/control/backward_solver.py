"""
Backward Solver
===============

Bellman backward recursion over a discretized state grid:

    J[i, N] = S(x_i, N)
    J[i, k] = min_j  V(x_i, u_j, k) + J[snap(f(x_i, u_j, k)), k+1]
    U[i, k] = the u_j achieving the minimum

``snap`` is the shared nearest-grid-point lookup from :mod:`core.grid`.
The minimum uses strict less-than over controls in increasing order, so the
lowest-valued control wins ties.

Execution model
---------------
Time steps are strictly sequential (step k reads the finished column k+1).
Within a step, the state grid is split into blocks of ``chunk_size`` rows.
Each block computes its own min/argmin over the full control grid and writes
only its own rows of the table, so blocks can run on a
:class:`multiprocessing.pool.ThreadPool` without locking.  Callables are
never pickled, so lambdas and closures are valid problem definitions.

Block evaluation comes in two flavours:

    scalar      -- one Python call per (x, u) pair, validated individually;
    vectorized  -- for problems with ``vectorized = True``, one broadcast
                   call per block with ``x`` of shape (c, 1) and ``u`` of
                   shape (1, n_u); ``numpy.argmin`` returns the first
                   minimal index, which is the same tie-break.

Both flavours produce bit-identical tables for the same arithmetic.
"""

from __future__ import annotations

import logging
import math
import numbers
import time
from multiprocessing.pool import ThreadPool
from typing import List, Optional, Tuple

import numpy as np

from control.problem import ControlProblem, evaluate_block, evaluate_point
from core.constants import DEFAULT_CHUNK_SIZE, DEFAULT_WORKERS
from core.data_structures import DPTable
from core.exceptions import CallbackError, InvalidHorizonError
from core.grid import DiscreteGrid


logger = logging.getLogger(__name__)


def check_horizon(horizon) -> int:
    """Validate a horizon length and return it as an ``int``.

    Raises
    ------
    InvalidHorizonError
        If *horizon* is not an integer or is negative.
    """
    if isinstance(horizon, bool) or not isinstance(horizon, numbers.Integral):
        raise InvalidHorizonError(
            f"horizon must be an integer, got {type(horizon).__name__} {horizon!r}"
        )
    if horizon < 0:
        raise InvalidHorizonError(f"horizon must be non-negative, got {horizon}")
    return int(horizon)


class BackwardSolver:
    """Computes the cost-to-go and policy tables of a control problem.

    Parameters
    ----------
    problem : ControlProblem
        Dynamics, stage cost and terminal cost provider.
    state_grid : DiscreteGrid
        Discretized state domain.
    control_grid : DiscreteGrid
        Discretized control domain.
    workers : int or None
        Number of threads used within one time step.  ``None`` or ``1``
        runs sequentially.
    chunk_size : int
        Number of state rows evaluated per block.
    """

    def __init__(
        self,
        problem: ControlProblem,
        state_grid: DiscreteGrid,
        control_grid: DiscreteGrid,
        workers: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if not isinstance(problem, ControlProblem):
            raise TypeError(
                f"problem must be a ControlProblem, got {type(problem).__name__}"
            )
        workers = DEFAULT_WORKERS if workers is None else int(workers)
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        if int(chunk_size) < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")

        self.problem = problem
        self.state_grid = state_grid
        self.control_grid = control_grid
        self.workers = workers
        self.chunk_size = int(chunk_size)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def solve(self, horizon: int) -> DPTable:
        """Run the full backward recursion.

        Parameters
        ----------
        horizon : int
            Horizon length N >= 0.

        Returns
        -------
        DPTable
            Fully populated cost-to-go (N+1 columns) and policy (N columns).

        Raises
        ------
        InvalidHorizonError
            If *horizon* is negative or not an integer.
        CallbackError
            If any callback raises or produces a non-finite value, or a
            candidate cost overflows.
        """
        n_steps = check_horizon(horizon)
        nx = len(self.state_grid)
        nu = len(self.control_grid)
        mode = "vectorized" if self.problem.vectorized else "scalar"
        logger.info(
            "Backward recursion: %d states x %d controls x %d steps (%s, workers=%d)",
            nx, nu, n_steps, mode, self.workers,
        )
        t_start = time.perf_counter()

        table = DPTable(nx, n_steps)
        table.set_terminal(self._terminal_column(n_steps))

        blocks = self._blocks()
        if self.workers > 1 and len(blocks) > 1:
            with ThreadPool(processes=min(self.workers, len(blocks))) as pool:
                for k in range(n_steps - 1, -1, -1):
                    pool.map(lambda rows: self._sweep_block(table, rows, k), blocks)
                    logger.debug("Stage k=%d complete", k)
        else:
            for k in range(n_steps - 1, -1, -1):
                for rows in blocks:
                    self._sweep_block(table, rows, k)
                logger.debug("Stage k=%d complete", k)

        if not table.is_complete():
            raise RuntimeError("backward recursion left unset table cells")

        logger.info(
            "Backward recursion finished in %.3f s (%s)",
            time.perf_counter() - t_start, table,
        )
        return table

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _blocks(self) -> List[slice]:
        nx = len(self.state_grid)
        return [
            slice(start, min(start + self.chunk_size, nx))
            for start in range(0, nx, self.chunk_size)
        ]

    def _terminal_column(self, n_steps: int) -> np.ndarray:
        xs = self.state_grid.points
        if self.problem.vectorized:
            return evaluate_block(
                self.problem, "terminal_cost", xs, None, n_steps, xs.shape
            ).copy()
        return np.array(
            [evaluate_point(self.problem, "terminal_cost", float(x), None, n_steps)
             for x in xs],
            dtype=np.float64,
        )

    def _sweep_block(self, table: DPTable, rows: slice, k: int) -> None:
        """Min/argmin over all controls for the states in *rows* at step *k*."""
        next_cost = table.cost_column(k + 1)
        if self.problem.vectorized:
            costs, controls = self._reduce_vectorized(rows, k, next_cost)
        else:
            costs, controls = self._reduce_scalar(rows, k, next_cost)
        table.set_stage(k, rows, costs, controls)

    def _reduce_scalar(
        self, rows: slice, k: int, next_cost: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        xs = self.state_grid.points
        us = self.control_grid.points.tolist()
        n = rows.stop - rows.start
        costs = np.empty(n, dtype=np.float64)
        controls = np.empty(n, dtype=np.float64)

        for row, i in enumerate(range(rows.start, rows.stop)):
            x = float(xs[i])
            best_cost = math.inf
            best_u = us[0]
            for u in us:
                x_next = evaluate_point(self.problem, "dynamics", x, u, k)
                j_next = self.state_grid.nearest_index(x_next)
                stage = evaluate_point(self.problem, "stage_cost", x, u, k)
                candidate = stage + float(next_cost[j_next])
                if not math.isfinite(candidate):
                    raise CallbackError(
                        "stage_cost", x, u, k,
                        f"candidate cost overflowed ({stage} + {next_cost[j_next]})",
                    )
                if candidate < best_cost:
                    best_cost = candidate
                    best_u = u
            costs[row] = best_cost
            controls[row] = best_u
        return costs, controls

    def _reduce_vectorized(
        self, rows: slice, k: int, next_cost: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        xb = self.state_grid.points[rows][:, None]
        ub = self.control_grid.points[None, :]
        shape = (xb.shape[0], ub.shape[1])

        x_next = evaluate_block(self.problem, "dynamics", xb, ub, k, shape)
        j_next = self.state_grid.nearest_indices(x_next)
        stage = evaluate_block(self.problem, "stage_cost", xb, ub, k, shape)
        with np.errstate(over="ignore", invalid="ignore"):
            candidates = stage + next_cost[j_next]

        overflow = ~np.isfinite(candidates)
        if overflow.any():
            r, c = np.argwhere(overflow)[0]
            raise CallbackError(
                "stage_cost", float(xb[r, 0]), float(ub[0, c]), k,
                f"candidate cost overflowed ({stage[r, c]} + {next_cost[j_next[r, c]]})",
            )

        best = np.argmin(candidates, axis=1)
        costs = candidates[np.arange(shape[0]), best]
        controls = self.control_grid.points[best]
        return costs, controls
