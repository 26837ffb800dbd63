"""
Custom data structures for the grid dynamic-programming solver.

Structures
----------
DPTable  -- Dense cost-to-go and policy arena indexed by
            (state-grid-index, time-index).

All public methods carry full type annotations and NumPy-style docstrings.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np


class DPTable:
    """Dynamic-programming table for finite-horizon cost-to-go computation.

    The Bellman recursion fills this table backwards in time: first the
    terminal column ``J[:, N]`` from the terminal cost, then for each
    ``k = N-1 .. 0`` the cost-to-go column ``J[:, k]`` together with the
    policy column ``U[:, k]``.

    Memory layout
    -------------
    Both tables are single contiguous row-major NumPy arrays:

    * ``cost``   shape ``(n_states, horizon + 1)``  -- ``J[i, k]``
    * ``policy`` shape ``(n_states, horizon)``      -- ``U[i, k]``

    Every cell starts as NaN.  A cell is *filled* once it holds a finite
    value, which makes completeness checkable before the table is handed to
    the forward pass.

    Parameters
    ----------
    n_states : int
        Number of state grid points.
    horizon : int
        Horizon length N (number of control steps).  ``0`` is allowed, in
        which case only the terminal column exists and the policy is empty.
    """

    def __init__(self, n_states: int, horizon: int) -> None:
        if n_states <= 0:
            raise ValueError(f"n_states must be positive, got {n_states}")
        if horizon < 0:
            raise ValueError(f"horizon must be non-negative, got {horizon}")

        self._n_states: int = int(n_states)
        self._horizon: int = int(horizon)
        self._cost: np.ndarray = np.full((n_states, horizon + 1), np.nan, dtype=np.float64)
        self._policy: np.ndarray = np.full((n_states, horizon), np.nan, dtype=np.float64)
        self._terminal_set: bool = False

    # -- write ---------------------------------------------------------------

    def set_terminal(self, values: np.ndarray) -> None:
        """Store the terminal column ``J[:, N]``.

        Raises
        ------
        RuntimeError
            If the terminal column has already been written.
        ValueError
            If *values* does not have one entry per state.
        """
        if self._terminal_set:
            raise RuntimeError("terminal cost column is already set")
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self._n_states,):
            raise ValueError(
                f"terminal column must have shape ({self._n_states},), got {values.shape}"
            )
        self._cost[:, self._horizon] = values
        self._terminal_set = True

    def set_stage(
        self,
        time_idx: int,
        rows: slice,
        costs: np.ndarray,
        controls: np.ndarray,
    ) -> None:
        """Write cost-to-go and optimal control for a block of states.

        Blocks handed to different workers must use disjoint *rows*.

        Complexity
        ----------
        O(len(rows)) -- two strided column writes.
        """
        if not 0 <= time_idx < self._horizon:
            raise IndexError(f"stage index {time_idx} outside [0, {self._horizon})")
        self._cost[rows, time_idx] = costs
        self._policy[rows, time_idx] = controls

    # -- read ----------------------------------------------------------------

    def cost_to_go(self, state_idx: int, time_idx: int) -> float:
        """Return ``J[state_idx, time_idx]``.  O(1)."""
        return float(self._cost[state_idx, time_idx])

    def control(self, state_idx: int, time_idx: int) -> float:
        """Return ``U[state_idx, time_idx]``.  O(1)."""
        return float(self._policy[state_idx, time_idx])

    def cost_column(self, time_idx: int) -> np.ndarray:
        """Read-only view of ``J[:, time_idx]``."""
        view = self._cost[:, time_idx]
        view.flags.writeable = False
        return view

    @property
    def cost(self) -> np.ndarray:
        """Copy of the full cost-to-go table, shape ``(n_states, N + 1)``."""
        return self._cost.copy()

    @property
    def policy(self) -> np.ndarray:
        """Copy of the full policy table, shape ``(n_states, N)``."""
        return self._policy.copy()

    # -- metadata ------------------------------------------------------------

    @property
    def terminal_set(self) -> bool:
        return self._terminal_set

    @property
    def shape(self) -> Tuple[int, int]:
        return (self._n_states, self._horizon)

    @property
    def horizon(self) -> int:
        return self._horizon

    @property
    def n_states(self) -> int:
        return self._n_states

    def memory_usage(self) -> int:
        """Approximate memory in bytes for the cost and policy tables."""
        return int(self._cost.nbytes + self._policy.nbytes)

    def filled_fraction(self) -> float:
        """Fraction of cells (cost and policy together) holding finite values."""
        total = self._cost.size + self._policy.size
        finite = np.isfinite(self._cost).sum() + np.isfinite(self._policy).sum()
        return float(finite) / total

    def is_complete(self) -> bool:
        """True when every cost and policy cell has been written."""
        return bool(np.isfinite(self._cost).all() and np.isfinite(self._policy).all())

    def __repr__(self) -> str:
        mem_kb = self.memory_usage() / 1024
        return (
            f"DPTable(states={self._n_states}, horizon={self._horizon}, "
            f"filled={self.filled_fraction():.1%}, mem={mem_kb:.1f} KiB)"
        )
