"""
Error hierarchy for the grid dynamic-programming solver.

Every failure aborts the whole solve: there is no partial result and no
retry.  Callers can catch :class:`DPError` to handle all of them, or one of
the concrete subclasses to react to a specific kind.
"""

from __future__ import annotations

from typing import Optional


class DPError(Exception):
    """Base class for all solver errors."""


class InvalidGridError(DPError, ValueError):
    """A state or control grid is empty, malformed or not strictly increasing."""


class InvalidHorizonError(DPError, ValueError):
    """The horizon is negative or not an integer."""


class InvalidInitialStateError(DPError, ValueError):
    """The initial state is not a finite real number."""


class CallbackError(DPError):
    """A dynamics or cost callback raised or produced a non-finite value.

    Attributes
    ----------
    callback : str
        Name of the failing callback (``"dynamics"``, ``"stage_cost"`` or
        ``"terminal_cost"``).
    state : float
        State argument of the failing call.
    control : float or None
        Control argument, ``None`` for the terminal cost.
    time : int
        Time index of the failing call.
    reason : str
        Short human-readable description of what went wrong.
    """

    def __init__(
        self,
        callback: str,
        state: float,
        control: Optional[float],
        time: int,
        reason: str,
    ) -> None:
        self.callback = callback
        self.state = state
        self.control = control
        self.time = time
        self.reason = reason
        if control is None:
            where = f"x={state!r}, k={time}"
        else:
            where = f"x={state!r}, u={control!r}, k={time}"
        super().__init__(f"{callback} failed at ({where}): {reason}")

    @property
    def triple(self):
        """The offending ``(state, control, time)`` triple."""
        return (self.state, self.control, self.time)
