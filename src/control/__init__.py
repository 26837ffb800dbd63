"""
===============================================================================
GRID DP PROJECT - Control Module
===============================================================================
Finite-horizon optimal control by exhaustive dynamic programming.

Submodules:
    problem           -- ControlProblem capability set (dynamics, costs)
    backward_solver   -- Bellman backward recursion over the state grid
    forward_simulator -- Policy replay from an initial state
    dp_solver         -- solve() entry point and DPResult
    lqr               -- Closed-form scalar LQ tracking reference solution
===============================================================================
"""
