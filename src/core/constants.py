"""
===============================================================================
GRID DP PROJECT - Reference Scenario and Solver Defaults
===============================================================================
Central repository for the default parameters used by the driver, the
configuration loader and the test suite.

The reference scenario is the scalar linear-quadratic tracking problem

    x(k+1) = A x(k) + B u(k)
    V(x, u, k) = Q x^2 + R u^2
    S(x, kf)   = P_f (x - x_target)^2
===============================================================================
"""

# =============================================================================
# REFERENCE LQ TRACKING PROBLEM
# =============================================================================
REF_A = 4.0                    # State coefficient in the dynamics
REF_B = -6.0                   # Control coefficient in the dynamics
REF_Q = 1.0                    # Stage state weight
REF_R = 2.0                    # Stage control weight
REF_P_TERMINAL = 1.0           # Terminal weight
REF_X_TARGET = 20.0            # Target state at the final time
REF_X0 = 8.0                   # Initial state
REF_HORIZON = 2                # Final time step kf

# =============================================================================
# REFERENCE DISCRETIZATION
# =============================================================================
REF_X_MIN = -50.0
REF_X_MAX = 50.0
REF_DX = 0.02
REF_U_MIN = -10.0
REF_U_MAX = 10.0
REF_DU = 0.02

# =============================================================================
# SOLVER DEFAULTS
# =============================================================================
DEFAULT_CHUNK_SIZE = 256       # States per block in vectorized/parallel sweeps
DEFAULT_WORKERS = 1            # Sequential unless asked otherwise
GRID_STEP_RTOL = 1e-9          # Tolerance when counting steps in a range

# =============================================================================
# OUTPUT DEFAULTS
# =============================================================================
DEFAULT_OUTPUT_DIR = "output"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
