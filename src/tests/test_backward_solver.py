"""
===============================================================================
GRID DP PROJECT - Backward Recursion Test Suite
===============================================================================
Tests for the Bellman backward sweep: a hand-worked 3-state example, control
tie-break (lowest control wins), state-snap tie-break (lowest grid index
wins), boundary clamping, full table population, determinism across worker
counts and evaluation modes, and CallbackError reporting.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import math
import warnings

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from control.backward_solver import BackwardSolver, check_horizon
from control.problem import FunctionProblem, LinearQuadraticProblem
from core.exceptions import CallbackError, DPError, InvalidGridError, InvalidHorizonError
from core.grid import DiscreteGrid, make_grid


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def small_grids():
    """Return state grid {0, 1, 2} and control grid {-1, 0, 1}."""
    return (
        DiscreteGrid.from_points([0.0, 1.0, 2.0], name='state'),
        DiscreteGrid.from_points([-1.0, 0.0, 1.0], name='control'),
    )


@pytest.fixture
def walk_problem():
    """x' = x + u, V = u^2, S = (x - 2)^2 on the small grids."""
    return FunctionProblem(
        f=lambda x, u, k: x + u,
        V=lambda x, u, k: u * u,
        S=lambda x, k: (x - 2.0) * (x - 2.0),
    )


class ScalarLQ(LinearQuadraticProblem):
    """Same arithmetic as LinearQuadraticProblem, evaluated point by point."""
    vectorized = False


def _solve(problem, xs, us, horizon, **kwargs):
    return BackwardSolver(problem, xs, us, **kwargs).solve(horizon)


# =============================================================================
# Hand-worked example
# =============================================================================

class TestHandWorkedExample:
    """
    Horizon 1:  J[:,1] = S = [4, 1, 0]

        x=0: u=-1 -> 0 (clamped): 1+4=5   u=0 -> 0: 0+4=4   u=1 -> 1: 1+1=2
        x=1: u=-1 -> 0: 1+4=5             u=0 -> 1: 0+1=1   u=1 -> 2: 1+0=1  (tie)
        x=2: u=-1 -> 1: 1+1=2             u=0 -> 2: 0+0=0   u=1 -> 2 (clamped): 1

        J[:,0] = [2, 1, 0],  U[:,0] = [1, 0, 0]
    """

    def test_horizon_one(self, walk_problem, small_grids):
        table = _solve(walk_problem, *small_grids, horizon=1)
        assert_array_equal(table.cost[:, 1], [4.0, 1.0, 0.0])
        assert_array_equal(table.cost[:, 0], [2.0, 1.0, 0.0])
        assert_array_equal(table.policy[:, 0], [1.0, 0.0, 0.0])

    def test_horizon_two(self, walk_problem, small_grids):
        """At k=0, x=0 both u=0 and u=1 cost 2; the lower control is kept."""
        table = _solve(walk_problem, *small_grids, horizon=2)
        assert_array_equal(table.cost[:, 2], [4.0, 1.0, 0.0])
        assert_array_equal(table.cost[:, 1], [2.0, 1.0, 0.0])
        assert_array_equal(table.policy[:, 1], [1.0, 0.0, 0.0])
        assert_array_equal(table.cost[:, 0], [2.0, 1.0, 0.0])
        assert_array_equal(table.policy[:, 0], [0.0, 0.0, 0.0])

    def test_vectorized_mode_agrees(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x + u,
            V=lambda x, u, k: u * u,
            S=lambda x, k: (x - 2.0) * (x - 2.0),
            vectorized=True,
        )
        table = _solve(problem, *small_grids, horizon=2)
        assert_array_equal(table.cost[:, 0], [2.0, 1.0, 0.0])
        assert_array_equal(table.policy[:, 0], [0.0, 0.0, 0.0])
        assert_array_equal(table.policy[:, 1], [1.0, 0.0, 0.0])

    def test_time_index_passed_to_callbacks(self, small_grids):
        seen = {'f': set(), 'V': set(), 'S': set()}

        def f(x, u, k):
            seen['f'].add(k)
            return x

        def V(x, u, k):
            seen['V'].add(k)
            return 0.0

        def S(x, k):
            seen['S'].add(k)
            return 0.0

        _solve(FunctionProblem(f, V, S), *small_grids, horizon=3)
        assert seen == {'f': {0, 1, 2}, 'V': {0, 1, 2}, 'S': {3}}


# =============================================================================
# Tie-break and boundary laws
# =============================================================================

class TestTieBreak:

    @pytest.mark.parametrize("vectorized", [False, True])
    def test_equal_stage_costs_pick_lowest_control(self, small_grids, vectorized):
        """V = (u^2 - 1)^2 is zero at u = -1 and u = +1; -1 must win."""
        problem = FunctionProblem(
            f=lambda x, u, k: x,
            V=lambda x, u, k: (u * u - 1.0) ** 2,
            S=lambda x, k: 0.0 * x,
            vectorized=vectorized,
        )
        table = _solve(problem, *small_grids, horizon=2)
        assert_array_equal(table.policy, -1.0)
        assert_array_equal(table.cost, 0.0)

    def test_equal_cost_to_go_pick_lowest_control(self):
        """Moving left or right from 0 lands on equal terminal costs."""
        xs = DiscreteGrid.from_points([-1.0, 0.0, 1.0])
        us = DiscreteGrid.from_points([-1.0, 1.0])
        problem = FunctionProblem(
            f=lambda x, u, k: x + u,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: x * x,
        )
        table = _solve(problem, xs, us, horizon=1)
        assert table.control(1, 0) == -1.0
        assert table.cost_to_go(1, 0) == 1.0

    def test_equidistant_successor_snaps_to_lower_point(self):
        """x' = 0.5 is halfway between 0 and 1; the lower point is used."""
        xs = DiscreteGrid.from_points([0.0, 1.0])
        us = DiscreteGrid.from_points([0.0])
        problem = FunctionProblem(
            f=lambda x, u, k: 0.5,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: 10.0 * x,
        )
        table = _solve(problem, xs, us, horizon=1)
        assert_array_equal(table.cost[:, 0], [0.0, 0.0])


class TestBoundary:

    @pytest.mark.parametrize("x_next, expected", [(100.0, 2.0), (-100.0, 0.0)])
    def test_out_of_range_successor_uses_endpoint(self, small_grids, x_next, expected):
        problem = FunctionProblem(
            f=lambda x, u, k: x_next,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: x,
        )
        table = _solve(problem, *small_grids, horizon=1)
        assert_array_equal(table.cost[:, 0], expected)


# =============================================================================
# Population and determinism
# =============================================================================

class TestPopulationAndDeterminism:

    @pytest.fixture
    def lq_setup(self):
        xs = make_grid(-3.0, 3.0, 0.25, name='state')
        us = make_grid(-1.0, 1.0, 0.125, name='control')
        args = dict(a=0.9, b=1.0, q=1.0, r=0.5, p_terminal=2.0, x_target=1.0)
        return xs, us, args

    def test_tables_fully_populated(self, lq_setup):
        xs, us, args = lq_setup
        table = _solve(LinearQuadraticProblem(**args), xs, us, horizon=4)
        assert table.is_complete()
        assert table.cost.shape == (len(xs), 5)
        assert table.policy.shape == (len(xs), 4)
        assert np.isin(table.policy, us.points).all()

    def test_repeated_runs_bit_identical(self, lq_setup):
        xs, us, args = lq_setup
        t1 = _solve(LinearQuadraticProblem(**args), xs, us, horizon=4)
        t2 = _solve(LinearQuadraticProblem(**args), xs, us, horizon=4)
        assert_array_equal(t1.cost, t2.cost)
        assert_array_equal(t1.policy, t2.policy)

    @pytest.mark.parametrize("workers, chunk_size", [(2, 1), (4, 3), (8, 7)])
    def test_threaded_sweep_matches_sequential(self, lq_setup, workers, chunk_size):
        xs, us, args = lq_setup
        seq = _solve(LinearQuadraticProblem(**args), xs, us, horizon=4)
        par = _solve(LinearQuadraticProblem(**args), xs, us, horizon=4,
                     workers=workers, chunk_size=chunk_size)
        assert_array_equal(seq.cost, par.cost)
        assert_array_equal(seq.policy, par.policy)

    def test_scalar_and_vectorized_modes_match(self, lq_setup):
        xs, us, args = lq_setup
        vec = _solve(LinearQuadraticProblem(**args), xs, us, horizon=3)
        sca = _solve(ScalarLQ(**args), xs, us, horizon=3, workers=2, chunk_size=5)
        assert_array_equal(vec.cost, sca.cost)
        assert_array_equal(vec.policy, sca.policy)

    def test_zero_horizon_only_terminal(self, walk_problem, small_grids):
        table = _solve(walk_problem, *small_grids, horizon=0)
        assert table.cost.shape == (3, 1)
        assert table.policy.shape == (3, 0)
        assert_array_equal(table.cost[:, 0], [4.0, 1.0, 0.0])


# =============================================================================
# Argument validation
# =============================================================================

class TestValidation:

    @pytest.mark.parametrize("horizon", [-1, 1.5, 2.0, True, "2", None])
    def test_invalid_horizon(self, horizon):
        with pytest.raises(InvalidHorizonError):
            check_horizon(horizon)

    def test_numpy_integer_horizon_accepted(self):
        assert check_horizon(np.int64(3)) == 3

    def test_solver_rejects_negative_horizon(self, walk_problem, small_grids):
        with pytest.raises(InvalidHorizonError):
            _solve(walk_problem, *small_grids, horizon=-2)

    def test_problem_type_checked(self, small_grids):
        with pytest.raises(TypeError):
            BackwardSolver(lambda x, u, k: x, *small_grids)

    @pytest.mark.parametrize("kwargs", [{'workers': 0}, {'chunk_size': 0}])
    def test_invalid_execution_options(self, walk_problem, small_grids, kwargs):
        with pytest.raises(ValueError):
            BackwardSolver(walk_problem, *small_grids, **kwargs)


# =============================================================================
# Callback failures
# =============================================================================

class TestCallbackErrors:

    def test_dynamics_exception_wrapped(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: 1.0 / x,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: 0.0,
        )
        with pytest.raises(CallbackError) as err:
            _solve(problem, *small_grids, horizon=1)
        assert err.value.callback == 'dynamics'
        assert err.value.triple == (0.0, -1.0, 0)
        assert isinstance(err.value.__cause__, ZeroDivisionError)

    def test_stage_cost_nan_reports_triple(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x,
            V=lambda x, u, k: math.nan if (x == 1.0 and u == 1.0) else 0.0,
            S=lambda x, k: 0.0,
        )
        with pytest.raises(CallbackError) as err:
            _solve(problem, *small_grids, horizon=2)
        assert err.value.callback == 'stage_cost'
        assert err.value.triple == (1.0, 1.0, 1)

    def test_vectorized_nan_reports_first_offender(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x + 0.0 * u,
            V=lambda x, u, k: np.where((x >= 1.0) & (u >= 0.0), np.nan, 0.0),
            S=lambda x, k: 0.0 * x,
            vectorized=True,
        )
        with pytest.raises(CallbackError) as err:
            _solve(problem, *small_grids, horizon=1)
        assert err.value.triple == (1.0, 0.0, 0)

    def test_terminal_infinity(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: math.inf if x == 2.0 else 0.0,
        )
        with pytest.raises(CallbackError) as err:
            _solve(problem, *small_grids, horizon=3)
        assert err.value.callback == 'terminal_cost'
        assert err.value.control is None
        assert err.value.triple == (2.0, None, 3)

    @pytest.mark.parametrize("bad", [None, "abc", [1.0, 2.0], object()])
    def test_non_numeric_dynamics(self, small_grids, bad):
        problem = FunctionProblem(
            f=lambda x, u, k: bad,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: 0.0,
        )
        with pytest.raises(CallbackError, match='dynamics'):
            _solve(problem, *small_grids, horizon=1)

    def test_candidate_overflow(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x,
            V=lambda x, u, k: 1e308,
            S=lambda x, k: 1e308,
        )
        with pytest.raises(CallbackError, match='overflow'):
            _solve(problem, *small_grids, horizon=1)

    def test_vectorized_candidate_overflow(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x + 0.0 * u,
            V=lambda x, u, k: 1e308 + 0.0 * x * u,
            S=lambda x, k: 1e308 + 0.0 * x,
            vectorized=True,
        )
        with pytest.raises(CallbackError, match='overflow'):
            _solve(problem, *small_grids, horizon=1)

    def test_vectorized_overflow_raises_without_runtime_warning(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x + 0.0 * u,
            V=lambda x, u, k: 1e308 + 0.0 * x * u,
            S=lambda x, k: 1e308 + 0.0 * x,
            vectorized=True,
        )
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            with pytest.raises(CallbackError, match='overflow'):
                _solve(problem, *small_grids, horizon=1)

    @pytest.mark.parametrize("vectorized", [False, True])
    def test_dp_error_from_callback_is_wrapped(self, small_grids, vectorized):
        """A solver-family error raised inside V still surfaces as CallbackError."""
        def V(x, u, k):
            raise InvalidGridError("nested model grid is empty")

        problem = FunctionProblem(
            f=lambda x, u, k: x + 0.0 * u,
            V=V,
            S=lambda x, k: 0.0 * x,
            vectorized=vectorized,
        )
        with pytest.raises(CallbackError) as err:
            _solve(problem, *small_grids, horizon=1)
        assert err.value.callback == 'stage_cost'
        assert err.value.triple == (0.0, -1.0, 0)
        assert isinstance(err.value.__cause__, InvalidGridError)

    def test_complex_scalar_cost_rejected(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x,
            V=lambda x, u, k: np.complex128(1 + 2j),
            S=lambda x, k: 0.0,
        )
        with pytest.raises(CallbackError, match='non-numeric') as err:
            _solve(problem, *small_grids, horizon=1)
        assert err.value.triple == (0.0, -1.0, 0)

    def test_complex_block_cost_rejected(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: x + 0.0 * u,
            V=lambda x, u, k: (1 + 1j) * u + 0.0 * x,
            S=lambda x, k: 0.0 * x,
            vectorized=True,
        )
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            with pytest.raises(CallbackError, match='complex'):
                _solve(problem, *small_grids, horizon=1)

    def test_callback_error_is_dp_error(self, small_grids):
        problem = FunctionProblem(
            f=lambda x, u, k: math.nan,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: 0.0,
        )
        with pytest.raises(DPError):
            _solve(problem, *small_grids, horizon=1)

    def test_no_table_exposed_after_failure(self, small_grids):
        """A failing solve returns nothing; the caller only sees the error."""
        problem = FunctionProblem(
            f=lambda x, u, k: math.nan if k == 0 else x,
            V=lambda x, u, k: 0.0,
            S=lambda x, k: 0.0,
        )
        solver = BackwardSolver(problem, *small_grids)
        result = None
        with pytest.raises(CallbackError):
            result = solver.solve(2)
        assert result is None
