"""Tests for the sequential pass over the flowsheet."""

import numpy as np
import pytest

from vacflow import make_initial_guess
from vacflow.residual import scaled_residual
from vacflow.sequential import (
    RECYCLE_GAS_Y,
    TEAR_TOL,
    TearValues,
    _wegstein_update,
    converge_flowsheet,
    initial_tear,
)
from vacflow.state import PlantState, state_labels

# Rows whose inputs all come from one pass; the rest also see the recycle gas
SINGLE_PASS_ROWS = ("TK.", "RCT.", "SEP.", "ABS.", "COMP.", "AUX.H1", "AUX.H2", "AUX.C3", "AUX.C4", "AUX.C5")


@pytest.fixture(scope="module")
def guess():
    return make_initial_guess()


@pytest.fixture(scope="module")
def converged(guess):
    x0, params = guess
    return converge_flowsheet(PlantState.unflatten(x0, params.layout), params)


class TestWegstein:
    def test_linear_map_lands_on_fixed_point(self):
        # g(x) = 0.5·x + 1 has its fixed point at 2
        x = [np.array([0.0]), np.array([1.0])]
        gx = [0.5 * v + 1.0 for v in x]
        np.testing.assert_allclose(_wegstein_update(x, gx), [2.0])

    def test_acceleration_is_bounded(self):
        # s close to 1 would give an unbounded q
        x = [np.array([0.0]), np.array([1.0])]
        gx = [np.array([1.0]), np.array([1.999999])]
        assert _wegstein_update(x, gx)[0] == pytest.approx(-5.0 * 1.0 + 6.0 * 1.999999)

    def test_unmoved_component_is_substituted(self):
        x = [np.array([3.0]), np.array([3.0])]
        gx = [np.array([4.0]), np.array([4.0])]
        np.testing.assert_array_equal(_wegstein_update(x, gx), [4.0])


class TestTear:
    def test_vector_round_trip(self):
        tear = TearValues(RECYCLE_GAS_Y, 45.0, 110.0)
        back = TearValues.from_vector(tear.vector())
        np.testing.assert_allclose(back.y_top, RECYCLE_GAS_Y)
        assert (back.T_top, back.T_S34) == (45.0, 110.0)

    def test_negative_fractions_clipped(self):
        values = np.append(RECYCLE_GAS_Y, [45.0, 110.0])
        values[0] = -0.01
        tear = TearValues.from_vector(values)
        assert tear.y_top[0] == 0.0
        assert tear.y_top.sum() == pytest.approx(1.0)

    def test_converged_state_supplies_its_own_tear(self, converged):
        tear = initial_tear(converged.state)
        assert tear.T_top == converged.state.absorber_trays[0].T
        assert tear.y_top.sum() == pytest.approx(1.0)
        assert not np.allclose(tear.y_top, RECYCLE_GAS_Y)


class TestSeededGuess:
    def test_single_pass_rows_close(self, guess):
        x0, params = guess
        res = scaled_residual(x0, params)
        labels = state_labels(params.layout)
        rows = [i for i, label in enumerate(labels) if label.startswith(SINGLE_PASS_ROWS)]
        assert np.max(np.abs(res[rows])) < 1e-7

    def test_unseeded_guess_is_nominal(self):
        x0, params = make_initial_guess(seed=False)
        state = PlantState.unflatten(x0, params.layout)
        assert state.separator.T_liq == 40.0
        assert state.absorber_trays[0].T == 45.0


class TestConvergeFlowsheet:
    def test_tear_converges(self, converged):
        assert converged.converged is True
        assert converged.tear_error <= TEAR_TOL
        assert 1 < converged.passes < 200

    def test_state_satisfies_residual(self, converged, guess):
        _, params = guess
        res = scaled_residual(converged.state.flatten(), params)
        assert np.max(np.abs(res)) < 1e-6

    def test_pass_limit_reported(self, guess):
        x0, params = guess
        result = converge_flowsheet(PlantState.unflatten(x0, params.layout), params, max_passes=1)
        assert result.converged is False
        assert result.passes == 1
        assert result.tear_error > TEAR_TOL
