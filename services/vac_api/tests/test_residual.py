"""Tests for the steady-state residual."""

import numpy as np
import pytest

from vacflow import make_initial_guess, residual
from vacflow.errors import NonFiniteResidualError, NonPhysicalTemperatureError
from vacflow.residual import temperature_mask
from vacflow.state import PlantState, ProcessParameters, StateLayout, state_labels
from vacflow.streams import T_ABS, resolve_streams, total_concentration


@pytest.fixture(scope="module")
def guess():
    return make_initial_guess()


@pytest.fixture(scope="module")
def labels():
    return state_labels()


def _with_operating(params, **changes):
    return ProcessParameters(
        params.streams, params.operating.model_copy(update=changes), params.layout,
    )


class TestShapeAndPurity:
    def test_same_dimension_as_state(self, guess):
        x0, params = guess
        res = residual(x0, params)
        assert res.shape == x0.shape
        assert np.all(np.isfinite(res))

    def test_bit_identical_on_repeat(self, guess):
        x0, params = guess
        np.testing.assert_array_equal(residual(x0, params), residual(x0, params))

    def test_inputs_not_mutated(self, guess):
        x0, params = guess
        x_before = x0.copy()
        p_before = params.flatten()
        residual(x0, params)
        np.testing.assert_array_equal(x0, x_before)
        np.testing.assert_array_equal(params.flatten(), p_before)

    def test_flat_parameter_vector_accepted(self, guess):
        x0, params = guess
        np.testing.assert_array_equal(residual(x0, params.flatten()), residual(x0, params))

    def test_flat_parameters_with_explicit_layout(self):
        layout = StateLayout(n_reactor_stages=4, n_absorber_trays=5, wash_tray=1, circulation_tray=4)
        x0, params = make_initial_guess(layout=layout)
        np.testing.assert_array_equal(residual(x0, params.flatten(), layout), residual(x0, params))

    def test_flat_parameters_default_to_nominal_layout(self):
        layout = StateLayout(n_reactor_stages=4, n_absorber_trays=5, wash_tray=1, circulation_tray=4)
        x0, params = make_initial_guess(layout=layout)
        with pytest.raises(ValueError, match="State vector"):
            residual(x0, params.flatten())

    def test_layout_must_match_parameter_record(self, guess):
        x0, params = guess
        other = StateLayout(n_reactor_stages=4)
        with pytest.raises(ValueError, match="does not match"):
            residual(x0, params, other)

    def test_smaller_layout(self):
        layout = StateLayout(n_reactor_stages=3, n_absorber_trays=4, circulation_tray=3)
        x0, params = make_initial_guess(layout=layout)
        assert residual(x0, params).shape == (layout.size,)


class TestEquationOrdering:
    @pytest.mark.parametrize("label", ["VAP.M", "SEP.M", "TK.M", "ABS.tray4.M", "ABS.sump.M"])
    def test_holdup_owns_its_entry(self, guess, labels, label):
        x0, params = guess
        k = labels.index(label)
        x1 = x0.copy()
        x1[k] += 0.25
        diff = residual(x1, params) - residual(x0, params)
        assert np.flatnonzero(diff).tolist() == [k]
        assert diff[k] == pytest.approx(0.25)

    def test_holdups_at_setpoint_give_zero(self, guess, labels):
        x0, params = guess
        res = residual(x0, params)
        for label in ("VAP.M", "SEP.M", "TK.M", "ABS.sump.M"):
            assert res[labels.index(label)] == 0.0

    def test_vaporizer_duty_enters_vaporizer_energy_balance(self, guess, labels):
        x0, params = guess
        base = residual(x0, params)
        bumped = residual(x0, _with_operating(params, Q_VAP=params.operating.Q_VAP + 1000.0))
        diff = bumped - base
        k = labels.index("VAP.T")
        assert diff[k] == pytest.approx(1000.0)
        assert np.flatnonzero(diff).tolist() == [k]

    def test_separator_cooling_enters_separator_energy_balance(self, guess, labels):
        x0, params = guess
        state = PlantState.unflatten(x0)
        base = residual(x0, params)
        bumped = residual(x0, _with_operating(params, UA_SEP=params.operating.UA_SEP + 100.0))
        k = labels.index("SEP.T_liq")
        expected = -100.0 * (state.separator.T_liq - params.operating.T_SEP_coolant)
        assert (bumped - base)[k] == pytest.approx(expected)


class TestClosures:
    def test_summation_entries_zero_for_closed_compositions(self, guess, labels):
        x0, params = guess
        res = residual(x0, params)
        for label in ("VAP.x.HAc", "SEP.x.HAc", "TK.x.HAc", "ABS.tray1.x.HAc", "ABS.sump.x.HAc"):
            assert res[labels.index(label)] == pytest.approx(0.0, abs=1e-12)
        assert res[labels.index("SEP.P")] == pytest.approx(0.0, abs=1e-12)

    def test_reactor_ideal_gas_closure_at_guess(self, guess, labels):
        x0, params = guess
        res = residual(x0, params)
        for k in range(1, params.layout.n_reactor_stages + 1):
            assert res[labels.index(f"RCT.stage{k}.C.HAc")] == pytest.approx(0.0, abs=1e-10)

    def test_separator_temperatures_tied(self, guess, labels):
        x0, params = guess
        k = labels.index("SEP.T_vap")
        assert residual(x0, params)[k] == 0.0
        x1 = x0.copy()
        x1[k] += 2.0
        assert residual(x1, params)[k] == pytest.approx(2.0)


class TestNonFinite:
    def test_antoine_pole_reported_with_labels(self, guess, labels):
        x0, params = guess
        x1 = x0.copy()
        x1[labels.index("SEP.T_liq")] = -273.0
        with pytest.raises(NonFiniteResidualError) as exc:
            residual(x1, params)
        assert "SEP.y.O2" in exc.value.labels
        assert all(label in labels for label in exc.value.labels)

    @pytest.mark.parametrize("label", ["SEP.T_liq", "RCT.stage3.T", "ABS.tray2.T", "AUX.S9"])
    def test_temperature_below_absolute_zero_named(self, guess, labels, label):
        x0, params = guess
        x1 = x0.copy()
        x1[labels.index(label)] = -400.0
        with pytest.raises(NonFiniteResidualError) as exc:
            residual(x1, params)
        assert exc.value.labels == [label]

    def test_every_cold_temperature_listed(self, guess, labels):
        x0, params = guess
        x1 = x0.copy()
        cold = ["RCT.stage3.T", "SEP.T_liq", "ABS.tray2.T"]
        for label in cold:
            x1[labels.index(label)] = -400.0
        with pytest.raises(NonFiniteResidualError) as exc:
            residual(x1, params)
        assert exc.value.labels == cold

    def test_absolute_zero_itself_rejected(self, guess, labels):
        x0, params = guess
        x1 = x0.copy()
        x1[labels.index("VAP.T")] = -T_ABS
        with pytest.raises(NonFiniteResidualError) as exc:
            residual(x1, params)
        assert exc.value.labels == ["VAP.T"]

    def test_mask_covers_only_temperatures(self, labels):
        mask = temperature_mask()
        picked = [label for label, is_t in zip(labels, mask) if is_t]
        assert "SEP.T_vap" in picked and "COMP.T" in picked and "AUX.H1" in picked
        assert "SEP.P" not in picked and "COMP.P" not in picked
        assert not any(".x." in label or ".C." in label for label in picked)


class TestStreamResolution:
    def test_every_stream_resolved(self, guess):
        x0, params = guess
        snap = resolve_streams(PlantState.unflatten(x0), params)
        assert list(snap.streams) == [f"S{i}" for i in range(1, 35)]

    def test_reactor_outlet_reflects_reaction(self, guess):
        x0, params = guess
        snap = resolve_streams(PlantState.unflatten(x0), params)
        # VAc formation removes half a mole per mole reacted
        assert snap.streams["S8"].F < snap.streams["S7"].F
        assert snap.streams["S8"].z.sum() == pytest.approx(1.0)
        assert snap.streams["S13"].F == pytest.approx(snap.streams["S8"].F - snap.streams["S12"].F)

    def test_absorber_liquid_traffic_closes(self, guess):
        x0, params = guess
        snap = resolve_streams(PlantState.unflatten(x0), params)
        assert snap.absorber.liquid_flows[-1] == pytest.approx(params.flows["S19"])
        assert snap.absorber.vapor_flows[0] == pytest.approx(params.flows["S16"])


class TestIdealGas:
    def test_total_concentration(self):
        assert total_concentration(0.0, 1.20586 * T_ABS) == pytest.approx(1.0)

    @pytest.mark.parametrize("T", [-T_ABS, -400.0])
    def test_rejects_non_positive_temperature(self, T):
        with pytest.raises(NonPhysicalTemperatureError, match="ideal gas law"):
            total_concentration(T, 128.0)
