"""Tests for the solver wrapper and solve reports."""

import numpy as np
import pytest

from vacflow import make_initial_guess
from vacflow.export_csv import export_profiles_csv, export_stream_table_csv
from vacflow.residual import residual, residual_scales, scaled_residual
from vacflow.simulation_service import build_report
from vacflow.solver import SolveResult, solve_steady_state
from vacflow.state import PlantState, ProcessParameters, StreamParams, composition_vector, state_labels


@pytest.fixture(scope="module")
def guess():
    return make_initial_guess()


@pytest.fixture(scope="module")
def nominal_solution(guess):
    x0, params = guess
    return solve_steady_state(x0, params)


@pytest.fixture
def guess_result(guess):
    x0, params = guess
    return SolveResult(
        converged=False,
        iterations=0,
        residual_norm=1.0,
        x=x0,
        params=params,
        state=PlantState.unflatten(x0, params.layout),
    )


def _mole_fraction_groups(state):
    yield composition_vector(state.vaporizer.x)
    for stage in state.reactor:
        C = composition_vector(stage.C)
        yield C / C.sum()
    yield composition_vector(state.separator.x)
    yield composition_vector(state.separator.y)
    for tray in state.absorber_trays + [state.absorber_sump]:
        yield composition_vector(tray.x)
    yield composition_vector(state.tank.x)


class TestSolveSteadyState:
    def test_evaluation_limit_reports_non_convergence(self, guess):
        x0, params = guess
        result = solve_steady_state(x0, params, max_evaluations=3, sequential_passes=0)
        assert result.converged is False
        assert result.iterations > 0
        assert np.isfinite(result.residual_norm)
        assert result.message
        assert result.x.shape == x0.shape

    def test_residual_failure_is_reported_not_raised(self, guess):
        x0, params = guess
        x1 = x0.copy()
        x1[state_labels().index("SEP.T_liq")] = -273.0
        result = solve_steady_state(x1, params)
        assert result.converged is False
        assert result.iterations == 1
        assert "Residual evaluation failed" in result.message
        assert result.state is None

    def test_failed_report(self, guess):
        x0, params = guess
        x1 = x0.copy()
        x1[state_labels().index("SEP.T_liq")] = -273.0
        report = build_report(solve_steady_state(x1, params))
        assert report.status == "not-converged"
        assert report.streams == []

    def test_unfinished_sequential_pass_is_a_warning(self, guess):
        x0, params = guess
        result = solve_steady_state(x0, params, max_evaluations=3, sequential_passes=1)
        assert any(w.startswith("Sequential pass") for w in result.warnings)
        assert build_report(result).warnings[: len(result.warnings)] == result.warnings


class TestNominalSolve:
    def test_converges(self, nominal_solution):
        assert nominal_solution.converged is True
        assert nominal_solution.state is not None

    def test_scaled_residual_within_tolerance(self, nominal_solution):
        result = nominal_solution
        res = scaled_residual(result.x, result.params)
        assert result.residual_norm <= 1e-6
        assert np.max(np.abs(res)) == pytest.approx(result.residual_norm)

    def test_raw_residual_within_row_scales(self, nominal_solution):
        result = nominal_solution
        raw = residual(result.x, result.params)
        scales = residual_scales(result.state, result.params)
        assert np.all(np.abs(raw) <= 1e-6 * scales)

    def test_mole_fractions_physical(self, nominal_solution):
        for z in _mole_fraction_groups(nominal_solution.state):
            assert np.all(z >= -1e-12)
            assert np.all(z <= 1.0 + 1e-12)
            assert z.sum() == pytest.approx(1.0, abs=1e-8)

    def test_reactor_between_coolant_and_hot_spot(self, nominal_solution):
        T_coolant = nominal_solution.params.operating.T_RCT_coolant
        temps = [stage.T for stage in nominal_solution.state.reactor]
        assert temps[0] > T_coolant - 30.0
        assert all(T_coolant < T < 250.0 for T in temps[1:])

    def test_separator_and_compressor_pressures(self, nominal_solution):
        state = nominal_solution.state
        assert state.separator.P > 0.0
        assert state.compressor.P > state.separator.P

    def test_report_selectivity(self, nominal_solution):
        report = build_report(nominal_solution)
        assert report.status == "converged"
        assert 0.0 < report.vac_selectivity < 1.0


class TestReport:
    def test_stream_table(self, guess_result):
        report = build_report(guess_result)
        assert [s.id for s in report.streams] == [f"S{i}" for i in range(1, 35)]
        s4 = next(s for s in report.streams if s.id == "S4")
        assert s4.molar_flow_kmol_per_min == pytest.approx(12.113916)
        assert s4.temperature_c == pytest.approx(guess_result.state.vaporizer.T)
        assert sum(s4.composition.values()) == pytest.approx(1.0)

    def test_explicit_parameters_resolve_the_state(self, guess_result):
        params = guess_result.params
        streams = dict(params.streams)
        s1 = streams["S1"]
        streams["S1"] = StreamParams(f=s1.f, T=45.0, P=s1.P, x=s1.x, y=s1.y)
        warm_feed = ProcessParameters(streams, params.operating, params.layout)

        default = next(s for s in build_report(guess_result).streams if s.id == "S1")
        explicit = next(s for s in build_report(guess_result, warm_feed).streams if s.id == "S1")
        assert default.temperature_c == pytest.approx(s1.T)
        assert explicit.temperature_c == pytest.approx(45.0)

    def test_profiles(self, guess_result):
        report = build_report(guess_result)
        assert len(report.reactor_profile) == 10
        assert len(report.absorber_profile) == 8
        assert report.reactor_profile[0].pressure_psia > report.reactor_profile[-1].pressure_psia
        assert report.fehe_duty_kcal_per_min is not None

    def test_csv_export(self, guess_result):
        report = build_report(guess_result)
        text = export_stream_table_csv(report)
        lines = text.splitlines()
        assert lines[0].startswith("Property,Unit,S1,S2")
        assert any(line.startswith("Molar Flow,kmol/min") for line in lines)
        assert any(line.startswith("VAc,mol frac") for line in lines)

    def test_profile_csv_export(self, guess_result):
        text = export_profiles_csv(build_report(guess_result))
        lines = text.splitlines()
        assert lines[0].startswith("Unit,Stage")
        assert len(lines) == 1 + 10 + 8

    def test_empty_report_exports_nothing(self, guess_result):
        report = build_report(guess_result)
        report.streams = []
        assert export_stream_table_csv(report) == ""
