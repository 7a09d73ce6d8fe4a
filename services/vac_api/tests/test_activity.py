"""Tests for the Wilson activity-coefficient model."""

import math

import numpy as np
import pytest

from vacflow.activity import (
    GAS_CONSTANT_CAL,
    activity_coefficient_map,
    activity_coefficients,
    interaction_ratios,
)
from vacflow.errors import DegenerateCompositionError, NonPhysicalTemperatureError, UnknownSpeciesError
from vacflow.species import SPECIES, SPECIES_TABLE, WILSON_TABLE

MIXTURE = {"C2H4": 0.2, "O2": 0.3, "HAc": 0.1, "VAc": 0.15, "CO2": 0.15, "H2O": 0.1}
T_200C = 200.0 + 273.15


def _reference_gamma(names, x, T_abs):
    """Term-by-term evaluation with explicit loops."""
    n = len(names)
    v = [SPECIES_TABLE[s].mol_vol for s in names]
    lam = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(n):
            if i != j:
                a = WILSON_TABLE.get(names[i], names[j])
                lam[i][j] = v[i] / v[j] * math.exp(-a / (GAS_CONSTANT_CAL * T_abs))
    out = []
    for m in range(n):
        first = sum(x[j] * lam[m][j] for j in range(n))
        second = 0.0
        for j in range(n):
            denom = sum(x[k] * lam[j][k] for k in range(n))
            second += x[j] * lam[j][m] / denom
        out.append(math.exp(1.0 - math.log(first) - second))
    return out


class TestInteractionRatios:
    def test_diagonal_is_zero(self):
        lam = interaction_ratios(SPECIES, 350.0)
        np.testing.assert_array_equal(np.diag(lam), np.zeros(len(SPECIES)))

    def test_non_interacting_pair_is_volume_ratio(self):
        lam = interaction_ratios(["O2", "VAc"], 350.0)
        v = SPECIES_TABLE.vector("mol_vol", ["O2", "VAc"])
        assert lam[0, 1] == pytest.approx(v[0] / v[1])

    def test_non_positive_volume(self):
        with pytest.raises(DegenerateCompositionError):
            interaction_ratios(["VAc", "H2O"], 350.0, volumes=[101.564, 0.0])

    @pytest.mark.parametrize("T_abs", [0.0, -100.0, float("nan")])
    def test_non_positive_temperature(self, T_abs):
        with pytest.raises(NonPhysicalTemperatureError):
            interaction_ratios(["VAc", "H2O"], T_abs)


class TestActivityCoefficients:
    def test_six_species_positive_and_finite(self):
        names = list(MIXTURE)
        gamma = activity_coefficients(names, [MIXTURE[s] for s in names], T_200C)
        assert gamma.shape == (6,)
        assert np.all(np.isfinite(gamma))
        assert np.all(gamma > 0.0)

    def test_order_independence(self):
        names = list(MIXTURE)
        permuted = list(reversed(names))
        g1 = dict(zip(names, activity_coefficients(names, [MIXTURE[s] for s in names], T_200C)))
        g2 = dict(zip(permuted, activity_coefficients(permuted, [MIXTURE[s] for s in permuted], T_200C)))
        for s in names:
            assert g1[s] == pytest.approx(g2[s], rel=1e-12)

    def test_matches_term_by_term_reference(self):
        names = list(MIXTURE)
        x = [MIXTURE[s] for s in names]
        expected = _reference_gamma(names, x, T_200C)
        np.testing.assert_allclose(activity_coefficients(names, x, T_200C), expected, rtol=1e-12)

    def test_full_species_set_inside_simplex(self):
        x = np.array([0.05, 0.05, 0.3, 0.1, 0.2, 0.1, 0.2])
        for T in (30.0, 80.0, 150.0):
            gamma = activity_coefficients(SPECIES, x, T + 273.15)
            assert np.all(np.isfinite(gamma))
            assert np.all(gamma > 0.0)

    def test_pure_component_is_degenerate(self):
        with pytest.raises(DegenerateCompositionError):
            activity_coefficients(["VAc", "H2O"], [1.0, 0.0], 350.0)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            activity_coefficients(["VAc", "H2O"], [0.5, 0.3, 0.2], 350.0)

    def test_below_absolute_zero_rejected(self):
        with pytest.raises(NonPhysicalTemperatureError, match="absolute temperature"):
            activity_coefficients(["VAc", "H2O", "HAc"], [0.2, 0.1, 0.7], -300.0 + 273.15)

    def test_map_wrapper(self):
        gammas = activity_coefficient_map(MIXTURE, T_200C)
        assert set(gammas) == set(MIXTURE)
        assert all(g > 0.0 for g in gammas.values())

    def test_map_unknown_species(self):
        with pytest.raises(UnknownSpeciesError):
            activity_coefficient_map({"VAc": 0.5, "N2": 0.5}, 350.0)
