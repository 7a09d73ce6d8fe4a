"""Tests for the reactor kinetics."""

import numpy as np
import pytest

from vacflow.errors import NonPhysicalTemperatureError
from vacflow.kinetics import STOICHIOMETRY, generation, heat_release, reaction_rates, selectivity
from vacflow.species import SPECIES

FEED = np.array([0.075, 0.07, 0.58, 0.13, 0.005, 0.01, 0.13])


class TestReactionRates:
    def test_positive_at_reactor_conditions(self):
        r = reaction_rates(150.0, FEED, 125.0)
        assert r.shape == (2,)
        assert np.all(r > 0.0)

    def test_rates_rise_with_temperature(self):
        cold = reaction_rates(140.0, FEED, 125.0)
        hot = reaction_rates(160.0, FEED, 125.0)
        assert np.all(hot > cold)

    def test_no_oxygen_no_reaction(self):
        y = FEED.copy()
        y[SPECIES.index("O2")] = 0.0
        np.testing.assert_array_equal(reaction_rates(150.0, y, 125.0), np.zeros(2))

    @pytest.mark.parametrize("T", [-273.15, -400.0])
    def test_below_absolute_zero_rejected(self, T):
        with pytest.raises(NonPhysicalTemperatureError, match="reaction rates"):
            reaction_rates(T, FEED, 125.0)


class TestGenerationAndHeat:
    def test_generation_follows_stoichiometry(self):
        rates = np.array([1.0, 0.0])
        np.testing.assert_array_equal(generation(rates), STOICHIOMETRY[0])

    def test_exothermic(self):
        assert heat_release(np.array([1.0, 1.0])) == pytest.approx(42100.0 + 316000.0)


class TestSelectivity:
    def test_fractions_sum_to_one(self):
        s_vac, s_co2 = selectivity(reaction_rates(150.0, FEED, 125.0))
        assert 0.0 < s_vac < 1.0
        assert s_vac + s_co2 == pytest.approx(1.0)

    def test_bed_totals_accepted(self):
        per_stage = [np.array([2.0, 1.0]), np.array([4.0, 1.0])]
        assert selectivity(np.sum(per_stage, axis=0)) == pytest.approx((6.0 / 8.0, 2.0 / 8.0))

    def test_no_reaction(self):
        assert selectivity(np.zeros(2)) == (0.0, 0.0)
