"""Tests for the species table and Wilson interaction table."""

import numpy as np
import pytest

from vacflow.errors import ProcessModelError, UnknownSpeciesError
from vacflow.species import (
    SPECIES,
    SPECIES_TABLE,
    WILSON_TABLE,
    InteractionTable,
    lookup,
)


class TestSpeciesTable:
    def test_fixed_species_set(self):
        assert set(SPECIES_TABLE) == {"O2", "CO2", "C2H4", "C2H6", "VAc", "H2O", "HAc"}
        assert SPECIES_TABLE.names == SPECIES

    def test_lookup_water(self):
        h2o = lookup("H2O")
        assert h2o.MW == pytest.approx(18.008)
        assert (h2o.A, h2o.B, h2o.C) == (14.6394, -3984.92, 233.426)

    def test_unknown_species(self):
        with pytest.raises(UnknownSpeciesError) as exc:
            lookup("N2")
        assert exc.value.species == "N2"
        assert "N2" in str(exc.value)

    def test_unknown_species_is_keyerror_and_model_error(self):
        with pytest.raises(KeyError):
            SPECIES_TABLE["argon"]
        with pytest.raises(ProcessModelError):
            SPECIES_TABLE.index("argon")

    def test_records_are_immutable(self):
        with pytest.raises(AttributeError):
            lookup("O2").MW = 1.0

    def test_vector_follows_requested_order(self):
        v = SPECIES_TABLE.vector("MW", ["HAc", "O2"])
        np.testing.assert_allclose(v, [60.052, 32.0])


class TestInteractionTable:
    def test_self_pairs_are_zero(self):
        for s in SPECIES:
            assert WILSON_TABLE.get(s, s) == 0.0

    def test_gas_pairs_are_zero(self):
        assert WILSON_TABLE.get("O2", "VAc") == 0.0
        assert WILSON_TABLE.get("HAc", "C2H4") == 0.0

    def test_condensable_pairs(self):
        assert WILSON_TABLE.get("VAc", "H2O") == pytest.approx(1384.6)
        assert WILSON_TABLE.get("H2O", "VAc") == pytest.approx(2266.4)
        assert WILSON_TABLE.get("VAc", "HAc") == pytest.approx(-136.1)

    def test_matrix_is_ordered(self):
        a = WILSON_TABLE.matrix(["H2O", "VAc"])
        np.testing.assert_allclose(a, [[0.0, 2266.4], [1384.6, 0.0]])

    def test_missing_pair_rejected(self):
        with pytest.raises(ValueError, match="missing"):
            InteractionTable(["VAc", "H2O"], {("VAc", "H2O"): 1.0, ("H2O", "VAc"): 2.0})

    def test_unknown_species_in_get(self):
        with pytest.raises(UnknownSpeciesError):
            WILSON_TABLE.get("VAc", "N2")
