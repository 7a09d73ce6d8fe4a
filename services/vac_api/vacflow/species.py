"""
Species property table and Wilson interaction parameters.

The VAc flowsheet handles a closed set of seven species.  Their constants
are fixed closed-form correlation coefficients:

  - MW        molecular weight (kg/kmol)
  - SpG       specific gravity
  - h_L       heat of vaporisation at 0 °C (kcal/kmol)
  - a_liq, b_liq  liquid heat capacity cp = a + b·T (kcal/(kg·°C))
  - a, b      vapor heat capacity cp = a + b·T (kcal/(kg·°C))
  - mol_vol   molar liquid volume (cm³/mol)
  - A, B, C   Antoine constants, ln(Psat/psia) = B/(T + C) + A, T in °C

Both tables are built once at import and are read-only afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .errors import UnknownSpeciesError


# ---------------------------------------------------------------------------
# Species record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Species:
    """Physical constants for one species."""

    name: str
    MW: float
    SpG: float
    h_L: float
    a_liq: float
    b_liq: float
    a: float
    b: float
    mol_vol: float
    A: float
    B: float
    C: float


# Canonical ordering used by every composition vector in the model
SPECIES: Tuple[str, ...] = ("O2", "CO2", "C2H4", "C2H6", "VAc", "H2O", "HAc")

GASES: Tuple[str, ...] = ("O2", "CO2", "C2H4", "C2H6")
CONDENSABLES: Tuple[str, ...] = ("VAc", "H2O", "HAc")

_PROPERTY_DATA: Dict[str, Dict[str, float]] = {
    "O2": dict(MW=32.000, SpG=0.50, h_L=2300, a_liq=0.3, b_liq=0, a=0.218, b=0.0001,
               mol_vol=64.178, A=9.2, B=0, C=273),
    "CO2": dict(MW=44.010, SpG=1.18, h_L=2429, a_liq=0.60, b_liq=0, a=0.230, b=0,
                mol_vol=37.4, A=7.937, B=0, C=273),
    "C2H4": dict(MW=28.052, SpG=0.57, h_L=1260, a_liq=0.60, b_liq=0, a=0.370, b=0.0007,
                 mol_vol=49.347, A=9.497, B=-313, C=273),
    "C2H6": dict(MW=30.068, SpG=0.57, h_L=1260, a_liq=0.60, b_liq=0, a=0.370, b=0.0007,
                 mol_vol=52.866, A=9.497, B=-313, C=273),
    "VAc": dict(MW=86.088, SpG=0.85, h_L=8600, a_liq=0.44, b_liq=0.0011, a=0.290, b=0.0006,
                mol_vol=101.564, A=12.6564, B=-2984.45, C=226.66),
    "H2O": dict(MW=18.008, SpG=1.00, h_L=10684, a_liq=0.99, b_liq=0.0002, a=0.560, b=-0.0016,
                mol_vol=18.01, A=14.6394, B=-3984.92, C=233.426),
    "HAc": dict(MW=60.052, SpG=0.98, h_L=5486, a_liq=0.46, b_liq=0.0012, a=0.520, b=0.0007,
                mol_vol=61.445, A=14.5236, B=-4457.83, C=258.45),
}


# ---------------------------------------------------------------------------
# Species table
# ---------------------------------------------------------------------------


class SpeciesTable(Mapping[str, Species]):
    """Immutable species registry keyed by identifier."""

    def __init__(self, records: Iterable[Species]) -> None:
        ordered = {sp.name: sp for sp in records}
        self._records: Mapping[str, Species] = MappingProxyType(ordered)
        self._index: Mapping[str, int] = MappingProxyType(
            {name: i for i, name in enumerate(ordered)}
        )

    def lookup(self, name: str) -> Species:
        try:
            return self._records[name]
        except KeyError:
            raise UnknownSpeciesError(name, self._records.keys()) from None

    def __getitem__(self, name: str) -> Species:
        return self.lookup(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._records)

    def index(self, name: str) -> int:
        if name not in self._index:
            raise UnknownSpeciesError(name, self._records.keys())
        return self._index[name]

    def vector(self, attr: str, species: Optional[Sequence[str]] = None) -> np.ndarray:
        """Collect one constant for several species, in the given order."""
        names = self.names if species is None else species
        return np.array([float(getattr(self.lookup(n), attr)) for n in names])


SPECIES_TABLE = SpeciesTable(
    Species(name=name, **{k: float(v) for k, v in _PROPERTY_DATA[name].items()})
    for name in SPECIES
)


def lookup(name: str, table: SpeciesTable = SPECIES_TABLE) -> Species:
    """Return the constants for ``name`` or raise ``UnknownSpeciesError``."""
    return table.lookup(name)


# ---------------------------------------------------------------------------
# Wilson binary interaction energies a_ij (cal/mol)
# ---------------------------------------------------------------------------

# Only the condensable pairs interact; every other ordered pair is zero.
_WILSON_ENERGIES: Dict[Tuple[str, str], float] = {
    ("VAc", "H2O"): 1384.6,
    ("H2O", "VAc"): 2266.4,
    ("VAc", "HAc"): -136.1,
    ("HAc", "VAc"): 726.7,
    ("H2O", "HAc"): 670.7,
    ("HAc", "H2O"): 230.6,
}


class InteractionTable:
    """
    Wilson energy parameters for every ordered species pair.

    The table must cover all ordered pairs of its species, self-pairs
    included.  ``with_defaults`` builds such a table from the sparse set of
    interacting pairs, filling every other pair (and the diagonal) with zero.
    """

    def __init__(self, species: Sequence[str], energies: Mapping[Tuple[str, str], float]) -> None:
        self.species: Tuple[str, ...] = tuple(species)
        missing: List[Tuple[str, str]] = [
            (i, j) for i in self.species for j in self.species if (i, j) not in energies
        ]
        if missing:
            raise ValueError(f"Interaction table missing ordered pairs: {missing[:6]}")
        self._energies: Mapping[Tuple[str, str], float] = MappingProxyType(
            {(i, j): float(energies[(i, j)]) for i in self.species for j in self.species}
        )
        self._matrices: Dict[Tuple[str, ...], np.ndarray] = {}

    @classmethod
    def with_defaults(
        cls,
        species: Sequence[str],
        nonzero: Mapping[Tuple[str, str], float],
    ) -> "InteractionTable":
        full = {(i, j): 0.0 for i in species for j in species}
        for pair, value in nonzero.items():
            if pair[0] not in species or pair[1] not in species:
                unknown = pair[0] if pair[0] not in species else pair[1]
                raise UnknownSpeciesError(unknown, species)
            if pair[0] == pair[1] and value != 0.0:
                raise ValueError(f"Self-pair {pair} must be zero")
            full[pair] = float(value)
        return cls(species, full)

    def get(self, i: str, j: str) -> float:
        for name in (i, j):
            if name not in self.species:
                raise UnknownSpeciesError(name, self.species)
        return self._energies[(i, j)]

    def matrix(self, species: Sequence[str]) -> np.ndarray:
        """a_ij as a read-only n×n array in the order of ``species``."""
        key = tuple(species)
        if key not in self._matrices:
            a = np.array([[self.get(i, j) for j in key] for i in key])
            a.setflags(write=False)
            self._matrices[key] = a
        return self._matrices[key]


WILSON_TABLE = InteractionTable.with_defaults(SPECIES, _WILSON_ENERGIES)
