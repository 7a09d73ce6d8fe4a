"""
Reaction kinetics for the VAc reactor.

Two reactions on a supported palladium catalyst:

    (1)  C2H4 + HAc + 1/2 O2  ->  VAc + H2O
    (2)  C2H4 + 3 O2          ->  2 CO2 + 2 H2O

Rates follow Luyben & Tyréus (1998): partial pressures in psia, temperature
in K, rates in mol/(min·g catalyst), which is numerically kmol/(min·kg).
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .errors import NonPhysicalTemperatureError
from .species import SPECIES

_IDX = {name: i for i, name in enumerate(SPECIES)}

# Stoichiometric coefficients, rows = reactions, columns = species
STOICHIOMETRY = np.zeros((2, len(SPECIES)))
for _name, _nu in {"O2": -0.5, "C2H4": -1.0, "HAc": -1.0, "VAc": 1.0, "H2O": 1.0}.items():
    STOICHIOMETRY[0, _IDX[_name]] = _nu
for _name, _nu in {"O2": -3.0, "C2H4": -1.0, "CO2": 2.0, "H2O": 2.0}.items():
    STOICHIOMETRY[1, _IDX[_name]] = _nu

HEATS_OF_REACTION = np.array([-42100.0, -316000.0])  # kcal/kmol

# Rate constants
K1_PRE = 0.1036
K1_ACT = 3674.0
K2_PRE = 1.9365e5
K2_ACT = 10116.0


def reaction_rates(T: float, y: np.ndarray, P: float) -> np.ndarray:
    """
    Rates of reactions (1) and (2) in kmol/(min·kg catalyst).

    Parameters
    ----------
    T : stage temperature (°C)
    y : gas mole fractions in canonical species order
    P : total pressure (psia)
    """
    T_abs = np.float64(T) + 273.15
    if not T_abs > 0.0:
        raise NonPhysicalTemperatureError(T_abs, "reaction rates")
    p = np.asarray(y, dtype=float) * P
    pO2 = p[_IDX["O2"]]
    pC2H4 = p[_IDX["C2H4"]]
    pHAc = p[_IDX["HAc"]]
    pH2O = p[_IDX["H2O"]]

    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        water1 = 1.0 + 1.7 * pH2O
        r1 = (
            K1_PRE * np.exp(-K1_ACT / T_abs) * pO2 * pC2H4 * pHAc * water1
            / ((1.0 + 0.583 * pO2 * water1) * (1.0 + 6.8 * pHAc))
        )
        water2 = 1.0 + 0.68 * pH2O
        r2 = (
            K2_PRE * np.exp(-K2_ACT / T_abs) * pO2 * water2
            / (1.0 + 0.76 * pO2 * water2)
        )
    return np.array([r1, r2])


def generation(rates: np.ndarray) -> np.ndarray:
    """Net species generation per kg catalyst, canonical order."""
    return STOICHIOMETRY.T @ rates


def heat_release(rates: np.ndarray) -> float:
    """Heat released per kg catalyst (kcal/(min·kg)), positive for exothermic."""
    return float(-HEATS_OF_REACTION @ rates)


def selectivity(rates: np.ndarray) -> Tuple[float, float]:
    """
    Ethylene consumed by (1) and (2) as fractions of the total.

    ``rates`` may be a single [r1, r2] pair or per-stage rates summed over
    the bed; only their ratio matters.
    """
    used = -STOICHIOMETRY[:, _IDX["C2H4"]] * rates
    total = float(used.sum())
    if total <= 0.0:
        return 0.0, 0.0
    return float(used[0] / total), float(used[1] / total)
