"""
Closed-form thermodynamic correlations.

Every function is pure: the same temperature (°C) and species record give a
bit-identical result, so the residual can call them freely.  Pure-component
functions take a ``Species``; the mixture helpers take a composition vector
aligned with ``species.SPECIES``.

Reference state: liquid at 0 °C has zero enthalpy, so vapor enthalpy carries
the heat of vaporisation ``h_L``.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .species import SPECIES, SPECIES_TABLE, Species, SpeciesTable


# ---------------------------------------------------------------------------
# Pure-component correlations
# ---------------------------------------------------------------------------


def vapor_heat_capacity(T: float, sp: Species) -> float:
    """Vapor cp in kcal/(kmol·°C)."""
    return (sp.a + sp.b * T) * sp.MW


def liquid_heat_capacity(T: float, sp: Species) -> float:
    """Liquid cp in kcal/(kmol·°C)."""
    return (sp.a_liq + sp.b_liq * T) * sp.MW


def vapor_enthalpy(T: float, sp: Species) -> float:
    """Vapor enthalpy in kcal/kmol."""
    return (sp.a * T + 0.5 * sp.b * T ** 2) * sp.MW + sp.h_L


def liquid_enthalpy(T: float, sp: Species) -> float:
    """Liquid enthalpy in kcal/kmol."""
    return (sp.a_liq * T + 0.5 * sp.b_liq * T ** 2) * sp.MW


def saturation_pressure(T: float, sp: Species) -> float:
    """
    Antoine vapor pressure in psia.

    ``T + C == 0`` is a pole of the correlation; the result is then NaN or
    infinite instead of an exception so the residual can report it.
    """
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        return float(np.exp(np.float64(sp.B) / np.float64(T + sp.C) + sp.A))


# ---------------------------------------------------------------------------
# Mixture helpers
# ---------------------------------------------------------------------------


class MixtureCoefficients:
    """Per-species coefficient vectors in canonical order, for vectorised sums."""

    def __init__(self, table: SpeciesTable = SPECIES_TABLE) -> None:
        self.MW = table.vector("MW", SPECIES)
        self.h_L = table.vector("h_L", SPECIES)
        self.a = table.vector("a", SPECIES) * self.MW
        self.b = table.vector("b", SPECIES) * self.MW
        self.a_liq = table.vector("a_liq", SPECIES) * self.MW
        self.b_liq = table.vector("b_liq", SPECIES) * self.MW
        self.A = table.vector("A", SPECIES)
        self.B = table.vector("B", SPECIES)
        self.C = table.vector("C", SPECIES)


COEFFICIENTS = MixtureCoefficients()


def mixture_vapor_enthalpy(T: float, z: np.ndarray, coeffs: MixtureCoefficients = COEFFICIENTS) -> float:
    h = coeffs.a * T + 0.5 * coeffs.b * T ** 2 + coeffs.h_L
    return float(np.dot(z, h))


def mixture_liquid_enthalpy(T: float, z: np.ndarray, coeffs: MixtureCoefficients = COEFFICIENTS) -> float:
    h = coeffs.a_liq * T + 0.5 * coeffs.b_liq * T ** 2
    return float(np.dot(z, h))


def mixture_vapor_heat_capacity(T: float, z: np.ndarray, coeffs: MixtureCoefficients = COEFFICIENTS) -> float:
    return float(np.dot(z, coeffs.a + coeffs.b * T))


def saturation_pressures(T: float, coeffs: MixtureCoefficients = COEFFICIENTS) -> np.ndarray:
    """Antoine Psat (psia) for every species at ``T``."""
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        return np.exp(coeffs.B / (np.float64(T) + coeffs.C) + coeffs.A)


def temperature_from_enthalpy(
    h: float,
    z: np.ndarray,
    phase: str = "vapor",
    coeffs: MixtureCoefficients = COEFFICIENTS,
) -> Optional[float]:
    """
    Invert the mixture enthalpy of a stream of composition ``z``.

    h(T) = α·T + ½·β·T² + γ is quadratic in T, so the physical root (the one
    that reduces to the linear solution as β → 0) is taken in closed form.
    Returns None when no real root exists.
    """
    if phase == "vapor":
        alpha = float(np.dot(z, coeffs.a))
        beta = float(np.dot(z, coeffs.b))
        offset = float(np.dot(z, coeffs.h_L))
    else:
        alpha = float(np.dot(z, coeffs.a_liq))
        beta = float(np.dot(z, coeffs.b_liq))
        offset = 0.0

    rhs = h - offset
    if abs(beta) < 1e-12:
        return rhs / alpha if alpha != 0.0 else None
    disc = alpha ** 2 + 2.0 * beta * rhs
    if disc < 0.0:
        return None
    denom = alpha + math.sqrt(disc)
    if denom == 0.0:
        return None
    # Rationalised form avoids cancellation when beta is small
    return 2.0 * rhs / denom
