"""
Wilson local-composition activity coefficients.

For an ordered species list the interaction ratios form a full n×n matrix

    Λ_ij = (v_i / v_j) · exp(-a_ij / (R·T)),   Λ_ii = 0

and the activity coefficient of species m is

    ln γ_m = 1 - ln(Σ_j x_j Λ_mj) - Σ_j x_j Λ_jm / (Σ_k x_k Λ_jk)

The inner denominator belongs to the outer summation index j: it is the
row-j sum S_j = Σ_k x_k Λ_jk, evaluated once per j.  With the matrix in
hand that is simply ``S = Λ @ x`` and the last term is ``Λᵀ @ (x / S)``.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from .errors import DegenerateCompositionError, NonPhysicalTemperatureError
from .species import SPECIES_TABLE, WILSON_TABLE, InteractionTable, SpeciesTable

GAS_CONSTANT_CAL = 1.987  # cal/(mol·K)


def interaction_ratios(
    species: Sequence[str],
    T_abs: float,
    volumes: Optional[Sequence[float]] = None,
    interactions: InteractionTable = WILSON_TABLE,
    R: float = GAS_CONSTANT_CAL,
    table: SpeciesTable = SPECIES_TABLE,
) -> np.ndarray:
    """Λ matrix for ``species`` at absolute temperature ``T_abs`` (K)."""
    if not T_abs > 0.0:
        raise NonPhysicalTemperatureError(T_abs, "Wilson interaction ratios")
    v = table.vector("mol_vol", species) if volumes is None else np.asarray(volumes, dtype=float)
    if v.shape != (len(species),):
        raise ValueError(f"Expected {len(species)} molar volumes, got {v.shape}")
    if np.any(v <= 0.0):
        bad = [species[i] for i in np.flatnonzero(v <= 0.0)]
        raise DegenerateCompositionError(f"Non-positive molar volume for {bad}")

    a = interactions.matrix(species)
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        lam = np.outer(v, 1.0 / v) * np.exp(-a / (R * np.float64(T_abs)))
    np.fill_diagonal(lam, 0.0)
    return lam


def activity_coefficients(
    species: Sequence[str],
    x: Sequence[float],
    T_abs: float,
    volumes: Optional[Sequence[float]] = None,
    interactions: InteractionTable = WILSON_TABLE,
    R: float = GAS_CONSTANT_CAL,
    table: SpeciesTable = SPECIES_TABLE,
) -> np.ndarray:
    """
    Activity coefficients for a liquid of mole fractions ``x``.

    Parameters
    ----------
    species : species identifiers, defines the order of ``x`` and the result
    x : mole fractions, same order as ``species``
    T_abs : absolute temperature (K)
    volumes : molar liquid volumes; defaults to the species table values

    Returns
    -------
    γ for every species, same order as ``species``.

    Raises
    ------
    NonPhysicalTemperatureError
        if ``T_abs`` is not a positive temperature.
    """
    x = np.asarray(x, dtype=float)
    if x.shape != (len(species),):
        raise ValueError(f"Expected {len(species)} mole fractions, got {x.shape}")

    lam = interaction_ratios(species, T_abs, volumes, interactions, R, table)
    row_sums = lam @ x
    if not np.all(row_sums > 0.0):
        bad = [species[i] for i in np.flatnonzero(~(row_sums > 0.0))]
        raise DegenerateCompositionError(
            f"Wilson sum Σ x_k·Λ_jk is not positive for {bad} at x={x.tolist()}"
        )

    with np.errstate(over="ignore", invalid="ignore"):
        ln_gamma = 1.0 - np.log(row_sums) - lam.T @ (x / row_sums)
        return np.exp(ln_gamma)


def activity_coefficient_map(
    composition: Mapping[str, float],
    T_abs: float,
    interactions: InteractionTable = WILSON_TABLE,
    table: SpeciesTable = SPECIES_TABLE,
) -> Dict[str, float]:
    """Keyed convenience wrapper: {species: x} in, {species: γ} out."""
    names = list(composition)
    gammas = activity_coefficients(
        names, [composition[n] for n in names], T_abs, interactions=interactions, table=table
    )
    return {n: float(g) for n, g in zip(names, gammas)}
