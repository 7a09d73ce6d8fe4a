"""
Stream resolution.

Given a trial ``PlantState`` and the ``ProcessParameters``, work out the
flow, temperature, pressure and composition of every numbered stream, plus
the internal profiles (reactor stages, absorber traffic, FEHE duty) that
the residual and the report both need.

Flows come from the steady-state network except downstream of the reactor:
the reaction changes the total number of moles, so S8..S11 carry the
kinetically computed outlet flow and the separator liquid draw S13 takes up
the difference (S21 and S26 follow).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

from .activity import activity_coefficients
from .config import DISTILLATE_TEMPERATURE
from .correlations import (
    mixture_liquid_enthalpy,
    mixture_vapor_enthalpy,
    saturation_pressures,
    temperature_from_enthalpy,
)
from .errors import NonPhysicalTemperatureError
from .kinetics import generation, heat_release, reaction_rates
from .species import SPECIES
from .state import PlantState, ProcessParameters, composition_vector

R_PSIA = 1.20586  # psia·m³/(kmol·K)
T_ABS = 273.15

_E_CO2 = np.array([1.0 if s == "CO2" else 0.0 for s in SPECIES])


def total_concentration(T: float, P: float) -> float:
    """Ideal-gas molar density P/(R·T) in kmol/m³ at ``T`` °C and ``P`` psia."""
    T_abs = np.float64(T) + T_ABS
    if not T_abs > 0.0:
        raise NonPhysicalTemperatureError(T_abs, "ideal gas law")
    return float(P / (R_PSIA * T_abs))


@dataclass
class ResolvedStream:
    """Conditions of one stream at the current trial state."""

    name: str
    F: float
    T: float
    P: float
    z: np.ndarray
    phase: str = "vapor"

    def enthalpy_flow(self) -> float:
        """F·h (kcal/min) on the stream's own phase basis."""
        if self.phase == "liquid":
            return self.F * mixture_liquid_enthalpy(self.T, self.z)
        return self.F * mixture_vapor_enthalpy(self.T, self.z)


@dataclass
class ReactorProfile:
    """Per-stage quantities along the reactor bed."""

    pressures: np.ndarray
    mole_fractions: List[np.ndarray]
    flows: np.ndarray          # molar flow leaving each stage
    rates: List[np.ndarray]    # [r1, r2] per stage, kmol/(min·kg)
    catalyst_per_stage: float

    @property
    def outlet_flow(self) -> float:
        return float(self.flows[-1])

    @property
    def outlet_composition(self) -> np.ndarray:
        return self.mole_fractions[-1]


@dataclass
class AbsorberProfile:
    """Vapor/liquid traffic and equilibrium vapor on every absorber tray."""

    pressure: float
    vapor_flows: np.ndarray      # V_k leaving tray k
    liquid_flows: np.ndarray     # L_k leaving tray k
    feeds: np.ndarray            # external liquid feed onto tray k
    feed_compositions: List[np.ndarray]
    vapors: List[np.ndarray]     # equilibrium y on tray k
    inlet_vapor: np.ndarray      # composition entering the bottom tray


@dataclass
class FlowsheetSnapshot:
    streams: Dict[str, ResolvedStream]
    reactor: ReactorProfile
    absorber: AbsorberProfile
    separator_gamma: np.ndarray
    fehe_duty: float
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _blend(parts, total: float) -> np.ndarray:
    """Flow-weighted composition of (flow, z) pairs; zeros when total is 0."""
    if total == 0.0:
        return np.zeros(len(SPECIES))
    out = np.zeros(len(SPECIES))
    for f, z in parts:
        out = out + f * z
    return out / total


def _mix_temperature(H: float, F: float, z: np.ndarray, phase: str) -> float:
    if F == 0.0:
        return float("nan")
    T = temperature_from_enthalpy(H / F, z, phase=phase)
    return float("nan") if T is None else T


def equilibrium_vapor(T: float, P: float, x: np.ndarray) -> np.ndarray:
    """y_i = x_i·γ_i·Psat_i(T)/P, not normalised."""
    gamma = activity_coefficients(SPECIES, x, np.float64(T) + T_ABS)
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        return x * gamma * saturation_pressures(T) / np.float64(P)


# ---------------------------------------------------------------------------
# Unit profiles
# ---------------------------------------------------------------------------


def reactor_profile(state: PlantState, params: ProcessParameters, F_in: float) -> ReactorProfile:
    """Stage pressures, mole fractions, rates and outlet flows for inlet flow ``F_in``."""
    n = len(state.reactor)
    P7 = params.streams["S7"].P
    P8 = params.streams["S8"].P
    W = params.operating.catalyst_mass / n

    pressures = np.array([P7 - (P7 - P8) * k / n for k in range(1, n + 1)])
    fractions: List[np.ndarray] = []
    rates: List[np.ndarray] = []
    flows = np.zeros(n)

    F_prev = F_in
    with np.errstate(divide="ignore", invalid="ignore"):
        for k, stage in enumerate(state.reactor):
            C = composition_vector(stage.C)
            y = C / C.sum()
            r = reaction_rates(stage.T, y, pressures[k])
            F_prev = F_prev + W * float(generation(r).sum())
            fractions.append(y)
            rates.append(r)
            flows[k] = F_prev

    return ReactorProfile(pressures, fractions, flows, rates, W)


def absorber_profile(state: PlantState, params: ProcessParameters) -> AbsorberProfile:
    layout = params.layout
    n = len(state.absorber_trays)
    f = params.flows
    P = state.compressor.P

    dV = (f["S15"] - f["S16"]) / n
    vapor_flows = np.array([f["S16"] + k * dV for k in range(n)])

    x_tank = composition_vector(state.tank.x)
    x_sump = composition_vector(state.absorber_sump.x)
    feeds = np.zeros(n)
    feed_z = [np.zeros(len(SPECIES)) for _ in range(n)]
    feeds[layout.wash_tray - 1] += f["S23"]
    feed_z[layout.wash_tray - 1] = feed_z[layout.wash_tray - 1] + f["S23"] * x_tank
    feeds[layout.circulation_tray - 1] += f["S20"]
    feed_z[layout.circulation_tray - 1] = feed_z[layout.circulation_tray - 1] + f["S20"] * x_sump
    feed_z = [fz / fd if fd > 0.0 else fz for fz, fd in zip(feed_z, feeds)]

    liquid_flows = np.cumsum(feeds + dV)

    vapors = [
        equilibrium_vapor(tray.T, P, composition_vector(tray.x))
        for tray in state.absorber_trays
    ]

    return AbsorberProfile(
        pressure=P,
        vapor_flows=vapor_flows,
        liquid_flows=liquid_flows,
        feeds=feeds,
        feed_compositions=feed_z,
        vapors=vapors,
        inlet_vapor=composition_vector(state.separator.y),
    )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_streams(state: PlantState, params: ProcessParameters) -> FlowsheetSnapshot:
    """Conditions of S1..S34 and unit profiles at a trial state."""
    f = params.flows
    sp = params.streams
    aux = state.aux
    out: Dict[str, ResolvedStream] = {}

    def put(name, F, T, P, z, phase="vapor"):
        out[name] = ResolvedStream(name, float(F), float(T), float(P), np.asarray(z, dtype=float), phase)

    # Boundary streams
    for name, phase in (("S1", "vapor"), ("S5", "vapor"), ("S25", "liquid"), ("S24", "liquid")):
        put(name, f[name], sp[name].T, sp[name].P, composition_vector(sp[name].x), phase)

    # Gas loop
    absorber = absorber_profile(state, params)
    y_top = absorber.vapors[0]
    T_top = state.absorber_trays[0].T
    P_abs = absorber.pressure
    for name in ("S16", "S27", "S28", "S29", "S32"):
        put(name, f[name], T_top, P_abs, y_top)
    put("S30", f["S30"], T_top, sp["S30"].P, _E_CO2)
    z31 = (f["S29"] * y_top - f["S30"] * _E_CO2) / f["S31"] if f["S31"] else np.zeros(len(SPECIES))
    put("S31", f["S31"], T_top, P_abs, z31)
    z33 = _blend([(f["S31"], z31), (f["S28"], y_top)], f["S33"])
    put("S33", f["S33"], T_top, P_abs, z33)
    put("S34", f["S34"], aux.S34, sp["S34"].P, z33)

    H2 = out["S34"].enthalpy_flow() + out["S1"].enthalpy_flow()
    z2 = _blend([(f["S34"], z33), (f["S1"], out["S1"].z)], f["S2"])
    put("S2", f["S2"], _mix_temperature(H2, f["S2"], z2, "vapor"), sp["S2"].P, z2)

    # HAc tank and vaporizer
    x_tank = composition_vector(state.tank.x)
    put("S3", f["S3"], state.tank.T, sp["S3"].P, x_tank, "liquid")
    put("S22", f["S22"], state.tank.T, sp["S22"].P, x_tank, "liquid")
    put("S23", f["S23"], aux.C5, sp["S23"].P, x_tank, "liquid")

    x_vap = composition_vector(state.vaporizer.x)
    put("S4", f["S4"], state.vaporizer.T, sp["S4"].P, x_vap)
    put("S6", f["S6"], aux.H1, sp["S6"].P, x_vap)

    H7 = out["S6"].enthalpy_flow() + out["S5"].enthalpy_flow()
    z7 = _blend([(f["S6"], x_vap), (f["S5"], out["S5"].z)], f["S7"])
    put("S7", f["S7"], _mix_temperature(H7, f["S7"], z7, "vapor"), sp["S7"].P, z7)

    # Reactor train
    reactor = reactor_profile(state, params, f["S7"])
    F_out = reactor.outlet_flow
    z8 = reactor.outlet_composition
    put("S8", F_out, state.reactor[-1].T, sp["S8"].P, z8)
    put("S9", F_out, aux.S9, sp["S9"].P, z8)
    put("S10", F_out, aux.S9, sp["S10"].P, z8)
    put("S11", F_out, aux.C3, state.separator.P, z8, "two-phase")

    # Separator and compressor
    sep = state.separator
    x_sep = composition_vector(sep.x)
    y_sep = composition_vector(sep.y)
    F13 = F_out - f["S12"]
    put("S12", f["S12"], sep.T_vap, sep.P, y_sep)
    put("S13", F13, sep.T_liq, sep.P, x_sep, "liquid")
    put("S14", f["S14"], state.compressor.T, state.compressor.P, y_sep)
    put("S15", f["S15"], aux.H2, state.compressor.P, y_sep)

    # Absorber liquid side
    x_b = composition_vector(state.absorber_sump.x)
    T_b = state.absorber_sump.T
    for name in ("S17", "S18", "S19"):
        put(name, f[name], T_b, P_abs, x_b, "liquid")
    put("S20", f["S20"], aux.C4, P_abs, x_b, "liquid")

    # Column feed and distillate
    F21 = F13 + f["S17"]
    z21 = _blend([(F13, x_sep), (f["S17"], x_b)], F21)
    H21 = out["S13"].enthalpy_flow() + out["S17"].enthalpy_flow()
    put("S21", F21, _mix_temperature(H21, F21, z21, "liquid"), sp["S21"].P, z21, "liquid")
    F26 = F21 - f["S24"]
    z26 = (F21 * z21 - f["S24"] * out["S24"].z) / F26 if F26 else np.zeros(len(SPECIES))
    put("S26", F26, DISTILLATE_TEMPERATURE, sp["S26"].P, z26, "liquid")

    fehe_duty = params.operating.UA_FEHE * (
        (state.reactor[-1].T - aux.S34) + (aux.S9 - T_top)
    ) / 2.0

    sep_gamma = activity_coefficients(SPECIES, x_sep, np.float64(sep.T_liq) + T_ABS)

    warnings: List[str] = []
    if F13 < 0.0:
        warnings.append(f"Separator liquid draw S13 is negative ({F13:.4g} kmol/min)")
    if F26 < 0.0:
        warnings.append(f"Distillate S26 is negative ({F26:.4g} kmol/min)")

    streams = {name: out[name] for name in sorted(out, key=lambda s: int(s[1:]))}
    return FlowsheetSnapshot(streams, reactor, absorber, sep_gamma, fehe_duty, warnings)
