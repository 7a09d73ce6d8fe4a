"""
Steady-state residual of the VAc flowsheet.

``residual(x, params)`` evaluates one balance or equilibrium equation per
unknown.  The equations are collected into a ``PlantState``-shaped record
and flattened with the same code as the state itself, so entry k of the
residual always belongs to unknown k (see ``state.state_labels``).

Equation assignment per unit:

  holdups M        level-controller closure  M - M_setpoint
  VAP  T / x       energy balance / species balances, x_HAc -> Σx - 1
  RCT  T / C       stage energy / species balances, C_HAc -> ideal gas law
  SEP  P           Σy - 1
       T_liq       energy balance with jacket cooling
       T_vap       T_vap - T_liq
       x / y       species balances (x_HAc -> Σx - 1) / y·P - x·γ·Psat
  ABS  T / x       bubble point Σy - 1 / species balances, x_HAc -> Σx - 1
  TK   T / x       adiabatic mixing / species balances, x_HAc -> Σx - 1
  COMP T / P       energy balance with shaft work / isentropic efficiency
  AUX              heater, cooler and FEHE energy balances
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union

import numpy as np
from loguru import logger

from .correlations import (
    mixture_liquid_enthalpy as hl,
    mixture_vapor_enthalpy as hv,
    mixture_vapor_heat_capacity,
    saturation_pressures,
)
from .activity import GAS_CONSTANT_CAL
from .errors import NonFiniteResidualError
from .kinetics import generation, heat_release
from .state import (
    DEFAULT_LAYOUT,
    N_SPECIES,
    AbsorberStage,
    AuxiliaryTemperatures,
    CompressorState,
    PlantState,
    ProcessParameters,
    ReactorStage,
    SeparatorState,
    StateLayout,
    TankState,
    VaporizerState,
    composition_vector,
    state_labels,
)
from .streams import T_ABS, FlowsheetSnapshot, resolve_streams, total_concentration


def _closed(balance: np.ndarray, x: np.ndarray) -> np.ndarray:
    """Species balances for all but the last species, Σx - 1 in the last slot."""
    out = np.array(balance, dtype=float)
    out[-1] = x.sum() - 1.0
    return out


# ---------------------------------------------------------------------------
# Unit blocks
# ---------------------------------------------------------------------------


def _vaporizer(state: PlantState, params: ProcessParameters, snap: FlowsheetSnapshot) -> VaporizerState:
    op = params.operating
    s = snap.streams
    vap = state.vaporizer
    x = composition_vector(vap.x)

    # S2 enthalpy from its two sources, so the mixed temperature is never needed
    H_in = s["S34"].enthalpy_flow() + s["S1"].enthalpy_flow() + s["S3"].enthalpy_flow()
    energy = H_in + op.Q_VAP - s["S4"].F * hv(vap.T, x)
    species = s["S2"].F * s["S2"].z + s["S3"].F * s["S3"].z - s["S4"].F * x
    return VaporizerState(M=vap.M - op.M_VAP_sp, T=energy, x=_closed(species, x))


def _reactor(state: PlantState, params: ProcessParameters, snap: FlowsheetSnapshot):
    op = params.operating
    s = snap.streams
    prof = snap.reactor
    n = len(state.reactor)
    W = prof.catalyst_per_stage
    ua = op.UA_RCT / n

    F_in = s["S7"].F
    z_in = s["S7"].z
    H_in = s["S6"].enthalpy_flow() + s["S5"].enthalpy_flow()

    out = []
    for k, stage in enumerate(state.reactor):
        C = composition_vector(stage.C)
        y = prof.mole_fractions[k]
        r = prof.rates[k]
        F_k = prof.flows[k]
        H_out = F_k * hv(stage.T, y)

        energy = H_in - H_out + W * heat_release(r) - ua * (stage.T - op.T_RCT_coolant)
        species = F_in * z_in + W * generation(r) - F_k * y
        species[-1] = C.sum() - total_concentration(stage.T, prof.pressures[k])
        out.append(ReactorStage(T=energy, C=species))

        F_in, z_in, H_in = F_k, y, H_out
    return out


def _separator(state: PlantState, params: ProcessParameters, snap: FlowsheetSnapshot) -> SeparatorState:
    op = params.operating
    s = snap.streams
    sep = state.separator
    x = composition_vector(sep.x)
    y = composition_vector(sep.y)
    F_in = s["S11"].F
    z_in = s["S11"].z
    f12 = s["S12"].F
    f13 = s["S13"].F

    energy = (
        F_in * hv(s["S11"].T, z_in)
        - f12 * hv(sep.T_vap, y)
        - f13 * hl(sep.T_liq, x)
        - op.UA_SEP * (sep.T_liq - op.T_SEP_coolant)
    )
    species = F_in * z_in - f12 * y - f13 * x
    with np.errstate(over="ignore", invalid="ignore"):
        equilibrium = y * sep.P - x * snap.separator_gamma * saturation_pressures(sep.T_liq)

    return SeparatorState(
        M=sep.M - op.M_SEP_sp,
        P=y.sum() - 1.0,
        T_liq=energy,
        T_vap=sep.T_vap - sep.T_liq,
        x=_closed(species, x),
        y=equilibrium,
    )


def _absorber(state: PlantState, params: ProcessParameters, snap: FlowsheetSnapshot):
    op = params.operating
    prof = snap.absorber
    trays = state.absorber_trays
    n = len(trays)

    out = []
    for k, tray in enumerate(trays):
        x = composition_vector(tray.x)
        y = prof.vapors[k]
        if k + 1 < n:
            V_below, y_below = prof.vapor_flows[k + 1], prof.vapors[k + 1]
        else:
            V_below, y_below = snap.streams["S15"].F, prof.inlet_vapor
        if k > 0:
            L_above, x_above = prof.liquid_flows[k - 1], composition_vector(trays[k - 1].x)
        else:
            L_above, x_above = 0.0, np.zeros_like(x)

        species = (
            V_below * y_below
            + L_above * x_above
            + prof.feeds[k] * prof.feed_compositions[k]
            - prof.vapor_flows[k] * y
            - prof.liquid_flows[k] * x
        )
        out.append(AbsorberStage(M=tray.M - op.M_ABS_tray_sp, T=y.sum() - 1.0, x=_closed(species, x)))

    sump = state.absorber_sump
    x_b = composition_vector(sump.x)
    x_N = composition_vector(trays[-1].x)
    L_N = prof.liquid_flows[-1]
    f19 = snap.streams["S19"].F
    sump_res = AbsorberStage(
        M=sump.M - op.M_ABS_sump_sp,
        T=L_N * hl(trays[-1].T, x_N) - f19 * hl(sump.T, x_b),
        x=_closed(L_N * x_N - f19 * x_b, x_b),
    )
    return out, sump_res


def _tank(state: PlantState, params: ProcessParameters, snap: FlowsheetSnapshot) -> TankState:
    op = params.operating
    s = snap.streams
    tank = state.tank
    x = composition_vector(tank.x)
    F_out = s["S3"].F + s["S22"].F

    energy = s["S24"].enthalpy_flow() + s["S25"].enthalpy_flow() - F_out * hl(tank.T, x)
    species = s["S24"].F * s["S24"].z + s["S25"].F * s["S25"].z - F_out * x
    return TankState(M=tank.M - op.M_TK_sp, T=energy, x=_closed(species, x))


def _compressor(state: PlantState, params: ProcessParameters, snap: FlowsheetSnapshot) -> CompressorState:
    op = params.operating
    s = snap.streams
    comp = state.compressor
    sep = state.separator
    y = s["S12"].z

    energy = s["S12"].F * hv(sep.T_vap, y) + op.Ws_COM - s["S14"].F * hv(comp.T, y)

    cp = np.float64(mixture_vapor_heat_capacity(sep.T_vap, y))
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        kappa = cp / (cp - GAS_CONSTANT_CAL)
        ratio = np.float64(comp.P) / np.float64(sep.P)
        isentropic = (np.float64(sep.T_vap) + T_ABS) * (ratio ** ((kappa - 1.0) / kappa) - 1.0)
    pressure = op.eta_COM * (comp.T - sep.T_vap) - isentropic
    return CompressorState(T=energy, P=float(pressure))


def _auxiliary(state: PlantState, params: ProcessParameters, snap: FlowsheetSnapshot) -> AuxiliaryTemperatures:
    op = params.operating
    s = snap.streams
    aux = state.aux
    Q = snap.fehe_duty

    x_vap = s["S4"].z
    y_sep = s["S14"].z
    z8 = s["S8"].z
    x_b = s["S18"].z
    x_tk = s["S22"].z
    z33 = s["S33"].z
    F_out = s["S8"].F

    return AuxiliaryTemperatures(
        H1=s["S4"].F * hv(state.vaporizer.T, x_vap) + op.Q_H1 - s["S6"].F * hv(aux.H1, x_vap),
        H2=s["S14"].F * hv(state.compressor.T, y_sep) + op.Q_H2 - s["S15"].F * hv(aux.H2, y_sep),
        C3=F_out * hv(aux.S9, z8) - op.Q_C3 - F_out * hv(aux.C3, z8),
        C4=s["S18"].F * hl(state.absorber_sump.T, x_b) - op.Q_C4 - s["S20"].F * hl(aux.C4, x_b),
        C5=s["S22"].F * hl(state.tank.T, x_tk) - op.Q_C5 - s["S23"].F * hl(aux.C5, x_tk),
        S34=s["S33"].F * hv(s["S33"].T, z33) + Q - s["S34"].F * hv(aux.S34, z33),
        S9=F_out * hv(state.reactor[-1].T, z8) - Q - F_out * hv(aux.S9, z8),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def plant_residual(state: PlantState, params: ProcessParameters) -> PlantState:
    """Residual as a record with the same shape as ``state``."""
    snap = resolve_streams(state, params)
    trays, sump = _absorber(state, params, snap)
    return PlantState(
        vaporizer=_vaporizer(state, params, snap),
        reactor=_reactor(state, params, snap),
        separator=_separator(state, params, snap),
        absorber_trays=trays,
        absorber_sump=sump,
        tank=_tank(state, params, snap),
        compressor=_compressor(state, params, snap),
        aux=_auxiliary(state, params, snap),
    )


def temperature_mask(layout: StateLayout = DEFAULT_LAYOUT) -> np.ndarray:
    """True at every state entry that is a temperature in °C."""
    return np.array([
        label.startswith("AUX.") or label.rsplit(".", 1)[-1] in ("T", "T_liq", "T_vap")
        for label in state_labels(layout)
    ])


def residual(
    x: Sequence[float],
    params: Union[ProcessParameters, Sequence[float]],
    layout: Optional[StateLayout] = None,
) -> np.ndarray:
    """
    Evaluate every balance equation at the state vector ``x``.

    ``params`` may be a ``ProcessParameters`` record or its flattened
    vector.  The flat vector carries no layout, so ``layout`` gives the
    stage counts it belongs to (``DEFAULT_LAYOUT`` when omitted); with a
    record, ``layout`` must be omitted or equal ``params.layout``.
    Neither input is modified.

    Raises
    ------
    NonFiniteResidualError
        if any state temperature is at or below absolute zero, or any
        residual entry is NaN or infinite; the labels of the offending
        entries are attached to the exception.
    """
    if not isinstance(params, ProcessParameters):
        params = ProcessParameters.unflatten(params, layout or DEFAULT_LAYOUT)
    elif layout is not None and layout != params.layout:
        raise ValueError(f"Layout {layout} does not match the parameters' layout {params.layout}")

    values = np.array(x, dtype=float, copy=True)
    state = PlantState.unflatten(values, params.layout)

    cold = temperature_mask(params.layout) & ~(values > -T_ABS)
    if cold.any():
        labels = state_labels(params.layout)
        names = [labels[i] for i in np.flatnonzero(cold)]
        logger.debug("Temperatures at or below absolute zero: {}", names)
        raise NonFiniteResidualError(names)

    res = plant_residual(state, params).flatten()

    bad = ~np.isfinite(res)
    if bad.any():
        labels = state_labels(params.layout)
        names = [labels[i] for i in np.flatnonzero(bad)]
        logger.debug("Non-finite residual entries: {}", names)
        raise NonFiniteResidualError(names)
    return res


# ---------------------------------------------------------------------------
# Equation scaling
# ---------------------------------------------------------------------------

# Reference heat capacity (kcal/(kmol·°C)); energy rows divided by F·CP_REF
# read as a temperature error in °C.
CP_REF = 10.0
_FLOW_FLOOR = 1e-3


def residual_scales(state: PlantState, params: ProcessParameters) -> np.ndarray:
    """
    Characteristic size of every residual row.

    Energy rows scale with the unit throughput times ``CP_REF``, species
    balances with the throughput, the reactor gas-law closure with the
    inlet total concentration and the separator equilibrium rows with the
    separator pressure.  Closures already in mole fraction or °C keep
    unit scale.
    """
    f = {name: max(abs(v), _FLOW_FLOOR) for name, v in params.flows.items()}
    layout = params.layout
    op = params.operating

    def balance(F: float) -> List[float]:
        return [F] * (N_SPECIES - 1) + [1.0]

    C_ref = total_concentration(op.T_RCT_coolant, params.streams["S7"].P)
    P_sep = max(abs(state.separator.P), 1.0)
    F_tank = f["S3"] + f["S22"]

    scales = PlantState(
        vaporizer=VaporizerState(M=1.0, T=f["S4"] * CP_REF, x=balance(f["S4"])),
        reactor=[
            ReactorStage(T=f["S7"] * CP_REF, C=[f["S7"]] * (N_SPECIES - 1) + [C_ref])
            for _ in range(layout.n_reactor_stages)
        ],
        separator=SeparatorState(
            M=1.0, P=1.0, T_liq=f["S11"] * CP_REF, T_vap=1.0,
            x=balance(f["S11"]), y=[P_sep] * N_SPECIES,
        ),
        absorber_trays=[
            AbsorberStage(M=1.0, T=1.0, x=balance(f["S15"]))
            for _ in range(layout.n_absorber_trays)
        ],
        absorber_sump=AbsorberStage(M=1.0, T=f["S19"] * CP_REF, x=balance(f["S19"])),
        tank=TankState(M=1.0, T=F_tank * CP_REF, x=balance(F_tank)),
        compressor=CompressorState(T=f["S14"] * CP_REF, P=1.0),
        aux=AuxiliaryTemperatures(
            H1=f["S6"] * CP_REF,
            H2=f["S15"] * CP_REF,
            C3=f["S10"] * CP_REF,
            C4=f["S20"] * CP_REF,
            C5=f["S23"] * CP_REF,
            S34=f["S34"] * CP_REF,
            S9=f["S9"] * CP_REF,
        ),
    )
    return scales.flatten()


def scaled_residual(x: Sequence[float], params: ProcessParameters) -> np.ndarray:
    """``residual`` with every row divided by its ``residual_scales`` entry."""
    res = residual(x, params)
    state = PlantState.unflatten(np.asarray(x, dtype=float), params.layout)
    return res / residual_scales(state, params)
