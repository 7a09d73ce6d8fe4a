"""
Initial guess for the steady-state solve.

Every unknown gets a physically sensible value near the nominal operating
point and every composition group sums to one.  One sequential pass through
the units (see ``sequential``) then replaces those values with ones that
satisfy each unit's own balances for the nominal recycle gas.  Stream
parameters are filled from the conditions the resulting state implies, so
the parameter vector is complete before the first residual evaluation.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np
from loguru import logger

from .config import (
    BOUNDARY_STREAMS,
    DEFAULT_STREAM_PRESSURE,
    NOMINAL_PRESSURES,
    OperatingConditions,
)
from .errors import ProcessModelError
from .network import FlowSpecification, compute_stream_flows
from .sequential import initial_tear, sweep
from .species import SPECIES
from .state import (
    DEFAULT_LAYOUT,
    STREAM_NAMES,
    AbsorberStage,
    AuxiliaryTemperatures,
    CompressorState,
    PlantState,
    ProcessParameters,
    ReactorStage,
    SeparatorState,
    StateLayout,
    StreamParams,
    TankState,
    VaporizerState,
)
from .streams import resolve_streams, total_concentration


def _comp(**fractions: float) -> Dict[str, float]:
    return {s: float(fractions.get(s, 0.0)) for s in SPECIES}


# Guess compositions; each sums to one
VAPORIZER_X = _comp(O2=0.07, CO2=0.07, C2H4=0.55, C2H6=0.12, VAc=0.01, H2O=0.01, HAc=0.17)
SEPARATOR_X = _comp(O2=0.001, CO2=0.004, C2H4=0.01, C2H6=0.005, VAc=0.25, H2O=0.08, HAc=0.65)
SEPARATOR_Y = _comp(O2=0.07, CO2=0.08, C2H4=0.60, C2H6=0.13, VAc=0.06, H2O=0.01, HAc=0.05)
ABSORBER_X = _comp(O2=0.0005, CO2=0.003, C2H4=0.01, C2H6=0.0015, VAc=0.05, H2O=0.085, HAc=0.85)
TANK_X = _comp(VAc=0.005, H2O=0.075, HAc=0.92)

VAPORIZER_T = 150.0
REACTOR_T_IN = 150.0
REACTOR_T_RISE = 10.0
SEPARATOR_T = 40.0
SEPARATOR_P = 120.0
ABSORBER_T = 45.0
TANK_T = 110.0
COMPRESSOR_T = 45.0
COMPRESSOR_P = 128.0
AUX_T = dict(H1=150.0, H2=55.0, C3=60.0, C4=40.0, C5=35.0, S34=110.0, S9=120.0)


def _stream_pressure(name: str) -> float:
    if name in BOUNDARY_STREAMS:
        return BOUNDARY_STREAMS[name]["P"]
    return NOMINAL_PRESSURES.get(name, DEFAULT_STREAM_PRESSURE)


def _provisional_streams(flows: Dict[str, float]) -> Dict[str, StreamParams]:
    """Network flows and nominal pressures; boundary streams fully specified."""
    streams: Dict[str, StreamParams] = {}
    for name in STREAM_NAMES:
        boundary = BOUNDARY_STREAMS.get(name)
        if boundary is not None:
            z = _comp(**boundary["z"])
            streams[name] = StreamParams(f=flows[name], T=boundary["T"], P=boundary["P"], x=z, y=z)
        else:
            z = _comp()
            streams[name] = StreamParams(f=flows[name], T=0.0, P=_stream_pressure(name), x=z, y=z)
    return streams


def guess_state(flows: Dict[str, float], layout: StateLayout, operating: OperatingConditions) -> PlantState:
    """A fully populated ``PlantState`` near the nominal operating point."""
    vaporizer = VaporizerState(M=operating.M_VAP_sp, T=VAPORIZER_T, x=VAPORIZER_X)

    # Reactor inlet is the vaporizer vapor plus the O2 feed
    x_vap = np.array([VAPORIZER_X[s] for s in SPECIES])
    o2 = np.array([1.0 if s == "O2" else 0.0 for s in SPECIES])
    z7 = (flows["S6"] * x_vap + flows["S5"] * o2) / flows["S7"]
    P7 = _stream_pressure("S7")
    P8 = _stream_pressure("S8")
    n = layout.n_reactor_stages
    reactor = []
    for k in range(1, n + 1):
        T = REACTOR_T_IN + REACTOR_T_RISE * k / n
        P = P7 - (P7 - P8) * k / n
        C = z7 * total_concentration(T, P)
        reactor.append(ReactorStage(T=T, C=C))

    separator = SeparatorState(
        M=operating.M_SEP_sp, P=SEPARATOR_P, T_liq=SEPARATOR_T, T_vap=SEPARATOR_T,
        x=SEPARATOR_X, y=SEPARATOR_Y,
    )
    trays = [
        AbsorberStage(M=operating.M_ABS_tray_sp, T=ABSORBER_T, x=ABSORBER_X)
        for _ in range(layout.n_absorber_trays)
    ]
    sump = AbsorberStage(M=operating.M_ABS_sump_sp, T=ABSORBER_T, x=ABSORBER_X)
    tank = TankState(M=operating.M_TK_sp, T=TANK_T, x=TANK_X)

    return PlantState(
        vaporizer=vaporizer,
        reactor=reactor,
        separator=separator,
        absorber_trays=trays,
        absorber_sump=sump,
        tank=tank,
        compressor=CompressorState(T=COMPRESSOR_T, P=COMPRESSOR_P),
        aux=AuxiliaryTemperatures(**AUX_T),
    )


def make_initial_guess(
    flows: Optional[FlowSpecification] = None,
    operating: Optional[OperatingConditions] = None,
    layout: Optional[StateLayout] = None,
    seed: bool = True,
) -> Tuple[np.ndarray, ProcessParameters]:
    """
    Build the initial state vector and the complete parameter record.

    With ``seed`` the nominal values are refined by one sequential pass;
    a unit that cannot be solved leaves the nominal values in place.

    Raises
    ------
    InfeasibleTopologyError
        if the flow specification gives a negative flow anywhere; this
        happens before any residual is evaluated.
    """
    operating = operating or OperatingConditions()
    layout = layout or DEFAULT_LAYOUT

    stream_flows = compute_stream_flows(flows)
    state = guess_state(stream_flows, layout, operating)

    provisional = ProcessParameters(_provisional_streams(stream_flows), operating, layout)
    if seed:
        try:
            state, _ = sweep(state, provisional, initial_tear(state))
        except ProcessModelError as e:
            logger.warning("Sequential seeding pass failed, keeping nominal guess: {}", e)
    snap = resolve_streams(state, provisional)

    streams: Dict[str, StreamParams] = {}
    for name in STREAM_NAMES:
        resolved = snap.streams[name]
        if name == "S11":
            x, y = state.separator.x, state.separator.y
        else:
            x = y = resolved.z
        streams[name] = StreamParams(
            f=stream_flows[name], T=resolved.T, P=resolved.P, x=x, y=y,
        )

    params = ProcessParameters(streams, operating, layout)
    x0 = state.flatten()
    logger.info(
        "Initial guess built: {} unknowns, {} reactor stages, {} absorber trays",
        x0.size, layout.n_reactor_stages, layout.n_absorber_trays,
    )
    return x0, params
