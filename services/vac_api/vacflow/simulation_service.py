from __future__ import annotations

import math
from typing import Dict, List, Optional

import numpy as np
from loguru import logger

from . import schemas
from .activity import activity_coefficient_map
from .correlations import (
    liquid_enthalpy,
    liquid_heat_capacity,
    saturation_pressure,
    vapor_enthalpy,
    vapor_heat_capacity,
)
from .errors import ProcessModelError
from .initialization import make_initial_guess
from .kinetics import selectivity
from .solver import SolveResult, solve_steady_state
from .species import SPECIES, lookup
from .state import ProcessParameters, StateLayout, composition_vector
from .streams import T_ABS, FlowsheetSnapshot, resolve_streams


def _finite(value: float) -> Optional[float]:
    """JSON has no NaN/inf; report them as missing."""
    value = float(value)
    return value if math.isfinite(value) else None


def _composition(z: np.ndarray) -> Dict[str, float]:
    return {s: float(v) for s, v in zip(SPECIES, z) if math.isfinite(v)}


def _stream_table(snap: FlowsheetSnapshot) -> List[schemas.StreamResult]:
    return [
        schemas.StreamResult(
            id=name,
            molar_flow_kmol_per_min=_finite(s.F),
            temperature_c=_finite(s.T),
            pressure_psia=_finite(s.P),
            phase=s.phase,
            composition=_composition(s.z),
        )
        for name, s in snap.streams.items()
    ]


def build_report(result: SolveResult, params: Optional[ProcessParameters] = None) -> schemas.SolveReport:
    """
    Stream table, unit profiles and diagnostics for a finished solve.

    ``params`` are the parameters the state is resolved against; the ones
    the solve ran with are used when omitted.
    """
    params = params or result.params
    report = schemas.SolveReport(
        status="converged" if result.converged else "not-converged",
        converged=result.converged,
        iterations=result.iterations,
        residual_norm=_finite(result.residual_norm),
        message=result.message,
        warnings=list(result.warnings),
    )
    if result.state is None:
        return report

    state = result.state
    try:
        snap = resolve_streams(state, params)
    except ProcessModelError as exc:
        report.warnings.append(f"Stream table unavailable: {exc}")
        return report

    report.streams = _stream_table(snap)
    report.reactor_profile = [
        schemas.StageResult(
            stage=k + 1,
            temperature_c=_finite(stage.T),
            pressure_psia=_finite(snap.reactor.pressures[k]),
            composition=_composition(snap.reactor.mole_fractions[k]),
        )
        for k, stage in enumerate(state.reactor)
    ]
    report.absorber_profile = [
        schemas.StageResult(
            stage=k + 1,
            temperature_c=_finite(tray.T),
            pressure_psia=_finite(snap.absorber.pressure),
            composition=_composition(composition_vector(tray.x)),
        )
        for k, tray in enumerate(state.absorber_trays)
    ]
    report.fehe_duty_kcal_per_min = _finite(snap.fehe_duty)
    report.vac_selectivity = _finite(selectivity(np.sum(snap.reactor.rates, axis=0))[0])
    report.warnings.extend(snap.warnings)
    return report


class SimulationService:
    def solve(self, request: schemas.SolveRequest) -> schemas.SolveReport:
        layout = StateLayout(
            n_reactor_stages=request.n_reactor_stages,
            n_absorber_trays=request.n_absorber_trays,
            wash_tray=request.wash_tray,
            circulation_tray=request.circulation_tray,
        )
        x0, params = make_initial_guess(request.flows, request.operating, layout)
        result = solve_steady_state(
            x0, params,
            tol=request.tol,
            max_evaluations=request.max_evaluations,
            sequential_passes=request.sequential_passes,
        )
        logger.info("Solve finished: converged={} evaluations={}", result.converged, result.iterations)
        return build_report(result)

    def thermo_properties(self, request: schemas.PropertyRequest) -> schemas.PropertyResult:
        sp = lookup(request.species)
        T = request.temperature_c
        return schemas.PropertyResult(
            species=sp.name,
            temperature_c=T,
            vapor_heat_capacity=vapor_heat_capacity(T, sp),
            liquid_heat_capacity=liquid_heat_capacity(T, sp),
            vapor_enthalpy=vapor_enthalpy(T, sp),
            liquid_enthalpy=liquid_enthalpy(T, sp),
            saturation_pressure_psia=_finite(saturation_pressure(T, sp)),
        )

    def activity(self, request: schemas.ActivityRequest) -> schemas.ActivityResult:
        gammas = activity_coefficient_map(request.composition, request.temperature_c + T_ABS)
        return schemas.ActivityResult(
            temperature_c=request.temperature_c,
            activity_coefficients=gammas,
        )
