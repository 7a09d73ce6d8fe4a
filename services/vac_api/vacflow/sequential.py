"""
Sequential-modular pass over the flowsheet.

The units are solved one at a time in flow order, each from the same
balance and equilibrium equations the residual uses for it:

  tank, C5        closed-form mixing and cooling
  vaporizer, H1   total vaporisation, then heating
  reactor         stage by stage, a small Newton solve per stage
  FEHE, C3        both exchanger sides together, then cooling
  separator       flash at the fixed vapor draw, T from the energy balance
  compressor, H2  closed form
  absorber        bubble-point method at the fixed tray traffic
  C4              closed form

The recycle gas closes the loop.  Its tear values are the absorber overhead
composition and temperature plus the FEHE cold outlet temperature, updated
with Wegstein acceleration until they stop moving.  A converged pass leaves
a state that satisfies every unit's equations, which is the starting point
for the simultaneous solve.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger
from scipy.optimize import brentq, fsolve

from .activity import GAS_CONSTANT_CAL, activity_coefficients
from .correlations import (
    mixture_liquid_enthalpy as hl,
    mixture_vapor_enthalpy as hv,
    mixture_vapor_heat_capacity,
    saturation_pressures,
    temperature_from_enthalpy,
)
from .errors import SequentialPassError
from .kinetics import generation, heat_release, reaction_rates
from .residual import CP_REF
from .species import SPECIES
from .state import (
    AbsorberStage,
    AuxiliaryTemperatures,
    CompressorState,
    PlantState,
    ProcessParameters,
    ReactorStage,
    SeparatorState,
    TankState,
    VaporizerState,
    composition_vector,
)
from .streams import T_ABS, equilibrium_vapor, total_concentration

N_SPECIES = len(SPECIES)
_E_CO2 = np.array([1.0 if s == "CO2" else 0.0 for s in SPECIES])

# Recycle gas used as the first tear when the state carries no usable one
RECYCLE_GAS_Y = np.array([0.075, 0.07, 0.70, 0.145, 0.002, 0.003, 0.005])

TEAR_TOL = 1e-10
INNER_TOL = 1e-12
MAX_INNER = 500
WEGSTEIN_Q_MIN = -5.0
WEGSTEIN_Q_MAX = 0.0
# Search window for unit temperatures; stays clear of the Antoine poles
TEMPERATURE_LIMITS = (-150.0, 450.0)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class TearValues:
    """Recycle gas leaving the absorber top, plus the FEHE cold outlet."""

    y_top: np.ndarray
    T_top: float
    T_S34: float

    def vector(self) -> np.ndarray:
        return np.append(self.y_top, [self.T_top, self.T_S34])

    @classmethod
    def from_vector(cls, values: Sequence[float]) -> "TearValues":
        values = np.asarray(values, dtype=float)
        y = np.clip(values[:N_SPECIES], 0.0, None)
        total = y.sum()
        if not total > 0.0:
            raise SequentialPassError("Recycle gas tear has no positive mole fraction")
        return cls(y / total, float(values[N_SPECIES]), float(values[N_SPECIES + 1]))


@dataclass
class SequentialResult:
    state: PlantState
    passes: int
    tear_error: float
    converged: bool


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def _invert(h: float, z: np.ndarray, phase: str, where: str) -> float:
    T = temperature_from_enthalpy(h, z, phase=phase)
    if T is None or not math.isfinite(T):
        raise SequentialPassError(f"{where}: no temperature gives {h:.6g} kcal/kmol")
    return T


def _root(
    g: Callable[[float], float],
    lo: float,
    hi: float,
    where: str,
    step: float = 25.0,
    limits: Tuple[float, float] = TEMPERATURE_LIMITS,
    clamp: bool = False,
) -> float:
    """
    Root of a monotone function of temperature.

    [lo, hi] is widened inside ``limits`` until it brackets a sign change.
    Without one, ``clamp`` returns the limit where |g| is smallest and
    otherwise ``SequentialPassError`` is raised.
    """
    lo, hi = max(lo, limits[0]), min(hi, limits[1])
    if lo >= hi:
        lo, hi = max(hi - step, limits[0]), min(lo + step, limits[1])
    g_lo, g_hi = g(lo), g(hi)
    while True:
        if not (math.isfinite(g_lo) and math.isfinite(g_hi)):
            raise SequentialPassError(f"{where}: non-finite value between {lo:.4g} and {hi:.4g} °C")
        if g_lo * g_hi <= 0.0:
            return brentq(g, lo, hi, xtol=1e-12)
        can_lo, can_hi = lo > limits[0], hi < limits[1]
        if not (can_lo or can_hi):
            break
        if can_lo and (abs(g_lo) < abs(g_hi) or not can_hi):
            lo = max(lo - step, limits[0])
            g_lo = g(lo)
        else:
            hi = min(hi + step, limits[1])
            g_hi = g(hi)

    if clamp:
        logger.debug("{}: no root in {}, clamped", where, limits)
        return lo if abs(g_lo) < abs(g_hi) else hi
    raise SequentialPassError(f"{where}: no solution between {limits[0]} and {limits[1]} °C")


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


def _tank(params: ProcessParameters) -> Tuple[TankState, float]:
    """HAc tank by adiabatic mixing of S24 and S25, and the C5 outlet."""
    f = params.flows
    sp = params.streams
    op = params.operating
    z24 = composition_vector(sp["S24"].x)
    z25 = composition_vector(sp["S25"].x)
    F_out = f["S3"] + f["S22"]

    x = f["S24"] * z24 + f["S25"] * z25
    x = x / x.sum()
    H = f["S24"] * hl(sp["S24"].T, z24) + f["S25"] * hl(sp["S25"].T, z25)
    T = _invert(H / F_out, x, "liquid", "HAc tank")
    T_C5 = _invert((f["S22"] * hl(T, x) - op.Q_C5) / f["S23"], x, "liquid", "cooler C5")
    return TankState(M=op.M_TK_sp, T=T, x=x), T_C5


def _recycle_gas(params: ProcessParameters, y_top: np.ndarray) -> np.ndarray:
    """S33 composition: CO2-stripped S31 blended with the S28 bypass."""
    f = params.flows
    z31 = (f["S29"] * y_top - f["S30"] * _E_CO2) / f["S31"] if f["S31"] else np.zeros(N_SPECIES)
    return (f["S31"] * z31 + f["S28"] * y_top) / f["S33"]


def _vaporizer(
    params: ProcessParameters, z33: np.ndarray, T_S34: float, tank: TankState,
) -> Tuple[VaporizerState, float]:
    f = params.flows
    sp = params.streams
    op = params.operating
    z1 = composition_vector(sp["S1"].x)
    x_tk = composition_vector(tank.x)

    x = f["S34"] * z33 + f["S1"] * z1 + f["S3"] * x_tk
    x = x / x.sum()
    H_in = (
        f["S34"] * hv(T_S34, z33)
        + f["S1"] * hv(sp["S1"].T, z1)
        + f["S3"] * hl(tank.T, x_tk)
        + op.Q_VAP
    )
    T = _invert(H_in / f["S4"], x, "vapor", "vaporizer")
    T_H1 = _invert((f["S4"] * hv(T, x) + op.Q_H1) / f["S6"], x, "vapor", "heater H1")
    return VaporizerState(M=op.M_VAP_sp, T=T, x=x), T_H1


def _reactor_stage(
    F_in: float,
    z_in: np.ndarray,
    H_in: float,
    P: float,
    W: float,
    ua: float,
    T_coolant: float,
    T_guess: float,
) -> Tuple[np.ndarray, float, float]:
    """Mole fractions, temperature and outlet flow of one catalyst stage."""

    def unpack(u: np.ndarray) -> Tuple[np.ndarray, float]:
        y = np.empty(N_SPECIES)
        y[:-1] = u[:-1]
        y[-1] = 1.0 - u[:-1].sum()
        return y, float(u[-1])

    def equations(u: np.ndarray) -> np.ndarray:
        y, T = unpack(u)
        r = reaction_rates(T, y, P)
        gen = generation(r)
        F_k = F_in + W * float(gen.sum())
        species = (F_in * z_in + W * gen - F_k * y)[:-1] / F_in
        energy = (H_in - F_k * hv(T, y) + W * heat_release(r) - ua * (T - T_coolant)) / (F_in * CP_REF)
        return np.append(species, energy)

    u0 = np.append(z_in[:-1], T_guess)
    u, info, ier, msg = fsolve(equations, u0, xtol=1e-13, full_output=True)
    fvec = info["fvec"]
    if not np.all(np.isfinite(fvec)) or np.max(np.abs(fvec)) > 1e-8:
        raise SequentialPassError(f"Reactor stage at {P:.4g} psia not solved: {msg}")

    y, T = unpack(u)
    F_k = F_in + W * float(generation(reaction_rates(T, y, P)).sum())
    return y, T, F_k


def _reactor(
    params: ProcessParameters, x_vap: np.ndarray, T_H1: float, T_guesses: Sequence[float],
) -> Tuple[List[ReactorStage], float, np.ndarray]:
    f = params.flows
    sp = params.streams
    op = params.operating
    n = params.layout.n_reactor_stages
    P7 = sp["S7"].P
    P8 = sp["S8"].P
    W = op.catalyst_mass / n
    ua = op.UA_RCT / n
    z5 = composition_vector(sp["S5"].x)

    F_in = f["S7"]
    z_in = (f["S6"] * x_vap + f["S5"] * z5) / f["S7"]
    H_in = f["S6"] * hv(T_H1, x_vap) + f["S5"] * hv(sp["S5"].T, z5)

    stages: List[ReactorStage] = []
    for k in range(1, n + 1):
        P = P7 - (P7 - P8) * k / n
        y, T, F_k = _reactor_stage(F_in, z_in, H_in, P, W, ua, op.T_RCT_coolant, T_guesses[k - 1])
        stages.append(ReactorStage(T=T, C=y * total_concentration(T, P)))
        F_in, z_in, H_in = F_k, y, F_k * hv(T, y)
    return stages, F_in, z_in


def _fehe(
    params: ProcessParameters,
    T_hot: float,
    F_hot: float,
    z_hot: np.ndarray,
    T_cold: float,
    z_cold: np.ndarray,
) -> Tuple[float, float]:
    """Cold (S34) and hot (S9) outlet temperatures of the FEHE."""
    f = params.flows
    UA = params.operating.UA_FEHE
    H_cold = f["S33"] * hv(T_cold, z_cold)
    H_hot = F_hot * hv(T_hot, z_hot)

    def hot_outlet(T_S34: float) -> Tuple[float, float]:
        Q = f["S34"] * hv(T_S34, z_cold) - H_cold
        return Q, _invert((H_hot - Q) / F_hot, z_hot, "vapor", "FEHE hot side")

    def mismatch(T_S34: float) -> float:
        Q, T_S9 = hot_outlet(T_S34)
        return Q - UA * ((T_hot - T_S34) + (T_S9 - T_cold)) / 2.0

    T_S34 = _root(mismatch, min(T_cold, T_hot) - 1.0, max(T_cold, T_hot) + 1.0, "FEHE")
    return T_S34, hot_outlet(T_S34)[1]


def _flash(
    T: float, F: float, z: np.ndarray, V: float, L: float, x_start: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Flash at temperature ``T`` with vapor draw ``V`` and liquid draw ``L``.

    For fixed γ, x_i = F·z_i / (L + V·K_i) with K_i = γ_i·Psat_i/P, and the
    pressure is the root of Σx = 1 (Σx runs from 0 at P → 0 to F/L at
    P → ∞).  γ is then refreshed from the new liquid until x settles.
    """
    psat = saturation_pressures(T)
    x = x_start
    u = 0.0
    for _ in range(MAX_INNER):
        c = activity_coefficients(SPECIES, x, T + T_ABS) * psat

        def closure(log_p: float) -> float:
            return float(np.sum(F * z / (L + V * c * math.exp(-log_p)))) - 1.0

        lo, hi = math.log(1e-8), math.log(1e8)
        if not closure(lo) < 0.0 < closure(hi):
            raise SequentialPassError(f"Separator flash at {T:.4g} °C has no pressure in 1e-8..1e8 psia")
        u = brentq(closure, lo, hi, xtol=1e-14)
        x_new = F * z / (L + V * c * math.exp(-u))
        x_new = x_new / x_new.sum()
        step = float(np.max(np.abs(x_new - x)))
        x = x_new
        if step < INNER_TOL:
            break

    P = math.exp(u)
    y = x * activity_coefficients(SPECIES, x, T + T_ABS) * psat / P
    return x, y / y.sum(), P


def _separator(
    params: ProcessParameters, F_in: float, z_in: np.ndarray, T_in: float, guess: SeparatorState,
) -> SeparatorState:
    f = params.flows
    op = params.operating
    V = f["S12"]
    L = F_in - V
    if not L > 0.0:
        raise SequentialPassError(f"Separator liquid draw is not positive ({L:.4g} kmol/min)")

    H_in = F_in * hv(T_in, z_in)
    x_guess = composition_vector(guess.x)
    start = [x_guess / x_guess.sum() if np.all(x_guess > 0.0) else z_in / z_in.sum()]

    def energy(T: float) -> float:
        x, y, _ = _flash(T, F_in, z_in, V, L, start[0])
        start[0] = x
        return H_in - V * hv(T, y) - L * hl(T, x) - op.UA_SEP * (T - op.T_SEP_coolant)

    T = _root(
        energy, op.T_SEP_coolant - 10.0, max(T_in, op.T_SEP_coolant) + 10.0, "separator",
    )
    x, y, P = _flash(T, F_in, z_in, V, L, start[0])
    return SeparatorState(M=op.M_SEP_sp, P=P, T_liq=T, T_vap=T, x=x, y=y)


def _compressor(params: ProcessParameters, sep: SeparatorState) -> Tuple[CompressorState, float]:
    """Discharge temperature from the work balance, pressure from the efficiency."""
    f = params.flows
    op = params.operating
    y = composition_vector(sep.y)

    T = _invert((f["S12"] * hv(sep.T_vap, y) + op.Ws_COM) / f["S14"], y, "vapor", "compressor")
    cp = mixture_vapor_heat_capacity(sep.T_vap, y)
    kappa = cp / (cp - GAS_CONSTANT_CAL)
    ratio = (1.0 + op.eta_COM * (T - sep.T_vap) / (sep.T_vap + T_ABS)) ** (kappa / (kappa - 1.0))
    T_H2 = _invert((f["S14"] * hv(T, y) + op.Q_H2) / f["S15"], y, "vapor", "heater H2")
    return CompressorState(T=T, P=sep.P * ratio), T_H2


def _bubble_point(x: np.ndarray, gamma: np.ndarray, P: float, T_guess: float) -> float:
    def excess(T: float) -> float:
        return float(np.sum(x * gamma * saturation_pressures(T))) / P - 1.0

    return _root(excess, T_guess - 5.0, T_guess + 5.0, "absorber bubble point", step=20.0, clamp=True)


def _absorber(
    params: ProcessParameters,
    P: float,
    y_in: np.ndarray,
    x_wash: np.ndarray,
    trays: Sequence[AbsorberStage],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tray liquid compositions and temperatures by the bubble-point method.

    With the tray traffic fixed and K-values frozen, each species balance
    is linear in the tray mole fractions; the circulation feed carries the
    bottom-tray liquid, which is also the sump liquid.  Tray temperatures
    are then bubble points and K is refreshed until nothing moves.
    """
    f = params.flows
    layout = params.layout
    n = layout.n_absorber_trays
    wash = layout.wash_tray - 1
    circ = layout.circulation_tray - 1

    dV = (f["S15"] - f["S16"]) / n
    V = np.array([f["S16"] + k * dV for k in range(n)])
    feeds = np.zeros(n)
    feeds[wash] += f["S23"]
    feeds[circ] += f["S20"]
    L = np.cumsum(feeds + dV)

    base = np.zeros((n, n))
    for k in range(n):
        base[k, k] = L[k]
        if k > 0:
            base[k, k - 1] -= L[k - 1]
    base[circ, n - 1] -= f["S20"]

    rhs = np.zeros((n, N_SPECIES))
    rhs[wash] += f["S23"] * x_wash
    rhs[n - 1] += f["S15"] * y_in

    x = np.array([composition_vector(t.x) for t in trays])
    x = np.clip(x, 1e-12, None)
    x = x / x.sum(axis=1, keepdims=True)
    T = np.array([t.T for t in trays])

    omega = 1.0
    last = math.inf
    for _ in range(MAX_INNER):
        gamma = np.array([activity_coefficients(SPECIES, x[k], T[k] + T_ABS) for k in range(n)])
        K = gamma * np.array([saturation_pressures(T[k]) for k in range(n)]) / P

        l = np.empty((n, N_SPECIES))
        for i in range(N_SPECIES):
            A = base.copy()
            for k in range(n):
                A[k, k] += V[k] * K[k, i]
                if k + 1 < n:
                    A[k, k + 1] -= V[k + 1] * K[k + 1, i]
            l[:, i] = np.linalg.solve(A, rhs[:, i])
        if not np.all(np.isfinite(l)) or np.any(l <= 0.0):
            raise SequentialPassError("Absorber tray balances gave a non-positive liquid composition")

        x_new = l / l.sum(axis=1, keepdims=True)
        T_new = np.array([_bubble_point(x_new[k], gamma[k], P, T[k]) for k in range(n)])

        step = max(float(np.max(np.abs(x_new - x))), float(np.max(np.abs(T_new - T))) / 100.0)
        if step > last:
            omega = max(0.2, 0.5 * omega)
        last = step
        x = x + omega * (x_new - x)
        T = T + omega * (T_new - T)
        if step < INNER_TOL:
            break
    else:
        logger.debug("Absorber bubble-point iteration stopped at step {:.3e}", last)
    return x, T


# ---------------------------------------------------------------------------
# Pass and tear loop
# ---------------------------------------------------------------------------


def initial_tear(state: PlantState) -> TearValues:
    """
    Tear values implied by ``state``.

    The absorber overhead is taken from the top tray when that tray sits at
    its bubble point; otherwise the recycle gas starts at ``RECYCLE_GAS_Y``.
    """
    top = state.absorber_trays[0]
    x_top = composition_vector(top.x)
    y = None
    if np.all(x_top > 0.0) and top.T + T_ABS > 0.0 and state.compressor.P > 0.0:
        y = equilibrium_vapor(top.T, state.compressor.P, x_top)
    if y is None or not np.all(np.isfinite(y)) or abs(y.sum() - 1.0) > 1e-3:
        y = RECYCLE_GAS_Y
    return TearValues(y / y.sum(), top.T, state.aux.S34)


def sweep(state: PlantState, params: ProcessParameters, tear: TearValues) -> Tuple[PlantState, TearValues]:
    """
    One pass through every unit with the recycle gas fixed at ``tear``.

    ``state`` supplies starting values for the iterative units.  Returns the
    new state and the tear values it produces.
    """
    f = params.flows
    op = params.operating

    tank, T_C5 = _tank(params)
    z33 = _recycle_gas(params, tear.y_top)
    vaporizer, T_H1 = _vaporizer(params, z33, tear.T_S34, tank)

    reactor, F_out, z8 = _reactor(
        params, composition_vector(vaporizer.x), T_H1, [stage.T for stage in state.reactor],
    )
    T_S34, T_S9 = _fehe(params, reactor[-1].T, F_out, z8, tear.T_top, z33)
    T_C3 = _invert(hv(T_S9, z8) - op.Q_C3 / F_out, z8, "vapor", "cooler C3")

    separator = _separator(params, F_out, z8, T_C3, state.separator)
    compressor, T_H2 = _compressor(params, separator)

    x_trays, T_trays = _absorber(
        params, compressor.P, composition_vector(separator.y), composition_vector(tank.x),
        state.absorber_trays,
    )
    x_b = x_trays[-1]
    L_N = f["S15"] - f["S16"] + f["S23"] + f["S20"]
    T_b = _invert(L_N * hl(T_trays[-1], x_b) / f["S19"], x_b, "liquid", "absorber sump")
    T_C4 = _invert((f["S18"] * hl(T_b, x_b) - op.Q_C4) / f["S20"], x_b, "liquid", "cooler C4")

    new_state = PlantState(
        vaporizer=vaporizer,
        reactor=reactor,
        separator=separator,
        absorber_trays=[
            AbsorberStage(M=op.M_ABS_tray_sp, T=T_k, x=x_k) for T_k, x_k in zip(T_trays, x_trays)
        ],
        absorber_sump=AbsorberStage(M=op.M_ABS_sump_sp, T=T_b, x=x_b),
        tank=tank,
        compressor=compressor,
        aux=AuxiliaryTemperatures(
            H1=T_H1, H2=T_H2, C3=T_C3, C4=T_C4, C5=T_C5, S34=T_S34, S9=T_S9,
        ),
    )
    y_top = equilibrium_vapor(T_trays[0], compressor.P, x_trays[0])
    return new_state, TearValues(y_top, float(T_trays[0]), T_S34)


def _tear_error(t: np.ndarray, g: np.ndarray) -> float:
    """Largest tear change; temperatures count per 100 °C."""
    diff = np.abs(g - t)
    return float(max(diff[:N_SPECIES].max(), diff[N_SPECIES:].max() / 100.0))


def _wegstein_update(x_history: List[np.ndarray], gx_history: List[np.ndarray]) -> np.ndarray:
    """
    Wegstein acceleration from the two most recent (x, g(x)) pairs:

        s = (g(x_n) - g(x_n-1)) / (x_n - x_n-1)
        q = s / (s - 1)
        x_n+1 = q·x_n + (1 - q)·g(x_n)

    q is bounded to [-5, 0]: direct substitution up to five-fold
    extrapolation of slowly converging components.
    """
    x_n, x_nm1 = x_history[-1], x_history[-2]
    gx_n, gx_nm1 = gx_history[-1], gx_history[-2]
    dx = x_n - x_nm1
    moved = np.abs(dx) > 1e-15
    with np.errstate(divide="ignore", invalid="ignore"):
        s = np.where(moved, (gx_n - gx_nm1) / np.where(moved, dx, 1.0), 0.0)
        q = np.where(np.abs(s - 1.0) > 1e-12, s / (s - 1.0), WEGSTEIN_Q_MIN)
    q = np.clip(q, WEGSTEIN_Q_MIN, WEGSTEIN_Q_MAX)
    return q * x_n + (1.0 - q) * gx_n


def converge_flowsheet(
    state: PlantState,
    params: ProcessParameters,
    *,
    max_passes: int = 200,
    tol: float = TEAR_TOL,
    tear: Optional[TearValues] = None,
) -> SequentialResult:
    """
    Repeat ``sweep`` until the recycle gas tear converges.

    Raises
    ------
    SequentialPassError
        if a unit cannot be solved at some pass.
    """
    if tear is None:
        tear = initial_tear(state)
    t = tear.vector()
    x_history: List[np.ndarray] = []
    gx_history: List[np.ndarray] = []
    error = math.inf

    for n in range(1, max_passes + 1):
        state, produced = sweep(state, params, TearValues.from_vector(t))
        g = produced.vector()
        error = _tear_error(t, g)
        logger.debug("Sequential pass {}: tear error {:.3e}", n, error)
        if error <= tol:
            logger.info("Sequential pass converged in {} passes (tear error {:.2e})", n, error)
            return SequentialResult(state, n, error, True)

        x_history.append(t)
        gx_history.append(g)
        t = _wegstein_update(x_history, gx_history) if len(x_history) >= 2 else g

    logger.warning("Sequential pass not converged after {} passes (tear error {:.2e})", max_passes, error)
    return SequentialResult(state, max_passes, error, False)
