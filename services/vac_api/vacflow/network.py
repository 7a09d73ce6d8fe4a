"""
Steady-state flow network.

With every holdup at steady state (dM/dt = 0) the molar flow of all 34
streams is an affine function of eleven specified flows: five manipulated
flows and six fixed operating flows.  This is a one-off computation at
problem set-up; its results become fixed entries of the parameter vector.

Topology (junction: inlets -> outlets) is declared once in ``JUNCTIONS`` and
used both to document the flowsheet and to verify the closure of every
junction after the flows have been derived.
"""

from __future__ import annotations

from typing import Dict, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from .errors import InfeasibleTopologyError


STREAMS: Tuple[str, ...] = tuple(f"S{i}" for i in range(1, 35))

FEEDS: Tuple[str, ...] = ("S1", "S5", "S25")
PRODUCTS: Tuple[str, ...] = ("S26", "S30", "S32")

JUNCTIONS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "feed_mixer": (("S34", "S1"), ("S2",)),
    "vaporizer": (("S2", "S3"), ("S4",)),
    "heater_H1": (("S4",), ("S6",)),
    "oxygen_mixer": (("S6", "S5"), ("S7",)),
    "reactor": (("S7",), ("S8",)),
    "fehe_hot": (("S8",), ("S9",)),
    "letdown": (("S9",), ("S10",)),
    "cooler_C3": (("S10",), ("S11",)),
    "separator": (("S11",), ("S12", "S13")),
    "compressor": (("S12",), ("S14",)),
    "heater_H2": (("S14",), ("S15",)),
    "absorber": (("S15", "S20", "S23"), ("S16", "S19")),
    "bottoms_splitter": (("S19",), ("S17", "S18")),
    "cooler_C4": (("S18",), ("S20",)),
    "gas_splitter": (("S16",), ("S27", "S28")),
    "purge_splitter": (("S27",), ("S29", "S32")),
    "co2_removal": (("S29",), ("S30", "S31")),
    "recycle_mixer": (("S31", "S28"), ("S33",)),
    "fehe_cold": (("S33",), ("S34",)),
    "column_feed_mixer": (("S13", "S17"), ("S21",)),
    "column": (("S21",), ("S24", "S26")),
    "hac_tank": (("S24", "S25"), ("S3", "S22")),
    "cooler_C5": (("S22",), ("S23",)),
}


class FlowSpecification(BaseModel):
    """Specified molar flows (kmol/min)."""

    model_config = ConfigDict(frozen=True)

    # Manipulated flows
    f_S4: float = Field(default=12.113916, description="Vaporizer vapor outlet")
    f_S5: float = Field(default=0.47744, description="Fresh O2 feed")
    f_S13: float = Field(default=2.73964, description="Separator liquid draw")
    f_S17: float = Field(default=1.20871, description="Absorber bottoms to column")
    f_S25: float = Field(default=0.7443, description="Fresh HAc feed")

    # Fixed operating flows
    f_S1: float = Field(default=0.905, description="Fresh C2H4 feed")
    f_S18: float = Field(default=15.358, description="Absorber circulation")
    f_S22: float = Field(default=0.8125, description="HAc wash to absorber")
    f_S3: float = Field(default=2.1924, description="HAc to vaporizer")
    f_S27: float = Field(default=6.556, description="Gas to CO2 removal and purge")
    f_S30: float = Field(default=0.00318, description="CO2 removed")


def compute_stream_flows(
    spec: FlowSpecification | None = None,
    *,
    tol: float = 1e-9,
) -> Dict[str, float]:
    """
    Derive every stream flow from the specified flows.

    Raises
    ------
    InfeasibleTopologyError
        if any flow (specified or derived) is negative, or if a junction or
        the overall feed/product balance fails to close.
    """
    spec = spec or FlowSpecification()
    f: Dict[str, float] = {
        "S1": spec.f_S1,
        "S3": spec.f_S3,
        "S4": spec.f_S4,
        "S5": spec.f_S5,
        "S13": spec.f_S13,
        "S17": spec.f_S17,
        "S18": spec.f_S18,
        "S22": spec.f_S22,
        "S25": spec.f_S25,
        "S27": spec.f_S27,
        "S30": spec.f_S30,
    }

    f["S2"] = f["S4"] - f["S3"]
    f["S6"] = f["S4"]
    f["S7"] = f["S6"] + f["S5"]
    f["S8"] = f["S7"]
    f["S9"] = f["S8"]
    f["S10"] = f["S9"]
    f["S11"] = f["S10"]

    f["S34"] = f["S2"] - f["S1"]
    f["S33"] = f["S34"]

    f["S12"] = f["S11"] - f["S13"]
    f["S14"] = f["S12"]
    f["S15"] = f["S14"]

    f["S23"] = f["S22"]
    f["S21"] = f["S13"] + f["S17"]

    f["S19"] = f["S17"] + f["S18"]
    f["S20"] = f["S18"]

    f["S16"] = f["S15"] + f["S20"] + f["S23"] - f["S19"]
    f["S28"] = f["S16"] - f["S27"]

    f["S31"] = f["S33"] - f["S28"]
    f["S29"] = f["S30"] + f["S31"]

    f["S32"] = f["S27"] - f["S29"]

    f["S24"] = f["S3"] + f["S22"] - f["S25"]
    f["S26"] = f["S21"] - f["S24"]

    flows = {name: float(f[name]) for name in STREAMS}

    negative = {name: v for name, v in flows.items() if v < 0.0}
    if negative:
        logger.warning("Flow specification infeasible, negative flows: {}", negative)
        raise InfeasibleTopologyError(negative)

    check_closure(flows, tol=tol)

    total_in, total_out = network_totals(flows)
    logger.info(
        "Flow network closed: feeds={:.6f} products={:.6f} kmol/min",
        total_in, total_out,
    )
    return flows


def network_totals(flows: Dict[str, float]) -> Tuple[float, float]:
    """Total fresh feed and total product/purge flow."""
    return (
        sum(flows[s] for s in FEEDS),
        sum(flows[s] for s in PRODUCTS),
    )


def junction_imbalance(flows: Dict[str, float]) -> Dict[str, float]:
    """Σ in − Σ out for every junction."""
    return {
        name: sum(flows[s] for s in inlets) - sum(flows[s] for s in outlets)
        for name, (inlets, outlets) in JUNCTIONS.items()
    }


def check_closure(flows: Dict[str, float], *, tol: float = 1e-9) -> None:
    open_junctions = {
        name: err for name, err in junction_imbalance(flows).items() if abs(err) > tol
    }
    total_in, total_out = network_totals(flows)
    if abs(total_in - total_out) > tol * max(1.0, total_in):
        open_junctions["overall"] = total_in - total_out
    if open_junctions:
        raise InfeasibleTopologyError(
            {},
            message=f"Flow network does not close: {open_junctions}",
        )
