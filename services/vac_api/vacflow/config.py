"""
Operating conditions for the steady-state solve.

Defaults are the nominal operating point of the VAc plant.  Duties are in
kcal/min, temperatures in °C, UA values in kcal/(min·°C).  Holdup setpoints
are the level-controller targets (vessels at 50 % of their volume).
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class OperatingConditions(BaseModel):
    """Externally fixed operating specification.  All fields are floats."""

    model_config = ConfigDict(frozen=True)

    # Heater / cooler duties
    Q_H1: float = Field(default=5078.69, description="Reactor pre-heater duty")
    Q_H2: float = Field(default=1461.14, description="Absorber gas heater duty")
    Q_C3: float = Field(default=15491.57, description="Separator feed cooler duty")
    Q_C4: float = Field(default=7250.42, description="Absorber circulation cooler duty")
    Q_C5: float = Field(default=1881.2, description="HAc wash cooler duty")
    Q_VAP: float = Field(default=16933.247, description="Vaporizer duty")

    # Coolant temperatures and shaft work
    T_RCT_coolant: float = 133.46
    T_SEP_coolant: float = 37.72
    Ws_COM: float = Field(default=275.64, description="Compressor shaft work")
    eta_COM: float = Field(default=0.80, gt=0.0, le=1.0)

    # Heat transfer
    UA_RCT: float = Field(default=1650.0, description="Reactor coolant UA, whole bed")
    UA_SEP: float = Field(default=9000.0, description="Separator jacket UA")
    UA_FEHE: float = Field(default=150.0, description="Feed-effluent exchanger UA")

    # Reactor
    catalyst_mass: float = Field(default=2588.0, gt=0.0, description="Total catalyst, kg")

    # Level-controller setpoints
    M_VAP_sp: float = 4 * 0.5
    M_SEP_sp: float = 8 * 0.5
    M_TK_sp: float = 2.83 * 0.5
    M_ABS_tray_sp: float = 0.5
    M_ABS_sump_sp: float = 0.5

    @classmethod
    def field_names(cls) -> List[str]:
        return list(cls.model_fields)

    def values(self) -> List[float]:
        return [float(getattr(self, name)) for name in self.field_names()]

    @classmethod
    def from_values(cls, values) -> "OperatingConditions":
        names = cls.field_names()
        if len(values) != len(names):
            raise ValueError(f"Expected {len(names)} operating values, got {len(values)}")
        return cls(**{n: float(v) for n, v in zip(names, values)})


# Boundary stream conditions not produced by any modelled unit: fresh feeds
# and the distillation-column bottoms returning to the HAc tank.
BOUNDARY_STREAMS: Dict[str, Dict] = {
    "S1": {"T": 30.0, "P": 150.0, "z": {"C2H4": 0.999, "C2H6": 0.001}},
    "S5": {"T": 30.0, "P": 150.0, "z": {"O2": 1.0}},
    "S25": {"T": 30.0, "P": 150.0, "z": {"HAc": 1.0}},
    "S24": {"T": 135.0, "P": 30.0, "z": {"VAc": 0.0002, "H2O": 0.0798, "HAc": 0.92}},
}

# Nominal pressures (psia) of streams whose pressure is not an unknown
NOMINAL_PRESSURES: Dict[str, float] = {
    "S2": 128.0,
    "S3": 128.0,
    "S4": 128.0,
    "S6": 128.0,
    "S7": 128.0,
    "S8": 120.0,
    "S9": 119.0,
    "S10": 115.0,
    "S21": 30.0,
    "S22": 128.0,
    "S23": 128.0,
    "S26": 30.0,
    "S30": 20.0,
}

# Column distillate temperature (the column itself is not modelled)
DISTILLATE_TEMPERATURE = 45.0

DEFAULT_STREAM_PRESSURE = 150.0
