from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .config import OperatingConditions
from .network import FlowSpecification


class SolveRequest(BaseModel):
    flows: FlowSpecification = Field(default_factory=FlowSpecification)
    operating: OperatingConditions = Field(default_factory=OperatingConditions)
    n_reactor_stages: int = Field(default=10, ge=1)
    n_absorber_trays: int = Field(default=8, ge=1)
    wash_tray: int = Field(default=1, ge=1)
    circulation_tray: int = Field(default=7, ge=1)
    max_evaluations: int = Field(default=0, ge=0, description="0 = solver default")
    sequential_passes: int = Field(default=200, ge=0, description="0 skips the sequential presolve")
    tol: float = Field(default=1e-6, gt=0.0)


class StreamResult(BaseModel):
    id: str
    molar_flow_kmol_per_min: Optional[float] = None
    temperature_c: Optional[float] = None
    pressure_psia: Optional[float] = None
    phase: str = "vapor"
    composition: Dict[str, float] = Field(default_factory=dict)


class StageResult(BaseModel):
    stage: int
    temperature_c: Optional[float] = None
    pressure_psia: Optional[float] = None
    composition: Dict[str, float] = Field(default_factory=dict)


class SolveReport(BaseModel):
    status: str
    converged: bool
    iterations: int
    residual_norm: Optional[float] = Field(default=None, description="Infinity-norm of the scaled residual")
    message: str = ""
    streams: List[StreamResult] = Field(default_factory=list)
    reactor_profile: List[StageResult] = Field(default_factory=list)
    absorber_profile: List[StageResult] = Field(default_factory=list)
    fehe_duty_kcal_per_min: Optional[float] = None
    vac_selectivity: Optional[float] = Field(
        default=None, description="Fraction of converted ethylene that forms VAc"
    )
    warnings: List[str] = Field(default_factory=list)


class PropertyRequest(BaseModel):
    species: str
    temperature_c: float


class PropertyResult(BaseModel):
    species: str
    temperature_c: float
    vapor_heat_capacity: float
    liquid_heat_capacity: float
    vapor_enthalpy: float
    liquid_enthalpy: float
    saturation_pressure_psia: Optional[float] = None


class ActivityRequest(BaseModel):
    composition: Dict[str, float]
    temperature_c: float


class ActivityResult(BaseModel):
    temperature_c: float
    activity_coefficients: Dict[str, float]
