"""
Typed state and parameter records for the steady-state solve.

The solver works on flat float vectors; everything else in the package
works on the named records defined here.  Each record declares its fields
once (dataclass order) and that declaration *is* the flattening order:

    vaporizer, reactor stages 1..N, separator,
    absorber trays 1..N (numbered from the top), absorber sump,
    tank, compressor, auxiliary temperatures

Composition fields are dicts keyed by species in canonical order.  Records
must be fully populated: every field is required and every composition
must name all species exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple, Type, TypeVar, Union

import numpy as np

from .config import OperatingConditions
from .errors import UnknownSpeciesError
from .species import SPECIES

Composition = Dict[str, float]
CompositionLike = Union[Mapping[str, float], Sequence[float], np.ndarray]

N_SPECIES = len(SPECIES)

R = TypeVar("R", bound="_Record")


def as_composition(value: CompositionLike, where: str = "composition") -> Composition:
    """
    Normalise ``value`` to a dict keyed by every species in canonical order.

    Mappings must name each species exactly once; sequences must have one
    entry per species.
    """
    if isinstance(value, Mapping):
        unknown = [k for k in value if k not in SPECIES]
        if unknown:
            raise UnknownSpeciesError(unknown[0], SPECIES)
        missing = [s for s in SPECIES if s not in value]
        if missing:
            raise ValueError(f"{where}: missing species {missing}")
        return {s: float(value[s]) for s in SPECIES}

    arr = np.asarray(value, dtype=float)
    if arr.shape != (N_SPECIES,):
        raise ValueError(f"{where}: expected {N_SPECIES} mole fractions, got shape {arr.shape}")
    return {s: float(v) for s, v in zip(SPECIES, arr)}


def composition_vector(comp: Mapping[str, float]) -> np.ndarray:
    """Canonical-order numpy vector for a composition dict."""
    return np.array([comp[s] for s in SPECIES], dtype=float)


def _composition_field():
    return field(metadata={"composition": True})


# ---------------------------------------------------------------------------
# Record base
# ---------------------------------------------------------------------------


class _Record:
    """Flatten/unflatten support for a flat dataclass of scalars and compositions."""

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if f.metadata.get("composition"):
                setattr(self, f.name, as_composition(value, f"{type(self).__name__}.{f.name}"))
            else:
                setattr(self, f.name, float(value))

    @classmethod
    def size(cls) -> int:
        return sum(N_SPECIES if f.metadata.get("composition") else 1 for f in fields(cls))

    def flatten(self) -> List[float]:
        out: List[float] = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.metadata.get("composition"):
                out.extend(value[s] for s in SPECIES)
            else:
                out.append(value)
        return out

    @classmethod
    def unflatten(cls: Type[R], values: Sequence[float], start: int = 0) -> Tuple[R, int]:
        """Build a record from ``values[start:]``; returns it and the next offset."""
        kwargs = {}
        pos = start
        for f in fields(cls):
            if f.metadata.get("composition"):
                kwargs[f.name] = {s: float(values[pos + i]) for i, s in enumerate(SPECIES)}
                pos += N_SPECIES
            else:
                kwargs[f.name] = float(values[pos])
                pos += 1
        return cls(**kwargs), pos

    @classmethod
    def labels(cls, prefix: str) -> List[str]:
        out: List[str] = []
        for f in fields(cls):
            if f.metadata.get("composition"):
                out.extend(f"{prefix}.{f.name}.{s}" for s in SPECIES)
            else:
                out.append(f"{prefix}.{f.name}")
        return out


# ---------------------------------------------------------------------------
# Unit records
# ---------------------------------------------------------------------------


@dataclass
class VaporizerState(_Record):
    """Vaporizer holdup (kmol), temperature (°C) and liquid composition."""

    M: float
    T: float
    x: Composition = _composition_field()


@dataclass
class ReactorStage(_Record):
    """One axial stage of the packed-bed reactor: T (°C), C (kmol/m³)."""

    T: float
    C: Composition = _composition_field()


@dataclass
class SeparatorState(_Record):
    M: float
    P: float
    T_liq: float
    T_vap: float
    x: Composition = _composition_field()
    y: Composition = _composition_field()


@dataclass
class AbsorberStage(_Record):
    """Absorber tray or sump: liquid holdup, temperature, liquid composition."""

    M: float
    T: float
    x: Composition = _composition_field()


@dataclass
class TankState(_Record):
    M: float
    T: float
    x: Composition = _composition_field()


@dataclass
class CompressorState(_Record):
    """Compressor discharge temperature (°C) and pressure (psia)."""

    T: float
    P: float


@dataclass
class AuxiliaryTemperatures(_Record):
    """Outlet temperatures of the heaters, coolers and both FEHE sides."""

    H1: float
    H2: float
    C3: float
    C4: float
    C5: float
    S34: float
    S9: float


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateLayout:
    """Structural dimensions of the state vector."""

    n_reactor_stages: int = 10
    n_absorber_trays: int = 8
    wash_tray: int = 1         # HAc wash (S23) enters here
    circulation_tray: int = 7  # cooled circulation (S20) enters here

    def __post_init__(self) -> None:
        if self.n_reactor_stages < 1:
            raise ValueError("Reactor needs at least one stage")
        if self.n_absorber_trays < 1:
            raise ValueError("Absorber needs at least one tray")
        for name in ("wash_tray", "circulation_tray"):
            tray = getattr(self, name)
            if not 1 <= tray <= self.n_absorber_trays:
                raise ValueError(f"{name}={tray} outside trays 1..{self.n_absorber_trays}")

    @property
    def size(self) -> int:
        return (
            VaporizerState.size()
            + self.n_reactor_stages * ReactorStage.size()
            + SeparatorState.size()
            + (self.n_absorber_trays + 1) * AbsorberStage.size()
            + TankState.size()
            + CompressorState.size()
            + AuxiliaryTemperatures.size()
        )


DEFAULT_LAYOUT = StateLayout()


# ---------------------------------------------------------------------------
# Plant state
# ---------------------------------------------------------------------------


@dataclass
class PlantState:
    """Every unknown of the steady-state problem, by unit."""

    vaporizer: VaporizerState
    reactor: List[ReactorStage]
    separator: SeparatorState
    absorber_trays: List[AbsorberStage]
    absorber_sump: AbsorberStage
    tank: TankState
    compressor: CompressorState
    aux: AuxiliaryTemperatures

    def __post_init__(self) -> None:
        self.reactor = list(self.reactor)
        self.absorber_trays = list(self.absorber_trays)
        if not self.reactor:
            raise ValueError("PlantState needs at least one reactor stage")
        if not self.absorber_trays:
            raise ValueError("PlantState needs at least one absorber tray")

    def _records(self) -> Iterable[_Record]:
        yield self.vaporizer
        yield from self.reactor
        yield self.separator
        yield from self.absorber_trays
        yield self.absorber_sump
        yield self.tank
        yield self.compressor
        yield self.aux

    def flatten(self) -> np.ndarray:
        out: List[float] = []
        for rec in self._records():
            out.extend(rec.flatten())
        return np.array(out, dtype=float)

    @classmethod
    def unflatten(cls, vector: Sequence[float], layout: StateLayout = DEFAULT_LAYOUT) -> "PlantState":
        values = np.asarray(vector, dtype=float)
        if values.shape != (layout.size,):
            raise ValueError(f"State vector must have {layout.size} entries, got shape {values.shape}")

        pos = 0
        vaporizer, pos = VaporizerState.unflatten(values, pos)
        reactor = []
        for _ in range(layout.n_reactor_stages):
            stage, pos = ReactorStage.unflatten(values, pos)
            reactor.append(stage)
        separator, pos = SeparatorState.unflatten(values, pos)
        trays = []
        for _ in range(layout.n_absorber_trays):
            tray, pos = AbsorberStage.unflatten(values, pos)
            trays.append(tray)
        sump, pos = AbsorberStage.unflatten(values, pos)
        tank, pos = TankState.unflatten(values, pos)
        compressor, pos = CompressorState.unflatten(values, pos)
        aux, pos = AuxiliaryTemperatures.unflatten(values, pos)
        return cls(vaporizer, reactor, separator, trays, sump, tank, compressor, aux)


def state_labels(layout: StateLayout = DEFAULT_LAYOUT) -> List[str]:
    """A readable name for every position of the state (and residual) vector."""
    out = VaporizerState.labels("VAP")
    for k in range(1, layout.n_reactor_stages + 1):
        out += ReactorStage.labels(f"RCT.stage{k}")
    out += SeparatorState.labels("SEP")
    for k in range(1, layout.n_absorber_trays + 1):
        out += AbsorberStage.labels(f"ABS.tray{k}")
    out += AbsorberStage.labels("ABS.sump")
    out += TankState.labels("TK")
    out += CompressorState.labels("COMP")
    out += AuxiliaryTemperatures.labels("AUX")
    return out


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

STREAM_NAMES: Tuple[str, ...] = tuple(f"S{i}" for i in range(1, 35))


@dataclass
class StreamParams(_Record):
    """
    Known (or guessed) conditions of one process stream.

    Single-phase streams carry the same composition in ``x`` and ``y``.
    """

    f: float
    T: float
    P: float
    x: Composition = _composition_field()
    y: Composition = _composition_field()


@dataclass
class ProcessParameters:
    """Stream parameters S1..S34, operating conditions and state layout."""

    streams: Dict[str, StreamParams]
    operating: OperatingConditions = field(default_factory=OperatingConditions)
    layout: StateLayout = DEFAULT_LAYOUT

    def __post_init__(self) -> None:
        missing = [s for s in STREAM_NAMES if s not in self.streams]
        extra = [s for s in self.streams if s not in STREAM_NAMES]
        if missing or extra:
            raise ValueError(f"Stream parameters mismatch: missing={missing} unexpected={extra}")
        self.streams = {s: self.streams[s] for s in STREAM_NAMES}

    @property
    def flows(self) -> Dict[str, float]:
        return {s: p.f for s, p in self.streams.items()}

    @staticmethod
    def size() -> int:
        return len(STREAM_NAMES) * StreamParams.size() + len(OperatingConditions.field_names())

    def flatten(self) -> np.ndarray:
        out: List[float] = []
        for s in STREAM_NAMES:
            out.extend(self.streams[s].flatten())
        out.extend(self.operating.values())
        return np.array(out, dtype=float)

    @classmethod
    def unflatten(cls, vector: Sequence[float], layout: StateLayout = DEFAULT_LAYOUT) -> "ProcessParameters":
        values = np.asarray(vector, dtype=float)
        if values.shape != (cls.size(),):
            raise ValueError(f"Parameter vector must have {cls.size()} entries, got shape {values.shape}")
        streams: Dict[str, StreamParams] = {}
        pos = 0
        for s in STREAM_NAMES:
            streams[s], pos = StreamParams.unflatten(values, pos)
        operating = OperatingConditions.from_values(values[pos:])
        return cls(streams=streams, operating=operating, layout=layout)

    @staticmethod
    def labels() -> List[str]:
        out: List[str] = []
        for s in STREAM_NAMES:
            out += StreamParams.labels(s)
        out += OperatingConditions.field_names()
        return out
