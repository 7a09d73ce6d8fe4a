"""
Error kinds raised by the VAc process model.

All model errors derive from ``ProcessModelError`` so the service layer and
the solver wrapper can catch them as a group while callers that care about
one kind (e.g. an infeasible flow specification) can still catch it alone.
"""

from __future__ import annotations

from typing import Dict, Iterable, List


class ProcessModelError(Exception):
    """Base class for every error raised by the process model."""


class UnknownSpeciesError(ProcessModelError, KeyError):
    """A species identifier outside the fixed species set was requested."""

    def __init__(self, species: str, known: Iterable[str] = ()) -> None:
        self.species = species
        self.known = tuple(known)
        msg = f"Unknown species '{species}'"
        if self.known:
            msg += f" (known: {', '.join(self.known)})"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class DegenerateCompositionError(ProcessModelError):
    """A composition (or molar volume) makes the activity-model sums vanish."""


class NonFiniteResidualError(ProcessModelError):
    """A trial state produced NaN or infinite residual entries."""

    def __init__(self, labels: List[str]) -> None:
        self.labels = list(labels)
        shown = ", ".join(self.labels[:8])
        more = f" (+{len(self.labels) - 8} more)" if len(self.labels) > 8 else ""
        super().__init__(f"Non-finite residual at {shown}{more}")


class InfeasibleTopologyError(ProcessModelError):
    """The flow specification yields a negative flow somewhere in the network."""

    def __init__(self, negative_flows: Dict[str, float], message: str = "") -> None:
        self.negative_flows = dict(negative_flows)
        if not message:
            detail = ", ".join(f"{s}={v:.6g} kmol/min" for s, v in self.negative_flows.items())
            message = f"Infeasible flow specification: negative flow in {detail}"
        super().__init__(message)


class NonPhysicalTemperatureError(ProcessModelError, ValueError):
    """An absolute temperature at or below zero reached a property model."""

    def __init__(self, T_abs: float, where: str = "") -> None:
        self.T_abs = float(T_abs)
        prefix = f"{where}: " if where else ""
        super().__init__(f"{prefix}absolute temperature {self.T_abs:.6g} K is not positive")


class SequentialPassError(ProcessModelError):
    """A unit could not be solved during the sequential pass over the flowsheet."""
