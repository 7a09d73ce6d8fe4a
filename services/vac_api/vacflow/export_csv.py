"""
CSV export of a solve report.

Stream table layout: columns = streams, rows = properties, followed by one
row per species with the stream mole fractions.
"""

from __future__ import annotations

import csv
import io

from . import schemas
from .species import SPECIES


def export_stream_table_csv(report: schemas.SolveReport) -> str:
    """Stream summary table in CSV format; empty string when there are no streams."""
    streams = report.streams
    if not streams:
        return ""

    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(["Property", "Unit"] + [s.id for s in streams])
    _write_row(writer, "Molar Flow", "kmol/min", streams, lambda s: s.molar_flow_kmol_per_min)
    _write_row(writer, "Temperature", "C", streams, lambda s: s.temperature_c)
    _write_row(writer, "Pressure", "psia", streams, lambda s: s.pressure_psia)
    _write_row(writer, "Phase", "", streams, lambda s: s.phase, is_text=True)

    writer.writerow([])
    writer.writerow(["--- Composition (mole frac) ---"])
    for comp in SPECIES:
        writer.writerow(
            [comp, "mol frac"] + [_fmt(s.composition.get(comp)) for s in streams]
        )

    return output.getvalue()


def export_profiles_csv(report: schemas.SolveReport) -> str:
    """Reactor and absorber stage profiles, one row per stage."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["Unit", "Stage", "Temperature (C)", "Pressure (psia)"] + list(SPECIES))
    for unit, profile in (("reactor", report.reactor_profile), ("absorber", report.absorber_profile)):
        for st in profile:
            writer.writerow(
                [unit, st.stage, _fmt(st.temperature_c), _fmt(st.pressure_psia)]
                + [_fmt(st.composition.get(c)) for c in SPECIES]
            )
    return output.getvalue()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fmt(v, decimals: int = 6) -> str:
    if v is None:
        return ""
    if isinstance(v, float):
        return f"{v:.{decimals}f}"
    return str(v)


def _write_row(writer, label, unit, streams, getter, is_text=False):
    if is_text:
        values = [getter(s) or "" for s in streams]
    else:
        values = [_fmt(getter(s)) for s in streams]
    writer.writerow([label, unit] + values)
