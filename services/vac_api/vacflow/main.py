from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from . import schemas
from .errors import DegenerateCompositionError, InfeasibleTopologyError, UnknownSpeciesError
from .export_csv import export_stream_table_csv
from .simulation_service import SimulationService

app = FastAPI(title="VAc Steady-State API", version="0.1.0")
service = SimulationService()

# Setup-time errors are the caller's input, not a server fault
_INPUT_ERRORS = (InfeasibleTopologyError, UnknownSpeciesError, DegenerateCompositionError, ValueError)


@app.get("/healthz")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/solve", response_model=schemas.SolveReport)
def run_solve(request: schemas.SolveRequest) -> schemas.SolveReport:
    try:
        return service.solve(request)
    except _INPUT_ERRORS as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.post("/solve/csv", response_class=PlainTextResponse)
def run_solve_csv(request: schemas.SolveRequest) -> str:
    try:
        report = service.solve(request)
    except _INPUT_ERRORS as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return export_stream_table_csv(report)


@app.post("/properties", response_model=schemas.PropertyResult)
def calculate_properties(request: schemas.PropertyRequest) -> schemas.PropertyResult:
    try:
        return service.thermo_properties(request)
    except UnknownSpeciesError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.post("/activity", response_model=schemas.ActivityResult)
def calculate_activity(request: schemas.ActivityRequest) -> schemas.ActivityResult:
    try:
        return service.activity(request)
    except _INPUT_ERRORS as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
