"""HTTP-level tests for the FastAPI app."""

import math

import pytest
from fastapi.testclient import TestClient

from vacflow.main import app


@pytest.fixture(scope="module")
def client():
    return TestClient(app)


class TestHealth:
    def test_healthz(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestProperties:
    def test_water_at_boiling(self, client):
        resp = client.post("/properties", json={"species": "H2O", "temperature_c": 100.0})
        assert resp.status_code == 200
        body = resp.json()
        assert body["saturation_pressure_psia"] == pytest.approx(math.exp(-3984.92 / 333.426 + 14.6394))
        assert body["liquid_enthalpy"] > 0.0
        assert body["vapor_enthalpy"] > body["liquid_enthalpy"]

    def test_unknown_species(self, client):
        resp = client.post("/properties", json={"species": "N2", "temperature_c": 25.0})
        assert resp.status_code == 422
        assert "N2" in resp.json()["detail"]


class TestActivity:
    def test_condensable_mixture(self, client):
        resp = client.post(
            "/activity",
            json={"composition": {"VAc": 0.2, "H2O": 0.1, "HAc": 0.7}, "temperature_c": 40.0},
        )
        assert resp.status_code == 200
        gammas = resp.json()["activity_coefficients"]
        assert set(gammas) == {"VAc", "H2O", "HAc"}
        assert all(g > 0.0 for g in gammas.values())

    def test_degenerate_composition(self, client):
        resp = client.post(
            "/activity",
            json={"composition": {"VAc": 1.0, "H2O": 0.0}, "temperature_c": 40.0},
        )
        assert resp.status_code == 422

    def test_temperature_below_absolute_zero(self, client):
        resp = client.post(
            "/activity",
            json={"composition": {"VAc": 0.2, "H2O": 0.1, "HAc": 0.7}, "temperature_c": -300.0},
        )
        assert resp.status_code == 422
        assert "absolute temperature" in resp.json()["detail"]


class TestSolve:
    def test_infeasible_flows_rejected_before_solving(self, client):
        resp = client.post("/solve", json={"flows": {"f_S30": 7.0}})
        assert resp.status_code == 422
        assert "S32" in resp.json()["detail"]

    def test_bad_layout_rejected(self, client):
        resp = client.post("/solve", json={"n_absorber_trays": 4})
        assert resp.status_code == 422

    def test_limited_solve_reports_status(self, client):
        resp = client.post("/solve", json={"max_evaluations": 3, "sequential_passes": 0})
        assert resp.status_code == 200
        body = resp.json()
        assert body["converged"] is False
        assert body["status"] == "not-converged"
        assert body["iterations"] > 0

    def test_csv_infeasible(self, client):
        resp = client.post("/solve/csv", json={"flows": {"f_S27": 10.0}})
        assert resp.status_code == 422
