"""
tests/test_api.py

HTTP surface of the KPI, alert, report and rainfall routers.

Coverage
--------
- Threshold read / update, 422 on invalid bands, 404 on unknown KPI codes
- Calculation tier validation and a single-firm run
- Alert resolve / cancel status mapping (200, 404, 409, 422)
- Report endpoints answer with the documented shapes
- Rainfall read endpoints
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from datetime import date

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app.api.dependencies import get_session_factory
from app.api.routers import alerts_router, kpi_router, rainfall_router, reports_router
from app.services.kpi_alerts import KPIAlertService
from db.models.rainfall_record import RainfallRecord
from db.models.system_log import AuditLog
from db.repositories.kpi_definition_repository import KPIDefinitionRepository
from db.repositories.kpi_history_repository import KPIHistoryRepository
from db.session import get_db

VALID_BANDS = {
    "optimal_min": 0.8,
    "optimal_max": 1.2,
    "warning_min": 0.6,
    "warning_max": 1.5,
    "critical_min": 0.4,
    "critical_max": 2.0,
}


@pytest.fixture()
def client(session_factory, catalogue) -> Iterator[TestClient]:
    app = FastAPI()
    for router in (kpi_router, alerts_router, reports_router, rainfall_router):
        app.include_router(router)

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def red_alert(session, catalogue, firm):
    kpi = KPIDefinitionRepository(session).get_by_code("GDP")
    history = KPIHistoryRepository(session).save_value(
        firm_id=firm.id,
        kpi_id=kpi.id,
        period_start=date(2024, 3, 1),
        period_end=date(2024, 3, 31),
        value=250.0,
        unit=kpi.unit,
    )
    alert, _ = KPIAlertService(session).evaluate_history(history)
    session.commit()
    return alert


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


class TestThresholdEndpoints:
    def test_default_thresholds(self, client, firm) -> None:
        response = client.get(f"/kpis/{firm.id}/thresholds/gdp")
        assert response.status_code == 200
        body = response.json()
        assert body["kpi_code"] == "GDP"
        assert body["source"] == "default"

    def test_update_then_read(self, client, firm) -> None:
        response = client.put(
            f"/kpis/{firm.id}/thresholds/GDP", json={**VALID_BANDS, "changed_by": "ana"}
        )
        assert response.status_code == 200
        assert response.json()["source"] == "firm"

        body = client.get(f"/kpis/{firm.id}/thresholds/GDP").json()
        assert body["source"] == "firm"
        assert body["optimal_min"] == 0.8

    def test_invalid_bands_return_every_error(self, client, firm) -> None:
        payload = {**VALID_BANDS, "optimal_min": 1.3}
        response = client.put(f"/kpis/{firm.id}/thresholds/GDP", json=payload)

        assert response.status_code == 422
        assert "optimal_min must be <= optimal_max" in response.json()["detail"]
        assert client.get(f"/kpis/{firm.id}/thresholds/GDP").json()["source"] == "default"

    def test_unknown_kpi_code(self, client, firm) -> None:
        response = client.get(f"/kpis/{firm.id}/thresholds/NOT_A_KPI")
        assert response.status_code == 404

    def test_status_statistics(self, client, firm) -> None:
        response = client.get(f"/kpis/{firm.id}/status-statistics", params={"days": 7})
        assert response.status_code == 200
        assert response.json()["total"] == 0


# ---------------------------------------------------------------------------
# Calculation and history
# ---------------------------------------------------------------------------


class TestCalculationEndpoints:
    def test_unknown_tier(self, client) -> None:
        response = client.post("/kpis/calculations/hourly")
        assert response.status_code == 400

    def test_single_firm_run(self, client, firm) -> None:
        response = client.post("/kpis/calculations/daily", json={"firm_id": str(firm.id)})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["stats"]["firmas_procesadas"] == 1

    def test_trend_of_stored_values(self, client, red_alert, firm) -> None:
        response = client.get(f"/kpis/{firm.id}/trend/GDP", params={"periods": 5})

        assert response.status_code == 200
        points = response.json()["points"]
        assert [p["value"] for p in points] == [250.0]
        assert points[0]["status"] == "ROJO"

    def test_purge_with_explicit_retention(self, client) -> None:
        response = client.post("/kpis/history/purge", json={"retention_days": 30})
        assert response.status_code == 200
        assert response.json() == {"deleted": 0, "retention_days": 30}


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class TestAlertEndpoints:
    def test_list_and_counts(self, client, red_alert, firm) -> None:
        listed = client.get(f"/kpis/{firm.id}/alerts", params={"estado": "pendiente"})
        assert listed.status_code == 200
        assert [a["regla_aplicada"] for a in listed.json()] == ["KPI_GDP_ROJO"]
        assert listed.json()[0]["metadata"]["kpi_code"] == "GDP"

        counts = client.get(f"/kpis/{firm.id}/alerts/counts").json()
        assert counts["total"] == 1
        assert counts["criticas_pendientes"] == 1

    def test_resolve_writes_audit_entry(self, client, session, red_alert) -> None:
        response = client.post(
            f"/kpis/alerts/{red_alert.id}/resolve",
            json={"user_id": "ana", "notes": "checked scale"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["estado"] == "completed"
        assert body["resuelta_por"] == "ana"
        assert session.scalar(select(func.count()).select_from(AuditLog)) == 1

    def test_cancel_after_resolve_conflicts(self, client, session, red_alert) -> None:
        client.post(f"/kpis/alerts/{red_alert.id}/resolve", json={"user_id": "ana"})

        response = client.post(f"/kpis/alerts/{red_alert.id}/cancel", json={"user_id": "ana"})

        assert response.status_code == 409
        assert session.scalar(select(func.count()).select_from(AuditLog)) == 1

    def test_unknown_alert(self, client) -> None:
        response = client.post(f"/kpis/alerts/{uuid.uuid4()}/resolve", json={"user_id": "ana"})
        assert response.status_code == 404

    def test_blank_user_is_rejected(self, client, red_alert) -> None:
        response = client.post(f"/kpis/alerts/{red_alert.id}/resolve", json={"user_id": ""})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class TestReportEndpoints:
    def test_executive(self, client, firm) -> None:
        response = client.get(f"/reports/{firm.id}/executive", params={"year": 2024, "month": 3})
        assert response.status_code == 200
        assert response.json()["resumen"]["total_kpis"] == 0

    def test_executive_rejects_bad_month(self, client, firm) -> None:
        response = client.get(f"/reports/{firm.id}/executive", params={"year": 2024, "month": 13})
        assert response.status_code == 422

    def test_comparative(self, client, firm) -> None:
        response = client.get(f"/reports/{firm.id}/comparative", params={"year": 2024})
        assert response.status_code == 200
        assert len(response.json()["resumen_anual"]["kpis_meses"]) == 12

    def test_learning_rejects_inverted_range(self, client, firm) -> None:
        response = client.get(
            f"/reports/{firm.id}/learning",
            params={"date_from": "2024-12-31", "date_to": "2024-01-01"},
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Rainfall
# ---------------------------------------------------------------------------


class TestRainfallEndpoints:
    def test_monthly_totals(self, client, session, firm) -> None:
        premise_id = uuid.uuid4()
        session.add_all(
            [
                RainfallRecord(firm_id=firm.id, premise_id=premise_id, fecha=date(2023, 4, 2), mm=20.0),
                RainfallRecord(firm_id=firm.id, premise_id=premise_id, fecha=date(2023, 4, 9), mm=5.5),
            ]
        )
        session.commit()

        response = client.get(f"/rainfall/{premise_id}/monthly/2023")

        assert response.status_code == 200
        assert [(m["mes"], m["acumulado"], m["dias"]) for m in response.json()] == [(4, 25.5, 2)]

    def test_statistics_without_readings(self, client) -> None:
        response = client.get(f"/rainfall/{uuid.uuid4()}/statistics")
        assert response.status_code == 200
        assert response.json()["dias_sin_lluvia"] == 0
