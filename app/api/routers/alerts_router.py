"""
app/api/routers/alerts_router.py

KPI alert endpoints.

GET  /kpis/{firm_id}/alerts                     list, filterable
GET  /kpis/{firm_id}/alerts/export              JSON export
GET  /kpis/{firm_id}/alerts/counts              counts by state and priority
GET  /kpis/{firm_id}/consecutive-warnings       KPIs with long AMARILLO streaks
POST /kpis/{firm_id}/alerts/combined            detect ≥2 ROJO KPIs in one period
POST /kpis/alerts/{alert_id}/resolve
POST /kpis/alerts/{alert_id}/cancel

Audit entries for resolve/cancel are queued on the request dispatcher and
written only after the state change has been committed.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_dispatcher
from app.events import SideEffectDispatcher
from app.schemas.alerts import (
    AlertResponse,
    CombinedAlertResponse,
    ConsecutiveWarningResponse,
    KPIAlertCounts,
    KPIAlertExport,
    ResolveAlertRequest,
)
from app.services.kpi_alerts import KPIAlertService
from db.repositories.errors import AlertNotFoundError, AlertStateError
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kpis", tags=["alerts"])


@router.get("/{firm_id}/alerts", response_model=list[AlertResponse])
def list_alerts(
    firm_id: uuid.UUID,
    estado: str | None = Query(default=None, description="pendiente | completed | cancelled"),
    prioridad: str | None = Query(default=None, description="baja | media | alta"),
    lot_id: uuid.UUID | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[AlertResponse]:
    alerts = KPIAlertService(db).list_kpi_alerts(
        firm_id, estado=estado, prioridad=prioridad, lot_id=lot_id, limit=limit
    )
    return [AlertResponse.model_validate(alert) for alert in alerts]


@router.get("/{firm_id}/alerts/export", response_model=KPIAlertExport)
def export_alerts(
    firm_id: uuid.UUID,
    estado: str | None = Query(default=None),
    prioridad: str | None = Query(default=None),
    lot_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
) -> KPIAlertExport:
    return KPIAlertService(db).export_kpi_alerts(
        firm_id, estado=estado, prioridad=prioridad, lot_id=lot_id
    )


@router.get("/{firm_id}/alerts/counts", response_model=KPIAlertCounts)
def count_alerts(firm_id: uuid.UUID, db: Session = Depends(get_db)) -> KPIAlertCounts:
    return KPIAlertService(db).count_kpi_alerts(firm_id)


@router.get(
    "/{firm_id}/consecutive-warnings",
    response_model=list[ConsecutiveWarningResponse],
)
def consecutive_warnings(
    firm_id: uuid.UUID,
    threshold: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> list[ConsecutiveWarningResponse]:
    return KPIAlertService(db).kpis_in_consecutive_warning(firm_id, threshold)


@router.post("/{firm_id}/alerts/combined", response_model=list[CombinedAlertResponse])
def detect_combined_alerts(
    firm_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> list[CombinedAlertResponse]:
    results = KPIAlertService(db).detect_combined_alerts(firm_id)
    db.commit()
    return results


@router.post("/alerts/{alert_id}/resolve", response_model=AlertResponse)
def resolve_alert(
    alert_id: uuid.UUID,
    body: ResolveAlertRequest,
    db: Session = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> AlertResponse:
    """
    Mark an alert completed.

    Raises HTTP 404 for an unknown alert and HTTP 409 for a cancelled one.
    """
    service = KPIAlertService(db, dispatcher=dispatcher)
    try:
        alert = service.resolve_kpi_alert(alert_id, body.user_id, body.notes)
        db.commit()
    except AlertNotFoundError as exc:
        db.rollback()
        dispatcher.discard()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AlertStateError as exc:
        db.rollback()
        dispatcher.discard()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    response = AlertResponse.model_validate(alert)
    dispatcher.dispatch()
    logger.info("resolve_alert alert_id=%s user_id=%r", alert_id, body.user_id)
    return response


@router.post("/alerts/{alert_id}/cancel", response_model=AlertResponse)
def cancel_alert(
    alert_id: uuid.UUID,
    body: ResolveAlertRequest,
    db: Session = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> AlertResponse:
    service = KPIAlertService(db, dispatcher=dispatcher)
    try:
        alert = service.cancel_kpi_alert(alert_id, body.user_id, body.notes)
        db.commit()
    except AlertNotFoundError as exc:
        db.rollback()
        dispatcher.discard()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AlertStateError as exc:
        db.rollback()
        dispatcher.discard()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    response = AlertResponse.model_validate(alert)
    dispatcher.dispatch()
    return response
