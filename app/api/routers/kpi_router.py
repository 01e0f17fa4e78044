"""
app/api/routers/kpi_router.py

KPI calculation, history and threshold endpoints.

POST /kpis/calculations/{tier}           run DAILY | WEEKLY | MONTHLY
POST /kpis/calculations/full/{firm_id}   all three tiers for one firm
POST /kpis/history/purge                 retention cleanup
GET  /kpis/{firm_id}/trend/{code}        latest stored values of one KPI
GET  /kpis/{firm_id}/thresholds/{code}   effective bands and their source
PUT  /kpis/{firm_id}/thresholds/{code}   store firm-specific bands
GET  /kpis/{firm_id}/status-statistics   status distribution, last N days
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_dispatcher, get_kpi_code
from app.config import get_kpi_settings
from app.events import SideEffectDispatcher
from app.schemas.kpi import (
    CalculationRequest,
    CalculationResponse,
    KPIHistoryPoint,
    KPITrendResponse,
    PurgeHistoryRequest,
    PurgeHistoryResponse,
    ThresholdResponse,
    ThresholdUpdateRequest,
)
from app.services.kpi_automation import KPIAutomationService, KPIEntityDiscoveryError
from app.services.kpi_thresholds import (
    KPIThresholdService,
    ThresholdValidationError,
    ThresholdView,
)
from db.repositories.errors import KPIPersistenceError
from db.repositories.kpi_definition_repository import KPIDefinitionRepository, bands_as_dict
from db.repositories.kpi_history_repository import KPIHistoryRepository
from db.session import get_db
from kpi.codes import Frequency, KPICode, UnknownKPICodeError
from kpi.thresholds import ThresholdBands

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kpis", tags=["kpi"])


def _threshold_response(view: ThresholdView) -> ThresholdResponse:
    return ThresholdResponse(kpi_code=view.kpi_code, source=view.source, **bands_as_dict(view.bands))


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


@router.post(
    "/calculations/{tier}",
    response_model=CalculationResponse,
    status_code=status.HTTP_200_OK,
)
def run_calculation(
    tier: str,
    body: CalculationRequest | None = None,
    db: Session = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> CalculationResponse:
    """
    Run one calculation tier.

    Raises HTTP 400 for an unknown tier, HTTP 503 when firms cannot be
    listed and HTTP 500 when values cannot be persisted.
    """
    try:
        frequency = Frequency(tier.upper())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid tier {tier!r}. Must be one of: {[f.value for f in Frequency]}.",
        ) from exc

    firm_id = body.firm_id if body else None
    service = KPIAutomationService(db, dispatcher=dispatcher)
    try:
        result = service.run_calculation(frequency, firm_id)
    except KPIEntityDiscoveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    except KPIPersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"KPI calculation failed: {exc}",
        ) from exc

    return CalculationResponse(**result.as_dict())


@router.post("/calculations/full/{firm_id}", status_code=status.HTTP_200_OK)
def run_full_calculation(
    firm_id: uuid.UUID,
    db: Session = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return KPIAutomationService(db, dispatcher=dispatcher).run_full_calculation(firm_id)


@router.post("/history/purge", response_model=PurgeHistoryResponse)
def purge_history(
    body: PurgeHistoryRequest | None = None,
    db: Session = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> PurgeHistoryResponse:
    retention_days = (
        body.retention_days
        if body and body.retention_days
        else get_kpi_settings().history_retention_days
    )
    try:
        deleted = KPIAutomationService(db, dispatcher=dispatcher).purge_old_history(
            retention_days
        )
    except KPIPersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc
    return PurgeHistoryResponse(deleted=deleted, retention_days=retention_days)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/{firm_id}/trend/{code}", response_model=KPITrendResponse)
def get_trend(
    firm_id: uuid.UUID,
    code: KPICode = Depends(get_kpi_code),
    periods: int = Query(default=12, ge=1, le=120),
    db: Session = Depends(get_db),
) -> KPITrendResponse:
    definition = KPIDefinitionRepository(db).get_by_code(code.value)
    if definition is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"KPI definition not found: {code.value}",
        )
    rows = KPIHistoryRepository(db).trend(firm_id, definition.id, periods)
    return KPITrendResponse(
        firm_id=firm_id,
        kpi_code=code.value,
        points=[KPIHistoryPoint.model_validate(row) for row in rows],
    )


@router.get("/{firm_id}/status-statistics")
def get_status_statistics(
    firm_id: uuid.UUID,
    days: int = Query(default=30, ge=1, le=365),
    db: Session = Depends(get_db),
) -> dict[str, float | int]:
    return KPIThresholdService(db).get_status_statistics(firm_id, days=days)


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


@router.get("/{firm_id}/thresholds/{code}", response_model=ThresholdResponse)
def get_thresholds(
    firm_id: uuid.UUID,
    code: KPICode = Depends(get_kpi_code),
    db: Session = Depends(get_db),
) -> ThresholdResponse:
    try:
        view = KPIThresholdService(db).get_thresholds(firm_id, code)
    except UnknownKPICodeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _threshold_response(view)


@router.put("/{firm_id}/thresholds/{code}", response_model=ThresholdResponse)
def update_thresholds(
    firm_id: uuid.UUID,
    body: ThresholdUpdateRequest,
    code: KPICode = Depends(get_kpi_code),
    db: Session = Depends(get_db),
) -> ThresholdResponse:
    """
    Store firm-specific bands.

    Raises HTTP 422 with every ordering violation when the bands are invalid.
    """
    bands = ThresholdBands(**body.model_dump(exclude={"changed_by"}))
    try:
        view = KPIThresholdService(db).update_thresholds(
            firm_id, code, bands, changed_by=body.changed_by
        )
        db.commit()
    except ThresholdValidationError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors,
        ) from exc
    except UnknownKPICodeError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _threshold_response(view)
