"""
app/api/routers/rainfall_router.py

Rainfall analytics and alert check endpoints.

POST /rainfall/{firm_id}/{premise_id}/check       run all rainfall rules
GET  /rainfall/{firm_id}/{premise_id}/status      pending alerts and current state
GET  /rainfall/{premise_id}/statistics            headline figures
GET  /rainfall/{premise_id}/monthly/{year}        monthly totals
GET  /rainfall/{premise_id}/campaigns             interannual comparison
GET  /rainfall/{premise_id}/water-balance
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.dependencies import get_session_factory
from app.schemas.rainfall import (
    InterannualComparison,
    MonthlyRainfall,
    RainfallCheckSummary,
    RainfallStatistics,
    RainfallStatusSummary,
    WaterBalanceResponse,
)
from app.services.rainfall_alerts import RainfallAlertService
from app.services.rainfall_analytics import RainfallAnalyticsService
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rainfall", tags=["rainfall"])


@router.post("/{firm_id}/{premise_id}/check", response_model=RainfallCheckSummary)
def check_rainfall(
    firm_id: uuid.UUID,
    premise_id: uuid.UUID,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> RainfallCheckSummary:
    """
    Run every rainfall check for a premise.

    Always HTTP 200; a failing check is reported in its ``error`` field.
    """
    summary = RainfallAlertService(session_factory).check_all(firm_id, premise_id)
    logger.info(
        "rainfall check firm_id=%s premise_id=%s created=%d",
        firm_id,
        premise_id,
        summary.alertas_creadas,
    )
    return summary


@router.get("/{firm_id}/{premise_id}/status", response_model=RainfallStatusSummary)
def rainfall_status(
    firm_id: uuid.UUID,
    premise_id: uuid.UUID,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> RainfallStatusSummary:
    return RainfallAlertService(session_factory).status_summary(firm_id, premise_id)


@router.get("/{premise_id}/statistics", response_model=RainfallStatistics)
def rainfall_statistics(
    premise_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> RainfallStatistics:
    return RainfallAnalyticsService(db).full_statistics(premise_id)


@router.get("/{premise_id}/monthly/{year}", response_model=list[MonthlyRainfall])
def monthly_rainfall(
    premise_id: uuid.UUID,
    year: int,
    db: Session = Depends(get_db),
) -> list[MonthlyRainfall]:
    return RainfallAnalyticsService(db).monthly_totals(premise_id, year)


@router.get("/{premise_id}/campaigns", response_model=InterannualComparison)
def campaign_comparison(
    premise_id: uuid.UUID,
    campaigns: int = Query(default=3, ge=1, le=20),
    db: Session = Depends(get_db),
) -> InterannualComparison:
    return RainfallAnalyticsService(db).interannual_comparison(premise_id, campaigns)


@router.get("/{premise_id}/water-balance", response_model=WaterBalanceResponse)
def water_balance(
    premise_id: uuid.UUID,
    days: int = Query(default=30, ge=1, le=365),
    evapotranspiration: float = Query(default=5.0, gt=0),
    db: Session = Depends(get_db),
) -> WaterBalanceResponse:
    return RainfallAnalyticsService(db).water_balance(premise_id, days, evapotranspiration)
