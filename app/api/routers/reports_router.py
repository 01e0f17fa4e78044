"""
app/api/routers/reports_router.py

Standard KPI reports.

GET /reports/{firm_id}/executive?year=&month=
GET /reports/{firm_id}/comparative?year=
GET /reports/{firm_id}/learning?date_from=&date_to=
"""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.schemas.reports import ComparativeReport, ExecutiveReport, LearningReport
from app.services.kpi_reports import KPIReportService
from db.session import get_db

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/{firm_id}/executive", response_model=ExecutiveReport)
def executive_report(
    firm_id: uuid.UUID,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
) -> ExecutiveReport:
    return KPIReportService(db).executive_report(firm_id, year, month)


@router.get("/{firm_id}/comparative", response_model=ComparativeReport)
def comparative_report(
    firm_id: uuid.UUID,
    year: int = Query(..., ge=2000, le=2100),
    compare_with: str = Query(default="anio_anterior"),
    db: Session = Depends(get_db),
) -> ComparativeReport:
    return KPIReportService(db).comparative_report(firm_id, year, compare_with=compare_with)


@router.get("/{firm_id}/learning", response_model=LearningReport)
def learning_report(
    firm_id: uuid.UUID,
    date_from: date = Query(..., description="Inclusive start date (YYYY-MM-DD)."),
    date_to: date = Query(..., description="Inclusive end date (YYYY-MM-DD)."),
    db: Session = Depends(get_db),
) -> LearningReport:
    if date_from > date_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date_from must not be later than date_to.",
        )
    return KPIReportService(db).learning_report(firm_id, date_from, date_to)
