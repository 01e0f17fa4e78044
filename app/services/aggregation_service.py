"""
app/services/aggregation_service.py

Data aggregation layer for KPI calculations.

Translates raw farm records (livestock works, expenses, income, pasture
monitoring, agricultural works) into the plain value objects the KPI
formulas consume. Implements :class:`kpi.source.FarmDataSource`.

Query design
------------
Every public method issues exactly one SQL statement. Sums are computed in
the database; row lists are returned already ordered so formulas never sort.

No business logic lives here. Division, rounding and missing-data handling
belong to the formulas in :mod:`kpi`.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models.farm_records import (
    AgriculturalWork,
    Expense,
    Income,
    LivestockWork,
    PastureMeasurement,
)
from db.models.firm import Lot
from kpi.source import AmountSummary, LivestockEvent, PastureReading, WorkApproval

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _to_event(row: LivestockWork) -> LivestockEvent:
    return LivestockEvent(
        date=row.date,
        event_type=row.event_type,
        quantity=row.quantity,
        average_weight=row.average_weight,
        status=row.status,
    )


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Half-open UTC datetime window covering the calendar days ``[start, end]``."""
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class FarmAggregationService:
    """
    Reads farm records for one session.

    All methods are read-only and never mutate session state.

    Parameters
    ----------
    session:
        Active SQLAlchemy session. The caller controls its lifecycle.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Livestock
    # ------------------------------------------------------------------

    def livestock_events(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        event_type: str | None = None,
        lot_id: uuid.UUID | None = None,
    ) -> list[LivestockEvent]:
        stmt = select(LivestockWork).where(
            LivestockWork.firm_id == firm_id,
            LivestockWork.date >= start,
            LivestockWork.date <= end,
        )
        if event_type is not None:
            stmt = stmt.where(LivestockWork.event_type == event_type)
        if lot_id is not None:
            stmt = stmt.where(LivestockWork.lot_id == lot_id)
        stmt = stmt.order_by(LivestockWork.date, LivestockWork.id)

        events = [_to_event(row) for row in self._session.scalars(stmt)]
        logger.debug(
            "livestock_events firm_id=%s type=%r [%s, %s] -> %d rows",
            firm_id, event_type, start, end, len(events),
        )
        return events

    def latest_livestock_event(
        self,
        firm_id: uuid.UUID,
        on_or_before: date,
        *,
        event_type: str | None = None,
        lot_id: uuid.UUID | None = None,
    ) -> LivestockEvent | None:
        stmt = select(LivestockWork).where(
            LivestockWork.firm_id == firm_id,
            LivestockWork.date <= on_or_before,
        )
        if event_type is not None:
            stmt = stmt.where(LivestockWork.event_type == event_type)
        if lot_id is not None:
            stmt = stmt.where(LivestockWork.lot_id == lot_id)
        stmt = stmt.order_by(LivestockWork.date.desc()).limit(1)

        row = self._session.scalars(stmt).first()
        return _to_event(row) if row is not None else None

    # ------------------------------------------------------------------
    # Money
    # ------------------------------------------------------------------

    def expense_summary(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        category_pattern: str,
    ) -> AmountSummary:
        """
        Queries
        -------
        ::

            SELECT COALESCE(SUM(amount), 0), COUNT(*)
            FROM   expenses
            WHERE  firm_id = :firm AND date BETWEEN :start AND :end
              AND  category ILIKE :pattern
        """
        stmt = select(func.coalesce(func.sum(Expense.amount), 0), func.count()).where(
            Expense.firm_id == firm_id,
            Expense.date >= start,
            Expense.date <= end,
            Expense.category.ilike(category_pattern),
        )
        total, count = self._session.execute(stmt).one()
        return AmountSummary(total=float(total or 0), count=int(count or 0))

    def income_summary(self, firm_id: uuid.UUID, start: date, end: date) -> AmountSummary:
        stmt = select(func.coalesce(func.sum(Income.amount), 0), func.count()).where(
            Income.firm_id == firm_id,
            Income.date >= start,
            Income.date <= end,
        )
        total, count = self._session.execute(stmt).one()
        return AmountSummary(total=float(total or 0), count=int(count or 0))

    # ------------------------------------------------------------------
    # Land and pasture
    # ------------------------------------------------------------------

    def total_hectares(self, firm_id: uuid.UUID, lot_id: uuid.UUID | None = None) -> float:
        stmt = select(func.coalesce(func.sum(Lot.area_hectares), 0)).where(
            Lot.firm_id == firm_id,
            Lot.area_hectares > 0,
        )
        if lot_id is not None:
            stmt = stmt.where(Lot.id == lot_id)
        return float(self._session.scalar(stmt) or 0)

    def pasture_readings(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        lot_id: uuid.UUID | None = None,
    ) -> list[PastureReading]:
        stmt = select(PastureMeasurement).where(
            PastureMeasurement.firm_id == firm_id,
            PastureMeasurement.fecha >= start,
            PastureMeasurement.fecha <= end,
        )
        if lot_id is not None:
            stmt = stmt.where(PastureMeasurement.lot_id == lot_id)
        stmt = stmt.order_by(PastureMeasurement.fecha, PastureMeasurement.id)
        return [
            PastureReading(
                fecha=row.fecha,
                altura_promedio_cm=row.altura_promedio_cm,
                remanente_objetivo_cm=row.remanente_objetivo_cm,
            )
            for row in self._session.scalars(stmt)
        ]

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def agricultural_works(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        status: str | None = None,
    ) -> list[WorkApproval]:
        lower, upper = _day_bounds(start, end)
        stmt = select(AgriculturalWork).where(
            AgriculturalWork.firm_id == firm_id,
            AgriculturalWork.created_at >= lower,
            AgriculturalWork.created_at < upper,
        )
        if status is not None:
            stmt = stmt.where(AgriculturalWork.status == status)
        stmt = stmt.order_by(AgriculturalWork.created_at)
        return [
            WorkApproval(status=row.status, created_at=row.created_at, updated_at=row.updated_at)
            for row in self._session.scalars(stmt)
        ]
