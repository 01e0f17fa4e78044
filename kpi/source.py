"""
kpi/source.py

Read interface the KPI formulas depend on.

Formulas never touch SQLAlchemy directly: they receive an object that
satisfies :class:`FarmDataSource`. Production code passes
``app.services.aggregation_service.FarmAggregationService``; tests pass an
in-memory fake. All date bounds are inclusive.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol


@dataclass(frozen=True)
class LivestockEvent:
    date: date
    event_type: str | None
    quantity: float | None
    average_weight: float | None
    status: str | None = None


@dataclass(frozen=True)
class AmountSummary:
    """Sum of ``amount`` and the number of rows that contributed to it."""

    total: float
    count: int


@dataclass(frozen=True)
class PastureReading:
    fecha: date
    altura_promedio_cm: float | None
    remanente_objetivo_cm: float | None


@dataclass(frozen=True)
class WorkApproval:
    status: str
    created_at: datetime
    updated_at: datetime


class FarmDataSource(Protocol):
    def livestock_events(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        event_type: str | None = None,
        lot_id: uuid.UUID | None = None,
    ) -> list[LivestockEvent]:
        """Events in ``[start, end]`` ordered by date ascending."""
        ...

    def latest_livestock_event(
        self,
        firm_id: uuid.UUID,
        on_or_before: date,
        *,
        event_type: str | None = None,
        lot_id: uuid.UUID | None = None,
    ) -> LivestockEvent | None:
        """Most recent event dated on or before *on_or_before*."""
        ...

    def expense_summary(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        category_pattern: str,
    ) -> AmountSummary:
        """Expenses whose category matches *category_pattern* (SQL ILIKE)."""
        ...

    def income_summary(self, firm_id: uuid.UUID, start: date, end: date) -> AmountSummary:
        ...

    def total_hectares(self, firm_id: uuid.UUID, lot_id: uuid.UUID | None = None) -> float:
        """Sum of positive lot areas for the firm (or the single lot)."""
        ...

    def pasture_readings(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        lot_id: uuid.UUID | None = None,
    ) -> list[PastureReading]:
        """Readings in ``[start, end]`` ordered by ``fecha`` ascending."""
        ...

    def agricultural_works(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        status: str | None = None,
    ) -> list[WorkApproval]:
        """Works created within ``[start, end]``."""
        ...
