"""
db/models/decision_record.py

Management decisions and their before/after KPI snapshots. Read by the
learning report.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import Date, Float, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class DecisionRecord(Base, TimestampMixin):
    """
    A decision taken by the firm.

    ``kpis_before`` / ``kpis_after`` hold snapshots keyed ``gdp``,
    ``mortalidad`` and ``costo_kg``. ``roi_calculated`` overrides the ROI
    derived from those snapshots when present.
    """

    __tablename__ = "decision_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    decision_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    scenario_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    investment: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    roi_calculated: Mapped[float | None] = mapped_column(Float, nullable=True)
    additional_income: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    margin_improvement: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    lessons: Mapped[str | None] = mapped_column(Text, nullable=True)
    kpis_before: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    kpis_after: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (Index("ix_decision_history_firm_date", "firm_id", "decision_date"),)
