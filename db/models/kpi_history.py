"""
db/models/kpi_history.py

Persisted KPI values and the consecutive-warning streak counters.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, JSONType

if TYPE_CHECKING:
    from db.models.kpi_definition import KPIDefinition

HISTORY_UPSERT_KEYS = ("firm_id", "kpi_id", "period_start", "period_end")


class KPIHistory(Base):
    """
    One computed KPI value for a firm and period window.

    The unique key on ``(firm_id, kpi_id, period_start, period_end)`` makes a
    re-run of the same period an upsert. ``lot_id`` tags values that were
    calculated for a single lot.
    """

    __tablename__ = "kpi_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    kpi_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("kpi_definitions.id", ondelete="CASCADE"), nullable=False
    )
    lot_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="VERDE | AMARILLO | ROJO | SIN_DATOS",
    )
    # ``metadata`` is reserved on declarative classes.
    kpi_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    calculated_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")

    kpi: Mapped["KPIDefinition"] = relationship("KPIDefinition", back_populates="history")

    __table_args__ = (
        UniqueConstraint(*HISTORY_UPSERT_KEYS, name="uq_kpi_history_firm_kpi_period"),
        Index("ix_kpi_history_firm_period_end", "firm_id", "period_end"),
        Index("ix_kpi_history_calculated_at", "calculated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<KPIHistory kpi={self.kpi_id} period={self.period_start}..{self.period_end} "
            f"value={self.value} status={self.status}>"
        )


class KPIConsecutiveWarning(Base):
    """Number of consecutive evaluations a KPI has spent in AMARILLO."""

    __tablename__ = "kpi_consecutive_warnings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    kpi_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("kpi_definitions.id", ondelete="CASCADE"), nullable=False
    )
    consecutive_warning_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_warning_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("firm_id", "kpi_id", name="uq_kpi_consecutive_warnings_firm_kpi"),
    )
