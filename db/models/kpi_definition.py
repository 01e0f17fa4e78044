"""
db/models/kpi_definition.py

Reference catalogue of KPIs and their configurable threshold bands.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.kpi_history import KPIHistory


class KPIDefinition(Base, TimestampMixin):
    """
    One KPI of the catalogue.

    ``code`` matches a member of :class:`kpi.codes.KPICode`. Rows are never
    deleted; administrators deactivate them with ``is_active``.
    """

    __tablename__ = "kpi_definitions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    calculation_frequency: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="DAILY | WEEKLY | MONTHLY",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    history: Mapped[list["KPIHistory"]] = relationship(
        "KPIHistory",
        back_populates="kpi",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("code", name="uq_kpi_definitions_code"),
        Index("ix_kpi_definitions_frequency_active", "calculation_frequency", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<KPIDefinition code={self.code!r} freq={self.calculation_frequency}>"


class KPIThreshold(Base):
    """
    Green / yellow / red bands for one KPI.

    ``firm_id`` NULL marks the global default used when a firm has no
    override. When ``target_value`` is set, values are compared as a
    percentage of the target instead of in the KPI's own unit.
    """

    __tablename__ = "kpi_thresholds"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=True
    )
    kpi_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("kpi_definitions.id", ondelete="CASCADE"), nullable=False
    )
    optimal_min: Mapped[float] = mapped_column(Float, nullable=False)
    optimal_max: Mapped[float] = mapped_column(Float, nullable=False)
    warning_min: Mapped[float] = mapped_column(Float, nullable=False)
    warning_max: Mapped[float] = mapped_column(Float, nullable=False)
    critical_min: Mapped[float] = mapped_column(Float, nullable=False)
    critical_max: Mapped[float] = mapped_column(Float, nullable=False)
    target_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    changed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_kpi_thresholds_firm_kpi", "firm_id", "kpi_id"),)
