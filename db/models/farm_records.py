"""
db/models/farm_records.py

Operational records the KPI formulas read from.

These tables are written by the ERP's data-entry flows; the KPI engine only
reads them. Every row is scoped by ``firm_id`` and most carry an optional
``lot_id`` so that per-lot KPIs can be derived.
"""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class LivestockWork(Base):
    """
    One livestock management event (weighing, death, weaning, purchase, sale).
    """

    __tablename__ = "livestock_works"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    lot_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("lots.id", ondelete="SET NULL"), nullable=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_weight: Mapped[float | None] = mapped_column(
        Float, nullable=True, comment="Average live weight per head (kg)"
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="DRAFT")

    __table_args__ = (
        Index("ix_livestock_works_firm_date", "firm_id", "date"),
        Index("ix_livestock_works_lot_id", "lot_id"),
    )


class Expense(Base):
    """An expense line. ``category`` is free text matched by pattern."""

    __tablename__ = "expenses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (Index("ix_expenses_firm_date", "firm_id", "date"),)


class Income(Base):
    """An income line."""

    __tablename__ = "income"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (Index("ix_income_firm_date", "firm_id", "date"),)


class PastureMeasurement(Base):
    """Sward height reading for a lot."""

    __tablename__ = "monitoreo_pasturas"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    lot_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("lots.id", ondelete="SET NULL"), nullable=True
    )
    fecha: Mapped[dt.date] = mapped_column(Date, nullable=False)
    altura_promedio_cm: Mapped[float | None] = mapped_column(Float, nullable=True)
    remanente_objetivo_cm: Mapped[float | None] = mapped_column(
        Float, nullable=True, comment="Target residual height after grazing"
    )

    __table_args__ = (Index("ix_monitoreo_pasturas_firm_fecha", "firm_id", "fecha"),)


class AgriculturalWork(Base):
    """A field work order subject to approval."""

    __tablename__ = "agricultural_works"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="PENDING")
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_agricultural_works_firm_created", "firm_id", "created_at"),)
