"""
db/models/firm.py

Firm and Lot models: the organisational scope of every KPI and alert.
A firm owns premises; premises are split into lots with a surface area.
"""

import uuid

from sqlalchemy import Boolean, Float, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin


class Firm(Base, TimestampMixin):
    """
    A farming business. Calculation runs iterate over active firms only.
    """

    __tablename__ = "firms"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    rut: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="Tax identifier",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Soft-disable a firm without deletion",
    )

    # ── Relationships ──────────────────────────────────────────────────────────

    lots: Mapped[list["Lot"]] = relationship(
        "Lot",
        back_populates="firm",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("ix_firms_is_active", "is_active"),)

    def __repr__(self) -> str:
        return f"<Firm id={self.id} name={self.name!r}>"


class Lot(Base, TimestampMixin):
    """
    A paddock inside a premise. ``area_hectares`` feeds every per-hectare KPI.
    """

    __tablename__ = "lots"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("firms.id", ondelete="CASCADE"),
        nullable=False,
    )

    premise_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    area_hectares: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )

    firm: Mapped[Firm] = relationship("Firm", back_populates="lots")

    __table_args__ = (Index("ix_lots_firm_id", "firm_id"),)

    def __repr__(self) -> str:
        return f"<Lot id={self.id} name={self.name!r} ha={self.area_hectares}>"
