"""
db/models/rainfall_record.py

Daily rain-gauge readings per premise.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class RainfallRecord(Base):
    """
    One rainfall reading in millimetres.

    Several readings on the same day are summed by the analytics layer.
    ``campaign_id`` is informational; campaign membership is always derived
    from ``fecha`` (July 1 to June 30).
    """

    __tablename__ = "lluvias"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    premise_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    fecha: Mapped[date] = mapped_column(Date, nullable=False)
    mm: Mapped[float] = mapped_column(Float, nullable=False)
    usuario: Mapped[str | None] = mapped_column(String(255), nullable=True)
    campaign_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_lluvias_premise_fecha", "premise_id", "fecha"),)

    def __repr__(self) -> str:
        return f"<RainfallRecord premise={self.premise_id} fecha={self.fecha} mm={self.mm}>"
