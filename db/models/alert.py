"""
db/models/alert.py

Alerts raised by KPI thresholds, rainfall rules or users, plus the join
rows that tie a KPI alert to the history value that triggered it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType

ORIGIN_AUTOMATIC = "automatica"
ORIGIN_MANUAL = "manual"

STATE_PENDING = "pendiente"
STATE_COMPLETED = "completed"
STATE_CANCELLED = "cancelled"

PRIORITY_LOW = "baja"
PRIORITY_MEDIUM = "media"
PRIORITY_HIGH = "alta"

PENDING_PREDICATE = text("estado = 'pendiente'")


class Alert(Base):
    """
    An actionable notification for a firm, optionally scoped to a premise/lot.

    ``dedup_key`` is filled for automatic alerts only. The partial unique
    index on it guarantees a single *pending* alert per
    ``(firm, premise, lot, regla_aplicada)``; resolved or cancelled rows
    drop out of the index so the same rule can fire again later.
    """

    __tablename__ = "alertas"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    premise_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    lot_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    origen: Mapped[str] = mapped_column(String(16), nullable=False, default=ORIGIN_MANUAL)
    tipo: Mapped[str] = mapped_column(String(50), nullable=False)
    titulo: Mapped[str] = mapped_column(String(255), nullable=False)
    descripcion: Mapped[str | None] = mapped_column(Text, nullable=True)
    prioridad: Mapped[str] = mapped_column(String(8), nullable=False, default=PRIORITY_MEDIUM)
    regla_aplicada: Mapped[str | None] = mapped_column(String(100), nullable=True)
    estado: Mapped[str] = mapped_column(String(16), nullable=False, default=STATE_PENDING)
    fecha: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    alert_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    resuelta_por: Mapped[str | None] = mapped_column(String(255), nullable=True)
    fecha_resolucion: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notas: Mapped[str | None] = mapped_column(Text, nullable=True)
    dedup_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index(
            "uq_alertas_pending_dedup_key",
            "dedup_key",
            unique=True,
            postgresql_where=PENDING_PREDICATE,
            sqlite_where=PENDING_PREDICATE,
        ),
        Index("ix_alertas_firm_estado", "firm_id", "estado"),
        Index("ix_alertas_fecha", "fecha"),
    )

    def __repr__(self) -> str:
        return f"<Alert id={self.id} regla={self.regla_aplicada!r} estado={self.estado}>"


class KPIAlertLink(Base):
    """Join row: which history value triggered which alert."""

    __tablename__ = "kpi_alerts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    alert_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("alertas.id", ondelete="CASCADE"), nullable=False
    )
    kpi_history_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("kpi_history.id", ondelete="CASCADE"), nullable=False
    )
    threshold_type: Mapped[str] = mapped_column(
        String(16), nullable=False, comment="WARNING | CRITICAL"
    )
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    days_in_status: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_kpi_alerts_alert_id", "alert_id"),
        Index("ix_kpi_alerts_history_id", "kpi_history_id"),
    )


def build_dedup_key(
    firm_id: uuid.UUID,
    premise_id: uuid.UUID | None,
    lot_id: uuid.UUID | None,
    regla_aplicada: str,
) -> str:
    """Deterministic deduplication key for an automatic alert."""
    return f"{firm_id}|{premise_id or '-'}|{lot_id or '-'}|{regla_aplicada}"
