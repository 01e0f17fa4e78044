"""
app/schemas/alerts.py

Request and response schemas for KPI alerts.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AlertResponse(BaseModel):
    """
    API response model for one alert row.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    firm_id: uuid.UUID
    premise_id: uuid.UUID | None = None
    lot_id: uuid.UUID | None = None
    origen: str
    tipo: str
    titulo: str
    descripcion: str | None = None
    prioridad: str
    regla_aplicada: str | None = None
    estado: str
    fecha: datetime
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="alert_metadata")
    resuelta_por: str | None = None
    fecha_resolucion: datetime | None = None
    notas: str | None = None


class ExportedKPIAlert(BaseModel):
    id: uuid.UUID
    kpi: str
    status: str
    titulo: str
    descripcion: str | None = None
    prioridad: str
    fecha: datetime
    estado: str
    lote_id: uuid.UUID | None = None
    metadata: dict[str, Any] | None = None


class KPIAlertExport(BaseModel):
    """
    JSON export of a firm's KPI alerts.
    """

    firm_id: uuid.UUID
    fecha_exportacion: datetime
    total_alertas: int = Field(..., ge=0)
    alertas: list[ExportedKPIAlert] = Field(default_factory=list)


class KPIAlertCounts(BaseModel):
    total: int = 0
    criticas_pendientes: int = 0
    advertencias_pendientes: int = 0
    resueltas: int = 0
    canceladas: int = 0


class ConsecutiveWarningResponse(BaseModel):
    kpi_id: uuid.UUID
    kpi_code: str | None = None
    kpi_name: str | None = None
    consecutive_warning_days: int
    last_warning_at: datetime | None = None


class CombinedAlertResponse(BaseModel):
    """Several KPIs in ROJO for the same period."""

    period_start: str
    period_end: str
    kpi_codes: list[str]
    alert_id: uuid.UUID | None = None
    created: bool = False


class ResolveAlertRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    notes: str | None = None
