"""
app/schemas/kpi.py

Request and response schemas for KPI calculation, history and thresholds.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CalculationRequest(BaseModel):
    firm_id: uuid.UUID | None = Field(
        default=None, description="Restrict the run to one firm; all active firms when omitted."
    )


class CalculationResponse(BaseModel):
    success: bool
    message: str
    stats: dict[str, Any] = Field(default_factory=dict)


class PurgeHistoryRequest(BaseModel):
    retention_days: int | None = Field(default=None, ge=1)


class PurgeHistoryResponse(BaseModel):
    deleted: int = Field(..., ge=0)
    retention_days: int


class KPIHistoryPoint(BaseModel):
    """
    One stored KPI value as returned by the trend endpoint.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    lot_id: uuid.UUID | None = None
    period_start: date
    period_end: date
    value: float
    unit: str
    status: str
    calculated_at: datetime


class KPITrendResponse(BaseModel):
    firm_id: uuid.UUID
    kpi_code: str
    points: list[KPIHistoryPoint] = Field(default_factory=list)


class ThresholdPayload(BaseModel):
    optimal_min: float
    optimal_max: float
    warning_min: float
    warning_max: float
    critical_min: float
    critical_max: float
    target_value: float | None = None


class ThresholdUpdateRequest(ThresholdPayload):
    changed_by: str | None = None


class ThresholdResponse(ThresholdPayload):
    kpi_code: str
    source: str
