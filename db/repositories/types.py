"""
Typed DTOs passed into repository write operations.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AlertCandidate:
    """
    An automatic alert that should exist unless an equivalent one is pending.

    ``regla_aplicada`` together with firm, premise and lot forms the
    deduplication key.
    """

    firm_id: uuid.UUID
    tipo: str
    titulo: str
    regla_aplicada: str
    prioridad: str
    descripcion: str | None = None
    premise_id: uuid.UUID | None = None
    lot_id: uuid.UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class KPIAlertLinkInput:
    """Join-row payload tying a newly created alert to its history value."""

    kpi_history_id: uuid.UUID
    threshold_type: str
    current_value: float
    days_in_status: int = 1
