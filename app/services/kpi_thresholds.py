"""
app/services/kpi_thresholds.py

Threshold configuration per firm and KPI.

Resolution order for a firm's bands::

    firm-specific row  →  global row (firm_id IS NULL)  →  kpi.thresholds.DEFAULT_BANDS
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.kpi_definition import KPIDefinition
from db.repositories.kpi_definition_repository import (
    KPIDefinitionRepository,
    KPIThresholdRepository,
    bands_as_dict,
    bands_from_row,
)
from db.repositories.kpi_history_repository import KPIHistoryRepository
from db.repositories.system_log_repository import SystemLogRepository
from kpi.codes import KPICode, KPIStatus, UnknownKPICodeError, parse_code
from kpi.thresholds import DEFAULT_BANDS, ThresholdBands, evaluate_status, validate_ranges

logger = logging.getLogger(__name__)

SOURCE_FIRM = "firm"
SOURCE_GLOBAL = "global"
SOURCE_DEFAULT = "default"


class ThresholdValidationError(ValueError):
    """
    Raised when submitted bands violate the required ordering.

    ``errors`` lists every violation found.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class ThresholdView:
    kpi_code: str
    bands: ThresholdBands
    source: str


class KPIThresholdService:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._definitions = KPIDefinitionRepository(session)
        self._thresholds = KPIThresholdRepository(session)

    def get_thresholds(self, firm_id: uuid.UUID | None, code: KPICode | str) -> ThresholdView:
        definition = self._definition(code)
        row = self._thresholds.get_row(firm_id, definition.id) if firm_id is not None else None
        if row is not None:
            return ThresholdView(definition.code, bands_from_row(row), SOURCE_FIRM)

        row = self._thresholds.get_row(None, definition.id)
        if row is not None:
            return ThresholdView(definition.code, bands_from_row(row), SOURCE_GLOBAL)

        return ThresholdView(definition.code, DEFAULT_BANDS, SOURCE_DEFAULT)

    def update_thresholds(
        self,
        firm_id: uuid.UUID | None,
        code: KPICode | str,
        bands: ThresholdBands,
        *,
        changed_by: str | None = None,
    ) -> ThresholdView:
        """
        Validate and store bands for a firm (or globally when *firm_id* is None).

        Raises
        ------
        ThresholdValidationError
            When the band ordering is violated; nothing is written.
        """
        errors = validate_ranges(bands)
        if errors:
            raise ThresholdValidationError(errors)

        definition = self._definition(code)
        self._thresholds.upsert(
            firm_id=firm_id,
            kpi_id=definition.id,
            bands=bands,
            changed_by=changed_by,
        )
        SystemLogRepository(self._session).audit(
            action="update_thresholds",
            entity_type="kpi_threshold",
            firm_id=firm_id,
            entity_id=definition.id,
            user_id=changed_by or "system",
            details={"kpi_code": definition.code, **bands_as_dict(bands)},
        )
        logger.info(
            "update_thresholds firm_id=%s kpi=%s changed_by=%r",
            firm_id,
            definition.code,
            changed_by,
        )
        return ThresholdView(
            definition.code, bands, SOURCE_FIRM if firm_id is not None else SOURCE_GLOBAL
        )

    def reset_to_defaults(self, firm_id: uuid.UUID, code: KPICode | str) -> ThresholdView:
        """Drop the firm override so the global (or built-in) bands apply again."""
        definition = self._definition(code)
        removed = self._thresholds.delete_override(firm_id, definition.id)
        logger.info(
            "reset_to_defaults firm_id=%s kpi=%s removed=%d", firm_id, definition.code, removed
        )
        return self.get_thresholds(firm_id, definition.code)

    def check_value(self, firm_id: uuid.UUID, code: KPICode | str, value: float | None) -> KPIStatus:
        return evaluate_status(value, self.get_thresholds(firm_id, code).bands)

    def get_status_statistics(
        self,
        firm_id: uuid.UUID,
        *,
        days: int = 30,
        now: datetime | None = None,
    ) -> dict[str, float | int]:
        """
        Counts and percentages of each status over the last *days* days.
        """
        since = (now or utcnow()) - timedelta(days=days)
        counts = KPIHistoryRepository(self._session).status_counts(firm_id, since)
        total = sum(counts.values())
        stats: dict[str, float | int] = {"total": total}
        for status in KPIStatus:
            count = counts.get(status.value, 0)
            stats[status.value.lower()] = count
            stats[f"porcentaje_{status.value.lower()}"] = (
                round(count / total * 100, 1) if total else 0.0
            )
        return stats

    def _definition(self, code: KPICode | str) -> KPIDefinition:
        kpi_code = parse_code(code)
        definition = self._definitions.get_by_code(kpi_code.value)
        if definition is None:
            raise UnknownKPICodeError(f"KPI definition not found: {kpi_code.value}")
        return definition
