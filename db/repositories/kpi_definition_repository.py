"""
Repository for the KPI definition catalogue and per-firm threshold bands.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Select, delete, select
from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.kpi_definition import KPIDefinition, KPIThreshold
from kpi.codes import KPI_CATALOGUE, Frequency
from kpi.thresholds import ThresholdBands

_BAND_FIELDS = (
    "optimal_min",
    "optimal_max",
    "warning_min",
    "warning_max",
    "critical_min",
    "critical_max",
    "target_value",
)


class KPIDefinitionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def ensure_catalogue(self) -> int:
        """
        Insert every built-in KPI that is not yet defined.

        Existing rows are left untouched, including deactivated ones.
        Returns the number of rows inserted.
        """
        existing = set(self._session.scalars(select(KPIDefinition.code)).all())
        created = 0
        for entry in KPI_CATALOGUE:
            if entry.code.value in existing:
                continue
            self._session.add(
                KPIDefinition(
                    code=entry.code.value,
                    name=entry.name,
                    category=entry.category,
                    unit=entry.unit,
                    calculation_frequency=entry.frequency.value,
                    is_active=True,
                    is_mandatory=True,
                )
            )
            created += 1
        if created:
            self._session.flush()
        return created

    def get(self, kpi_id: uuid.UUID) -> KPIDefinition | None:
        return self._session.get(KPIDefinition, kpi_id)

    def get_by_code(self, code: str) -> KPIDefinition | None:
        return self._session.scalars(
            select(KPIDefinition).where(KPIDefinition.code == code)
        ).one_or_none()

    def list_active(self, frequency: Frequency | str | None = None) -> list[KPIDefinition]:
        stmt: Select[tuple[KPIDefinition]] = select(KPIDefinition).where(
            KPIDefinition.is_active.is_(True)
        )
        if frequency is not None:
            stmt = stmt.where(KPIDefinition.calculation_frequency == Frequency(frequency).value)
        return list(self._session.scalars(stmt.order_by(KPIDefinition.code)).all())

    def set_active(self, kpi_id: uuid.UUID, is_active: bool) -> KPIDefinition | None:
        definition = self.get(kpi_id)
        if definition is None:
            return None
        definition.is_active = is_active
        return definition


class KPIThresholdRepository:
    """
    Threshold rows: ``firm_id IS NULL`` is the global default for a KPI.

    Firm overrides are written select-then-update because NULL firm ids
    never collide in a unique index.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_row(self, firm_id: uuid.UUID | None, kpi_id: uuid.UUID) -> KPIThreshold | None:
        firm_clause = (
            KPIThreshold.firm_id.is_(None) if firm_id is None else KPIThreshold.firm_id == firm_id
        )
        return self._session.scalars(
            select(KPIThreshold)
            .where(firm_clause, KPIThreshold.kpi_id == kpi_id)
            .order_by(KPIThreshold.changed_at.desc())
            .limit(1)
        ).first()

    def resolve(self, firm_id: uuid.UUID | None, kpi_id: uuid.UUID) -> KPIThreshold | None:
        """Firm-specific row first, then the global default."""
        row = self.get_row(firm_id, kpi_id) if firm_id is not None else None
        if row is None:
            row = self.get_row(None, kpi_id)
        return row

    def upsert(
        self,
        *,
        firm_id: uuid.UUID | None,
        kpi_id: uuid.UUID,
        bands: ThresholdBands,
        changed_by: str | None = None,
    ) -> KPIThreshold:
        row = self.get_row(firm_id, kpi_id)
        if row is None:
            row = KPIThreshold(firm_id=firm_id, kpi_id=kpi_id)
            self._session.add(row)
        for name in _BAND_FIELDS:
            setattr(row, name, getattr(bands, name))
        row.changed_by = changed_by
        row.changed_at = utcnow()
        self._session.flush()
        return row

    def delete_override(self, firm_id: uuid.UUID, kpi_id: uuid.UUID) -> int:
        result = self._session.execute(
            delete(KPIThreshold).where(
                KPIThreshold.firm_id == firm_id,
                KPIThreshold.kpi_id == kpi_id,
            )
        )
        return int(result.rowcount or 0)


def bands_from_row(row: KPIThreshold) -> ThresholdBands:
    return ThresholdBands(**{name: getattr(row, name) for name in _BAND_FIELDS})


def bands_as_dict(bands: ThresholdBands) -> dict[str, Any]:
    return {name: getattr(bands, name) for name in _BAND_FIELDS}
