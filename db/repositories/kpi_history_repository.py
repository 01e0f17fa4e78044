"""
db/repositories/kpi_history_repository.py

Persistence layer for KPI history values and consecutive-warning counters.

All methods are transaction-safe. The caller controls commit/rollback;
this repository never commits on its own.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.alert import KPIAlertLink
from db.models.kpi_history import HISTORY_UPSERT_KEYS, KPIConsecutiveWarning, KPIHistory
from db.repositories.dialect import insert_for
from db.repositories.errors import KPIPersistenceError
from db.repositories.kpi_definition_repository import KPIThresholdRepository, bands_from_row
from kpi.codes import KPIStatus
from kpi.thresholds import DEFAULT_BANDS, evaluate_status

logger = logging.getLogger(__name__)


class KPIHistoryRepository:
    """
    Repository for writing and querying KPIHistory rows.

    Upsert semantics: saving a value whose ``(firm_id, kpi_id, period_start,
    period_end)`` already exists replaces value, unit, status and metadata
    and refreshes ``calculated_at``, rather than raising a duplicate-key
    error.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._thresholds = KPIThresholdRepository(session)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save_value(
        self,
        *,
        firm_id: uuid.UUID,
        kpi_id: uuid.UUID,
        period_start: date,
        period_end: date,
        value: float,
        unit: str,
        metadata: dict[str, Any] | None = None,
        lot_id: uuid.UUID | None = None,
        calculated_by: str = "system",
    ) -> KPIHistory:
        """
        Upsert one KPI value and classify it against the firm's thresholds.

        Parameters
        ----------
        firm_id, kpi_id:
            Owner firm and KPI definition.
        period_start, period_end:
            Inclusive calendar window the value was computed for.
        value:
            The computed value (never ``None``; missing values are not stored).
        unit:
            Display unit copied from the formula.
        metadata:
            Formula breakdown stored alongside the value.

        Returns
        -------
        KPIHistory
            The persisted row (not yet committed) with ``status`` filled.

        Raises
        ------
        KPIPersistenceError
            When the upsert fails.
        """
        status = self.evaluate(firm_id, kpi_id, value)
        now = utcnow()
        row_values = {
            "id": uuid.uuid4(),
            "firm_id": firm_id,
            "kpi_id": kpi_id,
            "lot_id": lot_id,
            "period_start": period_start,
            "period_end": period_end,
            "value": value,
            "unit": unit,
            "status": status.value,
            "metadata": metadata or {},
            "calculated_at": now,
            "calculated_by": calculated_by,
        }
        stmt = insert_for(self._session, KPIHistory.__table__).values(**row_values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(HISTORY_UPSERT_KEYS),
            set_={
                "lot_id": lot_id,
                "value": value,
                "unit": unit,
                "status": status.value,
                "metadata": metadata or {},
                "calculated_at": now,
                "calculated_by": calculated_by,
            },
        ).returning(KPIHistory.__table__.c.id)

        try:
            history_id = self._session.execute(stmt).scalar_one()
        except SQLAlchemyError as exc:
            logger.error(
                "save_value failed firm_id=%s kpi_id=%s period=[%s, %s]: %s",
                firm_id,
                kpi_id,
                period_start,
                period_end,
                exc,
                exc_info=True,
            )
            raise KPIPersistenceError(
                f"Failed to persist KPI value firm_id={firm_id} kpi_id={kpi_id}: {exc}"
            ) from exc

        row = self._session.get(KPIHistory, history_id, populate_existing=True)
        assert row is not None
        return row

    def evaluate(self, firm_id: uuid.UUID, kpi_id: uuid.UUID, value: float | None) -> KPIStatus:
        threshold = self._thresholds.resolve(firm_id, kpi_id)
        bands = bands_from_row(threshold) if threshold is not None else DEFAULT_BANDS
        return evaluate_status(value, bands)

    def purge_older_than(self, cutoff: datetime) -> int:
        """
        Delete history rows calculated before *cutoff* and their alert links.

        Returns the number of history rows removed.
        """
        stale_ids = select(KPIHistory.id).where(KPIHistory.calculated_at < cutoff)
        self._session.execute(
            delete(KPIAlertLink)
            .where(KPIAlertLink.kpi_history_id.in_(stale_ids))
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(
            delete(KPIHistory)
            .where(KPIHistory.calculated_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, history_id: uuid.UUID) -> KPIHistory | None:
        return self._session.get(KPIHistory, history_id)

    def trend(self, firm_id: uuid.UUID, kpi_id: uuid.UUID, periods: int = 12) -> list[KPIHistory]:
        """The latest *periods* rows for one KPI, newest first."""
        stmt = (
            select(KPIHistory)
            .where(KPIHistory.firm_id == firm_id, KPIHistory.kpi_id == kpi_id)
            .order_by(KPIHistory.period_end.desc(), KPIHistory.calculated_at.desc())
            .limit(max(1, periods))
        )
        return list(self._session.scalars(stmt).all())

    def in_period(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        lot_id: uuid.UUID | None = None,
    ) -> list[KPIHistory]:
        """Rows whose ``period_end`` falls in ``[start, end]``, oldest first."""
        stmt = select(KPIHistory).where(
            KPIHistory.firm_id == firm_id,
            KPIHistory.period_end >= start,
            KPIHistory.period_end <= end,
        )
        if lot_id is not None:
            stmt = stmt.where(KPIHistory.lot_id == lot_id)
        stmt = stmt.order_by(KPIHistory.period_end, KPIHistory.calculated_at)
        return list(self._session.scalars(stmt).all())

    def latest_per_kpi(
        self,
        firm_id: uuid.UUID,
        *,
        since: datetime | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> dict[uuid.UUID, KPIHistory]:
        """
        Most recent row per KPI, keyed by ``kpi_id``.

        ``since`` filters on ``calculated_at``; ``start``/``end`` on ``period_end``.
        """
        stmt = select(KPIHistory).where(KPIHistory.firm_id == firm_id)
        if since is not None:
            stmt = stmt.where(KPIHistory.calculated_at >= since)
        if start is not None:
            stmt = stmt.where(KPIHistory.period_end >= start)
        if end is not None:
            stmt = stmt.where(KPIHistory.period_end <= end)
        stmt = stmt.order_by(KPIHistory.period_end, KPIHistory.calculated_at)

        latest: dict[uuid.UUID, KPIHistory] = {}
        for row in self._session.scalars(stmt):
            latest[row.kpi_id] = row
        return latest

    def status_counts(self, firm_id: uuid.UUID, since: datetime) -> dict[str, int]:
        stmt = (
            select(KPIHistory.status, func.count())
            .where(KPIHistory.firm_id == firm_id, KPIHistory.calculated_at >= since)
            .group_by(KPIHistory.status)
        )
        return {status: int(count) for status, count in self._session.execute(stmt).all()}

    def count(self) -> int:
        return int(self._session.scalar(select(func.count()).select_from(KPIHistory)) or 0)


class KPIConsecutiveWarningRepository:
    """Per ``(firm, kpi)`` streak of AMARILLO evaluations."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, firm_id: uuid.UUID, kpi_id: uuid.UUID) -> KPIConsecutiveWarning | None:
        return self._session.scalars(
            select(KPIConsecutiveWarning).where(
                KPIConsecutiveWarning.firm_id == firm_id,
                KPIConsecutiveWarning.kpi_id == kpi_id,
            )
        ).one_or_none()

    def increment(
        self, firm_id: uuid.UUID, kpi_id: uuid.UUID, at: datetime
    ) -> KPIConsecutiveWarning:
        counter = self.get(firm_id, kpi_id)
        if counter is None:
            counter = KPIConsecutiveWarning(
                firm_id=firm_id, kpi_id=kpi_id, consecutive_warning_days=0
            )
            self._session.add(counter)
        counter.consecutive_warning_days = (counter.consecutive_warning_days or 0) + 1
        counter.last_warning_at = at
        self._session.flush()
        return counter

    def reset(self, firm_id: uuid.UUID, kpi_id: uuid.UUID) -> KPIConsecutiveWarning | None:
        counter = self.get(firm_id, kpi_id)
        if counter is not None:
            counter.consecutive_warning_days = 0
        return counter

    def at_least(self, firm_id: uuid.UUID, threshold: int) -> list[KPIConsecutiveWarning]:
        stmt = (
            select(KPIConsecutiveWarning)
            .where(
                KPIConsecutiveWarning.firm_id == firm_id,
                KPIConsecutiveWarning.consecutive_warning_days >= threshold,
            )
            .order_by(KPIConsecutiveWarning.consecutive_warning_days.desc())
        )
        return list(self._session.scalars(stmt).all())
