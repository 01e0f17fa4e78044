"""
app/services/kpi_automation.py

KPI calculation orchestrator.

Wires FarmAggregationService → KPI formula → KPIHistoryRepository →
KPIAlertService into one run per calculation tier. No business logic lives
here; every layer retains its own responsibility:

    FarmAggregationService  – SQL queries over farm records
    KPI formula             – deterministic calculation, None on missing data
    KPIHistoryRepository    – upsert into kpi_history + status evaluation
    KPIAlertService         – atomic alert dedup for AMARILLO / ROJO rows

Tiers and periods
-----------------
DAILY    → today
WEEKLY   → ISO week (Monday to Sunday) containing today
MONTHLY  → the previous calendar month

Failure contract
----------------
- Firm discovery failure   → raises KPIEntityDiscoveryError
- Formula failure          → logged, counted in ``errores_count``, run continues
- Definition lookup fails  → logged, counted, next firm
- Persistence failure      → rollback, ``kpi_<tier>_calculation_error`` system
                             log, KPIPersistenceError re-raised

Each stored value is committed on its own, so re-running a period is an
idempotent upsert. System logs, consecutive-warning streaks and
recommendations are dispatched as best-effort side effects after commit.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import KPISettings, get_kpi_settings
from app.events import SideEffectDispatcher
from app.logging_utils import elapsed_ms, log_event
from app.services.aggregation_service import FarmAggregationService
from app.services.kpi_alerts import KPIAlertService
from app.services.recommendations import RecommendationService
from db.base import utcnow
from db.models.firm import Firm
from db.repositories.errors import KPIPersistenceError
from db.repositories.kpi_definition_repository import KPIDefinitionRepository
from db.repositories.kpi_history_repository import KPIHistoryRepository
from db.repositories.system_log_repository import SystemLogRepository
from kpi.codes import Frequency
from kpi.registry import FormulaRegistry, build_formula_registry, calculate_kpi
from kpi.source import FarmDataSource

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class KPIEntityDiscoveryError(RuntimeError):
    """
    Raised when the firms to process cannot be loaded.

    No KPI has been calculated when this is raised.
    """


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalculationRunResult:
    """
    Outcome of one tier run.

    ``stats`` holds ``total_kpis_calculados``, ``errores_count``,
    ``firmas_procesadas``, ``duration_ms``, ``period_start`` and
    ``period_end``.
    """

    success: bool
    message: str
    stats: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message, "stats": dict(self.stats)}


# ---------------------------------------------------------------------------
# Period resolution
# ---------------------------------------------------------------------------


def resolve_period(tier: Frequency | str, now: datetime | date) -> tuple[date, date]:
    """
    Inclusive ``(start, end)`` dates a tier covers when run at *now*.
    """
    today = now.date() if isinstance(now, datetime) else now
    frequency = Frequency(tier)

    if frequency is Frequency.DAILY:
        return today, today
    if frequency is Frequency.WEEKLY:
        monday = today - timedelta(days=today.weekday())
        return monday, monday + timedelta(days=6)

    last_of_previous = today.replace(day=1) - timedelta(days=1)
    return last_of_previous.replace(day=1), last_of_previous


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class KPIAutomationService:
    """
    Runs the KPI pipeline for every active firm and definition of a tier.

    Bound to one session; the service commits after each stored value.
    """

    def __init__(
        self,
        session: Session,
        *,
        source: FarmDataSource | None = None,
        registry: FormulaRegistry | None = None,
        settings: KPISettings | None = None,
        dispatcher: SideEffectDispatcher | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_kpi_settings()
        self._source = source or FarmAggregationService(session)
        self._registry = registry or build_formula_registry(
            plan_factor=self._settings.plan_factor,
            default_remnant_cm=self._settings.default_remnant_cm,
        )
        self._dispatcher = dispatcher or SideEffectDispatcher()
        self._definitions = KPIDefinitionRepository(session)
        self._history = KPIHistoryRepository(session)
        self._alerts = KPIAlertService(
            session, dispatcher=self._dispatcher, settings=self._settings
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def run_daily_calculation(
        self, firm_id: uuid.UUID | None = None, *, now: datetime | None = None
    ) -> CalculationRunResult:
        return self.run_calculation(Frequency.DAILY, firm_id, now=now)

    def run_weekly_calculation(
        self, firm_id: uuid.UUID | None = None, *, now: datetime | None = None
    ) -> CalculationRunResult:
        return self.run_calculation(Frequency.WEEKLY, firm_id, now=now)

    def run_monthly_calculation(
        self, firm_id: uuid.UUID | None = None, *, now: datetime | None = None
    ) -> CalculationRunResult:
        return self.run_calculation(Frequency.MONTHLY, firm_id, now=now)

    def run_calculation(
        self,
        tier: Frequency | str,
        firm_id: uuid.UUID | None = None,
        *,
        now: datetime | None = None,
    ) -> CalculationRunResult:
        """
        Calculate every active KPI of *tier* for one firm or all active firms.

        Raises
        ------
        KPIEntityDiscoveryError
            If the firm list cannot be read.
        KPIPersistenceError
            If a value or its alert cannot be stored. The session has been
            rolled back before this propagates.
        """
        frequency = Frequency(tier)
        tier_name = frequency.value.lower()
        now = now or utcnow()
        period_start, period_end = resolve_period(frequency, now)
        run_start = time.monotonic()

        logger.info(
            "run_calculation started tier=%s firm_id=%s period=[%s, %s]",
            frequency.value,
            firm_id,
            period_start,
            period_end,
        )

        firms = self._firms(firm_id)
        if not firms:
            logger.warning("run_calculation tier=%s: no firms to process", frequency.value)
            return CalculationRunResult(success=False, message="No firms found")

        total = 0
        errors = 0
        try:
            for firm in firms:
                calculated, failed = self._process_firm(
                    firm, frequency, period_start, period_end
                )
                total += calculated
                errors += failed
                if frequency is Frequency.MONTHLY:
                    # The firm's values are committed; its follow-ups must not
                    # depend on later firms.
                    self._queue_monthly_side_effects(firm.id, period_end, now)
                    self._dispatcher.dispatch()
        except KPIPersistenceError as exc:
            self._session.rollback()
            self._dispatcher.discard()
            self._queue_system_log(
                f"kpi_{tier_name}_calculation_error",
                {"error": str(exc), "timestamp": utcnow().isoformat()},
            )
            self._dispatcher.dispatch()
            logger.error(
                "run_calculation tier=%s failed: %s", frequency.value, exc, exc_info=True
            )
            raise

        stats = {
            "total_kpis_calculados": total,
            "errores_count": errors,
            "firmas_procesadas": len(firms),
            "duration_ms": elapsed_ms(run_start),
            "period_start": period_start.isoformat(),
            "period_end": period_end.isoformat(),
        }
        self._queue_system_log(
            f"kpi_{tier_name}_calculation",
            {**stats, "timestamp": utcnow().isoformat()},
        )
        self._dispatcher.dispatch()

        log_event(logger, logging.INFO, f"kpi_{tier_name}_calculation", **stats)
        return CalculationRunResult(
            success=True,
            message=(
                f"{frequency.value.capitalize()} calculation completed: "
                f"{total} KPIs, {errors} errors"
            ),
            stats=stats,
        )

    def run_full_calculation(
        self, firm_id: uuid.UUID, *, now: datetime | None = None
    ) -> dict[str, Any]:
        """Daily, weekly and monthly runs for one firm. Never raises."""
        try:
            result = {
                "daily": self.run_daily_calculation(firm_id, now=now).as_dict(),
                "weekly": self.run_weekly_calculation(firm_id, now=now).as_dict(),
                "monthly": self.run_monthly_calculation(firm_id, now=now).as_dict(),
            }
            return {"success": True, "result": result, "timestamp": utcnow().isoformat()}
        except Exception as exc:  # noqa: BLE001
            logger.error("run_full_calculation firm_id=%s failed: %s", firm_id, exc, exc_info=True)
            return {"success": False, "error": str(exc), "timestamp": utcnow().isoformat()}

    def purge_old_history(
        self,
        retention_days: int | None = None,
        *,
        now: datetime | None = None,
    ) -> int:
        """
        Delete history rows (and their alert links) older than the retention window.

        Raises
        ------
        KPIPersistenceError
            If the delete or commit fails. The session has been rolled back.
        """
        days = retention_days or self._settings.history_retention_days
        cutoff = (now or utcnow()) - timedelta(days=days)
        try:
            deleted = self._history.purge_older_than(cutoff)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("purge_old_history failed: %s", exc, exc_info=True)
            raise KPIPersistenceError(f"Failed to purge KPI history: {exc}") from exc

        self._queue_system_log(
            "kpi_history_cleanup",
            {
                "deleted": deleted,
                "retention_days": days,
                "cutoff": cutoff.isoformat(),
            },
        )
        self._dispatcher.dispatch()
        logger.info("purge_old_history cutoff=%s deleted=%d", cutoff.isoformat(), deleted)
        return deleted

    # ------------------------------------------------------------------
    # Internal: discovery
    # ------------------------------------------------------------------

    def _firms(self, firm_id: uuid.UUID | None) -> list[Firm]:
        stmt = select(Firm)
        if firm_id is not None:
            stmt = stmt.where(Firm.id == firm_id)
        else:
            stmt = stmt.where(Firm.is_active.is_(True))
        try:
            return list(self._session.scalars(stmt.order_by(Firm.name)).all())
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("_firms failed firm_id=%s: %s", firm_id, exc, exc_info=True)
            raise KPIEntityDiscoveryError(f"Failed to load firms: {exc}") from exc

    # ------------------------------------------------------------------
    # Internal: per-firm processing
    # ------------------------------------------------------------------

    def _process_firm(
        self,
        firm: Firm,
        frequency: Frequency,
        period_start: date,
        period_end: date,
    ) -> tuple[int, int]:
        """Return ``(calculated, errors)`` for one firm."""
        try:
            definitions = self._definitions.list_active(frequency)
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "_process_firm firm_id=%s: loading definitions failed: %s",
                firm.id,
                exc,
                exc_info=True,
            )
            return 0, 1

        calculated = 0
        errors = 0
        for definition in definitions:
            try:
                value = calculate_kpi(
                    self._source,
                    firm.id,
                    definition.code,
                    period_start,
                    period_end,
                    registry=self._registry,
                )
            except SQLAlchemyError as exc:
                self._session.rollback()
                errors += 1
                logger.error(
                    "formula failed firm_id=%s code=%s: %s", firm.id, definition.code, exc
                )
                continue
            except Exception as exc:  # noqa: BLE001
                errors += 1
                logger.error(
                    "formula failed firm_id=%s code=%s: %s", firm.id, definition.code, exc
                )
                continue

            if value.value is None:
                logger.debug(
                    "skip firm_id=%s code=%s: %s", firm.id, definition.code, value.message
                )
                continue

            self._store(firm.id, definition.id, period_start, period_end, value)
            calculated += 1
            logger.debug(
                "stored firm_id=%s code=%s value=%s %s",
                firm.id,
                definition.code,
                value.value,
                value.unit,
            )
        return calculated, errors

    def _store(
        self,
        firm_id: uuid.UUID,
        kpi_id: uuid.UUID,
        period_start: date,
        period_end: date,
        value: Any,
    ) -> None:
        history = self._history.save_value(
            firm_id=firm_id,
            kpi_id=kpi_id,
            period_start=period_start,
            period_end=period_end,
            value=value.value,
            unit=value.unit,
            metadata=value.metadata,
        )
        try:
            self._alerts.evaluate_history(history)
            self._session.commit()
        except SQLAlchemyError as exc:
            raise KPIPersistenceError(
                f"Failed to store KPI value or alert firm_id={firm_id} kpi_id={kpi_id}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Internal: side effects
    # ------------------------------------------------------------------

    def _queue_monthly_side_effects(
        self, firm_id: uuid.UUID, period_end: date, now: datetime
    ) -> None:
        session = self._session
        alerts = self._alerts

        def _update_warnings() -> None:
            try:
                alerts.update_consecutive_warnings(firm_id, now)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

        def _recommendations() -> None:
            recommendations = RecommendationService(session).for_period(firm_id, period_end)
            if recommendations:
                logger.info(
                    "recommendations firm_id=%s period_end=%s count=%d",
                    firm_id,
                    period_end,
                    len(recommendations),
                )

        self._dispatcher.emit("consecutive_warnings", _update_warnings, firm_id=str(firm_id))
        self._dispatcher.emit("recommendations", _recommendations, firm_id=str(firm_id))

    def _queue_system_log(self, event: str, payload: dict[str, Any]) -> None:
        session = self._session

        def _write() -> None:
            try:
                SystemLogRepository(session).write(event, payload)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

        self._dispatcher.emit("system_log", _write, log_event=event)
