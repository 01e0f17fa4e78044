"""
app/services/kpi_alerts.py

Alert generation and management for KPI threshold breaches.

    KPIHistory (AMARILLO / ROJO)
        → AlertCandidate with regla_aplicada = KPI_<code>_<status>
        → AlertRepository.create_automatic (atomic dedup + link row)

The service never commits. Routers and the orchestrator own the transaction;
audit entries are queued on the :class:`SideEffectDispatcher` and written
after the caller commits.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import KPISettings, get_kpi_settings
from app.events import SideEffectDispatcher
from app.schemas.alerts import (
    CombinedAlertResponse,
    ConsecutiveWarningResponse,
    ExportedKPIAlert,
    KPIAlertCounts,
    KPIAlertExport,
)
from db.base import utcnow
from db.models.alert import (
    PRIORITY_HIGH,
    PRIORITY_MEDIUM,
    STATE_CANCELLED,
    STATE_COMPLETED,
    STATE_PENDING,
    Alert,
)
from db.models.kpi_definition import KPIDefinition
from db.models.kpi_history import KPIHistory
from db.repositories.alert_repository import AlertRepository
from db.repositories.kpi_history_repository import (
    KPIConsecutiveWarningRepository,
    KPIHistoryRepository,
)
from db.repositories.system_log_repository import SystemLogRepository
from db.repositories.types import AlertCandidate, KPIAlertLinkInput
from kpi.codes import KPIStatus

logger = logging.getLogger(__name__)

KPI_ALERT_TYPE = "alerta"
COMBINED_ALERT_TYPE = "alerta_combinada"
_ALERTABLE = frozenset({KPIStatus.AMARILLO.value, KPIStatus.ROJO.value})


def kpi_rule_name(code: str, status: str) -> str:
    return f"KPI_{code}_{status}"


def split_rule_name(regla: str | None) -> tuple[str, str]:
    """``KPI_COSTO_POR_KG_ROJO`` → ``("COSTO_POR_KG", "ROJO")``."""
    if not regla or not regla.startswith("KPI_"):
        return "", ""
    body = regla[len("KPI_"):]
    code, _, status = body.rpartition("_")
    return code, status


class KPIAlertService:
    def __init__(
        self,
        session: Session,
        *,
        dispatcher: SideEffectDispatcher | None = None,
        settings: KPISettings | None = None,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher or SideEffectDispatcher()
        self._settings = settings or get_kpi_settings()
        self._alerts = AlertRepository(session)
        self._history = KPIHistoryRepository(session)
        self._warnings = KPIConsecutiveWarningRepository(session)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def evaluate_history(
        self,
        history: KPIHistory,
        *,
        premise_id: uuid.UUID | None = None,
    ) -> tuple[Alert, bool] | None:
        """
        Create (or find) the pending alert for a flagged history row.

        Returns ``None`` for VERDE and SIN_DATOS rows, otherwise the pending
        alert and whether this call created it.
        """
        if history.status not in _ALERTABLE:
            return None

        definition = history.kpi or self._session.get(KPIDefinition, history.kpi_id)
        is_critical = history.status == KPIStatus.ROJO.value
        regla = kpi_rule_name(definition.code, history.status)

        candidate = AlertCandidate(
            firm_id=history.firm_id,
            premise_id=premise_id,
            lot_id=history.lot_id,
            tipo=KPI_ALERT_TYPE,
            titulo=f"KPI {history.status}: {definition.name}",
            descripcion=(
                f"KPI {definition.name} is {history.status}. "
                f"Current value: {history.value} {definition.unit}"
            ),
            prioridad=PRIORITY_HIGH if is_critical else PRIORITY_MEDIUM,
            regla_aplicada=regla,
            metadata={
                "kpi_id": str(history.kpi_id),
                "kpi_code": definition.code,
                "valor_actual": history.value,
                "unit": definition.unit,
                "status": history.status,
                "period": {
                    "start": history.period_start.isoformat(),
                    "end": history.period_end.isoformat(),
                },
            },
        )
        link = KPIAlertLinkInput(
            kpi_history_id=history.id,
            threshold_type="CRITICAL" if is_critical else "WARNING",
            current_value=history.value,
        )
        alert, created = self._alerts.create_automatic(candidate, link=link)
        logger.debug(
            "evaluate_history firm_id=%s regla=%s created=%s alert_id=%s",
            history.firm_id,
            regla,
            created,
            alert.id,
        )
        return alert, created

    def update_consecutive_warnings(
        self,
        firm_id: uuid.UUID,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """
        Advance or reset each KPI's AMARILLO streak.

        Looks at every KPI's most recent history row calculated in the last
        24 hours: AMARILLO increments the counter (creating it at 1), any
        other status resets it to 0.
        """
        now = now or utcnow()
        latest = self._history.latest_per_kpi(firm_id, since=now - timedelta(hours=24))
        incremented = 0
        reset = 0
        for kpi_id, row in latest.items():
            if row.status == KPIStatus.AMARILLO.value:
                self._warnings.increment(firm_id, kpi_id, now)
                incremented += 1
            elif self._warnings.reset(firm_id, kpi_id) is not None:
                reset += 1
        self._session.flush()
        return {"incremented": incremented, "reset": reset}

    def detect_combined_alerts(self, firm_id: uuid.UUID) -> list[CombinedAlertResponse]:
        """
        Raise one high-priority alert per period in which two or more KPIs are ROJO.

        Only each KPI's latest value per period is considered.
        """
        stmt = (
            select(KPIHistory, KPIDefinition.code)
            .join(KPIDefinition, KPIDefinition.id == KPIHistory.kpi_id)
            .where(KPIHistory.firm_id == firm_id)
            .order_by(KPIHistory.calculated_at)
        )
        latest: dict[tuple, tuple[KPIHistory, str]] = {}
        for row, code in self._session.execute(stmt).all():
            latest[(row.period_start, row.period_end, row.kpi_id)] = (row, code)

        red_by_period: dict[tuple, list[str]] = defaultdict(list)
        for (start, end, _), (row, code) in latest.items():
            if row.status == KPIStatus.ROJO.value:
                red_by_period[(start, end)].append(code)

        results: list[CombinedAlertResponse] = []
        for (start, end), codes in sorted(red_by_period.items()):
            if len(codes) < 2:
                continue
            codes = sorted(codes)
            alert, created = self._alerts.create_automatic(
                AlertCandidate(
                    firm_id=firm_id,
                    tipo=COMBINED_ALERT_TYPE,
                    titulo=f"{len(codes)} KPIs in ROJO simultaneously",
                    descripcion="Critical KPIs: " + ", ".join(codes),
                    prioridad=PRIORITY_HIGH,
                    regla_aplicada=f"COMBINED_KPI_{start.isoformat()}_{end.isoformat()}",
                    metadata={
                        "kpi_codes": codes,
                        "period": {"start": start.isoformat(), "end": end.isoformat()},
                    },
                )
            )
            results.append(
                CombinedAlertResponse(
                    period_start=start.isoformat(),
                    period_end=end.isoformat(),
                    kpi_codes=codes,
                    alert_id=alert.id,
                    created=created,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Resolution and retention
    # ------------------------------------------------------------------

    def resolve_kpi_alert(
        self,
        alert_id: uuid.UUID,
        user_id: str,
        notes: str | None = None,
    ) -> Alert:
        """
        Raises
        ------
        AlertNotFoundError
            Unknown *alert_id*.
        AlertStateError
            The alert was cancelled.
        """
        alert = self._alerts.resolve(alert_id, user_id=user_id, notes=notes)
        self._queue_audit(alert, user_id=user_id, action="resolve_alert", notes=notes)
        return alert

    def cancel_kpi_alert(
        self,
        alert_id: uuid.UUID,
        user_id: str,
        notes: str | None = None,
    ) -> Alert:
        alert = self._alerts.cancel(alert_id, user_id=user_id, notes=notes)
        self._queue_audit(alert, user_id=user_id, action="cancel_alert", notes=notes)
        return alert

    def purge_resolved_alerts(
        self,
        retention_days: int | None = None,
        now: datetime | None = None,
    ) -> int:
        days = retention_days or self._settings.resolved_alert_retention_days
        cutoff = (now or utcnow()) - timedelta(days=days)
        deleted = self._alerts.purge_resolved_before(cutoff)
        logger.info("purge_resolved_alerts cutoff=%s deleted=%d", cutoff.isoformat(), deleted)
        return deleted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_kpi_alerts(
        self,
        firm_id: uuid.UUID,
        *,
        estado: str | None = None,
        prioridad: str | None = None,
        lot_id: uuid.UUID | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        return self._alerts.list_alerts(
            firm_id=firm_id,
            estado=estado,
            prioridad=prioridad,
            lot_id=lot_id,
            limit=limit,
            kpi_only=True,
        )

    def critical_alerts(self, firm_id: uuid.UUID) -> list[Alert]:
        return self.list_kpi_alerts(firm_id, prioridad=PRIORITY_HIGH, estado=STATE_PENDING)

    def warning_alerts(self, firm_id: uuid.UUID) -> list[Alert]:
        return self.list_kpi_alerts(firm_id, prioridad=PRIORITY_MEDIUM, estado=STATE_PENDING)

    def kpis_in_consecutive_warning(
        self,
        firm_id: uuid.UUID,
        threshold: int | None = None,
    ) -> list[ConsecutiveWarningResponse]:
        minimum = threshold if threshold is not None else self._settings.consecutive_warning_threshold
        results: list[ConsecutiveWarningResponse] = []
        for counter in self._warnings.at_least(firm_id, minimum):
            definition = self._session.get(KPIDefinition, counter.kpi_id)
            results.append(
                ConsecutiveWarningResponse(
                    kpi_id=counter.kpi_id,
                    kpi_code=definition.code if definition else None,
                    kpi_name=definition.name if definition else None,
                    consecutive_warning_days=counter.consecutive_warning_days,
                    last_warning_at=counter.last_warning_at,
                )
            )
        return results

    def count_kpi_alerts(self, firm_id: uuid.UUID) -> KPIAlertCounts:
        alerts = self.list_kpi_alerts(firm_id)
        return KPIAlertCounts(
            total=len(alerts),
            criticas_pendientes=sum(
                1 for a in alerts if a.prioridad == PRIORITY_HIGH and a.estado == STATE_PENDING
            ),
            advertencias_pendientes=sum(
                1 for a in alerts if a.prioridad == PRIORITY_MEDIUM and a.estado == STATE_PENDING
            ),
            resueltas=sum(1 for a in alerts if a.estado == STATE_COMPLETED),
            canceladas=sum(1 for a in alerts if a.estado == STATE_CANCELLED),
        )

    def export_kpi_alerts(
        self,
        firm_id: uuid.UUID,
        *,
        estado: str | None = None,
        prioridad: str | None = None,
        lot_id: uuid.UUID | None = None,
    ) -> KPIAlertExport:
        alerts = self.list_kpi_alerts(firm_id, estado=estado, prioridad=prioridad, lot_id=lot_id)
        exported = []
        for alert in alerts:
            code, status = split_rule_name(alert.regla_aplicada)
            exported.append(
                ExportedKPIAlert(
                    id=alert.id,
                    kpi=code,
                    status=status,
                    titulo=alert.titulo,
                    descripcion=alert.descripcion,
                    prioridad=alert.prioridad,
                    fecha=alert.fecha,
                    estado=alert.estado,
                    lote_id=alert.lot_id,
                    metadata=alert.alert_metadata,
                )
            )
        return KPIAlertExport(
            firm_id=firm_id,
            fecha_exportacion=utcnow(),
            total_alertas=len(exported),
            alertas=exported,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _queue_audit(
        self,
        alert: Alert,
        *,
        user_id: str,
        action: str,
        notes: str | None,
    ) -> None:
        session = self._session
        firm_id = alert.firm_id
        alert_id = alert.id
        estado = alert.estado

        def _write() -> None:
            try:
                SystemLogRepository(session).audit(
                    action=action,
                    entity_type="alert",
                    firm_id=firm_id,
                    entity_id=alert_id,
                    user_id=user_id,
                    description=notes,
                    details={"estado": estado},
                )
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

        self._dispatcher.emit(action, _write, alert_id=str(alert_id))
