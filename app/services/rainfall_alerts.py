"""
app/services/rainfall_alerts.py

Rainfall alert checks for a premise.

Each check measures the premise through :class:`RainfallAnalyticsService`,
asks the matching rule in :mod:`rainfall.rules` whether it is breached and,
if so, creates an automatic alert through the deduplicating
:meth:`AlertRepository.create_automatic`. A pending alert for the same rule
and premise is reused rather than duplicated.

Every check opens, commits and closes its own session, so ``check_all`` can
run the four of them in parallel threads without sharing ORM state.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from app.config import RainfallSettings, get_rainfall_settings
from app.logging_utils import log_event
from app.schemas.rainfall import (
    RainfallCheckResult,
    RainfallCheckSummary,
    RainfallStatusSummary,
)
from app.services.rainfall_analytics import RainfallAnalyticsService
from db.models.alert import STATE_PENDING
from db.repositories.alert_repository import AlertRepository
from db.repositories.types import AlertCandidate
from rainfall.rules import (
    CAMPANIA_SECA,
    DIAS_SIN_LLUVIA,
    EXCESO_AGUA,
    SEQUIA_MODERADA,
    SEQUIA_SEVERA,
    RainfallAlertRule,
)

logger = logging.getLogger(__name__)

TYPE_DEFICIT = "deficit_hidrico"
TYPE_EXCESS = "exceso_agua"
TYPE_DRY_CAMPAIGN = "campania_seca"
TYPE_DRY_DAYS = "dias_sin_lluvia"

RAINFALL_ALERT_TYPES = (TYPE_DEFICIT, TYPE_EXCESS, TYPE_DRY_CAMPAIGN, TYPE_DRY_DAYS)

CHECK_DEFICIT = "deficit_hidrico"
CHECK_EXCESS = "exceso_lluvia"
CHECK_DRY_CAMPAIGN = "campania_seca"
CHECK_DRY_DAYS = "dias_sin_lluvia"

SessionFactory = Callable[[], Session]


class RainfallAlertService:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        settings: RainfallSettings | None = None,
        clock: Callable[[], date] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_rainfall_settings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def check_deficit(self, firm_id: uuid.UUID, premise_id: uuid.UUID) -> RainfallCheckResult:
        """Severe drought is checked first; moderate only when severe does not apply."""

        def _run(session: Session) -> RainfallCheckResult:
            days = int(SEQUIA_MODERADA.threshold("days"))
            deficit = self._analytics(session).detect_deficit(
                premise_id, days=days, threshold_mm=SEQUIA_MODERADA.threshold("min_mm")
            )
            for rule, severity in ((SEQUIA_SEVERA, "SEVERA"), (SEQUIA_MODERADA, "MODERADA")):
                if not rule.enabled or not rule.validate(acumulado=deficit.acumulado):
                    continue
                return self._raise_alert(
                    session,
                    CHECK_DEFICIT,
                    rule,
                    firm_id=firm_id,
                    premise_id=premise_id,
                    tipo=TYPE_DEFICIT,
                    message_args={"acumulado": deficit.acumulado, "dias": days},
                    metadata={
                        "acumulado": deficit.acumulado,
                        "umbral": rule.threshold("min_mm"),
                        "dias": days,
                        "severidad": severity,
                    },
                )
            return RainfallCheckResult(check=CHECK_DEFICIT)

        return self._in_session(CHECK_DEFICIT, _run)

    def check_excess(self, firm_id: uuid.UUID, premise_id: uuid.UUID) -> RainfallCheckResult:
        def _run(session: Session) -> RainfallCheckResult:
            rule = EXCESO_AGUA
            days = int(rule.threshold("days"))
            excess = self._analytics(session).detect_excess(
                premise_id, days=days, threshold_mm=rule.threshold("max_mm")
            )
            if not rule.enabled or not excess.hay_exceso:
                return RainfallCheckResult(check=CHECK_EXCESS)
            return self._raise_alert(
                session,
                CHECK_EXCESS,
                rule,
                firm_id=firm_id,
                premise_id=premise_id,
                tipo=TYPE_EXCESS,
                message_args={"acumulado": excess.acumulado, "dias": days},
                metadata={
                    "acumulado": excess.acumulado,
                    "umbral": rule.threshold("max_mm"),
                    "dias": days,
                    "severidad": excess.severidad,
                },
            )

        return self._in_session(CHECK_EXCESS, _run)

    def check_dry_campaign(
        self, firm_id: uuid.UUID, premise_id: uuid.UUID
    ) -> RainfallCheckResult:
        """Current campaign against the same window in previous years."""

        def _run(session: Session) -> RainfallCheckResult:
            rule = CAMPANIA_SECA
            analytics = self._analytics(session)
            campaign = analytics.current_campaign(premise_id)
            comparison = analytics.compare_with_average(
                premise_id,
                campaign.fecha_inicio,
                campaign.fecha_fin,
                years=self._settings.history_years,
            )
            average = comparison.promedio_historico
            percent = round(campaign.acumulado / average * 100, 1) if average else 0.0
            if not rule.enabled or not rule.validate(porcentaje=percent, promedio=average):
                return RainfallCheckResult(check=CHECK_DRY_CAMPAIGN)
            return self._raise_alert(
                session,
                CHECK_DRY_CAMPAIGN,
                rule,
                firm_id=firm_id,
                premise_id=premise_id,
                tipo=TYPE_DRY_CAMPAIGN,
                message_args={
                    "acumulado": campaign.acumulado,
                    "promedio": average,
                    "porcentaje": percent,
                    "campania": campaign.campania,
                },
                metadata={
                    "acumulado_campania": campaign.acumulado,
                    "promedio_historico": average,
                    "porcentaje": percent,
                    "campania": campaign.campania,
                },
            )

        return self._in_session(CHECK_DRY_CAMPAIGN, _run)

    def check_dry_days(self, firm_id: uuid.UUID, premise_id: uuid.UUID) -> RainfallCheckResult:
        def _run(session: Session) -> RainfallCheckResult:
            rule = DIAS_SIN_LLUVIA
            days = self._analytics(session).dry_days(premise_id)
            if not rule.enabled or not rule.validate(dias=days):
                return RainfallCheckResult(check=CHECK_DRY_DAYS)
            return self._raise_alert(
                session,
                CHECK_DRY_DAYS,
                rule,
                firm_id=firm_id,
                premise_id=premise_id,
                tipo=TYPE_DRY_DAYS,
                message_args={"dias": days},
                metadata={"dias_sin_lluvia": days, "umbral": rule.threshold("days")},
            )

        return self._in_session(CHECK_DRY_DAYS, _run)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def check_all(self, firm_id: uuid.UUID, premise_id: uuid.UUID) -> RainfallCheckSummary:
        """
        Run the four checks concurrently.

        A failing check is reported in its own ``RainfallCheckResult.error``;
        the other checks still complete and commit.
        """
        checks: list[tuple[str, Callable[[uuid.UUID, uuid.UUID], RainfallCheckResult]]] = [
            (CHECK_DEFICIT, self.check_deficit),
            (CHECK_EXCESS, self.check_excess),
            (CHECK_DRY_CAMPAIGN, self.check_dry_campaign),
            (CHECK_DRY_DAYS, self.check_dry_days),
        ]
        workers = max(1, min(self._settings.check_workers, len(checks)))

        results: list[RainfallCheckResult] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rainfall-check") as pool:
            futures = [(name, pool.submit(fn, firm_id, premise_id)) for name, fn in checks]
            for name, future in futures:
                try:
                    results.append(future.result())
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "rainfall check failed check=%s firm_id=%s premise_id=%s: %s",
                        name,
                        firm_id,
                        premise_id,
                        exc,
                        exc_info=True,
                    )
                    results.append(RainfallCheckResult(check=name, error=str(exc)))

        created = sum(1 for r in results if r.alerta_creada)
        log_event(
            logger,
            logging.INFO,
            "rainfall_checks_completed",
            firm_id=str(firm_id),
            premise_id=str(premise_id),
            alertas_creadas=created,
            errores=sum(1 for r in results if r.error),
        )
        return RainfallCheckSummary(
            total_alertas=sum(1 for r in results if r.alerta_id is not None),
            alertas_creadas=created,
            detalles=results,
        )

    def status_summary(self, firm_id: uuid.UUID, premise_id: uuid.UUID) -> RainfallStatusSummary:
        with self._session_factory() as session:
            alerts = AlertRepository(session).list_alerts(
                firm_id=firm_id,
                premise_id=premise_id,
                estado=STATE_PENDING,
                tipos=RAINFALL_ALERT_TYPES,
            )
            by_type: dict[str, int] = {}
            for alert in alerts:
                by_type[alert.tipo] = by_type.get(alert.tipo, 0) + 1

            analytics = self._analytics(session)
            return RainfallStatusSummary(
                alertas_pendientes=len(alerts),
                alertas_por_tipo=by_type,
                deficit=analytics.detect_deficit(premise_id),
                exceso=analytics.detect_excess(premise_id),
                dias_sin_lluvia=analytics.dry_days(premise_id),
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _analytics(self, session: Session) -> RainfallAnalyticsService:
        return RainfallAnalyticsService(session, settings=self._settings, clock=self._clock)

    def _in_session(
        self, check: str, work: Callable[[Session], RainfallCheckResult]
    ) -> RainfallCheckResult:
        session = self._session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except Exception:
            session.rollback()
            logger.error("rainfall check %s rolled back", check, exc_info=True)
            raise
        finally:
            session.close()

    @staticmethod
    def _raise_alert(
        session: Session,
        check: str,
        rule: RainfallAlertRule,
        *,
        firm_id: uuid.UUID,
        premise_id: uuid.UUID,
        tipo: str,
        message_args: dict[str, Any],
        metadata: dict[str, Any],
    ) -> RainfallCheckResult:
        message = rule.build_message(**message_args)
        alert, created = AlertRepository(session).create_automatic(
            AlertCandidate(
                firm_id=firm_id,
                premise_id=premise_id,
                tipo=tipo,
                titulo=message.titulo,
                descripcion=message.descripcion,
                regla_aplicada=rule.id,
                prioridad=rule.prioridad,
                metadata={**metadata, "recomendacion": message.recomendacion},
            )
        )
        logger.info(
            "rainfall rule breached check=%s regla=%s premise_id=%s created=%s",
            check,
            rule.id,
            premise_id,
            created,
        )
        return RainfallCheckResult(
            check=check,
            alerta_creada=created,
            alerta_id=alert.id,
            regla=rule.id,
        )
