"""
app/scheduler/jobs.py

APScheduler-based batch scheduler for the KPI pipeline and rainfall checks.

Schedule (all times UTC)
--------------------------
  daily_kpi  00:00 every day
  weekly_kpi  01:00 every Monday
  monthly_kpi  02:00 on day 1 (covers the previous month)
  retention  03:00 on day 1 (old history, resolved alerts)
  rainfall_checks  06:00 every day, only when RAINFALL_AUTO_CHECK_ENABLED

Every job opens its own session and never lets an exception escape into the
scheduler thread; failures are logged and the next run proceeds normally.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import RainfallSettings, get_rainfall_settings
from app.services.kpi_alerts import KPIAlertService
from app.services.kpi_automation import KPIAutomationService
from app.services.rainfall_alerts import RainfallAlertService
from db.models.firm import Firm
from db.models.rainfall_record import RainfallRecord
from db.session import SessionLocal, session_scope
from kpi.codes import Frequency
from rainfall.rules import AUTO_CHECK_HOUR

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Jobs: KPI calculation tiers
# ---------------------------------------------------------------------------


def _run_tier(tier: Frequency) -> None:
    job = f"{tier.value.lower()}_kpi"
    logger.info("Scheduler: %s starting", job)
    with session_scope() as db:
        try:
            result = KPIAutomationService(db).run_calculation(tier)
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.error("Scheduler: %s failed: %s", job, exc, exc_info=True)
            return
    logger.info("Scheduler: %s complete success=%s %s", job, result.success, result.message)


def run_daily_kpi() -> None:
    _run_tier(Frequency.DAILY)


def run_weekly_kpi() -> None:
    _run_tier(Frequency.WEEKLY)


def run_monthly_kpi() -> None:
    _run_tier(Frequency.MONTHLY)


# ---------------------------------------------------------------------------
# Job: Retention
# ---------------------------------------------------------------------------


def run_retention() -> None:
    """
    Purge KPI history past its retention window, then resolved alerts past
    theirs. The two purges commit independently.
    """
    logger.info("Scheduler: retention starting")
    with session_scope() as db:
        try:
            deleted_history = KPIAutomationService(db).purge_old_history()
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.error("Scheduler: history purge failed: %s", exc, exc_info=True)
            deleted_history = 0

        try:
            deleted_alerts = KPIAlertService(db).purge_resolved_alerts()
            db.commit()
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.error("Scheduler: resolved alert purge failed: %s", exc, exc_info=True)
            deleted_alerts = 0

    logger.info(
        "Scheduler: retention complete history_deleted=%d alerts_deleted=%d",
        deleted_history,
        deleted_alerts,
    )


# ---------------------------------------------------------------------------
# Job: Rainfall checks
# ---------------------------------------------------------------------------


def _premises_with_rainfall(session: Session) -> list[tuple]:
    """Distinct (firm_id, premise_id) pairs of active firms that record rainfall."""
    stmt = (
        select(RainfallRecord.firm_id, RainfallRecord.premise_id)
        .join(Firm, Firm.id == RainfallRecord.firm_id)
        .where(Firm.is_active.is_(True))
        .distinct()
    )
    return [(row.firm_id, row.premise_id) for row in session.execute(stmt).all()]


def run_rainfall_checks() -> None:
    logger.info("Scheduler: rainfall_checks starting")
    with session_scope() as db:
        premises = _premises_with_rainfall(db)

    if not premises:
        logger.warning("Scheduler: rainfall_checks: no premises with rainfall records, skipping")
        return

    service = RainfallAlertService(SessionLocal)
    created = 0
    for firm_id, premise_id in premises:
        try:
            created += service.check_all(firm_id, premise_id).alertas_creadas
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Scheduler: rainfall_checks failed firm_id=%s premise_id=%s: %s",
                firm_id,
                premise_id,
                exc,
            )

    logger.info(
        "Scheduler: rainfall_checks complete premises=%d alerts_created=%d",
        len(premises),
        created,
    )


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(rainfall_settings: RainfallSettings | None = None) -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    rainfall_settings = rainfall_settings or get_rainfall_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_daily_kpi,
        trigger="cron",
        hour=0,
        minute=0,
        id="daily_kpi",
        name="Daily KPI calculation",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        run_weekly_kpi,
        trigger="cron",
        day_of_week="mon",
        hour=1,
        minute=0,
        id="weekly_kpi",
        name="Weekly KPI calculation",
        replace_existing=True,
        misfire_grace_time=7200,
    )
    scheduler.add_job(
        run_monthly_kpi,
        trigger="cron",
        day=1,
        hour=2,
        minute=0,
        id="monthly_kpi",
        name="Monthly KPI calculation",
        replace_existing=True,
        misfire_grace_time=7200,
    )
    scheduler.add_job(
        run_retention,
        trigger="cron",
        day=1,
        hour=3,
        minute=0,
        id="retention",
        name="KPI history and resolved alert retention",
        replace_existing=True,
        misfire_grace_time=7200,
    )
    if rainfall_settings.auto_check_enabled:
        scheduler.add_job(
            run_rainfall_checks,
            trigger="cron",
            hour=AUTO_CHECK_HOUR,
            minute=0,
            id="rainfall_checks",
            name="Rainfall alert checks",
            replace_existing=True,
            misfire_grace_time=3600,
        )

    return scheduler
