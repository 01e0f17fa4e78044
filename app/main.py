"""
app/main.py

FastAPI entry point for the farm KPI engine.

Startup order: environment validation, logging, then (in the lifespan)
database reachability and schema, KPI catalogue seeding and the scheduler.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import get_scheduler_settings

logger = logging.getLogger(__name__)

_INTEGER_SETTINGS = (
    "KPI_HISTORY_RETENTION_DAYS",
    "KPI_CONSECUTIVE_WARNING_THRESHOLD",
    "KPI_RESOLVED_ALERT_RETENTION_DAYS",
    "RAINFALL_HISTORY_YEARS",
    "RAINFALL_CHECK_WORKERS",
)


def _validate_env() -> None:
    """
    Check the environment before anything touches the database.

    Raises RuntimeError listing every problem at once.
    """
    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []
    if not any(
        os.getenv(name, "").strip()
        for name in ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")
    ):
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL "
            "or LOCAL_DATABASE_URL."
        )

    for name in _INTEGER_SETTINGS:
        raw = os.getenv(name, "").strip()
        if raw and not raw.isdigit():
            errors.append(f"{name}={raw!r} is not a positive integer.")

    if errors:
        raise RuntimeError(
            "Startup validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _prepare_database() -> int:
    """
    Verify the database is reachable and migrated, then seed the KPI catalogue.

    Returns the number of catalogue rows inserted. Does not run migrations.
    """
    from sqlalchemy import inspect, text
    from sqlalchemy.exc import SQLAlchemyError

    import db.models  # noqa: F401  registers every table on Base.metadata
    from db.base import Base
    from db.repositories.kpi_definition_repository import KPIDefinitionRepository
    from db.session import get_engine, session_scope

    try:
        with session_scope() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc

    missing = sorted(set(Base.metadata.tables) - set(inspect(get_engine()).get_table_names()))
    if missing:
        logger.critical(
            "Schema mismatch: %d table(s) missing: %s. Run 'alembic upgrade head'.",
            len(missing),
            ", ".join(missing),
        )
        raise RuntimeError(f"Schema mismatch, missing tables: {', '.join(missing)}")

    with session_scope() as db:
        inserted = KPIDefinitionRepository(db).ensure_catalogue()
        db.commit()
    return inserted


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    inserted = _prepare_database()
    logger.info("Database ready, KPI catalogue rows inserted=%d", inserted)

    application.state.scheduler = None
    if not get_scheduler_settings().enabled:
        logger.info("Scheduler disabled by SCHEDULER_ENABLED")
        yield
        return

    from app.scheduler.jobs import build_scheduler

    scheduler = build_scheduler()
    scheduler.start()
    application.state.scheduler = scheduler
    logger.info("Scheduler started jobs=%s", [job.id for job in scheduler.get_jobs()])
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler shut down")


def create_app() -> FastAPI:
    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Farm KPI Engine API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import alerts_router, kpi_router, rainfall_router, reports_router

    for router in (kpi_router, alerts_router, reports_router, rainfall_router):
        application.include_router(router)

    @application.get("/health")
    def healthcheck(request: Request) -> dict[str, object]:
        scheduler = getattr(request.app.state, "scheduler", None)
        return {
            "status": "ok",
            "scheduler": "running" if scheduler is not None and scheduler.running else "disabled",
            "jobs": [job.id for job in scheduler.get_jobs()] if scheduler is not None else [],
        }

    return application


app = create_app()
