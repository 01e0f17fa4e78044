"""
tests/test_scheduler.py

Job registration and job bodies, run inline without starting the scheduler.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import date

import pytest

from app.config import RainfallSettings
from app.scheduler import jobs
from db.models.firm import Firm
from db.models.rainfall_record import RainfallRecord
from db.repositories.system_log_repository import SystemLogRepository


@pytest.fixture()
def scoped(monkeypatch, session):
    @contextmanager
    def _scope():
        yield session

    monkeypatch.setattr(jobs, "session_scope", _scope)
    return session


class TestBuildScheduler:
    def test_kpi_jobs_only_by_default(self) -> None:
        scheduler = jobs.build_scheduler(RainfallSettings(auto_check_enabled=False))
        assert sorted(job.id for job in scheduler.get_jobs()) == [
            "daily_kpi",
            "monthly_kpi",
            "retention",
            "weekly_kpi",
        ]

    def test_rainfall_job_when_enabled(self) -> None:
        scheduler = jobs.build_scheduler(RainfallSettings(auto_check_enabled=True))
        assert "rainfall_checks" in {job.id for job in scheduler.get_jobs()}


class TestJobs:
    def test_daily_job_writes_run_log(self, scoped, catalogue, firm) -> None:
        jobs.run_daily_kpi()
        assert len(SystemLogRepository(scoped).recent("kpi_daily_calculation")) == 1

    def test_failing_tier_does_not_escape(self, scoped, monkeypatch) -> None:
        class _Exploding:
            def __init__(self, session):
                pass

            def run_calculation(self, tier):
                raise RuntimeError("database gone")

        monkeypatch.setattr(jobs, "KPIAutomationService", _Exploding)
        jobs.run_weekly_kpi()

    def test_premises_of_active_firms_only(self, session, firm) -> None:
        closed = Firm(name="Campo Cerrado", is_active=False)
        session.add(closed)
        session.flush()
        premise = uuid.uuid4()
        session.add_all(
            [
                RainfallRecord(firm_id=firm.id, premise_id=premise, fecha=date(2024, 3, 1), mm=4.0),
                RainfallRecord(firm_id=firm.id, premise_id=premise, fecha=date(2024, 3, 2), mm=8.0),
                RainfallRecord(
                    firm_id=closed.id, premise_id=uuid.uuid4(), fecha=date(2024, 3, 1), mm=1.0
                ),
            ]
        )
        session.commit()

        assert jobs._premises_with_rainfall(session) == [(firm.id, premise)]
