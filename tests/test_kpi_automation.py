"""
tests/test_kpi_automation.py

KPIAutomationService end to end on SQLite: farm records → formulas →
kpi_history → alerts → system logs.

Coverage
--------
- Period resolution per tier
- No firms → unsuccessful result, nothing written
- DAILY run stores only KPIs with data and alerts on ROJO values
- Re-running a period is idempotent
- Formula failures are counted and do not abort the run
- Inactive firms are skipped
- History retention purge
- MONTHLY follow-ups advance warning counters per committed firm
- Persistence failure: rollback, error system log, re-raise
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.config import KPISettings
from app.services.kpi_alerts import KPIAlertService
from app.services.kpi_automation import KPIAutomationService, resolve_period
from db.base import utcnow
from db.models.farm_records import PastureMeasurement
from db.models.firm import Firm
from db.models.kpi_history import KPIHistory
from db.repositories.alert_repository import AlertRepository
from db.repositories.errors import KPIPersistenceError
from db.repositories.kpi_history_repository import KPIHistoryRepository
from db.repositories.system_log_repository import SystemLogRepository
from kpi.base import KPIValue
from kpi.codes import KPICode, Frequency
from kpi.registry import build_formula_registry

NOW = datetime(2024, 3, 13, 10, 0, tzinfo=timezone.utc)  # a Wednesday
TODAY = NOW.date()


def _service(session, **kwargs) -> KPIAutomationService:
    return KPIAutomationService(session, settings=KPISettings(), **kwargs)


@pytest.fixture()
def pasture(session, firm, lot):
    session.add(
        PastureMeasurement(
            firm_id=firm.id,
            lot_id=lot.id,
            fecha=TODAY,
            altura_promedio_cm=12.0,
            remanente_objetivo_cm=6.0,
        )
    )
    session.commit()


def _stored(session) -> dict[str, float]:
    return {row.kpi.code: row.value for row in session.scalars(select(KPIHistory))}


class _Constant:
    """Formula stub returning the same value for every scope."""

    unit = "u"

    def __init__(self, value: float) -> None:
        self.value = value

    def calculate(self, source, scope):
        return KPIValue(value=self.value, unit="u")


def _constant_registry(value: float):
    return {code: _Constant(value) for code in KPICode}


class TestResolvePeriod:
    def test_daily(self) -> None:
        assert resolve_period(Frequency.DAILY, NOW) == (TODAY, TODAY)

    def test_weekly_is_monday_to_sunday(self) -> None:
        assert resolve_period("WEEKLY", NOW) == (date(2024, 3, 11), date(2024, 3, 17))

    def test_weekly_on_a_sunday(self) -> None:
        assert resolve_period("WEEKLY", date(2024, 3, 17)) == (
            date(2024, 3, 11),
            date(2024, 3, 17),
        )

    def test_monthly_is_previous_month(self) -> None:
        assert resolve_period("MONTHLY", NOW) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_monthly_in_january(self) -> None:
        assert resolve_period("MONTHLY", date(2024, 1, 20)) == (
            date(2023, 12, 1),
            date(2023, 12, 31),
        )

    def test_unknown_tier(self) -> None:
        with pytest.raises(ValueError):
            resolve_period("HOURLY", NOW)


class TestRunCalculation:
    def test_no_firms(self, session, catalogue) -> None:
        result = _service(session).run_calculation(Frequency.DAILY, now=NOW)
        assert result.success is False
        assert result.message == "No firms found"
        assert KPIHistoryRepository(session).count() == 0

    def test_daily_run_stores_pasture_kpis(self, session, catalogue, firm, pasture) -> None:
        result = _service(session).run_daily_calculation(now=NOW)

        assert result.success is True
        assert result.stats["total_kpis_calculados"] == 3
        assert result.stats["errores_count"] == 0
        assert result.stats["firmas_procesadas"] == 1
        assert result.stats["period_start"] == "2024-03-13"
        assert _stored(session) == {
            "ALTURA_PROMEDIO_PASTURA": 12.0,
            "DIFERENCIA_REMANENTE": 6.0,
            "RECEPTIVIDAD_REAL": 1200.0,
        }

        # 1200 kg MS/ha is above the default critical ceiling.
        alerts = AlertRepository(session).list_alerts(firm_id=firm.id)
        assert [a.regla_aplicada for a in alerts] == ["KPI_RECEPTIVIDAD_REAL_ROJO"]

        logs = SystemLogRepository(session).recent("kpi_daily_calculation")
        assert len(logs) == 1

    def test_rerun_is_idempotent(self, session, catalogue, firm, pasture) -> None:
        service = _service(session)
        service.run_daily_calculation(now=NOW)
        second = service.run_daily_calculation(now=NOW)

        assert second.stats["total_kpis_calculados"] == 3
        assert KPIHistoryRepository(session).count() == 3
        assert AlertRepository(session).count(firm_id=firm.id) == 1

    def test_formula_failure_is_counted(self, session, catalogue, firm, pasture) -> None:
        class _Broken:
            unit = "cm"

            def calculate(self, source, scope):
                raise RuntimeError("sensor offline")

        registry = build_formula_registry()
        registry[KPICode.ALTURA_PROMEDIO_PASTURA] = _Broken()

        result = _service(session, registry=registry).run_daily_calculation(now=NOW)

        assert result.success is True
        assert result.stats["errores_count"] == 1
        assert result.stats["total_kpis_calculados"] == 2
        assert "ALTURA_PROMEDIO_PASTURA" not in _stored(session)

    def test_inactive_firms_are_skipped(self, session, catalogue, firm, pasture) -> None:
        session.add(Firm(name="Campo Cerrado", is_active=False))
        session.commit()

        result = _service(session).run_daily_calculation(now=NOW)
        assert result.stats["firmas_procesadas"] == 1

    def test_single_firm_run(self, session, catalogue, firm, pasture) -> None:
        other = Firm(name="Otra Estancia", is_active=True)
        session.add(other)
        session.commit()

        result = _service(session).run_daily_calculation(other.id, now=NOW)
        assert result.stats["firmas_procesadas"] == 1
        assert result.stats["total_kpis_calculados"] == 0

    def test_monthly_run_covers_previous_month(self, session, catalogue, firm) -> None:
        result = _service(session).run_monthly_calculation(now=NOW)

        assert result.success is True
        assert result.stats["period_end"] == "2024-02-29"
        assert len(SystemLogRepository(session).recent("kpi_monthly_calculation")) == 1

    def test_full_calculation_never_raises(self, session, catalogue, firm) -> None:
        outcome = _service(session).run_full_calculation(firm.id, now=NOW)
        assert outcome["success"] is True
        assert set(outcome["result"]) == {"daily", "weekly", "monthly"}


class TestRetention:
    def test_purge_old_history(self, session, catalogue, firm, pasture) -> None:
        service = _service(session)
        service.run_daily_calculation(now=NOW)

        assert service.purge_old_history(30) == 0
        assert service.purge_old_history(1, now=utcnow() + timedelta(days=2)) == 3
        assert KPIHistoryRepository(session).count() == 0
        assert session.scalar(select(func.count()).select_from(KPIHistory)) == 0
        assert len(SystemLogRepository(session).recent("kpi_history_cleanup")) == 2


# ---------------------------------------------------------------------------
# Monthly follow-ups and persistence failures
# ---------------------------------------------------------------------------

# 105 sits in the default AMARILLO band.
WARNING_VALUE = 105.0
MONTHLY_KPIS = 11


@pytest.fixture()
def second_firm(session):
    row = Firm(name="Estancia Zeta", is_active=True)
    session.add(row)
    session.commit()
    return row


def _fail_for(monkeypatch, firm_id) -> None:
    original = KPIHistoryRepository.save_value

    def save_value(self, **kwargs):
        if kwargs["firm_id"] == firm_id:
            raise KPIPersistenceError("disk full")
        return original(self, **kwargs)

    monkeypatch.setattr(KPIHistoryRepository, "save_value", save_value)


class TestMonthlyFollowUps:
    def test_warning_counters_advance(self, session, catalogue, firm) -> None:
        service = _service(session, registry=_constant_registry(WARNING_VALUE))

        result = service.run_monthly_calculation(now=utcnow())

        assert result.stats["total_kpis_calculados"] == MONTHLY_KPIS
        flagged = KPIAlertService(session).kpis_in_consecutive_warning(firm.id, threshold=1)
        assert len(flagged) == MONTHLY_KPIS
        assert {w.consecutive_warning_days for w in flagged} == {1}

    def test_persistence_failure_rolls_back_and_logs(
        self, session, catalogue, firm, second_firm, monkeypatch
    ) -> None:
        _fail_for(monkeypatch, second_firm.id)
        service = _service(session, registry=_constant_registry(WARNING_VALUE))

        with pytest.raises(KPIPersistenceError):
            service.run_monthly_calculation(now=utcnow())

        assert KPIHistoryRepository(session).count() == MONTHLY_KPIS
        assert set(_stored(session).values()) == {WARNING_VALUE}
        errors = SystemLogRepository(session).recent("kpi_monthly_calculation_error")
        assert len(errors) == 1
        assert "disk full" in errors[0].message
        assert SystemLogRepository(session).recent("kpi_monthly_calculation") == []

    def test_committed_firm_keeps_follow_ups_when_a_later_firm_fails(
        self, session, catalogue, firm, second_firm, monkeypatch
    ) -> None:
        _fail_for(monkeypatch, second_firm.id)
        service = _service(session, registry=_constant_registry(WARNING_VALUE))

        with pytest.raises(KPIPersistenceError):
            service.run_monthly_calculation(now=utcnow())

        alerts = KPIAlertService(session)
        assert len(alerts.kpis_in_consecutive_warning(firm.id, threshold=1)) == MONTHLY_KPIS
        assert alerts.kpis_in_consecutive_warning(second_firm.id, threshold=1) == []
