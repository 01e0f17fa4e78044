"""
tests/test_kpi_alerts.py

KPIAlertService against SQLite.

Coverage
--------
- AMARILLO / ROJO history rows raise one pending alert each, VERDE none
- Consecutive-warning streaks advance and reset
- Combined alert when several KPIs are ROJO in the same period
- Resolution queues an audit entry on the dispatcher
- Counts, export and retention purge
"""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import func, select

from app.config import KPISettings
from app.events import SideEffectDispatcher
from app.services.kpi_alerts import KPIAlertService, kpi_rule_name, split_rule_name
from db.base import utcnow
from db.models.system_log import AuditLog
from db.repositories.alert_repository import AlertRepository
from db.repositories.kpi_definition_repository import KPIDefinitionRepository
from db.repositories.kpi_history_repository import KPIHistoryRepository

START = date(2024, 3, 1)
END = date(2024, 3, 31)

# Default bands: 0..100 VERDE, up to 110 AMARILLO, above 200 ROJO.
GREEN = 50.0
YELLOW = 105.0
RED = 250.0


def _history(session, firm, code: str, value: float, start=START, end=END):
    kpi = KPIDefinitionRepository(session).get_by_code(code)
    return KPIHistoryRepository(session).save_value(
        firm_id=firm.id,
        kpi_id=kpi.id,
        period_start=start,
        period_end=end,
        value=value,
        unit=kpi.unit,
    )


def _service(session, dispatcher=None) -> KPIAlertService:
    return KPIAlertService(session, dispatcher=dispatcher, settings=KPISettings())


class TestRuleNames:
    def test_round_trip_with_underscored_code(self) -> None:
        regla = kpi_rule_name("COSTO_POR_KG", "ROJO")
        assert regla == "KPI_COSTO_POR_KG_ROJO"
        assert split_rule_name(regla) == ("COSTO_POR_KG", "ROJO")

    def test_non_kpi_rule(self) -> None:
        assert split_rule_name("sequia_moderada") == ("", "")
        assert split_rule_name(None) == ("", "")


class TestEvaluateHistory:
    def test_red_value_raises_high_priority_alert(self, session, catalogue, firm) -> None:
        history = _history(session, firm, "GDP", RED)

        alert, created = _service(session).evaluate_history(history)
        session.commit()

        assert created is True
        assert alert.tipo == "alerta"
        assert alert.regla_aplicada == "KPI_GDP_ROJO"
        assert alert.prioridad == "alta"
        assert alert.alert_metadata["valor_actual"] == RED
        assert alert.alert_metadata["period"] == {"start": "2024-03-01", "end": "2024-03-31"}
        links = AlertRepository(session).links_for(alert.id)
        assert [link.threshold_type for link in links] == ["CRITICAL"]

    def test_yellow_value_raises_medium_priority_alert(self, session, catalogue, firm) -> None:
        history = _history(session, firm, "MORTALIDAD", YELLOW)

        alert, _ = _service(session).evaluate_history(history)

        assert alert.regla_aplicada == "KPI_MORTALIDAD_AMARILLO"
        assert alert.prioridad == "media"
        links = AlertRepository(session).links_for(alert.id)
        assert links[0].threshold_type == "WARNING"

    def test_green_value_raises_nothing(self, session, catalogue, firm) -> None:
        history = _history(session, firm, "GDP", GREEN)
        assert _service(session).evaluate_history(history) is None
        assert AlertRepository(session).count(firm_id=firm.id) == 0

    def test_repeated_breach_keeps_one_pending_alert(self, session, catalogue, firm) -> None:
        service = _service(session)
        first, _ = service.evaluate_history(_history(session, firm, "GDP", RED))
        second, created = service.evaluate_history(
            _history(session, firm, "GDP", RED + 10, date(2024, 4, 1), date(2024, 4, 30))
        )
        session.commit()

        assert created is False
        assert second.id == first.id
        assert AlertRepository(session).count(firm_id=firm.id) == 1


class TestConsecutiveWarnings:
    def test_streak_advances_then_resets(self, session, catalogue, firm) -> None:
        service = _service(session)
        _history(session, firm, "GDP", YELLOW)
        session.commit()

        assert service.update_consecutive_warnings(firm.id, utcnow()) == {
            "incremented": 1,
            "reset": 0,
        }
        service.update_consecutive_warnings(firm.id, utcnow())
        session.commit()

        flagged = service.kpis_in_consecutive_warning(firm.id, threshold=2)
        assert [(w.kpi_code, w.consecutive_warning_days) for w in flagged] == [("GDP", 2)]

        _history(session, firm, "GDP", GREEN)
        session.commit()
        assert service.update_consecutive_warnings(firm.id, utcnow())["reset"] == 1
        assert service.kpis_in_consecutive_warning(firm.id, threshold=1) == []

    def test_old_history_is_ignored(self, session, catalogue, firm) -> None:
        _history(session, firm, "GDP", YELLOW)
        session.commit()

        later = utcnow() + timedelta(days=2)
        assert _service(session).update_consecutive_warnings(firm.id, later) == {
            "incremented": 0,
            "reset": 0,
        }


class TestCombinedAlerts:
    def test_two_red_kpis_in_one_period(self, session, catalogue, firm) -> None:
        _history(session, firm, "GDP", RED)
        _history(session, firm, "MORTALIDAD", RED)
        _history(session, firm, "COSTO_POR_KG", YELLOW)
        session.commit()
        service = _service(session)

        results = service.detect_combined_alerts(firm.id)
        session.commit()

        assert len(results) == 1
        assert results[0].kpi_codes == ["GDP", "MORTALIDAD"]
        assert results[0].created is True

        again = service.detect_combined_alerts(firm.id)
        assert again[0].created is False
        assert again[0].alert_id == results[0].alert_id

    def test_single_red_kpi_is_not_combined(self, session, catalogue, firm) -> None:
        _history(session, firm, "GDP", RED)
        _history(session, firm, "MORTALIDAD", RED, date(2024, 4, 1), date(2024, 4, 30))
        session.commit()
        assert _service(session).detect_combined_alerts(firm.id) == []

    def test_combined_alert_is_not_listed_as_kpi_alert(self, session, catalogue, firm) -> None:
        _history(session, firm, "GDP", RED)
        _history(session, firm, "MORTALIDAD", RED)
        service = _service(session)
        service.detect_combined_alerts(firm.id)
        session.commit()
        assert service.list_kpi_alerts(firm.id) == []


class TestResolution:
    def test_resolve_queues_audit_entry(self, session, catalogue, firm) -> None:
        dispatcher = SideEffectDispatcher()
        service = _service(session, dispatcher)
        alert, _ = service.evaluate_history(_history(session, firm, "GDP", RED))
        session.commit()

        resolved = service.resolve_kpi_alert(alert.id, "ana", notes="new scale")
        session.commit()
        assert resolved.estado == "completed"
        assert dispatcher.pending == ["resolve_alert"]

        report = dispatcher.dispatch()
        assert report.succeeded == ["resolve_alert"]
        audit_rows = session.scalar(select(func.count()).select_from(AuditLog))
        assert audit_rows == 1

    def test_counts_and_export(self, session, catalogue, firm) -> None:
        service = _service(session)
        red, _ = service.evaluate_history(_history(session, firm, "GDP", RED))
        service.evaluate_history(_history(session, firm, "MORTALIDAD", YELLOW))
        session.commit()

        counts = service.count_kpi_alerts(firm.id)
        assert counts.total == 2
        assert counts.criticas_pendientes == 1
        assert counts.advertencias_pendientes == 1

        service.cancel_kpi_alert(red.id, "ana")
        session.commit()
        assert service.count_kpi_alerts(firm.id).canceladas == 1
        assert len(service.critical_alerts(firm.id)) == 0

        export = service.export_kpi_alerts(firm.id)
        assert export.total_alertas == 2
        assert {(a.kpi, a.status) for a in export.alertas} == {
            ("GDP", "ROJO"),
            ("MORTALIDAD", "AMARILLO"),
        }

    def test_purge_resolved_alerts(self, session, catalogue, firm) -> None:
        service = _service(session)
        alert, _ = service.evaluate_history(_history(session, firm, "GDP", RED))
        service.resolve_kpi_alert(alert.id, "ana")
        session.commit()

        assert service.purge_resolved_alerts(30) == 0
        assert service.purge_resolved_alerts(30, now=utcnow() + timedelta(days=31)) == 1
