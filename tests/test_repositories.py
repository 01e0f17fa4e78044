"""
tests/test_repositories.py

Repository behaviour against SQLite.

Coverage
--------
- KPI history upsert on (firm, kpi, period) and status classification
- Firm threshold overrides taking precedence over the global row
- Consecutive-warning counters
- Automatic alert deduplication on the pending partial index
- Alert state transitions and retention purges
- A failing alert link is logged and the alert is kept
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta

import pytest

from db.base import utcnow
from db.models.alert import STATE_CANCELLED, STATE_COMPLETED, STATE_PENDING
from db.repositories.alert_repository import AlertRepository
from db.repositories.errors import AlertNotFoundError, AlertStateError
from db.repositories.kpi_definition_repository import (
    KPIDefinitionRepository,
    KPIThresholdRepository,
)
from db.repositories.kpi_history_repository import (
    KPIConsecutiveWarningRepository,
    KPIHistoryRepository,
)
from db.repositories.types import AlertCandidate, KPIAlertLinkInput
from kpi.codes import KPIStatus
from kpi.thresholds import ThresholdBands

START = date(2024, 3, 1)
END = date(2024, 3, 31)

GDP_BANDS = ThresholdBands(
    optimal_min=0.6,
    optimal_max=1.2,
    warning_min=0.4,
    warning_max=1.5,
    critical_min=0.2,
    critical_max=2.0,
)


def _kpi_id(session, code: str) -> uuid.UUID:
    return KPIDefinitionRepository(session).get_by_code(code).id


def _candidate(firm_id: uuid.UUID, regla: str = "KPI_GDP_ROJO", **overrides) -> AlertCandidate:
    fields = {
        "firm_id": firm_id,
        "tipo": "alerta",
        "titulo": "KPI ROJO: Daily weight gain",
        "regla_aplicada": regla,
        "prioridad": "alta",
    }
    fields.update(overrides)
    return AlertCandidate(**fields)


# ---------------------------------------------------------------------------
# KPI catalogue
# ---------------------------------------------------------------------------


class TestCatalogue:
    def test_seeding_is_idempotent(self, session, catalogue) -> None:
        assert catalogue == 23
        assert KPIDefinitionRepository(session).ensure_catalogue() == 0

    def test_list_active_by_frequency(self, session, catalogue) -> None:
        codes = {d.code for d in KPIDefinitionRepository(session).list_active("WEEKLY")}
        assert {"GDP", "MORTALIDAD"} <= codes
        assert "ALTURA_PROMEDIO_PASTURA" not in codes

    def test_deactivated_definitions_are_skipped(self, session, catalogue) -> None:
        repo = KPIDefinitionRepository(session)
        repo.set_active(_kpi_id(session, "GDP"), False)
        session.flush()
        assert "GDP" not in {d.code for d in repo.list_active("WEEKLY")}


# ---------------------------------------------------------------------------
# KPI history
# ---------------------------------------------------------------------------


class TestKPIHistory:
    def test_save_value_upserts_on_period(self, session, catalogue, firm) -> None:
        repo = KPIHistoryRepository(session)
        kpi_id = _kpi_id(session, "GDP")

        first = repo.save_value(
            firm_id=firm.id, kpi_id=kpi_id, period_start=START, period_end=END,
            value=0.5, unit="kg/día", metadata={"animales_pesados": 10},
        )
        session.commit()
        second = repo.save_value(
            firm_id=firm.id, kpi_id=kpi_id, period_start=START, period_end=END,
            value=0.8, unit="kg/día", metadata={"animales_pesados": 12},
        )
        session.commit()

        assert repo.count() == 1
        assert second.id == first.id
        assert second.value == 0.8
        assert second.kpi_metadata == {"animales_pesados": 12}

    def test_other_period_is_a_new_row(self, session, catalogue, firm) -> None:
        repo = KPIHistoryRepository(session)
        kpi_id = _kpi_id(session, "GDP")
        for start, end in ((START, END), (date(2024, 4, 1), date(2024, 4, 30))):
            repo.save_value(
                firm_id=firm.id, kpi_id=kpi_id, period_start=start, period_end=end,
                value=0.9, unit="kg/día",
            )
        session.commit()
        assert repo.count() == 2
        assert [r.period_end for r in repo.trend(firm.id, kpi_id)] == [
            date(2024, 4, 30),
            END,
        ]

    def test_status_uses_default_bands_without_thresholds(self, session, catalogue, firm) -> None:
        row = KPIHistoryRepository(session).save_value(
            firm_id=firm.id, kpi_id=_kpi_id(session, "MORTALIDAD"),
            period_start=START, period_end=END, value=250.0, unit="%",
        )
        assert row.status == KPIStatus.ROJO.value

    def test_firm_override_wins_over_global(self, session, catalogue, firm) -> None:
        kpi_id = _kpi_id(session, "GDP")
        thresholds = KPIThresholdRepository(session)
        thresholds.upsert(firm_id=None, kpi_id=kpi_id, bands=GDP_BANDS)
        thresholds.upsert(
            firm_id=firm.id,
            kpi_id=kpi_id,
            bands=ThresholdBands(0.9, 1.2, 0.7, 1.5, 0.5, 2.0),
        )
        repo = KPIHistoryRepository(session)

        assert repo.evaluate(firm.id, kpi_id, 0.8) is KPIStatus.AMARILLO
        assert repo.evaluate(uuid.uuid4(), kpi_id, 0.8) is KPIStatus.VERDE

    def test_latest_per_kpi_keeps_newest_period(self, session, catalogue, firm) -> None:
        repo = KPIHistoryRepository(session)
        kpi_id = _kpi_id(session, "GDP")
        repo.save_value(
            firm_id=firm.id, kpi_id=kpi_id, period_start=START, period_end=END,
            value=0.5, unit="kg/día",
        )
        repo.save_value(
            firm_id=firm.id, kpi_id=kpi_id, period_start=date(2024, 4, 1),
            period_end=date(2024, 4, 30), value=0.7, unit="kg/día",
        )
        session.commit()

        latest = repo.latest_per_kpi(firm.id)
        assert latest[kpi_id].value == 0.7
        assert repo.latest_per_kpi(firm.id, end=END)[kpi_id].value == 0.5

    def test_purge_older_than(self, session, catalogue, firm) -> None:
        repo = KPIHistoryRepository(session)
        repo.save_value(
            firm_id=firm.id, kpi_id=_kpi_id(session, "GDP"), period_start=START,
            period_end=END, value=0.5, unit="kg/día",
        )
        session.commit()

        assert repo.purge_older_than(utcnow() - timedelta(days=1)) == 0
        assert repo.purge_older_than(utcnow() + timedelta(days=1)) == 1
        session.commit()
        assert repo.count() == 0


class TestConsecutiveWarnings:
    def test_increment_and_reset(self, session, catalogue, firm) -> None:
        repo = KPIConsecutiveWarningRepository(session)
        kpi_id = _kpi_id(session, "COSTO_POR_KG")
        now = utcnow()

        repo.increment(firm.id, kpi_id, now)
        counter = repo.increment(firm.id, kpi_id, now)
        assert counter.consecutive_warning_days == 2
        assert [c.kpi_id for c in repo.at_least(firm.id, 2)] == [kpi_id]

        repo.reset(firm.id, kpi_id)
        session.flush()
        assert repo.get(firm.id, kpi_id).consecutive_warning_days == 0
        assert repo.at_least(firm.id, 1) == []

    def test_reset_without_counter(self, session, catalogue, firm) -> None:
        repo = KPIConsecutiveWarningRepository(session)
        assert repo.reset(firm.id, _kpi_id(session, "GDP")) is None


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class TestAutomaticAlerts:
    def test_pending_alert_is_deduplicated(self, session, firm) -> None:
        repo = AlertRepository(session)

        first, created_first = repo.create_automatic(_candidate(firm.id))
        second, created_second = repo.create_automatic(
            _candidate(firm.id, titulo="a different title")
        )
        session.commit()

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert second.titulo == "KPI ROJO: Daily weight gain"
        assert repo.count(firm_id=firm.id) == 1

    def test_scope_is_part_of_the_key(self, session, firm, lot) -> None:
        repo = AlertRepository(session)
        repo.create_automatic(_candidate(firm.id))
        _, created = repo.create_automatic(_candidate(firm.id, lot_id=lot.id))
        assert created is True
        assert repo.count(firm_id=firm.id) == 2

    def test_rule_fires_again_after_resolution(self, session, firm) -> None:
        repo = AlertRepository(session)
        alert, _ = repo.create_automatic(_candidate(firm.id))
        repo.resolve(alert.id, user_id="ops")
        session.commit()

        again, created = repo.create_automatic(_candidate(firm.id))
        session.commit()

        assert created is True
        assert again.id != alert.id
        assert repo.count(firm_id=firm.id, estado=STATE_PENDING) == 1
        assert repo.count(firm_id=firm.id, estado=STATE_COMPLETED) == 1

    def test_link_written_only_for_new_alert(self, session, catalogue, firm) -> None:
        history = KPIHistoryRepository(session).save_value(
            firm_id=firm.id, kpi_id=_kpi_id(session, "GDP"), period_start=START,
            period_end=END, value=0.1, unit="kg/día",
        )
        link = KPIAlertLinkInput(
            kpi_history_id=history.id, threshold_type="CRITICAL", current_value=0.1
        )
        repo = AlertRepository(session)

        alert, _ = repo.create_automatic(_candidate(firm.id), link=link)
        repo.create_automatic(_candidate(firm.id), link=link)
        session.commit()

        links = repo.links_for(alert.id)
        assert len(links) == 1
        assert links[0].threshold_type == "CRITICAL"
        assert links[0].kpi_history_id == history.id

    def test_failed_link_keeps_alert(self, session, catalogue, firm, caplog) -> None:
        history = KPIHistoryRepository(session).save_value(
            firm_id=firm.id, kpi_id=_kpi_id(session, "GDP"), period_start=START,
            period_end=END, value=0.1, unit="kg/día",
        )
        # threshold_type is NOT NULL, so the link insert fails in its savepoint.
        broken = KPIAlertLinkInput(
            kpi_history_id=history.id, threshold_type=None, current_value=0.1
        )
        repo = AlertRepository(session)

        with caplog.at_level("ERROR", logger="db.repositories.alert_repository"):
            alert, created = repo.create_automatic(_candidate(firm.id), link=broken)
        session.commit()

        assert created is True
        assert repo.count(firm_id=firm.id) == 1
        assert repo.links_for(alert.id) == []
        assert "kpi alert link failed" in caplog.text


class TestAlertTransitions:
    def test_resolve_records_resolver(self, session, firm) -> None:
        repo = AlertRepository(session)
        alert, _ = repo.create_automatic(_candidate(firm.id))

        resolved = repo.resolve(alert.id, user_id="ana", notes="fixed the scale")
        assert resolved.estado == STATE_COMPLETED
        assert resolved.resuelta_por == "ana"
        assert resolved.fecha_resolucion is not None

    def test_re_resolving_overwrites_notes(self, session, firm) -> None:
        repo = AlertRepository(session)
        alert, _ = repo.create_automatic(_candidate(firm.id))
        repo.resolve(alert.id, user_id="ana", notes="first")
        resolved = repo.resolve(alert.id, user_id="luis", notes="second")
        assert resolved.resuelta_por == "luis"
        assert resolved.notas == "second"

    def test_cancelled_alert_cannot_be_resolved(self, session, firm) -> None:
        repo = AlertRepository(session)
        alert, _ = repo.create_automatic(_candidate(firm.id))
        repo.cancel(alert.id, user_id="ana")
        assert alert.estado == STATE_CANCELLED

        with pytest.raises(AlertStateError):
            repo.resolve(alert.id, user_id="ana")

    def test_completed_alert_cannot_be_cancelled(self, session, firm) -> None:
        repo = AlertRepository(session)
        alert, _ = repo.create_automatic(_candidate(firm.id))
        repo.resolve(alert.id, user_id="ana")

        with pytest.raises(AlertStateError):
            repo.cancel(alert.id, user_id="ana")

    def test_unknown_alert(self, session) -> None:
        with pytest.raises(AlertNotFoundError):
            AlertRepository(session).resolve(uuid.uuid4(), user_id="ana")

    def test_manual_alerts_are_not_deduplicated(self, session, firm) -> None:
        repo = AlertRepository(session)
        for _ in range(2):
            repo.create_manual(
                firm_id=firm.id, tipo="tarea", titulo="Fix fence", prioridad="baja"
            )
        assert repo.count(firm_id=firm.id) == 2


class TestAlertQueries:
    def test_kpi_only_filter(self, session, firm) -> None:
        repo = AlertRepository(session)
        repo.create_automatic(_candidate(firm.id))
        repo.create_automatic(
            _candidate(firm.id, regla="sequia_moderada", tipo="sequia", prioridad="media")
        )
        repo.create_automatic(_candidate(firm.id, regla="COMBINED_KPI_2024-03-01_2024-03-31"))
        session.commit()

        assert repo.count(firm_id=firm.id) == 3
        kpi_alerts = repo.list_alerts(firm_id=firm.id, kpi_only=True)
        assert [a.regla_aplicada for a in kpi_alerts] == ["KPI_GDP_ROJO"]

    def test_purge_resolved_before(self, session, firm) -> None:
        repo = AlertRepository(session)
        resolved, _ = repo.create_automatic(_candidate(firm.id))
        repo.resolve(resolved.id, user_id="ana")
        repo.create_automatic(_candidate(firm.id, regla="KPI_MORTALIDAD_ROJO"))
        session.commit()

        assert repo.purge_resolved_before(utcnow() - timedelta(days=30)) == 0
        assert repo.purge_resolved_before(utcnow() + timedelta(days=1)) == 1
        session.commit()

        remaining = repo.list_alerts(firm_id=firm.id)
        assert [a.regla_aplicada for a in remaining] == ["KPI_MORTALIDAD_ROJO"]
