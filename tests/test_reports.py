"""
tests/test_reports.py

Executive, comparative and learning reports over persisted data.

Coverage
--------
- Empty firm → zeroed summaries and empty lists
- Executive buckets, month-over-month variation and recommendations
- Lot-tagged history kept out of firm-level figures
- Comparative monthly and annual averages, lot comparison and trends
- Learning ROI (stored or derived from KPI snapshots), lessons and advice
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app.services.kpi_reports import KPIReportService, roi_from_snapshots, variation_percent
from db.models.decision_record import DecisionRecord
from db.repositories.kpi_definition_repository import KPIDefinitionRepository
from db.repositories.kpi_history_repository import KPIHistoryRepository

NOW = datetime(2024, 4, 2, 9, 0, tzinfo=timezone.utc)


def _save(session, firm, code, value, start, end, lot_id=None):
    kpi = KPIDefinitionRepository(session).get_by_code(code)
    return KPIHistoryRepository(session).save_value(
        firm_id=firm.id,
        kpi_id=kpi.id,
        period_start=start,
        period_end=end,
        value=value,
        unit=kpi.unit,
        lot_id=lot_id,
    )


class TestHelpers:
    @pytest.mark.parametrize(
        "current, previous, expected",
        [
            (250.0, 200.0, 25.0),
            (150.0, 200.0, -25.0),
            (10.0, None, 0.0),
            (None, 5.0, 0.0),
            (10.0, 0.0, 0.0),
        ],
    )
    def test_variation_percent(self, current, previous, expected) -> None:
        assert variation_percent(current, previous) == expected

    def test_roi_from_snapshots(self) -> None:
        before = {"gdp": 0.5, "costo_kg": 2.0, "mortalidad": 4.0}
        after = {"gdp": 0.6, "costo_kg": 1.8, "mortalidad": 3.0}
        # GDP +20 %, cost +10 %, mortality +25 %
        assert roi_from_snapshots(before, after) == pytest.approx(18.33)

    def test_roi_mortality_uses_floor_of_one(self) -> None:
        assert roi_from_snapshots({"mortalidad": 0.5}, {"mortalidad": 0.0}) == 50.0

    def test_roi_without_usable_indicators(self) -> None:
        assert roi_from_snapshots({}, {"gdp": 1.0}) == 0.0
        assert roi_from_snapshots({"gdp": 0.0}, {"gdp": 1.0}) == 0.0


class TestExecutiveReport:
    def test_empty_firm(self, session, catalogue, firm) -> None:
        report = KPIReportService(session).executive_report(firm.id, 2024, 3, now=NOW)

        assert report.periodo.fecha_inicio == date(2024, 3, 1)
        assert report.periodo.fecha_fin == date(2024, 3, 31)
        assert report.resumen.total_kpis == 0
        assert report.resumen.porcentaje_optimo == 0.0
        assert report.kpis_criticos == []
        assert report.recomendaciones == []
        assert report.alertas_del_mes.total == 0

    def test_buckets_and_variation(self, session, catalogue, firm, lot) -> None:
        _save(session, firm, "GDP", 200.0, date(2024, 2, 1), date(2024, 2, 29))
        _save(session, firm, "GDP", 250.0, date(2024, 3, 1), date(2024, 3, 31))
        _save(session, firm, "MORTALIDAD", 50.0, date(2024, 3, 1), date(2024, 3, 31))
        _save(session, firm, "COSTO_POR_KG", 300.0, date(2024, 3, 1), date(2024, 3, 15), lot.id)
        session.commit()

        report = KPIReportService(session).executive_report(firm.id, 2024, 3, now=NOW)

        assert [k.kpi_code for k in report.kpis_criticos] == ["GDP"]
        assert [k.kpi_code for k in report.kpis_optimos] == ["MORTALIDAD"]
        assert report.resumen.total_kpis == 2
        assert report.resumen.porcentaje_optimo == 50.0

        gdp = next(v for v in report.comparacion_intermensual if v.kpi_code == "GDP")
        assert gdp.value_prev == 200.0
        assert gdp.variation == 25.0
        mortality = next(v for v in report.comparacion_intermensual if v.kpi_code == "MORTALIDAD")
        assert mortality.value_prev is None
        assert mortality.variation == 0.0

        assert [r.kpi_code for r in report.recomendaciones] == ["GDP"]
        assert report.recomendaciones[0].status == "ROJO"


class TestComparativeReport:
    def test_empty_firm(self, session, catalogue, firm) -> None:
        report = KPIReportService(session).comparative_report(firm.id, 2024, now=NOW)

        assert len(report.resumen_anual.kpis_meses) == 12
        assert all(m.kpis == [] for m in report.resumen_anual.kpis_meses)
        assert report.resumen_anual.promedio_anual == {}
        assert report.comparacion_lotes == []
        assert report.tendencias_anuales["GDP"] == []
        assert report.comparar_con == "anio_anterior"

    def test_averages_lots_and_trends(self, session, catalogue, firm, lot) -> None:
        _save(session, firm, "GDP", 0.5, date(2024, 1, 1), date(2024, 1, 31))
        _save(session, firm, "GDP", 0.7, date(2024, 2, 1), date(2024, 2, 29))
        _save(session, firm, "GDP", 0.9, date(2024, 3, 1), date(2024, 3, 15), lot.id)
        session.commit()

        report = KPIReportService(session).comparative_report(firm.id, 2024, now=NOW)
        summary = report.resumen_anual

        assert summary.total_lotes == 1
        assert [a.promedio for a in summary.kpis_meses[0].kpis] == [0.5]
        assert summary.kpis_meses[2].kpis == []

        annual = summary.promedio_anual["GDP"]
        assert annual.promedio == 0.6
        assert annual.max == 0.7
        assert annual.min == 0.5

        lot_values = report.comparacion_lotes[0].kpis
        assert [(v.mes, v.kpi_code, v.valor) for v in lot_values] == [(3, "GDP", 0.9)]

        trend = report.tendencias_anuales["GDP"]
        assert [p.period_end for p in trend] == [
            date(2024, 3, 15),
            date(2024, 2, 29),
            date(2024, 1, 31),
        ]


class TestLearningReport:
    def test_empty_range(self, session, firm) -> None:
        report = KPIReportService(session).learning_report(
            firm.id, date(2024, 1, 1), date(2024, 12, 31), now=NOW
        )
        assert report.decisiones_tomadas == []
        assert report.impacto_consolidado.total_decisiones == 0
        assert report.impacto_consolidado.roi_promedio == 0.0
        assert report.recomendaciones_futuras == []

    def test_decisions_roi_and_lessons(self, session, firm) -> None:
        session.add_all(
            [
                DecisionRecord(
                    firm_id=firm.id,
                    description="Rotational grazing",
                    decision_date=date(2024, 2, 10),
                    category="pasturas",
                    investment=1000.0,
                    roi_calculated=60.0,
                    additional_income=500.0,
                    lessons="Smaller paddocks recover faster",
                ),
                DecisionRecord(
                    firm_id=firm.id,
                    description="Feed supplement",
                    decision_date=date(2024, 5, 3),
                    category="alimentacion",
                    investment=2000.0,
                    kpis_before={"gdp": 0.5, "costo_kg": 2.0},
                    kpis_after={"gdp": 0.6, "costo_kg": 1.8},
                ),
                DecisionRecord(
                    firm_id=firm.id,
                    description="Outside the range",
                    decision_date=date(2023, 6, 1),
                    roi_calculated=-50.0,
                ),
            ]
        )
        session.commit()

        report = KPIReportService(session).learning_report(
            firm.id, date(2024, 1, 1), date(2024, 12, 31), now=NOW
        )

        assert [d.description for d in report.decisiones_tomadas] == [
            "Feed supplement",
            "Rotational grazing",
        ]
        derived = report.decisiones_tomadas[0]
        assert derived.roi == 15.0
        assert derived.impacto_economico.ahorro == 300.0

        consolidated = report.impacto_consolidado
        assert consolidated.total_decisiones == 2
        assert consolidated.roi_promedio == 37.5
        assert consolidated.ahorro_total == 900.0
        assert consolidated.ingreso_adicional_total == 500.0

        assert [lesson.tipo for lesson in report.lecciones_clave] == ["exito", "documentada"]
        assert report.recomendaciones_futuras[0].startswith("Keep investing")
        assert '"pasturas"' in report.recomendaciones_futuras[1]
