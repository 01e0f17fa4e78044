"""
app/services/kpi_reports.py

Standard KPI reports built from persisted data.

Three reports are produced:

* **Executive** (monthly): the latest stored value of each KPI in the month,
  month-over-month variation, status buckets, the month's KPI alerts and
  automatic recommendations.
* **Comparative** (annual): monthly averages, per-lot monthly values taken
  from lot-tagged history, yearly averages and the trend of four headline
  KPIs.
* **Learning**: management decisions in a date range with their ROI,
  consolidated economic impact, key lessons and forward recommendations.

Nothing is recalculated here and nothing is written. A firm with no
history, alerts or decisions gets a report of zeros and empty lists.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.schemas.alerts import AlertResponse
from app.schemas.reports import (
    AnnualKPIAverage,
    AnnualSummary,
    ComparativeReport,
    ConsolidatedImpact,
    DecisionImpact,
    EconomicImpact,
    ExecutiveReport,
    ExecutiveSummary,
    KPIVariation,
    LearningReport,
    Lesson,
    LotComparison,
    LotMonthValue,
    MonthAlerts,
    MonthKPIs,
    MonthlyKPIAverage,
    ReportKPI,
    ReportPeriod,
    ReportRecommendation,
    TrendPoint,
)
from app.services.recommendations import RecommendationService
from db.base import utcnow
from db.models.alert import PRIORITY_HIGH, PRIORITY_MEDIUM
from db.models.decision_record import DecisionRecord
from db.models.firm import Lot
from db.models.kpi_definition import KPIDefinition
from db.models.kpi_history import KPIHistory
from db.repositories.alert_repository import AlertRepository
from db.repositories.kpi_definition_repository import KPIDefinitionRepository
from db.repositories.kpi_history_repository import KPIHistoryRepository
from kpi.codes import KPICode, KPIStatus

logger = logging.getLogger(__name__)

TREND_CODES: tuple[KPICode, ...] = (
    KPICode.GDP,
    KPICode.MORTALIDAD,
    KPICode.COSTO_POR_KG,
    KPICode.MARGEN_BRUTO,
)

ROI_SUCCESS = 50.0
ROI_LEARNING = -20.0


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def variation_percent(current: float | None, previous: float | None) -> float:
    """``(current - previous) / previous * 100``; 0 when either side is missing or previous is 0."""
    if current is None or not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _snapshot(raw: dict[str, Any] | None) -> dict[str, float]:
    if not raw:
        return {}
    parsed = {key: _as_float(value) for key, value in raw.items()}
    return {key: value for key, value in parsed.items() if value is not None}


def roi_from_snapshots(before: dict[str, float], after: dict[str, float]) -> float:
    """
    Mean improvement (%) of GDP, cost per kg and mortality between two snapshots.

    GDP improves upwards; cost and mortality improve downwards. Mortality is
    measured against ``max(before, 1)``. Indicators missing from either
    snapshot, or with a zero baseline, are left out. No usable indicator
    yields 0.
    """
    improvements: list[float] = []

    gdp_before, gdp_after = before.get("gdp"), after.get("gdp")
    if gdp_before and gdp_after is not None:
        improvements.append((gdp_after - gdp_before) / gdp_before * 100)

    cost_before, cost_after = before.get("costo_kg"), after.get("costo_kg")
    if cost_before and cost_after is not None:
        improvements.append((cost_before - cost_after) / cost_before * 100)

    mort_before, mort_after = before.get("mortalidad"), after.get("mortalidad")
    if mort_before is not None and mort_after is not None:
        improvements.append((mort_before - mort_after) / max(mort_before, 1.0) * 100)

    if not improvements:
        return 0.0
    return round(sum(improvements) / len(improvements), 2)


class KPIReportService:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._history = KPIHistoryRepository(session)

    # ------------------------------------------------------------------
    # Executive
    # ------------------------------------------------------------------

    def executive_report(
        self,
        firm_id: uuid.UUID,
        year: int,
        month: int,
        *,
        now: datetime | None = None,
    ) -> ExecutiveReport:
        start, end = month_bounds(year, month)
        prev_start, prev_end = month_bounds(*previous_month(year, month))

        current = self._latest_firm_values(firm_id, start, end)
        previous = self._latest_firm_values(firm_id, prev_start, prev_end)

        kpis = [self._report_kpi(row, definition) for row, definition in current.values()]
        kpis.sort(key=lambda k: k.kpi_code)

        comparison = []
        for kpi_id, (row, definition) in current.items():
            prev_row = previous.get(kpi_id)
            prev_value = prev_row[0].value if prev_row else None
            comparison.append(
                KPIVariation(
                    kpi_code=definition.code,
                    name=definition.name,
                    value_prev=prev_value,
                    value_current=row.value,
                    variation=variation_percent(row.value, prev_value),
                    unit=row.unit,
                    status=row.status,
                )
            )
        comparison.sort(key=lambda v: v.kpi_code)

        alerts = AlertRepository(self._session).list_alerts(
            firm_id=firm_id,
            since=datetime.combine(start, time.min, tzinfo=timezone.utc),
            until=datetime.combine(end, time.max, tzinfo=timezone.utc),
            kpi_only=True,
        )
        recommendations = RecommendationService(self._session).for_period(firm_id, end)

        by_status: dict[str, list[ReportKPI]] = defaultdict(list)
        for item in kpis:
            by_status[item.status].append(item)
        optimal = len(by_status[KPIStatus.VERDE.value])

        report = ExecutiveReport(
            firm_id=firm_id,
            periodo=ReportPeriod(fecha_inicio=start, fecha_fin=end, mes=month, anio=year),
            fecha_generacion=now or utcnow(),
            kpis_criticos=by_status[KPIStatus.ROJO.value],
            kpis_advertencia=by_status[KPIStatus.AMARILLO.value],
            kpis_optimos=by_status[KPIStatus.VERDE.value],
            alertas_del_mes=MonthAlerts(
                total=len(alerts),
                criticas=sum(1 for a in alerts if a.prioridad == PRIORITY_HIGH),
                advertencias=sum(1 for a in alerts if a.prioridad == PRIORITY_MEDIUM),
                alertas=[AlertResponse.model_validate(a) for a in alerts],
            ),
            comparacion_intermensual=comparison,
            recomendaciones=[ReportRecommendation(**r.as_dict()) for r in recommendations],
            resumen=ExecutiveSummary(
                total_kpis=len(kpis),
                kpis_en_optimo=optimal,
                kpis_en_advertencia=len(by_status[KPIStatus.AMARILLO.value]),
                kpis_en_critico=len(by_status[KPIStatus.ROJO.value]),
                porcentaje_optimo=round(optimal / len(kpis) * 100, 1) if kpis else 0.0,
            ),
        )
        logger.info(
            "executive_report firm_id=%s period=%04d-%02d kpis=%d alerts=%d",
            firm_id,
            year,
            month,
            len(kpis),
            len(alerts),
        )
        return report

    # ------------------------------------------------------------------
    # Comparative
    # ------------------------------------------------------------------

    def comparative_report(
        self,
        firm_id: uuid.UUID,
        year: int,
        *,
        compare_with: str = "anio_anterior",
        now: datetime | None = None,
    ) -> ComparativeReport:
        definitions = self._definitions()
        year_start, year_end = date(year, 1, 1), date(year, 12, 31)
        rows = self._history.in_period(firm_id, year_start, year_end)

        firm_rows = [r for r in rows if r.lot_id is None]
        lot_rows = [r for r in rows if r.lot_id is not None]

        months = [
            MonthKPIs(mes=month, kpis=self._monthly_averages(firm_rows, month, definitions))
            for month in range(1, 13)
        ]

        lots = list(
            self._session.scalars(
                select(Lot).where(Lot.firm_id == firm_id).order_by(Lot.name)
            ).all()
        )

        report = ComparativeReport(
            firm_id=firm_id,
            anio=year,
            periodo=ReportPeriod(fecha_inicio=year_start, fecha_fin=year_end, anio=year),
            fecha_generacion=now or utcnow(),
            resumen_anual=AnnualSummary(
                total_lotes=len(lots),
                kpis_meses=months,
                promedio_anual=self._annual_averages(months),
            ),
            comparacion_lotes=[self._lot_comparison(lot, lot_rows, definitions) for lot in lots],
            tendencias_anuales=self._trends(firm_id),
            comparar_con=compare_with,
        )
        logger.info(
            "comparative_report firm_id=%s year=%d rows=%d lots=%d",
            firm_id,
            year,
            len(rows),
            len(lots),
        )
        return report

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def learning_report(
        self,
        firm_id: uuid.UUID,
        start: date,
        end: date,
        *,
        now: datetime | None = None,
    ) -> LearningReport:
        decisions = list(
            self._session.scalars(
                select(DecisionRecord)
                .where(
                    DecisionRecord.firm_id == firm_id,
                    DecisionRecord.decision_date >= start,
                    DecisionRecord.decision_date <= end,
                )
                .order_by(DecisionRecord.decision_date.desc())
            ).all()
        )
        impacts = [self._decision_impact(d) for d in decisions]

        count = len(impacts)
        consolidated = ConsolidatedImpact(
            total_decisiones=count,
            roi_promedio=round(sum(i.roi for i in impacts) / count, 2) if count else 0.0,
            ahorro_total=round(sum(i.impacto_economico.ahorro for i in impacts), 2),
            ingreso_adicional_total=round(
                sum(i.impacto_economico.ingreso_adicional for i in impacts), 2
            ),
            margen_mejorado_total=round(
                sum(i.impacto_economico.margen_mejorado for i in impacts), 2
            ),
        )

        return LearningReport(
            firm_id=firm_id,
            periodo=ReportPeriod(fecha_inicio=start, fecha_fin=end),
            fecha_generacion=now or utcnow(),
            decisiones_tomadas=impacts,
            impacto_consolidado=consolidated,
            lecciones_clave=self._lessons(impacts),
            recomendaciones_futuras=self._future_recommendations(impacts),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _definitions(self) -> dict[uuid.UUID, KPIDefinition]:
        return {d.id: d for d in self._session.scalars(select(KPIDefinition)).all()}

    def _latest_firm_values(
        self, firm_id: uuid.UUID, start: date, end: date
    ) -> dict[uuid.UUID, tuple[KPIHistory, KPIDefinition]]:
        definitions = self._definitions()
        latest: dict[uuid.UUID, tuple[KPIHistory, KPIDefinition]] = {}
        for row in self._history.in_period(firm_id, start, end):
            if row.lot_id is not None or row.period_start < start:
                continue
            definition = definitions.get(row.kpi_id)
            if definition is not None:
                latest[row.kpi_id] = (row, definition)
        return latest

    @staticmethod
    def _report_kpi(row: KPIHistory, definition: KPIDefinition) -> ReportKPI:
        return ReportKPI(
            kpi_code=definition.code,
            name=definition.name,
            value=row.value,
            unit=row.unit,
            status=row.status,
        )

    @staticmethod
    def _monthly_averages(
        rows: list[KPIHistory],
        month: int,
        definitions: dict[uuid.UUID, KPIDefinition],
    ) -> list[MonthlyKPIAverage]:
        values: dict[uuid.UUID, list[float]] = defaultdict(list)
        for row in rows:
            if row.period_end.month == month and row.value is not None:
                values[row.kpi_id].append(row.value)

        averages = []
        for kpi_id, items in values.items():
            definition = definitions.get(kpi_id)
            if definition is None:
                continue
            averages.append(
                MonthlyKPIAverage(
                    kpi_code=definition.code,
                    name=definition.name,
                    unit=definition.unit,
                    promedio=round(sum(items) / len(items), 3),
                    registros=len(items),
                )
            )
        averages.sort(key=lambda a: a.kpi_code)
        return averages

    @staticmethod
    def _annual_averages(months: list[MonthKPIs]) -> dict[str, AnnualKPIAverage]:
        collected: dict[str, list[float]] = defaultdict(list)
        meta: dict[str, MonthlyKPIAverage] = {}
        for month in months:
            for item in month.kpis:
                meta.setdefault(item.kpi_code, item)
                if item.promedio is not None:
                    collected[item.kpi_code].append(item.promedio)

        result: dict[str, AnnualKPIAverage] = {}
        for code, item in meta.items():
            values = collected.get(code, [])
            result[code] = AnnualKPIAverage(
                kpi_code=code,
                name=item.name,
                unit=item.unit,
                promedio=round(sum(values) / len(values), 3) if values else None,
                max=round(max(values), 3) if values else None,
                min=round(min(values), 3) if values else None,
            )
        return result

    @staticmethod
    def _lot_comparison(
        lot: Lot,
        rows: list[KPIHistory],
        definitions: dict[uuid.UUID, KPIDefinition],
    ) -> LotComparison:
        buckets: dict[tuple[int, str], list[float]] = defaultdict(list)
        for row in rows:
            definition = definitions.get(row.kpi_id)
            if row.lot_id != lot.id or definition is None:
                continue
            buckets[(row.period_end.month, definition.code)].append(row.value)

        values = [
            LotMonthValue(mes=month, kpi_code=code, valor=round(sum(v) / len(v), 3))
            for (month, code), v in sorted(buckets.items())
        ]
        return LotComparison(lot_id=lot.id, lot_name=lot.name, kpis=values)

    def _trends(self, firm_id: uuid.UUID) -> dict[str, list[TrendPoint]]:
        definitions = KPIDefinitionRepository(self._session)
        trends: dict[str, list[TrendPoint]] = {}
        for code in TREND_CODES:
            definition = definitions.get_by_code(code.value)
            if definition is None:
                continue
            trends[code.value] = [
                TrendPoint(
                    period_start=row.period_start,
                    period_end=row.period_end,
                    value=row.value,
                    status=row.status,
                )
                for row in self._history.trend(firm_id, definition.id, 12)
            ]
        return trends

    @staticmethod
    def _decision_impact(decision: DecisionRecord) -> DecisionImpact:
        before = _snapshot(decision.kpis_before)
        after = _snapshot(decision.kpis_after)
        roi = (
            decision.roi_calculated
            if decision.roi_calculated is not None
            else roi_from_snapshots(before, after)
        )
        investment = decision.investment or 0.0
        return DecisionImpact(
            id=decision.id,
            description=decision.description,
            decision_date=decision.decision_date,
            category=decision.category,
            scenario_name=decision.scenario_name,
            investment=investment,
            kpis_before=before,
            kpis_after=after,
            roi=roi,
            impacto_economico=EconomicImpact(
                ahorro=round(investment * roi / 100, 2),
                ingreso_adicional=decision.additional_income or 0.0,
                margen_mejorado=decision.margin_improvement or 0.0,
            ),
            lecciones=decision.lessons or "",
        )

    @staticmethod
    def _lessons(impacts: list[DecisionImpact]) -> list[Lesson]:
        lessons: list[Lesson] = []
        for item in impacts:
            if item.roi > ROI_SUCCESS:
                lessons.append(
                    Lesson(
                        tipo="exito",
                        mensaje=(
                            f'Decision "{item.description}" had a high ROI ({item.roi}%). '
                            "Consider replicating it in other areas."
                        ),
                    )
                )
            elif item.roi < ROI_LEARNING:
                lessons.append(
                    Lesson(
                        tipo="aprendizaje",
                        mensaje=(
                            f'Decision "{item.description}" underperformed (ROI {item.roi}%). '
                            "Review it before similar implementations."
                        ),
                    )
                )
            if item.lecciones:
                lessons.append(Lesson(tipo="documentada", mensaje=item.lecciones))
        return lessons

    @staticmethod
    def _future_recommendations(impacts: list[DecisionImpact]) -> list[str]:
        if not impacts:
            return []

        average = sum(i.roi for i in impacts) / len(impacts)
        if average > 30:
            recommendations = [
                "Keep investing in similar decisions; current strategies show a good return."
            ]
        elif average > 10:
            recommendations = [
                "Decisions show a moderate return; look for operational improvements."
            ]
        else:
            recommendations = ["Revisit the decision strategy as a whole."]

        by_category: dict[str, list[float]] = defaultdict(list)
        for item in impacts:
            if item.category:
                by_category[item.category].append(item.roi)
        if by_category:
            best = max(by_category, key=lambda c: sum(by_category[c]) / len(by_category[c]))
            recommendations.append(
                f'Category "{best}" shows the best performance; favour decisions in this area.'
            )
        return recommendations
