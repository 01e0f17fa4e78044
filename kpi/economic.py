"""
kpi/economic.py

Economic KPI formulas.

Expenses are matched by category pattern (case-insensitive LIKE):

    %ganad%        livestock costs
    %sanitario%    animal health
    %alimentacion% feed

Expenses and income are not lot-scoped, so these formulas always evaluate
at firm level even when ``scope.lot_id`` is set.
"""

from __future__ import annotations

from dataclasses import replace

from kpi.base import BaseKPIFormula, KPIScope, KPIValue, safe_div
from kpi.codes import KPICode
from kpi.livestock import EVENT_WEIGHING, BeefProducedFormula
from kpi.source import FarmDataSource

CATEGORY_LIVESTOCK = "%ganad%"
CATEGORY_HEALTH = "%sanitario%"
CATEGORY_FEED = "%alimentacion%"


def _firm_scope(scope: KPIScope) -> KPIScope:
    return replace(scope, lot_id=None) if scope.lot_id is not None else scope


class LivestockCostFormula(BaseKPIFormula):
    code = KPICode.COSTO_TOTAL_GANADERO
    unit = "$"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        summary = source.expense_summary(
            scope.firm_id, scope.period_start, scope.period_end, CATEGORY_LIVESTOCK
        )
        if summary.count == 0:
            return self.no_data("No livestock expenses in the period")
        return self.result(summary.total, total_registros=summary.count)


class CostPerKgFormula(BaseKPIFormula):
    code = KPICode.COSTO_POR_KG
    unit = "$/kg"
    decimals = 3

    def __init__(self) -> None:
        self._cost = LivestockCostFormula()
        self._produced = BeefProducedFormula()

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        scope = _firm_scope(scope)
        cost = self._cost.calculate(source, scope)
        produced = self._produced.calculate(source, scope)
        if cost.value is None or produced.value is None:
            return self.no_data("Not enough data to calculate cost per kg")

        per_kg = safe_div(cost.value, produced.value)
        if per_kg is None:
            return self.no_data("No kilograms produced")

        return self.result(per_kg, costo_total=cost.value, kg_producidos=produced.value)


class GrossMarginFormula(BaseKPIFormula):
    code = KPICode.MARGEN_BRUTO
    unit = "$"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        income = source.income_summary(scope.firm_id, scope.period_start, scope.period_end)
        costs = source.expense_summary(
            scope.firm_id, scope.period_start, scope.period_end, CATEGORY_LIVESTOCK
        )
        if income.count == 0 and costs.count == 0:
            return self.no_data("No income or livestock expenses in the period")

        return self.result(
            income.total - costs.total,
            total_ingresos=income.total,
            total_costos=costs.total,
        )


class MarginPerHectareFormula(BaseKPIFormula):
    code = KPICode.MARGEN_POR_HA
    unit = "$/ha"

    def __init__(self) -> None:
        self._margin = GrossMarginFormula()

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        margin = self._margin.calculate(source, scope)
        if margin.value is None:
            return self.no_data("No gross margin data")

        hectares = source.total_hectares(scope.firm_id)
        per_ha = safe_div(margin.value, hectares)
        if per_ha is None:
            return self.no_data("No hectares available")

        return self.result(per_ha, **margin.metadata, total_hectareas=hectares)


class HealthCostPerHeadFormula(BaseKPIFormula):
    code = KPICode.COSTO_SANITARIO_ANIMAL
    unit = "$/animal"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        summary = source.expense_summary(
            scope.firm_id, scope.period_start, scope.period_end, CATEGORY_HEALTH
        )
        if summary.count == 0:
            return self.no_data("No animal health expenses in the period")

        latest = source.latest_livestock_event(
            scope.firm_id, scope.period_end, event_type=EVENT_WEIGHING
        )
        head = latest.quantity if latest is not None else None
        per_head = safe_div(summary.total, head)
        if per_head is None:
            return self.no_data("No head count on record")

        return self.result(
            per_head,
            total_gastos_sanitarios=summary.total,
            total_animales=head,
        )


class FeedCostPerKgFormula(BaseKPIFormula):
    code = KPICode.COSTO_ALIMENTACION_KG
    unit = "$/kg"
    decimals = 3

    def __init__(self) -> None:
        self._produced = BeefProducedFormula()

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        scope = _firm_scope(scope)
        summary = source.expense_summary(
            scope.firm_id, scope.period_start, scope.period_end, CATEGORY_FEED
        )
        if summary.count == 0:
            return self.no_data("No feed expenses in the period")

        produced = self._produced.calculate(source, scope)
        per_kg = safe_div(summary.total, produced.value)
        if per_kg is None:
            return self.no_data("No production data")

        return self.result(
            per_kg,
            total_gastos_alimentacion=summary.total,
            kg_producidos=produced.value,
        )
