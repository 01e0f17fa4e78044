"""
kpi/livestock.py

Livestock production KPI formulas.

Formulas
--------
GDP                 = (last_weight - first_weight) / days_between / head_count
MORTALIDAD          = deaths / opening_inventory * 100
TASA_DESTETE        = weaned_calves / cows_in_service * 100
INDICE_REPOSICION   = head_purchased / head_sold
KG_VIVOS_HA         = average_weight * head_count / hectares
KG_CARNE_PRODUCIDOS = sum(sale_weight * sale_head)
KG_PRODUCIDOS_HA    = KG_CARNE_PRODUCIDOS / hectares

Weights come from ``pesada`` events, opening inventories from the latest
event dated on or before the period start. Every formula honours
``scope.lot_id`` when given.
"""

from __future__ import annotations

from kpi.base import BaseKPIFormula, KPIScope, KPIValue, safe_div
from kpi.codes import KPICode
from kpi.source import FarmDataSource

EVENT_WEIGHING = "pesada"
EVENT_DEATH = "muerte"
EVENT_WEANING = "destete"
EVENT_PURCHASE = "compra"
EVENT_SALE = "venta"


def _sum_quantity(events) -> float:
    return sum(e.quantity or 0 for e in events)


class GDPFormula(BaseKPIFormula):
    """Average daily weight gain per head between the first and last weighing."""

    code = KPICode.GDP
    unit = "kg/día"
    decimals = 3

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        weighings = source.livestock_events(
            scope.firm_id,
            scope.period_start,
            scope.period_end,
            event_type=EVENT_WEIGHING,
            lot_id=scope.lot_id,
        )
        if len(weighings) < 2:
            return self.no_data(
                "At least 2 weighings are required to calculate GDP",
                pesadas_usadas=len(weighings),
            )

        first, last = weighings[0], weighings[-1]
        if first.average_weight is None or last.average_weight is None:
            return self.no_data("Weighings without average weight")

        days = (last.date - first.date).days
        gain = safe_div(last.average_weight - first.average_weight, days)
        if gain is None:
            return self.no_data("No days elapsed between weighings")

        per_head = safe_div(gain, first.quantity)
        if per_head is None:
            return self.no_data("First weighing has no head count")

        return self.result(
            per_head,
            peso_inicial=first.average_weight,
            peso_final=last.average_weight,
            dias=days,
            cantidad_animales=first.quantity,
            pesadas_usadas=len(weighings),
        )


class MortalityFormula(BaseKPIFormula):
    code = KPICode.MORTALIDAD
    unit = "%"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        events = source.livestock_events(
            scope.firm_id, scope.period_start, scope.period_end, lot_id=scope.lot_id
        )
        if not events:
            return self.no_data("No livestock records in the period")

        deaths = _sum_quantity(e for e in events if e.event_type == EVENT_DEATH)
        opening = source.latest_livestock_event(
            scope.firm_id, scope.period_start, lot_id=scope.lot_id
        )
        inventory = opening.quantity if opening is not None else None
        rate = safe_div(deaths, inventory)
        if rate is None:
            return self.no_data("No opening inventory", total_muertes=deaths)

        return self.result(rate * 100, total_muertes=deaths, inventario_inicial=inventory)


class WeaningRateFormula(BaseKPIFormula):
    code = KPICode.TASA_DESTETE
    unit = "%"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        events = source.livestock_events(
            scope.firm_id, scope.period_start, scope.period_end, lot_id=scope.lot_id
        )
        if not events:
            return self.no_data("No livestock records in the period")

        weaned = _sum_quantity(e for e in events if e.event_type == EVENT_WEANING)
        reference = source.latest_livestock_event(
            scope.firm_id,
            scope.period_start,
            event_type=EVENT_WEIGHING,
            lot_id=scope.lot_id,
        )
        cows = reference.quantity if reference is not None else None
        rate = safe_div(weaned, cows)
        if rate is None:
            return self.no_data("No cows in service on record", terneros_destetados=weaned)

        return self.result(rate * 100, terneros_destetados=weaned, vacas_servicio=cows)


class ReplacementIndexFormula(BaseKPIFormula):
    code = KPICode.INDICE_REPOSICION
    unit = "ratio"
    decimals = 3

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        purchases = source.livestock_events(
            scope.firm_id,
            scope.period_start,
            scope.period_end,
            event_type=EVENT_PURCHASE,
            lot_id=scope.lot_id,
        )
        sales = source.livestock_events(
            scope.firm_id,
            scope.period_start,
            scope.period_end,
            event_type=EVENT_SALE,
            lot_id=scope.lot_id,
        )
        head_in = _sum_quantity(purchases)
        head_out = _sum_quantity(sales)
        index = safe_div(head_in, head_out)
        if index is None:
            return self.no_data("No sales in the period", vaquillonas_ingreso=head_in)

        return self.result(index, vaquillonas_ingreso=head_in, vacas_egreso=head_out)


class LiveWeightPerHectareFormula(BaseKPIFormula):
    code = KPICode.KG_VIVOS_HA
    unit = "kg/ha"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        latest = source.latest_livestock_event(
            scope.firm_id,
            scope.period_end,
            event_type=EVENT_WEIGHING,
            lot_id=scope.lot_id,
        )
        if latest is None or latest.average_weight is None or not latest.quantity:
            return self.no_data("No weighing on record")

        hectares = source.total_hectares(scope.firm_id, scope.lot_id)
        density = safe_div(latest.average_weight * latest.quantity, hectares)
        if density is None:
            return self.no_data("No hectares available")

        return self.result(
            density,
            peso_promedio_animal=latest.average_weight,
            total_animales=latest.quantity,
            total_hectareas=hectares,
        )


class BeefProducedFormula(BaseKPIFormula):
    code = KPICode.KG_CARNE_PRODUCIDOS
    unit = "kg"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        sales = source.livestock_events(
            scope.firm_id,
            scope.period_start,
            scope.period_end,
            event_type=EVENT_SALE,
            lot_id=scope.lot_id,
        )
        if not sales:
            return self.no_data("No sales in the period")

        produced = sum((s.average_weight or 0) * (s.quantity or 0) for s in sales)
        return self.result(
            produced,
            total_ventas=len(sales),
            animales_vendidos=_sum_quantity(sales),
        )


class BeefProducedPerHectareFormula(BaseKPIFormula):
    code = KPICode.KG_PRODUCIDOS_HA
    unit = "kg/ha"

    def __init__(self) -> None:
        self._produced = BeefProducedFormula()

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        produced = self._produced.calculate(source, scope)
        if produced.value is None:
            return self.no_data("No production data")

        hectares = source.total_hectares(scope.firm_id, scope.lot_id)
        per_ha = safe_div(produced.value, hectares)
        if per_ha is None:
            return self.no_data("No hectares available")

        return self.result(per_ha, **produced.metadata, total_hectareas=hectares)
