"""
kpi/pasture.py

Pasture KPI formulas.

RECEPTIVIDAD_REAL uses the rule-of-thumb conversion of 200 kg of dry
matter per hectare for each centimetre of sward above the target remnant.
"""

from __future__ import annotations

from kpi.base import BaseKPIFormula, KPIScope, KPIValue, safe_div
from kpi.codes import KPICode
from kpi.livestock import LiveWeightPerHectareFormula
from kpi.source import FarmDataSource

DEFAULT_REMNANT_CM = 5.0
DRY_MATTER_PER_CM = 200


class PastureHeightFormula(BaseKPIFormula):
    code = KPICode.ALTURA_PROMEDIO_PASTURA
    unit = "cm"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        readings = [
            r
            for r in source.pasture_readings(
                scope.firm_id, scope.period_start, scope.period_end, lot_id=scope.lot_id
            )
            if r.altura_promedio_cm is not None
        ]
        if not readings:
            return self.no_data("No pasture monitoring data")

        mean = sum(r.altura_promedio_cm for r in readings) / len(readings)
        return self.result(mean, total_mediciones=len(readings))


class RemnantGapFormula(BaseKPIFormula):
    """Average sward height minus the target remnant of the latest reading."""

    code = KPICode.DIFERENCIA_REMANENTE
    unit = "cm"

    def __init__(self, default_remnant_cm: float = DEFAULT_REMNANT_CM) -> None:
        self._height = PastureHeightFormula()
        self._default_remnant_cm = default_remnant_cm

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        height = self._height.calculate(source, scope)
        if height.value is None:
            return self.no_data("No pasture height data")

        readings = source.pasture_readings(
            scope.firm_id, scope.period_start, scope.period_end, lot_id=scope.lot_id
        )
        remnant = self._default_remnant_cm
        if readings and readings[-1].remanente_objetivo_cm:
            remnant = readings[-1].remanente_objetivo_cm

        return self.result(
            height.value - remnant,
            altura_actual=height.value,
            remanente_objetivo=remnant,
        )


class CarryingCapacityFormula(BaseKPIFormula):
    code = KPICode.RECEPTIVIDAD_REAL
    unit = "kg MS/ha"

    def __init__(self, default_remnant_cm: float = DEFAULT_REMNANT_CM) -> None:
        self._gap = RemnantGapFormula(default_remnant_cm)

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        gap = self._gap.calculate(source, scope)
        if gap.value is None:
            return self.no_data("No pasture data")

        return self.result(
            gap.value * DRY_MATTER_PER_CM,
            **gap.metadata,
            factor_conversion=DRY_MATTER_PER_CM,
        )


class OccupancyDaysFormula(BaseKPIFormula):
    """Distinct days with livestock activity in one lot."""

    code = KPICode.DIAS_OCUPACION
    unit = "días"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        if scope.lot_id is None:
            return self.no_data("Requires a lot id")

        movements = source.livestock_events(
            scope.firm_id, scope.period_start, scope.period_end, lot_id=scope.lot_id
        )
        if not movements:
            return self.no_data("No livestock movements in the lot", movimientos_registrados=0)

        distinct_days = len({m.date for m in movements})
        return self.result(distinct_days, movimientos_registrados=len(movements))


class GrazingPressureFormula(BaseKPIFormula):
    code = KPICode.PRESION_PASTOREO
    unit = "ratio"
    decimals = 3

    def __init__(self, default_remnant_cm: float = DEFAULT_REMNANT_CM) -> None:
        self._capacity = CarryingCapacityFormula(default_remnant_cm)
        self._stocking = LiveWeightPerHectareFormula()

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        capacity = self._capacity.calculate(source, scope)
        stocking = self._stocking.calculate(source, scope)
        if stocking.value is None:
            return self.no_data("Not enough data to calculate grazing pressure")

        pressure = safe_div(stocking.value, capacity.value)
        if pressure is None:
            return self.no_data("Not enough data to calculate grazing pressure")

        return self.result(
            pressure,
            kg_vivos_ha=stocking.value,
            receptividad_real=capacity.value,
        )
