"""
kpi/management.py

Management and data-quality KPI formulas.

Approved livestock works stand in for fulfilled projections; the plan used
by DESVIO_PLAN_REAL is the realised production multiplied by a configurable
plan factor.
"""

from __future__ import annotations

from kpi.base import BaseKPIFormula, KPIScope, KPIValue, safe_div
from kpi.codes import KPICode
from kpi.livestock import BeefProducedFormula
from kpi.source import FarmDataSource

STATUS_APPROVED = "APPROVED"
STATUS_PENDING = "PENDING"
DEFAULT_PLAN_FACTOR = 1.2


class ProjectionsMetFormula(BaseKPIFormula):
    code = KPICode.PROYECCIONES_CUMPLIDAS
    unit = "%"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        works = source.livestock_events(
            scope.firm_id, scope.period_start, scope.period_end, lot_id=scope.lot_id
        )
        if not works:
            return self.no_data("No livestock works in the period")

        approved = sum(1 for w in works if w.status == STATUS_APPROVED)
        share = approved / len(works) * 100
        return self.result(
            share,
            trabajos_aprobados=approved,
            trabajos_totales=len(works),
        )


class PlanDeviationFormula(BaseKPIFormula):
    code = KPICode.DESVIO_PLAN_REAL
    unit = "%"

    def __init__(self, plan_factor: float = DEFAULT_PLAN_FACTOR) -> None:
        self._produced = BeefProducedFormula()
        self._plan_factor = plan_factor

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        produced = self._produced.calculate(source, scope)
        if not produced.value:
            return self.no_data("No production data")

        planned = produced.value * self._plan_factor
        deviation = safe_div(produced.value - planned, planned)
        if deviation is None:
            return self.no_data("Planned production is zero")

        return self.result(
            deviation * 100,
            kg_planificados=round(planned, 2),
            kg_real=produced.value,
        )


class ApprovalTimeFormula(BaseKPIFormula):
    """Mean whole days between creation and approval of agricultural works."""

    code = KPICode.TIEMPO_APROBACION
    unit = "días"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        works = source.agricultural_works(
            scope.firm_id, scope.period_start, scope.period_end, status=STATUS_APPROVED
        )
        if not works:
            return self.no_data("No approved works in the period")

        durations = [(w.updated_at - w.created_at).days for w in works]
        return self.result(
            sum(durations) / len(durations),
            trabajos_aprobados=len(works),
            tiempo_maximo=max(durations),
            tiempo_minimo=min(durations),
        )


class UnapprovedWorksFormula(BaseKPIFormula):
    code = KPICode.TRABAJOS_SIN_APROBACION
    unit = "%"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        works = source.agricultural_works(scope.firm_id, scope.period_start, scope.period_end)
        if not works:
            return self.no_data("No agricultural works in the period")

        pending = sum(1 for w in works if w.status == STATUS_PENDING)
        return self.result(
            pending / len(works) * 100,
            trabajos_pendientes=pending,
            trabajos_totales=len(works),
        )


class DataQualityFormula(BaseKPIFormula):
    """Share of livestock records carrying both an event type and a quantity."""

    code = KPICode.CALIDAD_DATO
    unit = "%"

    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        records = source.livestock_events(
            scope.firm_id, scope.period_start, scope.period_end, lot_id=scope.lot_id
        )
        if not records:
            return self.no_data("No records in the period")

        complete = sum(1 for r in records if r.event_type and r.quantity is not None)
        return self.result(
            complete / len(records) * 100,
            registros_totales=len(records),
            registros_completos=complete,
        )
