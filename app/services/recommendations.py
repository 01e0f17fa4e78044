"""
app/services/recommendations.py

Automatic recommendations derived from KPIs outside their optimal band.

For a firm and period end, every KPI whose latest value in that period is
AMARILLO or ROJO yields one recommendation. Advice text is static per KPI
code; ROJO entries come first.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.kpi_definition import KPIDefinition
from db.models.kpi_history import KPIHistory
from kpi.codes import KPICode, KPIStatus

logger = logging.getLogger(__name__)

_ADVICE: dict[KPICode, str] = {
    KPICode.GDP: "Review diet quality and pasture allowance; check animal health.",
    KPICode.MORTALIDAD: "Audit the sanitary plan and recent deaths with the veterinarian.",
    KPICode.TASA_DESTETE: "Review breeding management, cow body condition and calving losses.",
    KPICode.INDICE_REPOSICION: "Rebalance purchases against sales to keep stock stable.",
    KPICode.KG_VIVOS_HA: "Adjust stocking rate to the available forage.",
    KPICode.KG_CARNE_PRODUCIDOS: "Check sale weights and timing against the production plan.",
    KPICode.KG_PRODUCIDOS_HA: "Improve productivity per hectare through grazing management.",
    KPICode.COSTO_TOTAL_GANADERO: "Review livestock expenses by category for savings.",
    KPICode.COSTO_POR_KG: "Reduce cost per kg: review feed and health spending against output.",
    KPICode.MARGEN_BRUTO: "Gross margin is off target; review prices, costs and sale timing.",
    KPICode.MARGEN_POR_HA: "Margin per hectare is off target; review land use intensity.",
    KPICode.COSTO_SANITARIO_ANIMAL: "Review the sanitary plan and product prices per head.",
    KPICode.COSTO_ALIMENTACION_KG: "Review supplementation strategy and feed conversion.",
    KPICode.ALTURA_PROMEDIO_PASTURA: "Adjust grazing rotation to recover sward height.",
    KPICode.DIFERENCIA_REMANENTE: "Move animals earlier to respect the target residual height.",
    KPICode.RECEPTIVIDAD_REAL: "Forage supply is off target; adjust stocking or supplement.",
    KPICode.DIAS_OCUPACION: "Review occupation days per paddock in the rotation plan.",
    KPICode.PRESION_PASTOREO: "Grazing pressure is off target; rebalance animals and forage.",
    KPICode.PROYECCIONES_CUMPLIDAS: "Follow up pending livestock works to meet projections.",
    KPICode.DESVIO_PLAN_REAL: "Production deviates from plan; revise the plan or the execution.",
    KPICode.TIEMPO_APROBACION: "Speed up the approval workflow for agricultural works.",
    KPICode.TRABAJOS_SIN_APROBACION: "Clear the backlog of works waiting for approval.",
    KPICode.CALIDAD_DATO: "Complete missing event types and quantities in livestock records.",
}

_FLAGGED = (KPIStatus.ROJO.value, KPIStatus.AMARILLO.value)


@dataclass(frozen=True)
class Recommendation:
    kpi_code: str
    kpi_name: str
    status: str
    value: float
    unit: str
    recommendation: str
    priority: str

    def as_dict(self) -> dict[str, object]:
        return {
            "kpi_code": self.kpi_code,
            "kpi_name": self.kpi_name,
            "status": self.status,
            "value": self.value,
            "unit": self.unit,
            "recommendation": self.recommendation,
            "priority": self.priority,
        }


class RecommendationService:
    def __init__(self, session: Session) -> None:
        self._session = session

    def for_period(self, firm_id: uuid.UUID, period_end: date) -> list[Recommendation]:
        """
        Recommendations for KPIs flagged in the period ending on *period_end*.

        Only the latest row per KPI with that ``period_end`` counts.
        """
        stmt = (
            select(KPIHistory, KPIDefinition)
            .join(KPIDefinition, KPIDefinition.id == KPIHistory.kpi_id)
            .where(
                KPIHistory.firm_id == firm_id,
                KPIHistory.period_end == period_end,
            )
            .order_by(KPIHistory.calculated_at)
        )
        latest: dict[uuid.UUID, tuple[KPIHistory, KPIDefinition]] = {}
        for history, definition in self._session.execute(stmt).all():
            latest[history.kpi_id] = (history, definition)

        recommendations = [
            self._build(history, definition)
            for history, definition in latest.values()
            if history.status in _FLAGGED
        ]
        recommendations.sort(key=lambda r: (r.status != KPIStatus.ROJO.value, r.kpi_code))

        logger.debug(
            "for_period firm_id=%s period_end=%s -> %d recommendations",
            firm_id,
            period_end,
            len(recommendations),
        )
        return recommendations

    @staticmethod
    def _build(history: KPIHistory, definition: KPIDefinition) -> Recommendation:
        try:
            advice = _ADVICE[KPICode(definition.code)]
        except (KeyError, ValueError):
            advice = f"Review the drivers of {definition.name}."
        return Recommendation(
            kpi_code=definition.code,
            kpi_name=definition.name,
            status=history.status,
            value=history.value,
            unit=history.unit,
            recommendation=advice,
            priority="alta" if history.status == KPIStatus.ROJO.value else "media",
        )
