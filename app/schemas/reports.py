"""
app/schemas/reports.py

Typed KPI report models: monthly executive, annual comparative and learning.

Reports are derived from persisted history, alerts and decisions; they are
never stored. ``model_dump_json()`` is the export format.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.alerts import AlertResponse


class ReportPeriod(BaseModel):
    fecha_inicio: date
    fecha_fin: date
    mes: int | None = None
    anio: int | None = None


class ReportKPI(BaseModel):
    """Latest stored value of one KPI in the reported period."""

    kpi_code: str
    name: str
    value: float | None = None
    unit: str
    status: str


class KPIVariation(BaseModel):
    kpi_code: str
    name: str
    value_prev: float | None = None
    value_current: float | None = None
    variation: float = 0.0
    unit: str
    status: str


class MonthAlerts(BaseModel):
    total: int = 0
    criticas: int = 0
    advertencias: int = 0
    alertas: list[AlertResponse] = Field(default_factory=list)


class ReportRecommendation(BaseModel):
    kpi_code: str
    kpi_name: str
    status: str
    value: float
    unit: str
    recommendation: str
    priority: str


class ExecutiveSummary(BaseModel):
    total_kpis: int = 0
    kpis_en_optimo: int = 0
    kpis_en_advertencia: int = 0
    kpis_en_critico: int = 0
    porcentaje_optimo: float = 0.0


class ExecutiveReport(BaseModel):
    tipo_reporte: Literal["ejecutivo_mensual"] = "ejecutivo_mensual"
    firm_id: uuid.UUID
    periodo: ReportPeriod
    fecha_generacion: datetime
    kpis_criticos: list[ReportKPI] = Field(default_factory=list)
    kpis_advertencia: list[ReportKPI] = Field(default_factory=list)
    kpis_optimos: list[ReportKPI] = Field(default_factory=list)
    alertas_del_mes: MonthAlerts = Field(default_factory=MonthAlerts)
    comparacion_intermensual: list[KPIVariation] = Field(default_factory=list)
    recomendaciones: list[ReportRecommendation] = Field(default_factory=list)
    resumen: ExecutiveSummary = Field(default_factory=ExecutiveSummary)


# ---------------------------------------------------------------------------
# Comparative
# ---------------------------------------------------------------------------


class MonthlyKPIAverage(BaseModel):
    kpi_code: str
    name: str
    unit: str
    promedio: float | None = None
    registros: int = 0


class MonthKPIs(BaseModel):
    mes: int
    kpis: list[MonthlyKPIAverage] = Field(default_factory=list)


class AnnualKPIAverage(BaseModel):
    kpi_code: str
    name: str
    unit: str
    promedio: float | None = None
    max: float | None = None
    min: float | None = None


class AnnualSummary(BaseModel):
    total_lotes: int = 0
    kpis_meses: list[MonthKPIs] = Field(default_factory=list)
    promedio_anual: dict[str, AnnualKPIAverage] = Field(default_factory=dict)


class LotMonthValue(BaseModel):
    mes: int
    kpi_code: str
    valor: float


class LotComparison(BaseModel):
    lot_id: uuid.UUID
    lot_name: str
    kpis: list[LotMonthValue] = Field(default_factory=list)


class TrendPoint(BaseModel):
    period_start: date
    period_end: date
    value: float | None = None
    status: str


class ComparativeReport(BaseModel):
    tipo_reporte: Literal["comparativo_anual"] = "comparativo_anual"
    firm_id: uuid.UUID
    anio: int
    periodo: ReportPeriod
    fecha_generacion: datetime
    resumen_anual: AnnualSummary = Field(default_factory=AnnualSummary)
    comparacion_lotes: list[LotComparison] = Field(default_factory=list)
    tendencias_anuales: dict[str, list[TrendPoint]] = Field(default_factory=dict)
    comparar_con: str = "anio_anterior"


# ---------------------------------------------------------------------------
# Learning
# ---------------------------------------------------------------------------


class EconomicImpact(BaseModel):
    ahorro: float = 0.0
    ingreso_adicional: float = 0.0
    margen_mejorado: float = 0.0


class DecisionImpact(BaseModel):
    id: uuid.UUID
    description: str
    decision_date: date
    category: str | None = None
    scenario_name: str | None = None
    investment: float = 0.0
    kpis_before: dict[str, float] = Field(default_factory=dict)
    kpis_after: dict[str, float] = Field(default_factory=dict)
    roi: float = 0.0
    impacto_economico: EconomicImpact = Field(default_factory=EconomicImpact)
    lecciones: str = ""


class ConsolidatedImpact(BaseModel):
    total_decisiones: int = 0
    roi_promedio: float = 0.0
    ahorro_total: float = 0.0
    ingreso_adicional_total: float = 0.0
    margen_mejorado_total: float = 0.0


class Lesson(BaseModel):
    tipo: Literal["exito", "aprendizaje", "documentada"]
    mensaje: str


class LearningReport(BaseModel):
    tipo_reporte: Literal["aprendizaje"] = "aprendizaje"
    firm_id: uuid.UUID
    periodo: ReportPeriod
    fecha_generacion: datetime
    decisiones_tomadas: list[DecisionImpact] = Field(default_factory=list)
    impacto_consolidado: ConsolidatedImpact = Field(default_factory=ConsolidatedImpact)
    lecciones_clave: list[Lesson] = Field(default_factory=list)
    recomendaciones_futuras: list[str] = Field(default_factory=list)
