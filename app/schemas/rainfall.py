"""
app/schemas/rainfall.py

Response schemas for rainfall analytics and rainfall alert checks.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field


class RainfallAccumulation(BaseModel):
    acumulado: float
    registros: int = Field(..., ge=0)
    fecha_inicio: date
    fecha_fin: date


class MonthlyRainfall(BaseModel):
    anio: int
    mes: int
    acumulado: float
    dias: int = Field(..., ge=0)
    promedio_diario: float


class CampaignRainfall(BaseModel):
    campania: str
    anio_inicio: int
    anio_fin: int
    fecha_inicio: date
    fecha_fin: date
    acumulado: float
    registros: int = Field(..., ge=0)
    clasificacion: str | None = None
    porcentaje: int | None = None


class HistoricalYear(BaseModel):
    anio: int
    acumulado: float


class HistoricalComparison(BaseModel):
    acumulado_actual: float
    promedio_historico: float
    diferencia: float
    porcentaje_diferencia: float
    anios_considerados: int = Field(..., ge=0)
    clasificacion: str
    acumulados_historicos: list[HistoricalYear] = Field(default_factory=list)


class MonthlyDistribution(BaseModel):
    meses: list[MonthlyRainfall] = Field(default_factory=list)
    total_acumulado: float
    total_registros: int = Field(..., ge=0)


class DeficitAssessment(BaseModel):
    hay_deficit: bool
    acumulado: float
    umbral: float
    dias_analizados: int
    porcentaje_del_umbral: int
    severidad: str
    dias_sin_lluvia: int
    fecha_inicio: date
    fecha_fin: date


class ExcessAssessment(BaseModel):
    hay_exceso: bool
    acumulado: float
    umbral: float
    dias_analizados: int
    porcentaje_sobre_umbral: int
    severidad: str
    fecha_inicio: date
    fecha_fin: date


class WaterBalanceResponse(BaseModel):
    balance: float
    precipitacion: float
    evapotranspiracion: float
    clasificacion: str
    descripcion: str
    dias: int
    fecha_inicio: date
    fecha_fin: date


class InterannualComparison(BaseModel):
    campanias: list[CampaignRainfall] = Field(default_factory=list)
    promedio_historico: float
    total_campanias: int = Field(..., ge=0)


class RainfallStatistics(BaseModel):
    """
    Dashboard snapshot of a premise's rainfall situation.
    """

    ultimos_30_dias: RainfallAccumulation
    mes_actual: RainfallAccumulation
    campania_actual: CampaignRainfall
    deficit_hidrico: DeficitAssessment
    exceso_lluvia: ExcessAssessment
    dias_sin_lluvia: int
    fecha_consulta: datetime


class RainfallCheckResult(BaseModel):
    """Outcome of one rule check; ``error`` is set when the check itself failed."""

    check: str
    alerta_creada: bool = False
    alerta_id: uuid.UUID | None = None
    regla: str | None = None
    error: str | None = None


class RainfallCheckSummary(BaseModel):
    total_alertas: int = Field(..., ge=0)
    alertas_creadas: int = Field(..., ge=0)
    detalles: list[RainfallCheckResult] = Field(default_factory=list)


class RainfallStatusSummary(BaseModel):
    alertas_pendientes: int = Field(..., ge=0)
    alertas_por_tipo: dict[str, int] = Field(default_factory=dict)
    deficit: DeficitAssessment
    exceso: ExcessAssessment
    dias_sin_lluvia: int
