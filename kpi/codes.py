"""
kpi/codes.py

Closed vocabularies of the KPI engine: codes, calculation tiers, statuses
and the built-in catalogue used to seed ``kpi_definitions``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class KPICode(str, Enum):
    """The 23 mandatory KPIs."""

    # Livestock production
    GDP = "GDP"
    MORTALIDAD = "MORTALIDAD"
    TASA_DESTETE = "TASA_DESTETE"
    INDICE_REPOSICION = "INDICE_REPOSICION"
    KG_VIVOS_HA = "KG_VIVOS_HA"
    KG_CARNE_PRODUCIDOS = "KG_CARNE_PRODUCIDOS"
    KG_PRODUCIDOS_HA = "KG_PRODUCIDOS_HA"

    # Economic
    COSTO_TOTAL_GANADERO = "COSTO_TOTAL_GANADERO"
    COSTO_POR_KG = "COSTO_POR_KG"
    MARGEN_BRUTO = "MARGEN_BRUTO"
    MARGEN_POR_HA = "MARGEN_POR_HA"
    COSTO_SANITARIO_ANIMAL = "COSTO_SANITARIO_ANIMAL"
    COSTO_ALIMENTACION_KG = "COSTO_ALIMENTACION_KG"

    # Pasture
    ALTURA_PROMEDIO_PASTURA = "ALTURA_PROMEDIO_PASTURA"
    DIFERENCIA_REMANENTE = "DIFERENCIA_REMANENTE"
    RECEPTIVIDAD_REAL = "RECEPTIVIDAD_REAL"
    DIAS_OCUPACION = "DIAS_OCUPACION"
    PRESION_PASTOREO = "PRESION_PASTOREO"

    # Management
    PROYECCIONES_CUMPLIDAS = "PROYECCIONES_CUMPLIDAS"
    DESVIO_PLAN_REAL = "DESVIO_PLAN_REAL"
    TIEMPO_APROBACION = "TIEMPO_APROBACION"
    TRABAJOS_SIN_APROBACION = "TRABAJOS_SIN_APROBACION"
    CALIDAD_DATO = "CALIDAD_DATO"


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class KPIStatus(str, Enum):
    VERDE = "VERDE"
    AMARILLO = "AMARILLO"
    ROJO = "ROJO"
    SIN_DATOS = "SIN_DATOS"


class UnknownKPICodeError(ValueError):
    """Raised when a string does not name a member of :class:`KPICode`."""


def parse_code(raw: str | KPICode) -> KPICode:
    """Coerce *raw* into a :class:`KPICode` or raise :class:`UnknownKPICodeError`."""
    if isinstance(raw, KPICode):
        return raw
    try:
        return KPICode(raw.strip().upper())
    except ValueError as exc:
        raise UnknownKPICodeError(f"KPI not implemented: {raw!r}") from exc


# ---------------------------------------------------------------------------
# Built-in catalogue
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KPICatalogueEntry:
    code: KPICode
    name: str
    category: str
    unit: str
    frequency: Frequency


_C = KPICatalogueEntry

KPI_CATALOGUE: tuple[KPICatalogueEntry, ...] = (
    _C(KPICode.GDP, "Ganancia diaria de peso", "GANADERO", "kg/día", Frequency.WEEKLY),
    _C(KPICode.MORTALIDAD, "Tasa de mortalidad", "GANADERO", "%", Frequency.WEEKLY),
    _C(KPICode.TASA_DESTETE, "Tasa de destete", "GANADERO", "%", Frequency.MONTHLY),
    _C(KPICode.INDICE_REPOSICION, "Índice de reposición", "GANADERO", "ratio", Frequency.MONTHLY),
    _C(KPICode.KG_VIVOS_HA, "Kg vivos por hectárea", "GANADERO", "kg/ha", Frequency.WEEKLY),
    _C(KPICode.KG_CARNE_PRODUCIDOS, "Kg de carne producidos", "GANADERO", "kg", Frequency.MONTHLY),
    _C(KPICode.KG_PRODUCIDOS_HA, "Kg producidos por hectárea", "GANADERO", "kg/ha", Frequency.MONTHLY),
    _C(KPICode.COSTO_TOTAL_GANADERO, "Costo total ganadero", "ECONOMICO", "$", Frequency.MONTHLY),
    _C(KPICode.COSTO_POR_KG, "Costo por kg producido", "ECONOMICO", "$/kg", Frequency.MONTHLY),
    _C(KPICode.MARGEN_BRUTO, "Margen bruto", "ECONOMICO", "$", Frequency.MONTHLY),
    _C(KPICode.MARGEN_POR_HA, "Margen por hectárea", "ECONOMICO", "$/ha", Frequency.MONTHLY),
    _C(KPICode.COSTO_SANITARIO_ANIMAL, "Costo sanitario por animal", "ECONOMICO", "$/animal", Frequency.MONTHLY),
    _C(KPICode.COSTO_ALIMENTACION_KG, "Costo de alimentación por kg", "ECONOMICO", "$/kg", Frequency.MONTHLY),
    _C(KPICode.ALTURA_PROMEDIO_PASTURA, "Altura promedio de pastura", "PASTURAS", "cm", Frequency.DAILY),
    _C(KPICode.DIFERENCIA_REMANENTE, "Diferencia vs remanente objetivo", "PASTURAS", "cm", Frequency.DAILY),
    _C(KPICode.RECEPTIVIDAD_REAL, "Receptividad real", "PASTURAS", "kg MS/ha", Frequency.DAILY),
    _C(KPICode.DIAS_OCUPACION, "Días de ocupación por lote", "PASTURAS", "días", Frequency.WEEKLY),
    _C(KPICode.PRESION_PASTOREO, "Índice de presión de pastoreo", "PASTURAS", "ratio", Frequency.DAILY),
    _C(KPICode.PROYECCIONES_CUMPLIDAS, "Proyecciones cumplidas", "GESTION", "%", Frequency.WEEKLY),
    _C(KPICode.DESVIO_PLAN_REAL, "Desvío plan vs real", "GESTION", "%", Frequency.MONTHLY),
    _C(KPICode.TIEMPO_APROBACION, "Tiempo promedio de aprobación", "GESTION", "días", Frequency.WEEKLY),
    _C(KPICode.TRABAJOS_SIN_APROBACION, "Trabajos sin aprobación", "GESTION", "%", Frequency.DAILY),
    _C(KPICode.CALIDAD_DATO, "Calidad del dato", "GESTION", "%", Frequency.DAILY),
)

CATALOGUE_BY_CODE: dict[KPICode, KPICatalogueEntry] = {e.code: e for e in KPI_CATALOGUE}
