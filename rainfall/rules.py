"""
rainfall/rules.py

Rainfall alert rule catalogue.

Each rule is static configuration: identifier, priority, numeric thresholds
and two pure callables. ``validate`` decides whether the measured situation
breaches the rule and ``build_message`` renders the alert text. Neither
touches the database; the alert service feeds them measurements and persists
whatever they produce.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

PRIORITY_MEDIUM = "media"
PRIORITY_HIGH = "alta"

CRITICAL_CROP_STAGES = frozenset({"floracion", "llenado_grano"})

AUTO_CHECK_HOUR = 6
AUTO_CHECK_INTERVAL_HOURS = 24


@dataclass(frozen=True)
class RuleMessage:
    titulo: str
    descripcion: str
    recomendacion: str


@dataclass(frozen=True)
class RainfallAlertRule:
    id: str
    nombre: str
    prioridad: str
    validate: Callable[..., bool]
    build_message: Callable[..., RuleMessage]
    enabled: bool = True
    thresholds: Mapping[str, float] = field(default_factory=dict)

    def threshold(self, name: str) -> float:
        return self.thresholds[name]


# ---------------------------------------------------------------------------
# Rule predicates and messages
# ---------------------------------------------------------------------------


def _moderate_drought_message(acumulado: float, dias: int, **_: Any) -> RuleMessage:
    return RuleMessage(
        titulo="Moderate water deficit",
        descripcion=f"Only {acumulado}mm recorded in the last {dias} days.",
        recomendacion="Monitor soil moisture and consider supplementary irrigation.",
    )


def _severe_drought_message(acumulado: float, dias: int, **_: Any) -> RuleMessage:
    deficit = round(SEQUIA_MODERADA.threshold("min_mm") - acumulado, 1)
    return RuleMessage(
        titulo="SEVERE water deficit",
        descripcion=(
            f"Only {acumulado}mm recorded in the last {dias} days. "
            f"Deficit of {deficit}mm."
        ),
        recomendacion=(
            "Urgent: evaluate emergency irrigation. Review pasture carrying "
            "capacity and consider stocking adjustments."
        ),
    )


def _excess_message(acumulado: float, dias: int, **_: Any) -> RuleMessage:
    return RuleMessage(
        titulo="Excess rainfall",
        descripcion=f"{acumulado}mm recorded in the last {dias} days.",
        recomendacion="Check drainage, watch for waterlogging and delay machinery work.",
    )


def _dry_campaign_valid(porcentaje: float, promedio: float, **_: Any) -> bool:
    if not promedio:
        return False
    return porcentaje < CAMPANIA_SECA.threshold("min_percent")


def _dry_campaign_message(
    acumulado: float,
    promedio: float,
    porcentaje: float,
    campania: str,
    **_: Any,
) -> RuleMessage:
    return RuleMessage(
        titulo="Dry campaign",
        descripcion=(
            f"Campaign {campania} has accumulated {acumulado}mm, "
            f"{porcentaje}% of the historical mean ({promedio}mm)."
        ),
        recomendacion="Review the forage plan and reserves for the rest of the campaign.",
    )


def _dry_days_message(dias: int, **_: Any) -> RuleMessage:
    return RuleMessage(
        titulo="Prolonged dry spell",
        descripcion=f"{dias} consecutive days without significant rain (>=1mm).",
        recomendacion="Check water supply for livestock and pasture condition.",
    )


def _critical_stage_message(acumulado: float, dias: int, etapa: str, **_: Any) -> RuleMessage:
    return RuleMessage(
        titulo="Water deficit at a critical crop stage",
        descripcion=f"Only {acumulado}mm in the last {dias} days during {etapa}.",
        recomendacion="Prioritise irrigation for the affected crops; yield is at risk.",
    )


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

SEQUIA_MODERADA = RainfallAlertRule(
    id="sequia_moderada",
    nombre="Moderate drought",
    prioridad=PRIORITY_MEDIUM,
    thresholds={"days": 30, "min_mm": 50},
    validate=lambda acumulado, **_: acumulado < SEQUIA_MODERADA.threshold("min_mm"),
    build_message=_moderate_drought_message,
)

SEQUIA_SEVERA = RainfallAlertRule(
    id="sequia_severa",
    nombre="Severe drought",
    prioridad=PRIORITY_HIGH,
    thresholds={"days": 30, "min_mm": 20},
    validate=lambda acumulado, **_: acumulado < SEQUIA_SEVERA.threshold("min_mm"),
    build_message=_severe_drought_message,
)

EXCESO_AGUA = RainfallAlertRule(
    id="exceso_agua",
    nombre="Excess rainfall",
    prioridad=PRIORITY_MEDIUM,
    thresholds={"days": 7, "max_mm": 150},
    validate=lambda acumulado, **_: acumulado > EXCESO_AGUA.threshold("max_mm"),
    build_message=_excess_message,
)

CAMPANIA_SECA = RainfallAlertRule(
    id="campania_seca",
    nombre="Dry campaign",
    prioridad=PRIORITY_HIGH,
    thresholds={"min_percent": 70},
    validate=_dry_campaign_valid,
    build_message=_dry_campaign_message,
)

DIAS_SIN_LLUVIA = RainfallAlertRule(
    id="dias_sin_lluvia",
    nombre="Days without rain",
    prioridad=PRIORITY_MEDIUM,
    thresholds={"days": 21},
    validate=lambda dias, **_: dias >= DIAS_SIN_LLUVIA.threshold("days"),
    build_message=_dry_days_message,
)

DEFICIT_ETAPA_CRITICA = RainfallAlertRule(
    id="deficit_etapa_critica",
    nombre="Deficit at critical crop stage",
    prioridad=PRIORITY_HIGH,
    thresholds={"days": 15, "min_mm": 30},
    validate=lambda acumulado, etapa=None, **_: (
        acumulado < DEFICIT_ETAPA_CRITICA.threshold("min_mm") and etapa in CRITICAL_CROP_STAGES
    ),
    build_message=_critical_stage_message,
)

RAINFALL_RULES: tuple[RainfallAlertRule, ...] = (
    SEQUIA_MODERADA,
    SEQUIA_SEVERA,
    EXCESO_AGUA,
    CAMPANIA_SECA,
    DIAS_SIN_LLUVIA,
    DEFICIT_ETAPA_CRITICA,
)

_RULES_BY_ID = {rule.id: rule for rule in RAINFALL_RULES}


def get_rule(rule_id: str) -> RainfallAlertRule | None:
    return _RULES_BY_ID.get(rule_id)


def enabled_rules() -> list[RainfallAlertRule]:
    return [rule for rule in RAINFALL_RULES if rule.enabled]
