"""
kpi/registry.py

Typed KPI formula registry and the single-KPI calculation entry points.

The registry is keyed by :class:`KPICode`. It is checked on import so that
adding a code without a formula, or a formula without a code, fails fast.
"""

from __future__ import annotations

import uuid
from datetime import date

from kpi.base import BaseKPIFormula, KPIScope, KPIValue
from kpi.codes import KPICode, parse_code
from kpi.economic import (
    CostPerKgFormula,
    FeedCostPerKgFormula,
    GrossMarginFormula,
    HealthCostPerHeadFormula,
    LivestockCostFormula,
    MarginPerHectareFormula,
)
from kpi.livestock import (
    BeefProducedFormula,
    BeefProducedPerHectareFormula,
    GDPFormula,
    LiveWeightPerHectareFormula,
    MortalityFormula,
    ReplacementIndexFormula,
    WeaningRateFormula,
)
from kpi.management import (
    DEFAULT_PLAN_FACTOR,
    ApprovalTimeFormula,
    DataQualityFormula,
    PlanDeviationFormula,
    ProjectionsMetFormula,
    UnapprovedWorksFormula,
)
from kpi.pasture import (
    DEFAULT_REMNANT_CM,
    CarryingCapacityFormula,
    GrazingPressureFormula,
    OccupancyDaysFormula,
    PastureHeightFormula,
    RemnantGapFormula,
)
from kpi.source import FarmDataSource

FormulaRegistry = dict[KPICode, BaseKPIFormula]


class KPIRegistryError(RuntimeError):
    """Raised when the registry does not cover :class:`KPICode` exactly."""


def build_formula_registry(
    *,
    plan_factor: float = DEFAULT_PLAN_FACTOR,
    default_remnant_cm: float = DEFAULT_REMNANT_CM,
) -> FormulaRegistry:
    """
    Instantiate every formula with the given tunables.

    Raises
    ------
    KPIRegistryError
        When the set of registered codes differs from :class:`KPICode`.
    """
    formulas: list[BaseKPIFormula] = [
        GDPFormula(),
        MortalityFormula(),
        WeaningRateFormula(),
        ReplacementIndexFormula(),
        LiveWeightPerHectareFormula(),
        BeefProducedFormula(),
        BeefProducedPerHectareFormula(),
        LivestockCostFormula(),
        CostPerKgFormula(),
        GrossMarginFormula(),
        MarginPerHectareFormula(),
        HealthCostPerHeadFormula(),
        FeedCostPerKgFormula(),
        PastureHeightFormula(),
        RemnantGapFormula(default_remnant_cm),
        CarryingCapacityFormula(default_remnant_cm),
        OccupancyDaysFormula(),
        GrazingPressureFormula(default_remnant_cm),
        ProjectionsMetFormula(),
        PlanDeviationFormula(plan_factor),
        ApprovalTimeFormula(),
        UnapprovedWorksFormula(),
        DataQualityFormula(),
    ]
    registry: FormulaRegistry = {f.code: f for f in formulas}

    missing = set(KPICode) - set(registry)
    if missing or len(registry) != len(formulas):
        raise KPIRegistryError(
            f"Formula registry out of sync with KPICode; missing={sorted(c.value for c in missing)}"
        )
    return registry


FORMULA_REGISTRY: FormulaRegistry = build_formula_registry()


def calculate_kpi(
    source: FarmDataSource,
    firm_id: uuid.UUID,
    code: KPICode | str,
    period_start: date,
    period_end: date,
    lot_id: uuid.UUID | None = None,
    *,
    registry: FormulaRegistry | None = None,
) -> KPIValue:
    """
    Evaluate one KPI for a firm over ``[period_start, period_end]``.

    Raises
    ------
    UnknownKPICodeError
        When *code* is not a known KPI code.
    """
    kpi_code = parse_code(code)
    formula = (registry or FORMULA_REGISTRY)[kpi_code]
    scope = KPIScope(
        firm_id=firm_id,
        period_start=period_start,
        period_end=period_end,
        lot_id=lot_id,
    )
    return formula.calculate(source, scope)


def calculate_all_kpis(
    source: FarmDataSource,
    firm_id: uuid.UUID,
    period_start: date,
    period_end: date,
    *,
    registry: FormulaRegistry | None = None,
) -> dict[KPICode, KPIValue]:
    """
    Evaluate every KPI for a firm. A formula that raises yields a ``None``
    value carrying the error text instead of aborting the batch.
    """
    formulas = registry or FORMULA_REGISTRY
    results: dict[KPICode, KPIValue] = {}
    for code, formula in formulas.items():
        scope = KPIScope(firm_id=firm_id, period_start=period_start, period_end=period_end)
        try:
            results[code] = formula.calculate(source, scope)
        except Exception as exc:  # noqa: BLE001
            results[code] = KPIValue(value=None, unit=formula.unit, message=str(exc))
    return results
