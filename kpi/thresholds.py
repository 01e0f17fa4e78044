"""
kpi/thresholds.py

Threshold band evaluation.

A KPI value is classified against three nested bands::

    critical_min < warning_min < optimal_min <= optimal_max < warning_max < critical_max

    VERDE     optimal_min <= v <= optimal_max
    AMARILLO  inside the warning band but outside the optimal band
    ROJO      below critical_min or above critical_max
    AMARILLO  anything left between the warning and critical bands

When a target value is configured the comparison runs on
``value / target * 100`` (percentage of target).
"""

from __future__ import annotations

from dataclasses import dataclass

from kpi.codes import KPIStatus


@dataclass(frozen=True)
class ThresholdBands:
    optimal_min: float
    optimal_max: float
    warning_min: float
    warning_max: float
    critical_min: float
    critical_max: float
    target_value: float | None = None


DEFAULT_BANDS = ThresholdBands(
    optimal_min=0.0,
    optimal_max=100.0,
    warning_min=-10.0,
    warning_max=110.0,
    critical_min=-50.0,
    critical_max=200.0,
)


def comparable_value(value: float, bands: ThresholdBands) -> float:
    """Project *value* onto the scale the bands are expressed in."""
    if bands.target_value:
        return value / bands.target_value * 100
    return value


def evaluate_status(value: float | None, bands: ThresholdBands) -> KPIStatus:
    """
    Classify *value* into VERDE / AMARILLO / ROJO, or SIN_DATOS when missing.
    """
    if value is None:
        return KPIStatus.SIN_DATOS

    v = comparable_value(value, bands)

    if bands.optimal_min <= v <= bands.optimal_max:
        return KPIStatus.VERDE
    if bands.warning_min <= v < bands.optimal_min or bands.optimal_max < v <= bands.warning_max:
        return KPIStatus.AMARILLO
    if v < bands.critical_min or v > bands.critical_max:
        return KPIStatus.ROJO
    return KPIStatus.AMARILLO


def validate_ranges(bands: ThresholdBands) -> list[str]:
    """
    Return human-readable violations of the band ordering; empty when valid.
    """
    errors: list[str] = []

    if bands.optimal_min > bands.optimal_max:
        errors.append("optimal_min must be <= optimal_max")
    if bands.warning_min > bands.warning_max:
        errors.append("warning_min must be <= warning_max")
    if bands.critical_min > bands.critical_max:
        errors.append("critical_min must be <= critical_max")

    if not bands.critical_min < bands.warning_min:
        errors.append("critical_min must be < warning_min")
    if not bands.warning_min < bands.optimal_min:
        errors.append("warning_min must be < optimal_min")
    if not bands.optimal_max < bands.warning_max:
        errors.append("optimal_max must be < warning_max")
    if not bands.warning_max < bands.critical_max:
        errors.append("warning_max must be < critical_max")

    if bands.target_value is not None and bands.target_value <= 0:
        errors.append("target_value must be positive")

    return errors
