"""
rainfall/calculations.py

Pure rainfall arithmetic: accumulation, grouping, campaign windows,
dry spells, water balance and severity banding.

Nothing in this module touches the database or the clock; callers pass
``today`` explicitly. Readings are any objects exposing ``fecha`` (date)
and ``mm`` (number or None).

Campaign convention
-------------------
A campaign runs from July 1 to June 30. July-December dates belong to the
campaign that starts that year; January-June dates to the one that started
the previous year.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Protocol

CAMPAIGN_START_MONTH = 7


class RainfallReading(Protocol):
    fecha: date
    mm: float | None


class Severity(str, Enum):
    NINGUNO = "NINGUNO"
    LEVE = "LEVE"
    MODERADO = "MODERADO"
    SEVERO = "SEVERO"


class CampaignClass(str, Enum):
    HUMEDA = "HUMEDA"
    NORMAL = "NORMAL"
    SECA = "SECA"
    MUY_SECA = "MUY_SECA"
    SIN_DATOS = "SIN_DATOS"


class BalanceClass(str, Enum):
    EXCESO = "EXCESO"
    EQUILIBRIO = "EQUILIBRIO"
    DEFICIT_LEVE = "DEFICIT_LEVE"
    DEFICIT_SEVERO = "DEFICIT_SEVERO"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CampaignRange:
    start: date
    end: date
    start_year: int

    @property
    def end_year(self) -> int:
        return self.start_year + 1

    @property
    def nombre(self) -> str:
        return f"{self.start_year}/{self.end_year}"


@dataclass(frozen=True)
class CampaignClassification:
    clasificacion: CampaignClass
    descripcion: str
    porcentaje: int | None = None


@dataclass
class PeriodBucket:
    """Readings that fall in one calendar month or year."""

    year: int
    month: int | None = None
    readings: list[Any] = field(default_factory=list)
    acumulado: float = 0.0


@dataclass(frozen=True)
class MonthlyStatistic:
    year: int
    month: int
    acumulado: float
    dias: int
    promedio_diario: float


@dataclass(frozen=True)
class WaterBalance:
    balance: float
    precipitacion: float
    evapotranspiracion: float
    clasificacion: BalanceClass
    descripcion: str


# ---------------------------------------------------------------------------
# Accumulation and grouping
# ---------------------------------------------------------------------------


def round1(value: float) -> float:
    """Round half-up to one decimal, the precision every rainfall total is reported in."""
    return math.floor(value * 10 + 0.5) / 10


def _mm(reading: RainfallReading) -> float:
    try:
        return float(reading.mm or 0)
    except (TypeError, ValueError):
        return 0.0


def accumulate(readings: Iterable[RainfallReading]) -> float:
    """Total millimetres; missing or non-numeric ``mm`` counts as zero."""
    return sum(_mm(r) for r in readings)


def group_by_month(readings: Iterable[RainfallReading]) -> dict[str, PeriodBucket]:
    """Bucket readings under ``YYYY-MM`` keys, preserving first-seen order."""
    buckets: dict[str, PeriodBucket] = {}
    for reading in readings:
        if reading.fecha is None:
            continue
        key = f"{reading.fecha.year:04d}-{reading.fecha.month:02d}"
        bucket = buckets.setdefault(
            key, PeriodBucket(year=reading.fecha.year, month=reading.fecha.month)
        )
        bucket.readings.append(reading)
        bucket.acumulado += _mm(reading)
    return buckets


def group_by_year(readings: Iterable[RainfallReading]) -> dict[int, PeriodBucket]:
    buckets: dict[int, PeriodBucket] = {}
    for reading in readings:
        if reading.fecha is None:
            continue
        bucket = buckets.setdefault(reading.fecha.year, PeriodBucket(year=reading.fecha.year))
        bucket.readings.append(reading)
        bucket.acumulado += _mm(reading)
    return buckets


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean ignoring NaN; 0 for an empty input."""
    clean = [v for v in values if v is not None and not math.isnan(v)]
    if not clean:
        return 0.0
    return sum(clean) / len(clean)


def std_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for an empty input."""
    clean = [v for v in values if v is not None and not math.isnan(v)]
    if not clean:
        return 0.0
    avg = mean(clean)
    return math.sqrt(sum((v - avg) ** 2 for v in clean) / len(clean))


def monthly_statistics(buckets: dict[str, PeriodBucket]) -> list[MonthlyStatistic]:
    """Per-month totals sorted chronologically."""
    stats = [
        MonthlyStatistic(
            year=b.year,
            month=b.month or 0,
            acumulado=round1(b.acumulado),
            dias=len(b.readings),
            promedio_diario=round1(b.acumulado / len(b.readings)) if b.readings else 0.0,
        )
        for b in buckets.values()
    ]
    return sorted(stats, key=lambda s: (s.year, s.month))


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def campaign_range(start_year: int) -> CampaignRange:
    """``campaign_range(2024)`` spans 2024-07-01 to 2025-06-30."""
    return CampaignRange(
        start=date(start_year, CAMPAIGN_START_MONTH, 1),
        end=date(start_year + 1, CAMPAIGN_START_MONTH - 1, 30),
        start_year=start_year,
    )


def campaign_for_date(day: date) -> CampaignRange:
    start_year = day.year if day.month >= CAMPAIGN_START_MONTH else day.year - 1
    return campaign_range(start_year)


def shift_years(day: date, years: int) -> date:
    """Move *day* by whole years, mapping Feb 29 onto Feb 28 in non-leap years."""
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return day.replace(year=day.year + years, day=28)


def filter_by_range(
    readings: Iterable[RainfallReading],
    start: date,
    end: date,
) -> list[RainfallReading]:
    return [r for r in readings if r.fecha is not None and start <= r.fecha <= end]


def dry_days(
    readings: Sequence[RainfallReading],
    today: date,
    threshold_mm: float = 1.0,
) -> int:
    """
    Days elapsed since the last reading with at least *threshold_mm*.

    When no reading reaches the threshold, counts from the earliest reading.
    Returns 0 when there are no readings at all.
    """
    dated = [r for r in readings if r.fecha is not None]
    if not dated:
        return 0

    wet = [r.fecha for r in dated if _mm(r) >= threshold_mm]
    anchor = max(wet) if wet else min(r.fecha for r in dated)
    return (today - anchor).days


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_campaign(accumulated: float, historical_mean: float) -> CampaignClassification:
    """
    Classify a campaign total as a percentage of the historical mean.

    >=110 % HUMEDA, >=90 % NORMAL, >=70 % SECA, otherwise MUY_SECA.
    """
    if not accumulated or not historical_mean:
        return CampaignClassification(
            CampaignClass.SIN_DATOS, "Not enough data to classify the campaign"
        )

    percent = accumulated / historical_mean * 100
    rounded = int(math.floor(percent + 0.5))
    if percent >= 110:
        return CampaignClassification(CampaignClass.HUMEDA, "Wet campaign (>110% of mean)", rounded)
    if percent >= 90:
        return CampaignClassification(CampaignClass.NORMAL, "Normal campaign (90-110% of mean)", rounded)
    if percent >= 70:
        return CampaignClassification(CampaignClass.SECA, "Dry campaign (70-90% of mean)", rounded)
    return CampaignClassification(CampaignClass.MUY_SECA, "Very dry campaign (<70% of mean)", rounded)


def classify_deficit(percent_of_threshold: float) -> Severity:
    """Band the accumulated rain as a percentage of the expected minimum."""
    if percent_of_threshold >= 100:
        return Severity.NINGUNO
    if percent_of_threshold >= 70:
        return Severity.LEVE
    if percent_of_threshold >= 40:
        return Severity.MODERADO
    return Severity.SEVERO


def classify_excess(percent_over_threshold: float) -> Severity:
    """Band the accumulated rain by how far it exceeds the allowed maximum."""
    if percent_over_threshold <= 0:
        return Severity.NINGUNO
    if percent_over_threshold <= 20:
        return Severity.LEVE
    if percent_over_threshold <= 50:
        return Severity.MODERADO
    return Severity.SEVERO


def water_balance(
    precipitation: float,
    evapotranspiration: float = 5.0,
    days: int = 30,
) -> WaterBalance:
    """
    Simple bucket balance: precipitation minus daily ET times *days*.

    > 50 mm EXCESO, >= -20 mm EQUILIBRIO, >= -50 mm DEFICIT_LEVE,
    otherwise DEFICIT_SEVERO.
    """
    et_total = evapotranspiration * days
    balance = precipitation - et_total

    if balance > 50:
        klass, text = BalanceClass.EXCESO, f"Water surplus of {round(balance)}mm"
    elif balance >= -20:
        klass, text = BalanceClass.EQUILIBRIO, f"Balanced ({round(balance)}mm)"
    elif balance >= -50:
        klass, text = BalanceClass.DEFICIT_LEVE, f"Mild deficit of {abs(round(balance))}mm"
    else:
        klass, text = BalanceClass.DEFICIT_SEVERO, f"Severe deficit of {abs(round(balance))}mm"

    return WaterBalance(
        balance=round1(balance),
        precipitacion=round1(precipitation),
        evapotranspiracion=round1(et_total),
        clasificacion=klass,
        descripcion=text,
    )
