"""
tests/test_rainfall_calculations.py

Pure rainfall arithmetic and the rule catalogue.

Coverage
--------
- Campaign windows and date-to-campaign mapping
- Deficit and excess severity banding
- Campaign classification against the historical mean
- Dry-day counting and water balance classes
- Monthly grouping and Feb 29 year shifting
- Rule predicates and messages
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import pytest

from rainfall.calculations import (
    BalanceClass,
    CampaignClass,
    Severity,
    accumulate,
    campaign_for_date,
    campaign_range,
    classify_campaign,
    classify_deficit,
    classify_excess,
    dry_days,
    group_by_month,
    monthly_statistics,
    round1,
    shift_years,
    std_deviation,
    water_balance,
)
from rainfall.rules import (
    CAMPANIA_SECA,
    DEFICIT_ETAPA_CRITICA,
    DIAS_SIN_LLUVIA,
    EXCESO_AGUA,
    SEQUIA_MODERADA,
    SEQUIA_SEVERA,
    enabled_rules,
    get_rule,
)


@dataclass
class Reading:
    fecha: date
    mm: float | None


class TestCampaigns:
    def test_campaign_range(self) -> None:
        window = campaign_range(2024)
        assert window.start == date(2024, 7, 1)
        assert window.end == date(2025, 6, 30)
        assert window.nombre == "2024/2025"

    @pytest.mark.parametrize(
        "day, start_year",
        [
            (date(2024, 7, 1), 2024),
            (date(2024, 12, 31), 2024),
            (date(2025, 1, 1), 2024),
            (date(2025, 6, 30), 2024),
        ],
    )
    def test_campaign_for_date(self, day: date, start_year: int) -> None:
        assert campaign_for_date(day).start_year == start_year

    def test_shift_years_clamps_leap_day(self) -> None:
        assert shift_years(date(2024, 2, 29), -1) == date(2023, 2, 28)
        assert shift_years(date(2024, 3, 1), -4) == date(2020, 3, 1)


class TestSeverity:
    @pytest.mark.parametrize(
        "percent, expected",
        [
            (100, Severity.NINGUNO),
            (85, Severity.LEVE),
            (70, Severity.LEVE),
            (55, Severity.MODERADO),
            (40, Severity.MODERADO),
            (30, Severity.SEVERO),
        ],
    )
    def test_deficit_bands(self, percent: float, expected: Severity) -> None:
        assert classify_deficit(percent) is expected

    @pytest.mark.parametrize(
        "percent_over, expected",
        [
            (0, Severity.NINGUNO),
            (20, Severity.LEVE),
            (35, Severity.MODERADO),
            (51, Severity.SEVERO),
        ],
    )
    def test_excess_bands(self, percent_over: float, expected: Severity) -> None:
        assert classify_excess(percent_over) is expected


class TestCampaignClassification:
    @pytest.mark.parametrize(
        "accumulated, expected, percent",
        [
            (1100, CampaignClass.HUMEDA, 110),
            (950, CampaignClass.NORMAL, 95),
            (700, CampaignClass.SECA, 70),
            (500, CampaignClass.MUY_SECA, 50),
        ],
    )
    def test_against_mean_of_1000(self, accumulated, expected, percent) -> None:
        result = classify_campaign(accumulated, 1000)
        assert result.clasificacion is expected
        assert result.porcentaje == percent

    def test_missing_mean_is_sin_datos(self) -> None:
        assert classify_campaign(500, 0).clasificacion is CampaignClass.SIN_DATOS
        assert classify_campaign(0, 900).clasificacion is CampaignClass.SIN_DATOS


class TestAccumulation:
    def test_missing_mm_counts_as_zero(self) -> None:
        readings = [Reading(date(2024, 3, 1), 10.5), Reading(date(2024, 3, 2), None)]
        assert accumulate(readings) == pytest.approx(10.5)

    def test_round1_rounds_half_up(self) -> None:
        assert round1(12.25) == 12.3
        assert round1(12.24) == 12.2

    def test_monthly_statistics_sorted(self) -> None:
        readings = [
            Reading(date(2024, 5, 3), 12.0),
            Reading(date(2024, 4, 10), 20.0),
            Reading(date(2024, 4, 20), 5.0),
        ]
        stats = monthly_statistics(group_by_month(readings))
        assert [(s.year, s.month) for s in stats] == [(2024, 4), (2024, 5)]
        assert stats[0].acumulado == 25.0
        assert stats[0].dias == 2
        assert stats[0].promedio_diario == 12.5

    def test_std_deviation(self) -> None:
        assert std_deviation([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
        assert std_deviation([]) == 0.0


class TestDryDays:
    def test_counts_from_last_significant_rain(self) -> None:
        readings = [
            Reading(date(2024, 3, 1), 15.0),
            Reading(date(2024, 3, 10), 0.5),
        ]
        assert dry_days(readings, date(2024, 3, 25)) == 24

    def test_no_significant_rain_counts_from_first_reading(self) -> None:
        readings = [Reading(date(2024, 3, 5), 0.2), Reading(date(2024, 3, 9), 0.0)]
        assert dry_days(readings, date(2024, 3, 25)) == 20

    def test_no_readings(self) -> None:
        assert dry_days([], date(2024, 3, 25)) == 0


class TestWaterBalance:
    @pytest.mark.parametrize(
        "precipitation, expected",
        [
            (220, BalanceClass.EXCESO),
            (150, BalanceClass.EQUILIBRIO),
            (110, BalanceClass.DEFICIT_LEVE),
            (40, BalanceClass.DEFICIT_SEVERO),
        ],
    )
    def test_classes_for_thirty_days(self, precipitation, expected) -> None:
        result = water_balance(precipitation, 5.0, 30)
        assert result.clasificacion is expected
        assert result.evapotranspiracion == 150.0
        assert result.balance == round1(precipitation - 150)


class TestRules:
    def test_drought_thresholds(self) -> None:
        assert SEQUIA_MODERADA.validate(acumulado=49.9)
        assert not SEQUIA_MODERADA.validate(acumulado=50)
        assert SEQUIA_SEVERA.validate(acumulado=19.9)
        assert not SEQUIA_SEVERA.validate(acumulado=20)

    def test_excess_threshold(self) -> None:
        assert EXCESO_AGUA.validate(acumulado=150.1)
        assert not EXCESO_AGUA.validate(acumulado=150)

    def test_dry_campaign_needs_history(self) -> None:
        assert CAMPANIA_SECA.validate(porcentaje=60, promedio=800)
        assert not CAMPANIA_SECA.validate(porcentaje=60, promedio=0)
        assert not CAMPANIA_SECA.validate(porcentaje=75, promedio=800)

    def test_dry_days_threshold(self) -> None:
        assert DIAS_SIN_LLUVIA.validate(dias=21)
        assert not DIAS_SIN_LLUVIA.validate(dias=20)

    def test_critical_stage_requires_stage(self) -> None:
        assert DEFICIT_ETAPA_CRITICA.validate(acumulado=10, etapa="floracion")
        assert not DEFICIT_ETAPA_CRITICA.validate(acumulado=10, etapa="siembra")
        assert not DEFICIT_ETAPA_CRITICA.validate(acumulado=10)

    def test_severe_message_reports_deficit_against_moderate_floor(self) -> None:
        message = SEQUIA_SEVERA.build_message(acumulado=12.5, dias=30)
        assert "37.5mm" in message.descripcion
        assert message.recomendacion

    def test_lookup(self) -> None:
        assert get_rule("exceso_agua") is EXCESO_AGUA
        assert get_rule("unknown") is None
        assert {r.id for r in enabled_rules()} >= {"sequia_moderada", "dias_sin_lluvia"}
