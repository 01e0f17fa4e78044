"""
tests/test_thresholds.py

Threshold band classification, validation and per-firm configuration.

Coverage
--------
- VERDE / AMARILLO / ROJO / SIN_DATOS classification at band edges
- Target-value projection onto a percentage scale
- Band-ordering validation messages
- Firm override → global row → built-in default resolution
- Status statistics over recent history
"""

from __future__ import annotations

from datetime import date

import pytest

from app.services.kpi_thresholds import KPIThresholdService, ThresholdValidationError
from db.repositories.kpi_definition_repository import KPIDefinitionRepository
from db.repositories.kpi_history_repository import KPIHistoryRepository
from kpi.codes import KPIStatus, UnknownKPICodeError
from kpi.thresholds import DEFAULT_BANDS, ThresholdBands, evaluate_status, validate_ranges

BANDS = ThresholdBands(
    optimal_min=0.8,
    optimal_max=1.2,
    warning_min=0.6,
    warning_max=1.5,
    critical_min=0.4,
    critical_max=2.0,
)


class TestEvaluateStatus:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0.8, KPIStatus.VERDE),
            (1.0, KPIStatus.VERDE),
            (1.2, KPIStatus.VERDE),
            (0.6, KPIStatus.AMARILLO),
            (0.79, KPIStatus.AMARILLO),
            (1.5, KPIStatus.AMARILLO),
            (0.5, KPIStatus.AMARILLO),
            (1.8, KPIStatus.AMARILLO),
            (0.39, KPIStatus.ROJO),
            (2.01, KPIStatus.ROJO),
        ],
    )
    def test_band_edges(self, value: float, expected: KPIStatus) -> None:
        assert evaluate_status(value, BANDS) is expected

    def test_missing_value_is_sin_datos(self) -> None:
        assert evaluate_status(None, BANDS) is KPIStatus.SIN_DATOS

    def test_default_bands(self) -> None:
        assert evaluate_status(50.0, DEFAULT_BANDS) is KPIStatus.VERDE
        assert evaluate_status(105.0, DEFAULT_BANDS) is KPIStatus.AMARILLO
        assert evaluate_status(250.0, DEFAULT_BANDS) is KPIStatus.ROJO

    def test_target_value_compares_percentage_of_target(self) -> None:
        bands = ThresholdBands(
            optimal_min=90,
            optimal_max=110,
            warning_min=70,
            warning_max=130,
            critical_min=50,
            critical_max=150,
            target_value=0.8,
        )
        assert evaluate_status(0.8, bands) is KPIStatus.VERDE
        assert evaluate_status(0.64, bands) is KPIStatus.AMARILLO
        assert evaluate_status(0.3, bands) is KPIStatus.ROJO


class TestValidateRanges:
    def test_valid_bands_have_no_errors(self) -> None:
        assert validate_ranges(BANDS) == []
        assert validate_ranges(DEFAULT_BANDS) == []

    def test_inverted_optimal_band(self) -> None:
        bands = ThresholdBands(1.3, 1.2, 0.6, 1.5, 0.4, 2.0)
        assert "optimal_min must be <= optimal_max" in validate_ranges(bands)

    def test_warning_band_must_wrap_optimal(self) -> None:
        bands = ThresholdBands(0.8, 1.2, 0.9, 1.5, 0.4, 2.0)
        assert "warning_min must be < optimal_min" in validate_ranges(bands)

    def test_critical_band_must_wrap_warning(self) -> None:
        bands = ThresholdBands(0.8, 1.2, 0.6, 1.5, 0.4, 1.5)
        assert "warning_max must be < critical_max" in validate_ranges(bands)

    def test_non_positive_target(self) -> None:
        bands = ThresholdBands(0.8, 1.2, 0.6, 1.5, 0.4, 2.0, target_value=0)
        assert "target_value must be positive" in validate_ranges(bands)


# ---------------------------------------------------------------------------
# KPIThresholdService
# ---------------------------------------------------------------------------


class TestThresholdService:
    def test_default_source_without_rows(self, session, catalogue, firm) -> None:
        view = KPIThresholdService(session).get_thresholds(firm.id, "GDP")
        assert view.source == "default"
        assert view.bands == DEFAULT_BANDS

    def test_global_then_firm_override(self, session, catalogue, firm) -> None:
        service = KPIThresholdService(session)
        service.update_thresholds(None, "GDP", BANDS, changed_by="admin")
        assert service.get_thresholds(firm.id, "GDP").source == "global"

        override = ThresholdBands(0.9, 1.2, 0.7, 1.5, 0.5, 2.0)
        view = service.update_thresholds(firm.id, "gdp", override, changed_by="ana")
        assert view.source == "firm"
        assert service.get_thresholds(firm.id, "GDP").bands == override
        assert service.check_value(firm.id, "GDP", 0.8) is KPIStatus.AMARILLO

    def test_invalid_bands_are_rejected(self, session, catalogue, firm) -> None:
        service = KPIThresholdService(session)
        with pytest.raises(ThresholdValidationError) as excinfo:
            service.update_thresholds(firm.id, "GDP", ThresholdBands(1.3, 1.2, 0.6, 1.5, 0.4, 2.0))
        assert "optimal_min must be <= optimal_max" in excinfo.value.errors
        assert service.get_thresholds(firm.id, "GDP").source == "default"

    def test_reset_to_defaults_falls_back_to_global(self, session, catalogue, firm) -> None:
        service = KPIThresholdService(session)
        service.update_thresholds(None, "GDP", BANDS)
        service.update_thresholds(firm.id, "GDP", ThresholdBands(0.9, 1.2, 0.7, 1.5, 0.5, 2.0))

        view = service.reset_to_defaults(firm.id, "GDP")
        assert view.source == "global"
        assert view.bands == BANDS

    def test_unknown_code(self, session, catalogue, firm) -> None:
        with pytest.raises(UnknownKPICodeError):
            KPIThresholdService(session).get_thresholds(firm.id, "NOT_A_KPI")

    def test_status_statistics(self, session, catalogue, firm) -> None:
        history = KPIHistoryRepository(session)
        for code, value in (("GDP", 50.0), ("MORTALIDAD", 105.0), ("COSTO_POR_KG", 250.0)):
            kpi = KPIDefinitionRepository(session).get_by_code(code)
            history.save_value(
                firm_id=firm.id, kpi_id=kpi.id, period_start=date(2024, 3, 1),
                period_end=date(2024, 3, 31), value=value, unit=kpi.unit,
            )
        session.commit()

        stats = KPIThresholdService(session).get_status_statistics(firm.id)
        assert stats["total"] == 3
        assert stats["verde"] == 1
        assert stats["rojo"] == 1
        assert stats["porcentaje_amarillo"] == 33.3
        assert stats["sin_datos"] == 0
