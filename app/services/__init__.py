"""
app/services package marker.
"""

from app.services.kpi_alerts import KPIAlertService
from app.services.kpi_automation import (
    CalculationRunResult,
    KPIAutomationService,
    KPIEntityDiscoveryError,
)
from app.services.kpi_reports import KPIReportService
from app.services.kpi_thresholds import KPIThresholdService, ThresholdValidationError
from app.services.rainfall_alerts import RainfallAlertService
from app.services.rainfall_analytics import RainfallAnalyticsService

__all__ = [
    "CalculationRunResult",
    "KPIAlertService",
    "KPIAutomationService",
    "KPIEntityDiscoveryError",
    "KPIReportService",
    "KPIThresholdService",
    "ThresholdValidationError",
    "RainfallAlertService",
    "RainfallAnalyticsService",
]
