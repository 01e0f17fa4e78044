"""
app/schemas package marker.
"""

from app.schemas.alerts import AlertResponse, KPIAlertCounts, KPIAlertExport, ResolveAlertRequest
from app.schemas.kpi import CalculationRequest, CalculationResponse, ThresholdResponse
from app.schemas.rainfall import RainfallCheckSummary, RainfallStatistics, RainfallStatusSummary
from app.schemas.reports import ComparativeReport, ExecutiveReport, LearningReport

__all__ = [
    "AlertResponse",
    "KPIAlertCounts",
    "KPIAlertExport",
    "ResolveAlertRequest",
    "CalculationRequest",
    "CalculationResponse",
    "ThresholdResponse",
    "RainfallCheckSummary",
    "RainfallStatistics",
    "RainfallStatusSummary",
    "ComparativeReport",
    "ExecutiveReport",
    "LearningReport",
]
