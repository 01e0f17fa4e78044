"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.alert import Alert, KPIAlertLink
from db.models.decision_record import DecisionRecord
from db.models.farm_records import (
    AgriculturalWork,
    Expense,
    Income,
    LivestockWork,
    PastureMeasurement,
)
from db.models.firm import Firm, Lot
from db.models.kpi_definition import KPIDefinition, KPIThreshold
from db.models.kpi_history import KPIConsecutiveWarning, KPIHistory
from db.models.rainfall_record import RainfallRecord
from db.models.system_log import AuditLog, SystemLog

__all__ = [
    "AgriculturalWork",
    "Alert",
    "AuditLog",
    "DecisionRecord",
    "Expense",
    "Firm",
    "Income",
    "KPIAlertLink",
    "KPIConsecutiveWarning",
    "KPIDefinition",
    "KPIHistory",
    "KPIThreshold",
    "LivestockWork",
    "Lot",
    "PastureMeasurement",
    "RainfallRecord",
    "SystemLog",
]
