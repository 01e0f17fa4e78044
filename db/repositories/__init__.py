"""
Repository layer exports.
"""

from db.repositories.alert_repository import AlertRepository
from db.repositories.errors import (
    AlertNotFoundError,
    AlertStateError,
    KPIPersistenceError,
    RepositoryError,
)
from db.repositories.kpi_definition_repository import (
    KPIDefinitionRepository,
    KPIThresholdRepository,
)
from db.repositories.kpi_history_repository import (
    KPIConsecutiveWarningRepository,
    KPIHistoryRepository,
)
from db.repositories.system_log_repository import SystemLogRepository
from db.repositories.types import AlertCandidate, KPIAlertLinkInput

__all__ = [
    "AlertCandidate",
    "AlertNotFoundError",
    "AlertRepository",
    "AlertStateError",
    "KPIAlertLinkInput",
    "KPIConsecutiveWarningRepository",
    "KPIDefinitionRepository",
    "KPIHistoryRepository",
    "KPIPersistenceError",
    "KPIThresholdRepository",
    "RepositoryError",
    "SystemLogRepository",
]
