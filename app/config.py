"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class KPISettings:
    """
    Tunables of the KPI calculation and alerting pipeline.
    """

    history_retention_days: int = 730
    plan_factor: float = 1.2
    consecutive_warning_threshold: int = 3
    resolved_alert_retention_days: int = 30
    default_remnant_cm: float = 5.0


@dataclass(frozen=True)
class RainfallSettings:
    """
    Rainfall analytics and automatic rainfall alert checks.
    """

    history_years: int = 5
    auto_check_enabled: bool = False
    check_workers: int = 4


@dataclass(frozen=True)
class SchedulerSettings:
    enabled: bool = True


@lru_cache(maxsize=1)
def get_kpi_settings() -> KPISettings:
    """
    Return cached KPI settings from environment variables.
    """

    return KPISettings(
        history_retention_days=max(1, _get_int_env("KPI_HISTORY_RETENTION_DAYS", 730)),
        plan_factor=_get_float_env("KPI_PLAN_FACTOR", 1.2),
        consecutive_warning_threshold=max(
            1, _get_int_env("KPI_CONSECUTIVE_WARNING_THRESHOLD", 3)
        ),
        resolved_alert_retention_days=max(
            1, _get_int_env("KPI_RESOLVED_ALERT_RETENTION_DAYS", 30)
        ),
        default_remnant_cm=max(0.0, _get_float_env("KPI_DEFAULT_REMNANT_CM", 5.0)),
    )


@lru_cache(maxsize=1)
def get_rainfall_settings() -> RainfallSettings:
    """
    Return cached rainfall settings from environment variables.
    """

    return RainfallSettings(
        history_years=max(1, _get_int_env("RAINFALL_HISTORY_YEARS", 5)),
        auto_check_enabled=_get_bool_env("RAINFALL_AUTO_CHECK_ENABLED", False),
        check_workers=max(1, _get_int_env("RAINFALL_CHECK_WORKERS", 4)),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings(enabled=_get_bool_env("SCHEDULER_ENABLED", True))
