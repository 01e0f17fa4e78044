"""
Repository-layer exceptions for KPI history, alert and threshold persistence.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for repository failures."""


class KPIPersistenceError(RepositoryError, RuntimeError):
    """
    Raised when a KPI history row (or its derived alert) cannot be written.

    The caller is expected to roll back the session.
    """


class AlertNotFoundError(RepositoryError, LookupError):
    """Raised when a referenced alert does not exist."""


class AlertStateError(RepositoryError, ValueError):
    """Raised when an alert transition is not allowed from its current state."""
