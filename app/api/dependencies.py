"""
app/api/dependencies.py

Shared FastAPI dependencies.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.events import SideEffectDispatcher
from db.session import SessionLocal
from kpi.codes import KPICode, UnknownKPICodeError, parse_code


def get_dispatcher() -> SideEffectDispatcher:
    """
    A fresh dispatcher per request. Handlers queue effects on it and the
    router dispatches after its own commit.
    """
    return SideEffectDispatcher()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for services that open one session per worker thread."""
    return SessionLocal


def get_kpi_code(code: str) -> KPICode:
    """
    Parse a path ``code`` into a :class:`KPICode`.
    """
    try:
        return parse_code(code)
    except UnknownKPICodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
