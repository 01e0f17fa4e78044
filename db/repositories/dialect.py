"""
Dialect-aware INSERT construction.

PostgreSQL runs in production and SQLite in the test suite; both support
``ON CONFLICT`` through their own ``insert`` constructs.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_for(session: Session, table: Any) -> Any:
    """Return an ``insert(table)`` that supports ``on_conflict_*`` for the bound dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Unsupported database dialect for upserts: {dialect!r}")
