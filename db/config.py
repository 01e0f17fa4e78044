"""
db/config.py

Environment-driven database configuration for the KPI engine.

The engine targets PostgreSQL in every deployed environment. SQLite URLs are
accepted only when ``KPI_ALLOW_SQLITE`` is set, which the local tooling and
test suites use for throwaway databases.
"""

from __future__ import annotations

import os
from pathlib import Path

_CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def load_env_files() -> None:
    """
    Load KEY=VALUE pairs from ``.env`` and ``.env.local`` at the project root.

    Variables already present in the process environment win.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export "):]

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key:
                os.environ.setdefault(key, value)


def normalize_postgres_url(url: str) -> str:
    """Rewrite ``postgres://`` style URLs to the psycopg 3 driver form."""

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def sqlite_allowed() -> bool:
    return os.getenv("KPI_ALLOW_SQLITE", "").strip().lower() in _TRUE_VALUES


def ensure_supported_url(url: str) -> str:
    """
    Return ``url`` unchanged when its backend is supported.

    Raises
    ------
    RuntimeError
        For any backend other than PostgreSQL, or SQLite without
        ``KPI_ALLOW_SQLITE``.
    """

    if url.startswith("postgresql"):
        return url
    if url.startswith("sqlite") and sqlite_allowed():
        return url
    raise RuntimeError(
        "Unsupported database URL scheme; the KPI engine requires PostgreSQL "
        "(set KPI_ALLOW_SQLITE=1 for local SQLite databases)."
    )


def resolve_database_url() -> str:
    """
    Resolve the farm ERP database URL.

    Priority:
    1) DATABASE_URL
    2) CLOUD_DATABASE_URL when ENVIRONMENT is cloud-like
    3) LOCAL_DATABASE_URL
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL", "").strip()
    if direct_url:
        return ensure_supported_url(normalize_postgres_url(direct_url))

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    if environment in _CLOUD_ENVIRONMENTS and cloud_url:
        return ensure_supported_url(normalize_postgres_url(cloud_url))

    local_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if local_url:
        return ensure_supported_url(normalize_postgres_url(local_url))

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )
