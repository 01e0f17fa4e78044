"""
app/logging_utils.py

One-line JSON events for calculation runs, rainfall checks and side effects.

Events carry a stable ``event`` name so log search can follow one run tier
(``kpi_daily_calculation``) or one premise across days.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any


def elapsed_ms(started: float) -> int:
    """Milliseconds since a ``time.monotonic()`` reading."""
    return int((time.monotonic() - started) * 1000)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line.

    Fields set to None are left out; UUIDs, dates and Decimals are written
    with ``str``.
    """
    if not logger.isEnabledFor(level):
        return
    payload = {"event": event}
    payload.update((key, value) for key, value in fields.items() if value is not None)
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))
