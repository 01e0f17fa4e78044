"""
app/events.py

Post-commit side-effect dispatcher.

Primary operations (calculation runs, alert resolution) emit side effects
while they work; the caller dispatches them once its transaction has
committed. Side effects are best-effort: a failing handler is logged and
the remaining handlers still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from app.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffect:
    name: str
    handler: Callable[[], Any]
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchReport:
    succeeded: list[str]
    failed: list[str]


class SideEffectDispatcher:
    def __init__(self) -> None:
        self._pending: list[SideEffect] = []

    def emit(self, name: str, handler: Callable[[], Any], **context: Any) -> None:
        self._pending.append(SideEffect(name=name, handler=handler, context=context))

    @property
    def pending(self) -> list[str]:
        return [effect.name for effect in self._pending]

    def discard(self) -> None:
        """Drop queued side effects, e.g. after the primary transaction rolled back."""
        self._pending.clear()

    def dispatch(self) -> DispatchReport:
        """Run and clear every queued side effect in emission order."""
        queued, self._pending = self._pending, []
        succeeded: list[str] = []
        failed: list[str] = []

        for effect in queued:
            try:
                effect.handler()
            except Exception as exc:  # noqa: BLE001
                failed.append(effect.name)
                log_event(
                    logger,
                    logging.WARNING,
                    "side_effect_failed",
                    side_effect=effect.name,
                    error=str(exc),
                    **effect.context,
                )
                continue
            succeeded.append(effect.name)

        return DispatchReport(succeeded=succeeded, failed=failed)
