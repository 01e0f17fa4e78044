"""
kpi/base.py

Abstract base class and result types for all KPI formula implementations.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, ClassVar

from kpi.codes import KPICode
from kpi.source import FarmDataSource


@dataclass(frozen=True)
class KPIScope:
    """
    Who and when a KPI is calculated for.

    ``period_start`` and ``period_end`` are inclusive calendar dates.
    ``lot_id`` narrows lot-aware formulas to a single lot.
    """

    firm_id: uuid.UUID
    period_start: date
    period_end: date
    lot_id: uuid.UUID | None = None


@dataclass(frozen=True)
class KPIValue:
    """
    Outcome of one formula evaluation.

    ``value`` is ``None`` when the period has no qualifying data or the
    formula would divide by zero; ``message`` then explains why.
    """

    value: float | None
    unit: str
    metadata: dict[str, Any] = field(default_factory=dict)
    message: str | None = None

    @property
    def has_value(self) -> bool:
        return self.value is not None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "value": self.value,
            "unit": self.unit,
            "metadata": dict(self.metadata),
        }
        if self.message is not None:
            payload["message"] = self.message
        return payload


class BaseKPIFormula(ABC):
    """
    Contract for KPI formula implementations.

    Subclasses read raw records through a :class:`FarmDataSource` and return
    a :class:`KPIValue`. Missing data is reported through ``value=None``,
    never through an exception. No logging and no writes are permitted
    inside :meth:`calculate`.
    """

    code: ClassVar[KPICode]
    unit: ClassVar[str]
    decimals: ClassVar[int] = 2

    @abstractmethod
    def calculate(self, source: FarmDataSource, scope: KPIScope) -> KPIValue:
        """
        Compute the KPI for *scope*.

        Parameters
        ----------
        source:
            Read access to the firm's operational records.
        scope:
            Firm, inclusive period bounds and optional lot.

        Returns
        -------
        KPIValue
            Rounded to :attr:`decimals` places.
        """

    # ------------------------------------------------------------------
    # Helpers shared by subclasses
    # ------------------------------------------------------------------

    def result(self, value: float, **metadata: Any) -> KPIValue:
        return KPIValue(value=round(value, self.decimals), unit=self.unit, metadata=metadata)

    def no_data(self, message: str, **metadata: Any) -> KPIValue:
        return KPIValue(value=None, unit=self.unit, metadata=metadata, message=message)


def safe_div(numerator: float, denominator: float | None) -> float | None:
    """Return ``numerator / denominator`` or ``None`` when the denominator is 0 or missing."""
    if not denominator:
        return None
    return numerator / denominator
