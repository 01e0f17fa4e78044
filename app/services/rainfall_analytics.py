"""
app/services/rainfall_analytics.py

Rainfall analytics per premise.

Reads ``lluvias`` rows and delegates all arithmetic to
:mod:`rainfall.calculations`. The current date comes from an injectable
clock so windows such as "last 30 days" are testable.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from collections.abc import Callable
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import RainfallSettings, get_rainfall_settings
from app.schemas.rainfall import (
    CampaignRainfall,
    DeficitAssessment,
    ExcessAssessment,
    HistoricalComparison,
    HistoricalYear,
    InterannualComparison,
    MonthlyDistribution,
    MonthlyRainfall,
    RainfallAccumulation,
    RainfallStatistics,
    WaterBalanceResponse,
)
from db.base import utcnow
from db.models.rainfall_record import RainfallRecord
from rainfall.calculations import (
    CampaignRange,
    accumulate,
    campaign_for_date,
    campaign_range,
    classify_campaign,
    classify_deficit,
    classify_excess,
    dry_days,
    filter_by_range,
    group_by_month,
    mean,
    monthly_statistics,
    round1,
    shift_years,
    water_balance,
)

logger = logging.getLogger(__name__)


def _today() -> date:
    return utcnow().date()


def _as_monthly(stats) -> list[MonthlyRainfall]:
    return [
        MonthlyRainfall(
            anio=s.year,
            mes=s.month,
            acumulado=s.acumulado,
            dias=s.dias,
            promedio_diario=s.promedio_diario,
        )
        for s in stats
    ]


class RainfallAnalyticsService:
    def __init__(
        self,
        session: Session,
        *,
        settings: RainfallSettings | None = None,
        clock: Callable[[], date] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_rainfall_settings()
        self._clock = clock or _today

    def today(self) -> date:
        return self._clock()

    # ------------------------------------------------------------------
    # Raw records and totals
    # ------------------------------------------------------------------

    def records(
        self,
        premise_id: uuid.UUID,
        start: date | None = None,
        end: date | None = None,
    ) -> list[RainfallRecord]:
        """Readings for a premise, newest first, optionally bounded to ``[start, end]``."""
        stmt = select(RainfallRecord).where(RainfallRecord.premise_id == premise_id)
        if start is not None:
            stmt = stmt.where(RainfallRecord.fecha >= start)
        if end is not None:
            stmt = stmt.where(RainfallRecord.fecha <= end)
        stmt = stmt.order_by(RainfallRecord.fecha.desc())
        return list(self._session.scalars(stmt).all())

    def accumulation(self, premise_id: uuid.UUID, start: date, end: date) -> RainfallAccumulation:
        readings = self.records(premise_id, start, end)
        return RainfallAccumulation(
            acumulado=round1(accumulate(readings)),
            registros=len(readings),
            fecha_inicio=start,
            fecha_fin=end,
        )

    def monthly_totals(self, premise_id: uuid.UUID, year: int) -> list[MonthlyRainfall]:
        readings = self.records(premise_id, date(year, 1, 1), date(year, 12, 31))
        return _as_monthly(monthly_statistics(group_by_month(readings)))

    def campaign_totals(self, premise_id: uuid.UUID, start_year: int) -> CampaignRainfall:
        return self._campaign(premise_id, campaign_range(start_year))

    def current_campaign(self, premise_id: uuid.UUID) -> CampaignRainfall:
        return self._campaign(premise_id, campaign_for_date(self.today()))

    def monthly_distribution(
        self, premise_id: uuid.UUID, start: date, end: date
    ) -> MonthlyDistribution:
        readings = self.records(premise_id, start, end)
        return MonthlyDistribution(
            meses=_as_monthly(monthly_statistics(group_by_month(readings))),
            total_acumulado=round1(accumulate(readings)),
            total_registros=len(readings),
        )

    # ------------------------------------------------------------------
    # Comparisons
    # ------------------------------------------------------------------

    def compare_with_average(
        self,
        premise_id: uuid.UUID,
        start: date,
        end: date,
        years: int | None = None,
    ) -> HistoricalComparison:
        """
        Compare ``[start, end]`` with the same window in each of the previous
        *years* years. Years without any reading are left out of the mean.
        """
        span = years or self._settings.history_years
        earliest = shift_years(start, -span)
        readings = self.records(premise_id, earliest, end)

        current = accumulate(filter_by_range(readings, start, end))
        history: list[HistoricalYear] = []
        for offset in range(1, span + 1):
            window = filter_by_range(
                readings, shift_years(start, -offset), shift_years(end, -offset)
            )
            if not window:
                continue
            history.append(
                HistoricalYear(anio=start.year - offset, acumulado=round1(accumulate(window)))
            )

        average = mean([h.acumulado for h in history])
        difference = current - average
        percent = current / average * 100 - 100 if average else 0.0
        return HistoricalComparison(
            acumulado_actual=round1(current),
            promedio_historico=round1(average),
            diferencia=round1(difference),
            porcentaje_diferencia=round1(percent),
            anios_considerados=len(history),
            clasificacion="SUPERIOR" if difference >= 0 else "INFERIOR",
            acumulados_historicos=history,
        )

    def interannual_comparison(
        self, premise_id: uuid.UUID, campaigns: int = 3
    ) -> InterannualComparison:
        """The current and previous campaigns, each classified against their joint mean."""
        current = campaign_for_date(self.today())
        totals = [
            self.campaign_totals(premise_id, current.start_year - i) for i in range(campaigns)
        ]
        average = mean([c.acumulado for c in totals])

        classified = []
        for item in totals:
            klass = classify_campaign(item.acumulado, average)
            classified.append(
                item.model_copy(
                    update={
                        "clasificacion": klass.clasificacion.value,
                        "porcentaje": klass.porcentaje,
                    }
                )
            )
        return InterannualComparison(
            campanias=classified,
            promedio_historico=round1(average),
            total_campanias=len(classified),
        )

    # ------------------------------------------------------------------
    # Deficit, excess and balance
    # ------------------------------------------------------------------

    def detect_deficit(
        self,
        premise_id: uuid.UUID,
        days: int = 30,
        threshold_mm: float = 50.0,
    ) -> DeficitAssessment:
        end = self.today()
        start = end - timedelta(days=days)
        readings = self.records(premise_id, start, end)
        total = accumulate(readings)
        percent = total / threshold_mm * 100 if threshold_mm else 100.0

        return DeficitAssessment(
            hay_deficit=total < threshold_mm,
            acumulado=round1(total),
            umbral=threshold_mm,
            dias_analizados=days,
            porcentaje_del_umbral=round(percent),
            severidad=classify_deficit(percent).value,
            dias_sin_lluvia=dry_days(readings, end),
            fecha_inicio=start,
            fecha_fin=end,
        )

    def detect_excess(
        self,
        premise_id: uuid.UUID,
        days: int = 7,
        threshold_mm: float = 150.0,
    ) -> ExcessAssessment:
        end = self.today()
        start = end - timedelta(days=days)
        total = accumulate(self.records(premise_id, start, end))
        over = total / threshold_mm * 100 - 100 if threshold_mm else 0.0

        return ExcessAssessment(
            hay_exceso=total > threshold_mm,
            acumulado=round1(total),
            umbral=threshold_mm,
            dias_analizados=days,
            porcentaje_sobre_umbral=round(over),
            severidad=classify_excess(over).value,
            fecha_inicio=start,
            fecha_fin=end,
        )

    def dry_days(self, premise_id: uuid.UUID) -> int:
        return dry_days(self.records(premise_id), self.today())

    def water_balance(
        self,
        premise_id: uuid.UUID,
        days: int = 30,
        evapotranspiration: float = 5.0,
    ) -> WaterBalanceResponse:
        end = self.today()
        start = end - timedelta(days=days)
        balance = water_balance(
            accumulate(self.records(premise_id, start, end)), evapotranspiration, days
        )
        return WaterBalanceResponse(
            balance=balance.balance,
            precipitacion=balance.precipitacion,
            evapotranspiracion=balance.evapotranspiracion,
            clasificacion=balance.clasificacion.value,
            descripcion=balance.descripcion,
            dias=days,
            fecha_inicio=start,
            fecha_fin=end,
        )

    def full_statistics(self, premise_id: uuid.UUID) -> RainfallStatistics:
        today = self.today()
        month_end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
        return RainfallStatistics(
            ultimos_30_dias=self.accumulation(premise_id, today - timedelta(days=30), today),
            mes_actual=self.accumulation(premise_id, today.replace(day=1), month_end),
            campania_actual=self.current_campaign(premise_id),
            deficit_hidrico=self.detect_deficit(premise_id),
            exceso_lluvia=self.detect_excess(premise_id),
            dias_sin_lluvia=self.dry_days(premise_id),
            fecha_consulta=utcnow(),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _campaign(self, premise_id: uuid.UUID, window: CampaignRange) -> CampaignRainfall:
        readings = self.records(premise_id, window.start, window.end)
        return CampaignRainfall(
            campania=window.nombre,
            anio_inicio=window.start_year,
            anio_fin=window.end_year,
            fecha_inicio=window.start,
            fecha_fin=window.end,
            acumulado=round1(accumulate(readings)),
            registros=len(readings),
        )
