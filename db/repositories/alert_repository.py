"""
db/repositories/alert_repository.py

Persistence for alerts and KPI alert links.

Automatic alerts are created with an atomic insert-if-absent keyed on
``dedup_key``; the partial unique index on pending rows makes concurrent
evaluations of the same rule converge on a single pending alert.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.alert import (
    ORIGIN_AUTOMATIC,
    PENDING_PREDICATE,
    STATE_CANCELLED,
    STATE_COMPLETED,
    STATE_PENDING,
    Alert,
    KPIAlertLink,
    build_dedup_key,
)
from db.repositories.dialect import insert_for
from db.repositories.errors import AlertNotFoundError, AlertStateError
from db.repositories.types import AlertCandidate, KPIAlertLinkInput

logger = logging.getLogger(__name__)


class AlertRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create_automatic(
        self,
        candidate: AlertCandidate,
        *,
        link: KPIAlertLinkInput | None = None,
    ) -> tuple[Alert, bool]:
        """
        Insert *candidate* unless a pending alert with the same key exists.

        Returns
        -------
        tuple[Alert, bool]
            The pending alert for the key and ``True`` when it was created by
            this call. An existing pending alert is returned unchanged.

        Notes
        -----
        When *link* is given and the alert is new, the link row is written in
        a savepoint. A failing link is logged; the alert is kept.
        """
        dedup_key = build_dedup_key(
            candidate.firm_id,
            candidate.premise_id,
            candidate.lot_id,
            candidate.regla_aplicada,
        )
        new_id = uuid.uuid4()
        stmt = insert_for(self._session, Alert.__table__).values(
            id=new_id,
            firm_id=candidate.firm_id,
            premise_id=candidate.premise_id,
            lot_id=candidate.lot_id,
            origen=ORIGIN_AUTOMATIC,
            tipo=candidate.tipo,
            titulo=candidate.titulo,
            descripcion=candidate.descripcion,
            prioridad=candidate.prioridad,
            regla_aplicada=candidate.regla_aplicada,
            estado=STATE_PENDING,
            fecha=utcnow(),
            metadata=candidate.metadata,
            dedup_key=dedup_key,
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["dedup_key"],
            index_where=PENDING_PREDICATE,
        )
        self._session.execute(stmt)

        alert = self._session.scalars(
            select(Alert)
            .where(Alert.dedup_key == dedup_key, Alert.estado == STATE_PENDING)
            .execution_options(populate_existing=True)
        ).one()
        created = alert.id == new_id

        if created and link is not None:
            self._add_link(alert, link)

        return alert, created

    def create_manual(self, **fields: Any) -> Alert:
        alert = Alert(estado=STATE_PENDING, fecha=utcnow(), **fields)
        self._session.add(alert)
        self._session.flush()
        return alert

    def resolve(
        self,
        alert_id: uuid.UUID,
        *,
        user_id: str,
        notes: str | None = None,
    ) -> Alert:
        """
        Mark an alert completed.

        Re-resolving a completed alert overwrites resolver, time and notes.

        Raises
        ------
        AlertNotFoundError
            Unknown *alert_id*.
        AlertStateError
            The alert was cancelled.
        """
        alert = self._require(alert_id)
        if alert.estado == STATE_CANCELLED:
            raise AlertStateError(f"Alert {alert_id} is cancelled and cannot be resolved")
        alert.estado = STATE_COMPLETED
        alert.resuelta_por = user_id
        alert.fecha_resolucion = utcnow()
        alert.notas = notes
        self._session.flush()
        return alert

    def cancel(self, alert_id: uuid.UUID, *, user_id: str, notes: str | None = None) -> Alert:
        alert = self._require(alert_id)
        if alert.estado == STATE_COMPLETED:
            raise AlertStateError(f"Alert {alert_id} is already completed")
        alert.estado = STATE_CANCELLED
        alert.resuelta_por = user_id
        alert.fecha_resolucion = utcnow()
        alert.notas = notes
        self._session.flush()
        return alert

    def purge_resolved_before(self, cutoff: datetime) -> int:
        """Delete completed alerts resolved before *cutoff* together with their links."""
        stale = select(Alert.id).where(
            Alert.estado == STATE_COMPLETED,
            Alert.fecha_resolucion < cutoff,
        )
        self._session.execute(
            delete(KPIAlertLink)
            .where(KPIAlertLink.alert_id.in_(stale))
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(
            delete(Alert)
            .where(Alert.estado == STATE_COMPLETED, Alert.fecha_resolucion < cutoff)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, alert_id: uuid.UUID) -> Alert | None:
        return self._session.get(Alert, alert_id)

    def list_alerts(
        self,
        *,
        firm_id: uuid.UUID,
        estado: str | None = None,
        prioridad: str | None = None,
        lot_id: uuid.UUID | None = None,
        premise_id: uuid.UUID | None = None,
        tipos: Sequence[str] | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        kpi_only: bool = False,
        limit: int | None = None,
    ) -> list[Alert]:
        stmt = self._filtered(
            select(Alert),
            firm_id=firm_id,
            estado=estado,
            prioridad=prioridad,
            lot_id=lot_id,
            premise_id=premise_id,
            tipos=tipos,
            since=since,
            until=until,
            kpi_only=kpi_only,
        ).order_by(Alert.fecha.desc())
        if limit is not None:
            stmt = stmt.limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def count(
        self,
        *,
        firm_id: uuid.UUID,
        estado: str | None = None,
        prioridad: str | None = None,
        kpi_only: bool = False,
    ) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(Alert),
            firm_id=firm_id,
            estado=estado,
            prioridad=prioridad,
            kpi_only=kpi_only,
        )
        return int(self._session.scalar(stmt) or 0)

    def links_for(self, alert_id: uuid.UUID) -> list[KPIAlertLink]:
        return list(
            self._session.scalars(
                select(KPIAlertLink).where(KPIAlertLink.alert_id == alert_id)
            ).all()
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, alert_id: uuid.UUID) -> Alert:
        alert = self.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Alert not found: {alert_id}")
        return alert

    def _add_link(self, alert: Alert, link: KPIAlertLinkInput) -> None:
        try:
            with self._session.begin_nested():
                self._session.add(
                    KPIAlertLink(
                        alert_id=alert.id,
                        kpi_history_id=link.kpi_history_id,
                        threshold_type=link.threshold_type,
                        current_value=link.current_value,
                        days_in_status=link.days_in_status,
                        created_at=utcnow(),
                    )
                )
        except SQLAlchemyError as exc:
            logger.error(
                "kpi alert link failed alert_id=%s history_id=%s: %s",
                alert.id,
                link.kpi_history_id,
                exc,
                exc_info=True,
            )

    @staticmethod
    def _filtered(
        stmt: Select[Any],
        *,
        firm_id: uuid.UUID,
        estado: str | None = None,
        prioridad: str | None = None,
        lot_id: uuid.UUID | None = None,
        premise_id: uuid.UUID | None = None,
        tipos: Sequence[str] | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        kpi_only: bool = False,
    ) -> Select[Any]:
        stmt = stmt.where(Alert.firm_id == firm_id)
        if estado:
            stmt = stmt.where(Alert.estado == estado)
        if prioridad:
            stmt = stmt.where(Alert.prioridad == prioridad)
        if lot_id is not None:
            stmt = stmt.where(Alert.lot_id == lot_id)
        if premise_id is not None:
            stmt = stmt.where(Alert.premise_id == premise_id)
        if tipos:
            stmt = stmt.where(Alert.tipo.in_(list(tipos)))
        if since is not None:
            stmt = stmt.where(Alert.fecha >= since)
        if until is not None:
            stmt = stmt.where(Alert.fecha <= until)
        if kpi_only:
            stmt = stmt.where(Alert.regla_aplicada.like("KPI\\_%", escape="\\"))
        return stmt
