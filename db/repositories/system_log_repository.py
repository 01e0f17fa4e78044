"""
Repository for batch-run system logs and the user audit trail.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.system_log import AuditLog, SystemLog


class SystemLogRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def write(self, event: str, payload: dict[str, Any]) -> SystemLog:
        entry = SystemLog(
            event=event,
            message=json.dumps(payload, sort_keys=True, default=str),
            created_at=utcnow(),
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def audit(
        self,
        *,
        action: str,
        entity_type: str,
        firm_id: uuid.UUID | None = None,
        entity_id: uuid.UUID | None = None,
        user_id: str = "system",
        description: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            firm_id=firm_id,
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
            created_at=utcnow(),
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def recent(self, event: str | None = None, *, limit: int = 50) -> list[SystemLog]:
        stmt = select(SystemLog)
        if event:
            stmt = stmt.where(SystemLog.event == event)
        stmt = stmt.order_by(SystemLog.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())
