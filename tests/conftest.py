"""
tests/conftest.py

Shared fixtures.

Database tests run against SQLite with the full ORM metadata created from
the models; the partial unique index on pending alerts and the history
upsert both work there. ``FakeFarmSource`` serves the formula tests without
any database.
"""

from __future__ import annotations

import fnmatch
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers every table on Base.metadata
from db.base import Base
from db.models.firm import Firm, Lot
from db.repositories.kpi_definition_repository import KPIDefinitionRepository
from kpi.source import AmountSummary, LivestockEvent, PastureReading, WorkApproval


# ---------------------------------------------------------------------------
# In-memory farm data
# ---------------------------------------------------------------------------


@dataclass
class FakeFarmSource:
    events: list[tuple[uuid.UUID | None, LivestockEvent]] = field(default_factory=list)
    expenses: list[tuple[date, str, float]] = field(default_factory=list)
    income: list[tuple[date, float]] = field(default_factory=list)
    hectares: float = 0.0
    readings: list[PastureReading] = field(default_factory=list)
    works: list[WorkApproval] = field(default_factory=list)

    def add_event(self, event: LivestockEvent, lot_id: uuid.UUID | None = None) -> None:
        self.events.append((lot_id, event))

    def _events(self, event_type, lot_id):
        return [
            e
            for lot, e in self.events
            if (event_type is None or e.event_type == event_type)
            and (lot_id is None or lot == lot_id)
        ]

    def livestock_events(self, firm_id, start, end, *, event_type=None, lot_id=None):
        selected = [e for e in self._events(event_type, lot_id) if start <= e.date <= end]
        return sorted(selected, key=lambda e: e.date)

    def latest_livestock_event(self, firm_id, on_or_before, *, event_type=None, lot_id=None):
        selected = [e for e in self._events(event_type, lot_id) if e.date <= on_or_before]
        return max(selected, key=lambda e: e.date) if selected else None

    def expense_summary(self, firm_id, start, end, category_pattern):
        pattern = category_pattern.replace("%", "*").lower()
        rows = [
            amount
            for day, category, amount in self.expenses
            if start <= day <= end and fnmatch.fnmatch(category.lower(), pattern)
        ]
        return AmountSummary(total=float(sum(rows)), count=len(rows))

    def income_summary(self, firm_id, start, end):
        rows = [amount for day, amount in self.income if start <= day <= end]
        return AmountSummary(total=float(sum(rows)), count=len(rows))

    def total_hectares(self, firm_id, lot_id=None):
        return self.hectares

    def pasture_readings(self, firm_id, start, end, *, lot_id=None):
        return sorted(
            (r for r in self.readings if start <= r.fecha <= end),
            key=lambda r: r.fecha,
        )

    def agricultural_works(self, firm_id, start, end, *, status=None):
        return [
            w
            for w in self.works
            if start <= w.created_at.date() <= end and (status is None or w.status == status)
        ]


@pytest.fixture()
def farm_source() -> FakeFarmSource:
    return FakeFarmSource()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def catalogue(session: Session) -> int:
    inserted = KPIDefinitionRepository(session).ensure_catalogue()
    session.commit()
    return inserted


@pytest.fixture()
def firm(session: Session) -> Firm:
    row = Firm(name="Estancia La Aurora", rut="210000000017", is_active=True)
    session.add(row)
    session.commit()
    return row


@pytest.fixture()
def lot(session: Session, firm: Firm) -> Lot:
    row = Lot(firm_id=firm.id, name="Potrero Norte", area_hectares=120.0)
    session.add(row)
    session.commit()
    return row
