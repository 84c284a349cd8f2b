"""Shared fixtures: an in-memory SQLite database per test and a yard seeding helper."""

import os
import sys
import tempfile

# Must be set before anything imports yardgate.config / yardgate.database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCAN_PROCESSOR_ENABLED"] = "false"
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="yardgate-logs-"))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from yardgate.database import create_tables
from yardgate.models import (
    Equipment, GateCrossing, KitTemplate, Reader, RfidScan, RfidTag, Truck,
)
from yardgate.services.severity_service import seed_severity_tiers

SITE = "SITE-1"
T0 = datetime(2026, 3, 2, 8, 0, 0)
DEFAULT_TIERS = "Low=$0-100;Medium=$101-2000;High=$2001+"


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


class Yard:
    """Seeds master data and raw scans for one test."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def reader(self, reader_id, direction):
        return self._save(Reader(id=reader_id, name=reader_id, site_id=SITE, direction=direction))

    def tag(self, epc):
        return self._save(RfidTag(epc=epc, site_id=SITE, is_active=True))

    def truck(self, number, epc, driver_id=7):
        tag = self.tag(epc)
        return self._save(Truck(truck_number=number, site_id=SITE, tag_id=tag.id, driver_id=driver_id))

    def equipment(self, name, epc, type_id=10, cost="50"):
        tag = self.tag(epc)
        return self._save(Equipment(name=name, equipment_type_id=type_id, tag_id=tag.id,
                                    cost=Decimal(cost)))

    def kit(self, truck, type_id=10, count=3):
        return self._save(KitTemplate(truck_id=truck.id, equipment_type_id=type_id,
                                      required_count=count, site_id=SITE))

    def tiers(self, spec=DEFAULT_TIERS):
        self.db.commit()
        return seed_severity_tiers(self.db, spec)

    def scans(self, reader_id, at, *epcs, step_seconds=1):
        """One read per EPC, `step_seconds` apart starting at `at`."""
        rows = [
            RfidScan(epc=epc, signal_strength=-55.0, reader_id=reader_id, site_id=SITE,
                     observed_at=at + timedelta(seconds=i * step_seconds))
            for i, epc in enumerate(epcs)
        ]
        self.db.add_all(rows)
        self.db.commit()
        return rows

    def crossings(self, truck_id=None):
        q = self.db.query(GateCrossing)
        if truck_id is not None:
            q = q.filter(GateCrossing.truck_id == truck_id)
        return q.order_by(GateCrossing.event_time).all()


@pytest.fixture
def yard(db):
    return Yard(db)


@pytest.fixture
def gate_yard(yard):
    """
    Entry reader GATE-IN, exit reader GATE-OUT, bidirectional GATE-BOTH,
    truck TRK-1 (tag TRUCK-001) whose kit requires three type-10 units;
    equipment EQ-001..EQ-003 are type 10, EQ-009 is an unrelated type.
    """
    yard.reader("GATE-IN", "Entry")
    yard.reader("GATE-OUT", "Exit")
    yard.reader("GATE-BOTH", "Both")
    yard.truck_row = yard.truck("TRK-1", "TRUCK-001")
    yard.eq = {
        "EQ-001": yard.equipment("Cone 1", "EQ-001"),
        "EQ-002": yard.equipment("Cone 2", "EQ-002"),
        "EQ-003": yard.equipment("Jack 3", "EQ-003", cost="150"),
        "EQ-009": yard.equipment("Radio", "EQ-009", type_id=20, cost="900"),
    }
    yard.kit(yard.truck_row, type_id=10, count=3)
    yard.tiers()
    return yard


def resolve_scans(db, scans):
    """Build the single session for `scans` and resolve it."""
    from yardgate.services.identity_resolver import resolve_session
    from yardgate.services.session_builder import build_sessions

    sessions = build_sessions(scans, timedelta(seconds=10))
    assert len(sessions) == 1
    return resolve_session(db, sessions[0])
