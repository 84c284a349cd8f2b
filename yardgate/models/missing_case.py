# yardgate/models/missing_case.py
"""
Missing-equipment cases and their items.

A truck has at most one case whose status is not Closed. The partial unique
index enforces it at the database; a concurrent insert surfaces as an
IntegrityError and the unit of work is retried (see services/unit_of_work.py).
`version` is the optimistic-concurrency column for case updates.
"""

import enum

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text,
)
from yardgate.database import Base


class CaseStatus(str, enum.Enum):
    OPEN = "Open"
    INVESTIGATION = "Investigation"
    RECOVERED = "Recovered"
    CLOSED = "Closed"


class MissingEquipmentCase(Base):
    __tablename__ = "missing_equipment_cases"
    __table_args__ = (
        Index(
            "uq_missing_case_active_truck",
            "truck_id",
            unique=True,
            postgresql_where=text("status <> 'Closed'"),
            sqlite_where=text("status <> 'Closed'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    truck_id = Column(Integer, ForeignKey("trucks.id"), nullable=False, index=True)
    driver_id = Column(Integer)
    site_id = Column(String(64))
    status = Column(String(20), nullable=False, default=CaseStatus.OPEN.value)
    severity_id = Column(Integer, ForeignKey("severity_tiers.id"), nullable=False)
    opened_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime)
    closed_at = Column(DateTime)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<MissingEquipmentCase {self.id} truck={self.truck_id} status={self.status}>"


class MissingEquipmentCaseItem(Base):
    __tablename__ = "missing_equipment_case_items"
    __table_args__ = (UniqueConstraint("case_id", "epc", name="uq_case_item_epc"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("missing_equipment_cases.id"), nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False)
    epc = Column(String(128), nullable=False)
    site_id = Column(String(64))
    is_recovered = Column(Boolean, default=False, nullable=False)
    recovered_at = Column(DateTime)

    def __repr__(self):
        return f"<MissingEquipmentCaseItem case={self.case_id} epc={self.epc} recovered={self.is_recovered}>"
