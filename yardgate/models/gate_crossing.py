# yardgate/models/gate_crossing.py
"""
Gate crossings — one row per reconciled scan session (Entry or Exit),
plus one item per recognised equipment unit.

`session_key` identifies the physical session (reader + session start + truck)
so a replayed session can never produce a second crossing.
"""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from yardgate.database import Base


class Direction(str, enum.Enum):
    ENTRY = "Entry"
    EXIT = "Exit"


class GateCrossing(Base):
    __tablename__ = "gate_crossings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    truck_id = Column(Integer, ForeignKey("trucks.id"), nullable=False, index=True)
    driver_id = Column(Integer)
    reader_id = Column(String(64), nullable=False)
    site_id = Column(String(64), nullable=False)
    event_time = Column(DateTime, nullable=False, index=True)
    direction = Column(String(10), nullable=False)    # Entry | Exit
    status = Column(String(30), nullable=False, default="Completed")
    notes = Column(Text)
    session_key = Column(String(200), unique=True, nullable=False)
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<GateCrossing {self.id} truck={self.truck_id} {self.direction} at={self.event_time}>"


class GateCrossingItem(Base):
    __tablename__ = "gate_crossing_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    gate_crossing_id = Column(Integer, ForeignKey("gate_crossings.id"), nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False)
    epc = Column(String(128), nullable=False)
    site_id = Column(String(64))

    def __repr__(self):
        return f"<GateCrossingItem crossing={self.gate_crossing_id} epc={self.epc}>"
