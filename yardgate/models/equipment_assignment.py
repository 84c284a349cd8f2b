# yardgate/models/equipment_assignment.py
"""
Custody ledger — which equipment is checked out to which truck.
At most one active (returned_at IS NULL) row per (truck, equipment).
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from yardgate.database import Base


class EquipmentAssignment(Base):
    __tablename__ = "equipment_assignments"
    __table_args__ = (
        Index(
            "uq_assignment_active",
            "truck_id",
            "equipment_id",
            unique=True,
            postgresql_where=text("returned_at IS NULL"),
            sqlite_where=text("returned_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    truck_id = Column(Integer, ForeignKey("trucks.id"), nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, index=True)
    site_id = Column(String(64))
    assigned_at = Column(DateTime, nullable=False)
    returned_at = Column(DateTime)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<EquipmentAssignment truck={self.truck_id} equipment={self.equipment_id} returned={self.returned_at}>"
