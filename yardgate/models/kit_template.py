# yardgate/models/kit_template.py
"""
Kit templates — the expected contents of a truck, per equipment type.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from yardgate.database import Base


class KitTemplate(Base):
    __tablename__ = "kit_templates"
    __table_args__ = (UniqueConstraint("truck_id", "equipment_type_id", name="uq_kit_truck_type"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    truck_id = Column(Integer, ForeignKey("trucks.id"), nullable=False, index=True)
    equipment_type_id = Column(Integer, nullable=False)
    required_count = Column(Integer, nullable=False, default=1)
    site_id = Column(String(64))

    def __repr__(self):
        return f"<KitTemplate truck={self.truck_id} type={self.equipment_type_id} x{self.required_count}>"
