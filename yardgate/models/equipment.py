# yardgate/models/equipment.py
"""
Equipment units (master data). One tag per unit; `cost` feeds severity scoring.
"""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from yardgate.database import Base


class Equipment(Base):
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    equipment_type_id = Column(Integer, nullable=False, index=True)
    tag_id = Column(Integer, ForeignKey("rfid_tags.id"), unique=True)
    cost = Column(Numeric(12, 2), nullable=False, default=0)

    def __repr__(self):
        return f"<Equipment {self.id} name={self.name} type={self.equipment_type_id}>"
