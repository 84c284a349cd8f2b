# yardgate/models/truck.py
"""
Trucks (master data). Resolved from a scan session through `tag_id`.
"""

from sqlalchemy import Column, ForeignKey, Integer, String
from yardgate.database import Base


class Truck(Base):
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    truck_number = Column(String(50), nullable=False, index=True)
    driver_id = Column(Integer)               # external driver registry (nullable)
    site_id = Column(String(64), nullable=False, index=True)
    tag_id = Column(Integer, ForeignKey("rfid_tags.id"), unique=True)

    def __repr__(self):
        return f"<Truck {self.id} number={self.truck_number}>"
