# yardgate/models/rfid_tag.py
"""
RFID tag catalog (master data, read-only to the processor).
Trucks and equipment point at a tag; the tag's EPC is what readers report.
"""

from sqlalchemy import Boolean, Column, Integer, String
from yardgate.database import Base


class RfidTag(Base):
    __tablename__ = "rfid_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    epc = Column(String(128), unique=True, nullable=False, index=True)
    site_id = Column(String(64), index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<RfidTag {self.id} epc={self.epc}>"
