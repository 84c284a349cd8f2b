# yardgate/models/reader.py
"""
Gate readers. `direction` fixes the crossing direction for a reader:
Entry | Exit | Both (bidirectional — direction inferred from truck history).
The id is the reader identifier sent with every ingested scan batch.
"""

from sqlalchemy import Boolean, Column, String
from yardgate.database import Base


class Reader(Base):
    __tablename__ = "readers"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False, default="")
    site_id = Column(String(64), nullable=False, index=True)
    direction = Column(String(10))
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Reader {self.id} site={self.site_id} direction={self.direction}>"
