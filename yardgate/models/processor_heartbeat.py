# yardgate/models/processor_heartbeat.py
"""
Last-run record of the scan processor. External monitoring reads it
(via GET /health) to detect a stuck or failing processor.
"""

from sqlalchemy import Column, DateTime, Integer, String, Text
from yardgate.database import Base


class ProcessorHeartbeat(Base):
    __tablename__ = "processor_heartbeats"

    name = Column(String(50), primary_key=True)
    last_run_at = Column(DateTime)
    last_status = Column(String(20))          # ok | partial | failed
    sessions_seen = Column(Integer, default=0, nullable=False)
    crossings_created = Column(Integer, default=0, nullable=False)
    failures = Column(Integer, default=0, nullable=False)
    message = Column(Text)

    def __repr__(self):
        return f"<ProcessorHeartbeat {self.name} status={self.last_status} at={self.last_run_at}>"
