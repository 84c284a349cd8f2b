# yardgate/models/alert.py
"""
Alerts table — missing equipment, late returns and configuration defects.

`dedup_key` is the structured deduplication signature:
  MissingEquipment:<case_id>:<epc>
  LateReturn:<truck_id>
  System:<detail>
Only one unresolved alert may carry a given key (partial unique index).
"""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, text
from yardgate.database import Base


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        Index(
            "uq_alert_unresolved_key",
            "dedup_key",
            unique=True,
            postgresql_where=text("is_resolved = false"),
            sqlite_where=text("is_resolved = 0"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    message = Column(Text, nullable=False)
    severity = Column(String(50), nullable=False, default="Medium")
    source = Column(String(50), nullable=False, index=True)
    is_resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime)
    site_id = Column(String(64))
    truck_id = Column(Integer)
    case_id = Column(Integer)
    epc = Column(String(128))
    dedup_key = Column(String(200), nullable=False, index=True)

    def __repr__(self):
        return f"<Alert {self.id} source={self.source} key={self.dedup_key} resolved={self.is_resolved}>"
