# yardgate/models/alert_rules.py
"""
Alert rules — singleton row, created lazily with defaults from settings
by alert_service.get_alert_rules() when absent.
"""

from sqlalchemy import Boolean, Column, Integer
from yardgate.database import Base


class AlertRules(Base):
    __tablename__ = "alert_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    missing_item_threshold = Column(Integer, nullable=False, default=1)
    overdue_minutes = Column(Integer, nullable=False, default=60)
    notify_email = Column(Boolean, nullable=False, default=True)
    notify_sms = Column(Boolean, nullable=False, default=True)
    notify_push = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<AlertRules threshold={self.missing_item_threshold} overdue={self.overdue_minutes}m>"
