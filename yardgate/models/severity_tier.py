# yardgate/models/severity_tier.py
"""
Missing-equipment severity tiers. Each tier covers a cost interval
[cost_range_min, cost_range_max]; the top tier leaves the max unset.
Validated into a SeverityTable by services/severity_service.py before use.
"""

from sqlalchemy import Column, Integer, Numeric, String
from yardgate.database import Base


class SeverityTier(Base):
    __tablename__ = "severity_tiers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    cost_range_min = Column(Numeric(12, 2), nullable=False)
    cost_range_max = Column(Numeric(12, 2))

    def __repr__(self):
        return f"<SeverityTier {self.code} {self.cost_range_min}-{self.cost_range_max or '∞'}>"
