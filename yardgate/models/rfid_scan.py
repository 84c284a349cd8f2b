# yardgate/models/rfid_scan.py
"""
Raw RFID scan queue. Rows are written by the ingestion endpoint and consumed
by the scan processor.

  processed_at — set exactly once, in the same transaction that applies the
                 crossing built from the scan. Never cleared.
  claim_token  — run token stamped before processing (claim-before-process),
  claimed_at     so overlapping runs never work the same rows. Released when
                 the unit of work fails, so the scan is retried next run.
"""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String
from yardgate.database import Base


class RfidScan(Base):
    __tablename__ = "rfid_scans"
    __table_args__ = (
        Index("ix_rfid_scans_pending", "processed_at", "observed_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    epc = Column(String(128), nullable=False)
    signal_strength = Column(Float)
    reader_id = Column(String(64), nullable=False, index=True)
    site_id = Column(String(64), nullable=False)
    observed_at = Column(DateTime, nullable=False)
    processed_at = Column(DateTime)
    claim_token = Column(String(32), index=True)
    claimed_at = Column(DateTime)

    def __repr__(self):
        return f"<RfidScan {self.id} epc={self.epc} reader={self.reader_id} at={self.observed_at}>"
