# yardgate/schemas/rfid_scan.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional


class RfidEventIn(BaseModel):
    epc: str = Field(min_length=1, max_length=128)
    signal_strength: Optional[float] = Field(default=None, alias="rssi")
    timestamp: datetime

    class Config:
        populate_by_name = True


class RfidEventBatch(BaseModel):
    reader_id: str
    site_id: str
    device_id: Optional[str] = None
    events: List[RfidEventIn]


class IngestResult(BaseModel):
    count: int
