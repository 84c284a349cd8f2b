"""
RFID ingestion endpoint.
POST /rfid/ingest — readers push batches of decoded tag reads; they are
queued as raw scans for the scan processor. Nothing else happens here.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from yardgate.database import get_db
from yardgate.models.rfid_scan import RfidScan
from yardgate.schemas.rfid_scan import IngestResult, RfidEventBatch
from yardgate.utils.clock import to_naive_utc
from yardgate.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/rfid/ingest", response_model=IngestResult, summary="Queue a batch of RFID reads")
def ingest_scans(batch: RfidEventBatch, db: Session = Depends(get_db)):
    db.add_all([
        RfidScan(
            epc=event.epc,
            signal_strength=event.signal_strength,
            reader_id=batch.reader_id,
            site_id=batch.site_id,
            observed_at=to_naive_utc(event.timestamp),
        )
        for event in batch.events
    ])
    db.commit()
    logger.info(f"[INGEST] reader={batch.reader_id} site={batch.site_id} events={len(batch.events)}")
    return {"count": len(batch.events)}
