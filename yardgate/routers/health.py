"""
System health check endpoint.
Returns status of backend + DB + the scan processor's last heartbeat.
"""

from datetime import timedelta
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from yardgate.config import settings
from yardgate.database import get_db
from yardgate.models.processor_heartbeat import ProcessorHeartbeat
from yardgate.services.scan_processor import HEARTBEAT_NAME
from yardgate.utils.clock import utcnow

router = APIRouter()

# Heartbeat older than this many intervals means the processor is stuck or down
STALE_AFTER_INTERVALS = 3


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Scan processor heartbeat (last run, status, staleness)
    """
    now = utcnow()
    result = {
        "status": "ok",
        "timestamp": now.isoformat(),
        "backend": "ok",
        "database": "unknown",
        "processor": None,
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"
        return result

    beat = db.get(ProcessorHeartbeat, HEARTBEAT_NAME)
    if beat is None or beat.last_run_at is None:
        result["processor"] = {"state": "never_run"}
        if settings.SCAN_PROCESSOR_ENABLED:
            result["status"] = "degraded"
        return result

    stale_after = timedelta(seconds=settings.SCAN_PROCESSOR_INTERVAL_SECONDS * STALE_AFTER_INTERVALS)
    stale = now - beat.last_run_at > stale_after
    result["processor"] = {
        "state": "stale" if stale else "running",
        "last_run_at": beat.last_run_at.isoformat(),
        "last_status": beat.last_status,
        "sessions_seen": beat.sessions_seen,
        "crossings_created": beat.crossings_created,
        "failures": beat.failures,
        "message": beat.message,
    }
    if stale or beat.last_status == "failed":
        result["status"] = "degraded"
    return result
