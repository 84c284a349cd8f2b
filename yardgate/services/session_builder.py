# yardgate/services/session_builder.py
"""
Session Builder — groups raw scans into physical gate-crossing sessions.

A session is the run of reads from ONE reader in which no gap between
consecutive reads exceeds the session window. Reads from different readers
never share a session. Sessions are returned in chronological order so
crossings of the same truck seen by different readers are applied in the
order they happened.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from itertools import groupby
from typing import Iterable, List

from yardgate.models.rfid_scan import RfidScan
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ScanSession:
    reader_id: str
    site_id: str
    start: datetime
    end: datetime
    scans: List[RfidScan] = field(default_factory=list)

    @property
    def scan_ids(self) -> List[int]:
        return [s.id for s in self.scans]

    def key(self) -> str:
        return f"{self.reader_id}@{self.start.isoformat()}"


def build_sessions(scans: Iterable[RfidScan], window: timedelta) -> List[ScanSession]:
    """Split scans into per-reader sessions; a gap strictly greater than `window` starts a new one."""
    ordered = sorted(scans, key=lambda s: (s.reader_id, s.observed_at))
    sessions: List[ScanSession] = []

    for reader_id, reader_scans in groupby(ordered, key=lambda s: s.reader_id):
        current = None
        for scan in reader_scans:
            if current is None or scan.observed_at - current.end > window:
                current = ScanSession(
                    reader_id=reader_id,
                    site_id=scan.site_id,
                    start=scan.observed_at,
                    end=scan.observed_at,
                )
                sessions.append(current)
            current.scans.append(scan)
            current.end = scan.observed_at

    sessions.sort(key=lambda s: (s.start, s.reader_id))
    logger.debug(f"[SESSION] {len(sessions)} session(s) from {len(ordered)} scan(s)")
    return sessions
