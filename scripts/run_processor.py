"""
Run ONE scan processor pass and print the summary (cron / manual use).
Usage: python scripts/run_processor.py
"""

import asyncio
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from yardgate.database import SessionLocal
from yardgate.services.scan_processor import run_scan_processor


async def main() -> int:
    db = SessionLocal()
    try:
        summary = await run_scan_processor(db)
    finally:
        db.close()

    print(f"claimed={summary.claimed} sessions={summary.sessions} crossings={summary.crossings} "
          f"skipped={summary.skipped} rejected={summary.rejected} held_back={summary.held_back} "
          f"late_alerts={summary.late_alerts}")
    for failure in summary.failures:
        print(f"  ✗ {failure}")
    return 1 if summary.failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
