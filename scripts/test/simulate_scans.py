"""Send a simulated truck crossing (truck tag + equipment tags) to the ingestion endpoint."""

import argparse
import random
import requests
from datetime import datetime, timedelta, timezone

BACKEND_URL = "http://127.0.0.1:8080/api/v1/rfid/ingest"


def build_batch(reader_id, site_id, truck_epc, equipment_epcs, reads_per_tag=3, spread_seconds=4):
    """Each tag is read a few times within a few seconds, like a real portal."""
    start = datetime.now(timezone.utc)
    events = []
    for epc in [truck_epc, *equipment_epcs]:
        for _ in range(reads_per_tag):
            offset = timedelta(seconds=random.uniform(0, spread_seconds))
            events.append({
                "epc": epc,
                "rssi": round(random.uniform(-70, -40), 1),
                "timestamp": (start + offset).isoformat(),
            })
    random.shuffle(events)   # readers do not guarantee order
    return {"reader_id": reader_id, "site_id": site_id, "events": events}


def main():
    parser = argparse.ArgumentParser(description="Simulate an RFID gate crossing")
    parser.add_argument("--url", default=BACKEND_URL)
    parser.add_argument("--reader", required=True)
    parser.add_argument("--site", required=True)
    parser.add_argument("--truck", required=True, help="Truck tag EPC")
    parser.add_argument("--equipment", nargs="*", default=[], help="Equipment tag EPCs")
    parser.add_argument("--api-key", default=None)
    args = parser.parse_args()

    batch = build_batch(args.reader, args.site, args.truck, args.equipment)
    headers = {"X-API-Key": args.api_key} if args.api_key else {}
    resp = requests.post(args.url, json=batch, headers=headers, timeout=10)
    print(f"→ {len(batch['events'])} reads sent: HTTP {resp.status_code} {resp.text}")


if __name__ == "__main__":
    main()
