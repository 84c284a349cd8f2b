"""HTTP surface: RFID ingestion and health."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from yardgate.database import get_db
from yardgate.main import app
from yardgate.models import ProcessorHeartbeat, RfidScan
from yardgate.services.scan_processor import HEARTBEAT_NAME
from yardgate.utils.clock import utcnow


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestIngest:
    def test_batch_is_queued_as_raw_scans(self, client, db):
        body = {
            "reader_id": "GATE-IN",
            "site_id": "SITE-1",
            "device_id": "R420-01",
            "events": [
                {"epc": "TRUCK-001", "rssi": -48.5, "timestamp": "2026-03-02T08:00:00Z"},
                {"epc": "EQ-001", "timestamp": "2026-03-02T10:00:01+02:00"},
            ],
        }
        resp = client.post("/api/v1/rfid/ingest", json=body)

        assert resp.status_code == 200
        assert resp.json() == {"count": 2}
        rows = db.query(RfidScan).order_by(RfidScan.id).all()
        assert [r.epc for r in rows] == ["TRUCK-001", "EQ-001"]
        assert rows[0].signal_strength == -48.5
        assert rows[1].observed_at.isoformat() == "2026-03-02T08:00:01"   # stored as naive UTC
        assert all(r.processed_at is None and r.reader_id == "GATE-IN" for r in rows)

    def test_invalid_event_rejected(self, client):
        resp = client.post("/api/v1/rfid/ingest", json={
            "reader_id": "GATE-IN", "site_id": "SITE-1", "events": [{"epc": "", "timestamp": "x"}],
        })
        assert resp.status_code == 422


class TestHealth:
    def test_never_run(self, client):
        body = client.get("/api/v1/health").json()
        assert body["database"] == "ok"
        assert body["processor"] == {"state": "never_run"}
        assert body["status"] == "ok"     # processor disabled in tests

    def test_recent_heartbeat_is_running(self, client, db):
        db.add(ProcessorHeartbeat(name=HEARTBEAT_NAME, last_run_at=utcnow(), last_status="ok",
                                  sessions_seen=2, crossings_created=2, failures=0))
        db.commit()

        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["processor"]["state"] == "running"
        assert body["processor"]["crossings_created"] == 2

    def test_stale_or_failed_heartbeat_degrades(self, client, db):
        db.add(ProcessorHeartbeat(name=HEARTBEAT_NAME, last_run_at=utcnow() - timedelta(hours=1),
                                  last_status="failed", message="SeverityConfigError: no tiers"))
        db.commit()

        body = client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert body["processor"]["state"] == "stale"
        assert body["processor"]["last_status"] == "failed"
