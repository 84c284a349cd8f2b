"""Unit tests for the gate event classifier (direction + ordering rules)."""

from datetime import timedelta

from conftest import T0, resolve_scans
from yardgate.models.gate_crossing import Direction, GateCrossingItem
from yardgate.services.gate_event_service import record_gate_crossing, resolve_direction

WINDOW = timedelta(minutes=120)


def cross(db, yard, reader, at, *epcs):
    scans = yard.scans(reader, at, "TRUCK-001", *epcs)
    verdict = record_gate_crossing(db, resolve_scans(db, scans), WINDOW)
    db.commit()
    return verdict


class TestDirection:
    def test_fixed_readers(self, db, gate_yard):
        truck_id = gate_yard.truck_row.id
        assert resolve_direction(db, "Entry", truck_id, T0) == Direction.ENTRY
        assert resolve_direction(db, " exit ", truck_id, T0) == Direction.EXIT

    def test_bidirectional_first_of_day_is_entry(self, db, gate_yard):
        assert resolve_direction(db, "Both", gate_yard.truck_row.id, T0) == Direction.ENTRY

    def test_bidirectional_toggles(self, db, gate_yard):
        first = cross(db, gate_yard, "GATE-BOTH", T0, "EQ-001")
        second = cross(db, gate_yard, "GATE-BOTH", T0 + timedelta(minutes=10), "EQ-001")
        third = cross(db, gate_yard, "GATE-BOTH", T0 + timedelta(minutes=20), "EQ-001")
        assert [first.direction, second.direction, third.direction] == [
            Direction.ENTRY, Direction.EXIT, Direction.ENTRY,
        ]
        assert all(v.accepted for v in (first, second, third))

    def test_bidirectional_ignores_previous_day(self, db, gate_yard):
        cross(db, gate_yard, "GATE-BOTH", T0 - timedelta(days=1), "EQ-001")
        assert resolve_direction(db, "Both", gate_yard.truck_row.id, T0) == Direction.ENTRY

    def test_unknown_mode_defaults_to_entry(self, db, gate_yard):
        assert resolve_direction(db, None, gate_yard.truck_row.id, T0) == Direction.ENTRY


class TestOrderingRules:
    def test_first_crossing_entry_accepted_with_items(self, db, gate_yard):
        verdict = cross(db, gate_yard, "GATE-IN", T0, "EQ-001", "EQ-002")
        assert verdict.accepted
        assert verdict.crossing.direction == "Entry"
        assert verdict.crossing.driver_id == 7
        items = db.query(GateCrossingItem).filter_by(gate_crossing_id=verdict.crossing.id).all()
        assert sorted(i.epc for i in items) == ["EQ-001", "EQ-002"]

    def test_exit_without_entry_today_rejected(self, db, gate_yard):
        verdict = cross(db, gate_yard, "GATE-OUT", T0, "EQ-001")
        assert not verdict.accepted
        assert verdict.reason == "no entry recorded today"
        assert gate_yard.crossings() == []

    def test_entry_after_entry_rejected(self, db, gate_yard):
        cross(db, gate_yard, "GATE-IN", T0, "EQ-001")
        verdict = cross(db, gate_yard, "GATE-IN", T0 + timedelta(hours=3), "EQ-001")
        assert not verdict.accepted
        assert verdict.reason == "truck already inside"

    def test_exit_after_exit_rejected(self, db, gate_yard):
        cross(db, gate_yard, "GATE-IN", T0, "EQ-001")
        cross(db, gate_yard, "GATE-OUT", T0 + timedelta(minutes=10), "EQ-001")
        verdict = cross(db, gate_yard, "GATE-OUT", T0 + timedelta(hours=4), "EQ-001")
        assert not verdict.accepted
        assert verdict.reason == "truck already exited"

    def test_same_direction_across_midnight_suppressed(self, db, gate_yard):
        late = T0.replace(hour=23, minute=30) - timedelta(days=1)
        cross(db, gate_yard, "GATE-IN", late, "EQ-001")
        verdict = cross(db, gate_yard, "GATE-IN", late + timedelta(minutes=50), "EQ-001")
        assert not verdict.accepted
        assert verdict.reason.startswith("duplicate within")

    def test_same_direction_after_window_accepted_next_day(self, db, gate_yard):
        late = T0.replace(hour=21, minute=0) - timedelta(days=1)
        cross(db, gate_yard, "GATE-IN", late, "EQ-001")
        verdict = cross(db, gate_yard, "GATE-IN", T0, "EQ-001")
        assert verdict.accepted

    def test_replayed_session_rejected(self, db, gate_yard):
        scans = gate_yard.scans("GATE-IN", T0, "TRUCK-001", "EQ-001")
        resolved = resolve_scans(db, scans)
        assert record_gate_crossing(db, resolved, WINDOW).accepted
        db.commit()
        again = record_gate_crossing(db, resolve_scans(db, scans), WINDOW)
        assert not again.accepted
        assert again.reason == "session already recorded"
        assert len(gate_yard.crossings()) == 1
