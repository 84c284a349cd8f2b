"""Unit tests for the alert emitter (dedup keys, threshold, late returns)."""

from datetime import timedelta

import pytest

from conftest import T0
from yardgate.models.alert import Alert
from yardgate.models.alert_rules import AlertRules
from yardgate.services.alert_service import (
    emit_late_return_alert, emit_missing_equipment_alert, emit_system_alert, enabled_channels,
    get_alert_rules, late_return_key, missing_equipment_key, resolve_late_return_alerts,
)


async def missing(db, rules, case_id=1, epc="EQ-001", outstanding=1):
    alert = await emit_missing_equipment_alert(
        db, rules, case_id=case_id, epc=epc, equipment_name="Cone", truck_id=1,
        truck_number="TRK-1", severity="Low", outstanding=outstanding, timestamp=T0,
    )
    db.commit()
    return alert


class TestAlertRules:
    def test_created_lazily_with_defaults(self, db):
        assert db.query(AlertRules).count() == 0
        rules = get_alert_rules(db)
        assert rules.missing_item_threshold == 1
        assert rules.overdue_minutes == 60
        assert enabled_channels(rules) == ["email", "sms"]
        assert get_alert_rules(db).id == rules.id
        assert db.query(AlertRules).count() == 1


class TestMissingEquipmentAlerts:
    @pytest.mark.asyncio
    async def test_one_alert_per_case_and_epc(self, db):
        rules = get_alert_rules(db)
        first = await missing(db, rules)
        second = await missing(db, rules)

        assert first is not None
        assert second is None
        alert = db.query(Alert).one()
        assert alert.dedup_key == missing_equipment_key(1, "EQ-001") == "MissingEquipment:1:EQ-001"
        assert alert.source == "MissingEquipment"
        assert alert.severity == "Low"
        assert alert.case_id == 1 and alert.epc == "EQ-001"

    @pytest.mark.asyncio
    async def test_resolved_alert_still_suppresses(self, db):
        rules = get_alert_rules(db)
        alert = await missing(db, rules)
        alert.is_resolved = True
        db.commit()
        assert await missing(db, rules) is None

    @pytest.mark.asyncio
    async def test_other_case_gets_its_own_alert(self, db):
        rules = get_alert_rules(db)
        await missing(db, rules, case_id=1)
        await missing(db, rules, case_id=2)
        assert db.query(Alert).count() == 2

    @pytest.mark.asyncio
    async def test_below_threshold_not_alerted(self, db):
        rules = get_alert_rules(db)
        rules.missing_item_threshold = 3
        db.commit()
        assert await missing(db, rules, outstanding=2) is None
        assert await missing(db, rules, epc="EQ-002", outstanding=3) is not None
        assert db.query(Alert).count() == 1


class TestLateReturnAlerts:
    @pytest.mark.asyncio
    async def test_single_unresolved_alert_per_truck(self, db):
        rules = get_alert_rules(db)
        now = T0 + timedelta(minutes=90)
        first = await emit_late_return_alert(db, rules, 5, "TRK-5", exited_at=T0, now=now)
        db.commit()
        second = await emit_late_return_alert(db, rules, 5, "TRK-5", exited_at=T0,
                                              now=now + timedelta(minutes=10))
        db.commit()

        assert first is not None and second is None
        assert first.dedup_key == late_return_key(5)
        assert "90 min ago" in first.message

    @pytest.mark.asyncio
    async def test_resolve_then_alert_again(self, db):
        rules = get_alert_rules(db)
        await emit_late_return_alert(db, rules, 5, "TRK-5", exited_at=T0, now=T0 + timedelta(hours=2))
        db.commit()

        assert resolve_late_return_alerts(db, 5, T0 + timedelta(hours=3)) == 1
        db.commit()
        resolved = db.query(Alert).one()
        assert resolved.is_resolved
        assert resolved.resolved_at == T0 + timedelta(hours=3)

        again = await emit_late_return_alert(db, rules, 5, "TRK-5", exited_at=T0 + timedelta(hours=4),
                                             now=T0 + timedelta(hours=6))
        db.commit()
        assert again is not None
        assert db.query(Alert).count() == 2


class TestSystemAlerts:
    @pytest.mark.asyncio
    async def test_deduplicated_by_detail(self, db):
        assert await emit_system_alert(db, "severity-table", "broken") is not None
        db.commit()
        assert await emit_system_alert(db, "severity-table", "still broken") is None
        alert = db.query(Alert).one()
        assert alert.source == "System"
        assert alert.severity == "High"
