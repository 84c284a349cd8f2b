# yardgate/services/alert_service.py
"""
Alert Emitter — deduplicated alert records for the scan processor.
Used by case_service (missing equipment), late_return_service (overdue trucks)
and scan_processor (configuration defects).

Every alert carries a structured dedup_key; the emitters check it instead of
matching message text. Alerts are staged on the caller's DB session and
committed with the caller's unit of work. Delivery over email/SMS/push is done
by an external notifier that reads the alerts table and the AlertRules
channel toggles.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from yardgate.config import settings
from yardgate.models.alert import Alert
from yardgate.models.alert_rules import AlertRules
from yardgate.utils.clock import utcnow
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)

SOURCE_MISSING = "MissingEquipment"
SOURCE_LATE_RETURN = "LateReturn"
SOURCE_SYSTEM = "System"


def missing_equipment_key(case_id: int, epc: str) -> str:
    return f"{SOURCE_MISSING}:{case_id}:{epc}"


def late_return_key(truck_id: int) -> str:
    return f"{SOURCE_LATE_RETURN}:{truck_id}"


def get_alert_rules(db: Session) -> AlertRules:
    """Return the singleton rules row, creating it with configured defaults if absent."""
    rules = db.query(AlertRules).order_by(AlertRules.id).first()
    if rules is None:
        rules = AlertRules(
            missing_item_threshold=settings.DEFAULT_MISSING_ITEM_THRESHOLD,
            overdue_minutes=settings.DEFAULT_OVERDUE_MINUTES,
            notify_email=settings.DEFAULT_NOTIFY_EMAIL,
            notify_sms=settings.DEFAULT_NOTIFY_SMS,
            notify_push=settings.DEFAULT_NOTIFY_PUSH,
        )
        db.add(rules)
        db.commit()
        logger.info(f"[ALERT] Created default alert rules: {rules}")
    return rules


def enabled_channels(rules: Optional[AlertRules]) -> List[str]:
    if rules is None:
        return []
    channels = []
    if rules.notify_email:
        channels.append("email")
    if rules.notify_sms:
        channels.append("sms")
    if rules.notify_push:
        channels.append("push")
    return channels


async def create_alert(db: Session, source: str, message: str, severity: str, dedup_key: str,
                       rules: AlertRules = None, site_id: str = None, truck_id: int = None,
                       case_id: int = None, epc: str = None, timestamp: datetime = None) -> Alert:
    """Stage an alert record. The caller commits."""
    alert = Alert(
        timestamp=timestamp or utcnow(),
        message=message,
        severity=severity,
        source=source,
        is_resolved=False,
        site_id=site_id,
        truck_id=truck_id,
        case_id=case_id,
        epc=epc,
        dedup_key=dedup_key,
    )
    db.add(alert)
    channels = ",".join(enabled_channels(rules)) or "none"
    logger.warning(f"[ALERT][{source.upper()}][{severity}] {message} (notify: {channels})")
    return alert


def alert_exists(db: Session, dedup_key: str, unresolved_only: bool = False) -> bool:
    q = db.query(Alert.id).filter(Alert.dedup_key == dedup_key)
    if unresolved_only:
        q = q.filter(Alert.is_resolved.is_(False))
    return q.first() is not None


async def emit_missing_equipment_alert(db: Session, rules: AlertRules, case_id: int, epc: str,
                                       equipment_name: str, truck_id: int, truck_number: str,
                                       severity: str, outstanding: int, site_id: str = None,
                                       timestamp: datetime = None) -> Optional[Alert]:
    """One alert per (case, EPC), once the case's outstanding count reaches the rule threshold."""
    if outstanding < rules.missing_item_threshold:
        logger.debug(f"[ALERT] Case {case_id}: {outstanding} missing < threshold "
                     f"{rules.missing_item_threshold}")
        return None

    key = missing_equipment_key(case_id, epc)
    if alert_exists(db, key):
        return None

    return await create_alert(
        db, SOURCE_MISSING,
        f"Case {case_id}: Truck {truck_number} missing equipment {equipment_name} (EPC: {epc})",
        severity, key, rules=rules, site_id=site_id, truck_id=truck_id, case_id=case_id,
        epc=epc, timestamp=timestamp,
    )


async def emit_late_return_alert(db: Session, rules: AlertRules, truck_id: int, truck_number: str,
                                 exited_at: datetime, now: datetime,
                                 site_id: str = None) -> Optional[Alert]:
    """One unresolved late-return alert per truck; an existing one stands in for any new one."""
    key = late_return_key(truck_id)
    if alert_exists(db, key, unresolved_only=True):
        return None

    overdue = int((now - exited_at).total_seconds() // 60)
    return await create_alert(
        db, SOURCE_LATE_RETURN,
        f"Truck {truck_number} has not returned: exited {exited_at:%Y-%m-%d %H:%M} "
        f"({overdue} min ago, limit {rules.overdue_minutes} min)",
        "Medium", key, rules=rules, site_id=site_id, truck_id=truck_id, timestamp=now,
    )


def resolve_late_return_alerts(db: Session, truck_id: int, now: datetime) -> int:
    """Resolve the truck's open late-return alert once it is back in. Returns rows touched."""
    alerts = (
        db.query(Alert)
        .filter(Alert.dedup_key == late_return_key(truck_id), Alert.is_resolved.is_(False))
        .all()
    )
    for alert in alerts:
        alert.is_resolved = True
        alert.resolved_at = now
    return len(alerts)


async def emit_system_alert(db: Session, detail: str, message: str,
                            rules: AlertRules = None) -> Optional[Alert]:
    """Configuration defects surfaced to operators; one unresolved alert per detail."""
    key = f"{SOURCE_SYSTEM}:{detail}"
    if alert_exists(db, key, unresolved_only=True):
        return None
    return await create_alert(db, SOURCE_SYSTEM, message, "High", key, rules=rules)
