# yardgate/services/late_return_service.py
"""
Late-Return Monitor — trailing sweep over every truck's latest crossing.

Latest crossing is an Exit older than AlertRules.overdue_minutes → one
LateReturn alert (never a second while the first is unresolved).
Latest crossing is an Entry → any open LateReturn alert is resolved.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from yardgate.models.alert_rules import AlertRules
from yardgate.models.gate_crossing import Direction, GateCrossing
from yardgate.models.truck import Truck
from yardgate.services.alert_service import emit_late_return_alert, resolve_late_return_alerts
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SweepResult:
    alerted: List[int] = field(default_factory=list)     # truck ids
    resolved: List[int] = field(default_factory=list)


def latest_crossings(db: Session):
    """(GateCrossing, truck_number) for each truck's most recent crossing."""
    latest = (
        db.query(GateCrossing.truck_id, func.max(GateCrossing.event_time).label("event_time"))
        .group_by(GateCrossing.truck_id)
        .subquery()
    )
    rows = (
        db.query(GateCrossing, Truck.truck_number)
        .join(latest, (GateCrossing.truck_id == latest.c.truck_id)
              & (GateCrossing.event_time == latest.c.event_time))
        .join(Truck, Truck.id == GateCrossing.truck_id)
        .order_by(GateCrossing.truck_id, GateCrossing.id.desc())
        .all()
    )
    seen, result = set(), []
    for crossing, truck_number in rows:
        if crossing.truck_id in seen:
            continue
        seen.add(crossing.truck_id)
        result.append((crossing, truck_number))
    return result


async def sweep_late_returns(db: Session, rules: AlertRules, now: datetime) -> SweepResult:
    """Stage late-return alerts / resolutions. The caller commits."""
    result = SweepResult()
    limit = timedelta(minutes=rules.overdue_minutes)

    for crossing, truck_number in latest_crossings(db):
        if crossing.direction == Direction.ENTRY:
            if resolve_late_return_alerts(db, crossing.truck_id, now):
                result.resolved.append(crossing.truck_id)
                logger.info(f"[LATE] Truck={truck_number} back in — late-return alert resolved")
            continue

        if now - crossing.event_time <= limit:
            continue

        alert = await emit_late_return_alert(
            db, rules, truck_id=crossing.truck_id, truck_number=truck_number,
            exited_at=crossing.event_time, now=now, site_id=crossing.site_id,
        )
        if alert is not None:
            result.alerted.append(crossing.truck_id)

    return result
