# yardgate/services/gate_event_service.py
"""
Gate Event Classifier — decides Entry vs Exit for a resolved session and
stages exactly one GateCrossing (+ items) for it.

Direction:
  - reader fixed to Entry / Exit  → that direction
  - reader set to Both            → toggle against the truck's last crossing
                                    of the day (first of the day = Entry)

Ordering / idempotency rules, checked before anything is written:
  - an already-recorded session (same session_key) is ignored
  - Entry is rejected if the truck's last crossing today is an Entry
  - Exit is rejected if the truck has no crossing today, or the last one is an Exit
  - a crossing in the same direction as the truck's previous one (any day)
    within the duplicate-suppression window is ignored (reflected reads)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from yardgate.models.gate_crossing import Direction, GateCrossing, GateCrossingItem
from yardgate.services.identity_resolver import ResolvedSession
from yardgate.utils.clock import day_start, utcnow
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ClassifierVerdict:
    accepted: bool
    direction: Direction
    reason: str
    crossing: Optional[GateCrossing] = None
    items: List[GateCrossingItem] = field(default_factory=list)


def last_crossing(db: Session, truck_id: int, since: datetime = None,
                  until: datetime = None, direction: Direction = None) -> Optional[GateCrossing]:
    """Most recent crossing of a truck, optionally bounded in time and filtered by direction."""
    q = db.query(GateCrossing).filter(GateCrossing.truck_id == truck_id)
    if since is not None:
        q = q.filter(GateCrossing.event_time >= since)
    if until is not None:
        q = q.filter(GateCrossing.event_time <= until)
    if direction is not None:
        q = q.filter(GateCrossing.direction == direction.value)
    return q.order_by(GateCrossing.event_time.desc(), GateCrossing.id.desc()).first()


def resolve_direction(db: Session, reader_direction: Optional[str], truck_id: int,
                      event_time: datetime) -> Direction:
    mode = (reader_direction or "").strip().upper()
    if mode == "ENTRY":
        return Direction.ENTRY
    if mode == "EXIT":
        return Direction.EXIT
    if mode == "BOTH":
        previous = last_crossing(db, truck_id, since=day_start(event_time), until=event_time)
        if previous is None:
            return Direction.ENTRY
        return Direction.EXIT if previous.direction == Direction.ENTRY else Direction.ENTRY

    logger.warning(f"[GATE] Reader direction '{reader_direction}' not recognised — defaulting to Entry")
    return Direction.ENTRY


def _reject(direction: Direction, reason: str, resolved: ResolvedSession) -> ClassifierVerdict:
    logger.info(
        f"[GATE] {direction.value} rejected: {reason} | Truck={resolved.truck_number} "
        f"Reader={resolved.reader_id} At={resolved.event_time}"
    )
    return ClassifierVerdict(accepted=False, direction=direction, reason=reason)


def record_gate_crossing(db: Session, resolved: ResolvedSession,
                         duplicate_window: timedelta) -> ClassifierVerdict:
    """Validate the crossing and, when accepted, stage it with one item per equipment unit."""
    event_time = resolved.event_time
    direction = resolve_direction(db, resolved.reader_direction, resolved.truck_id, event_time)

    replayed = db.query(GateCrossing.id).filter(GateCrossing.session_key == resolved.session_key).first()
    if replayed:
        return _reject(direction, "session already recorded", resolved)

    last_today = last_crossing(db, resolved.truck_id, since=day_start(event_time), until=event_time)
    if direction == Direction.ENTRY:
        if last_today is not None and last_today.direction == Direction.ENTRY:
            return _reject(direction, "truck already inside", resolved)
    else:
        if last_today is None:
            return _reject(direction, "no entry recorded today", resolved)
        if last_today.direction == Direction.EXIT:
            return _reject(direction, "truck already exited", resolved)

    previous = last_crossing(db, resolved.truck_id, until=event_time)
    if (previous is not None and previous.direction == direction
            and event_time - previous.event_time < duplicate_window):
        return _reject(direction, f"duplicate within {duplicate_window}", resolved)

    crossing = GateCrossing(
        truck_id=resolved.truck_id,
        driver_id=resolved.driver_id,
        reader_id=resolved.reader_id,
        site_id=resolved.site_id,
        event_time=event_time,
        direction=direction.value,
        status="Completed",
        session_key=resolved.session_key,
        created_at=utcnow(),
    )
    db.add(crossing)
    db.flush()  # crossing.id for the items

    items = []
    for equipment in resolved.equipment:
        item = GateCrossingItem(
            gate_crossing_id=crossing.id,
            equipment_id=equipment.id,
            epc=equipment.epc,
            site_id=resolved.site_id,
        )
        db.add(item)
        items.append(item)

    logger.info(
        f"[GATE] {direction.value} | Truck={resolved.truck_number} Reader={resolved.reader_id} "
        f"Items={len(items)} At={event_time}"
    )
    return ClassifierVerdict(accepted=True, direction=direction, reason="accepted",
                             crossing=crossing, items=items)
