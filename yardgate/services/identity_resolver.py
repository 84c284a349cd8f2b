# yardgate/services/identity_resolver.py
"""
Identity Resolver — maps the EPCs of one scan session to known equipment
units and to (at most) one truck.

Results are flat records (EquipmentRef / ResolvedSession) keyed by id so the
downstream services never navigate live ORM graphs.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from yardgate.models.equipment import Equipment
from yardgate.models.reader import Reader
from yardgate.models.rfid_tag import RfidTag
from yardgate.models.truck import Truck
from yardgate.services.session_builder import ScanSession
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EquipmentRef:
    id: int
    name: str
    epc: str
    equipment_type_id: int
    cost: Decimal


@dataclass
class ResolvedSession:
    session: ScanSession
    reader_id: str
    reader_direction: Optional[str]
    site_id: str
    truck_id: int
    truck_number: str
    driver_id: Optional[int]
    epcs: Set[str]
    equipment: List[EquipmentRef] = field(default_factory=list)

    @property
    def event_time(self):
        return self.session.end

    @property
    def session_key(self) -> str:
        return f"{self.session.key()}#truck={self.truck_id}"


def normalize_epc(epc: Optional[str]) -> Optional[str]:
    """EPC comparison is trimmed and case-insensitive."""
    if epc is None:
        return None
    cleaned = epc.strip().upper()
    return cleaned or None


def session_epcs(session: ScanSession) -> Set[str]:
    return {e for e in (normalize_epc(s.epc) for s in session.scans) if e}


def lookup_equipment(db: Session, epcs: Set[str]) -> List[EquipmentRef]:
    if not epcs:
        return []
    rows = (
        db.query(Equipment.id, Equipment.name, Equipment.equipment_type_id, Equipment.cost, RfidTag.epc)
        .join(RfidTag, Equipment.tag_id == RfidTag.id)
        .filter(func.upper(RfidTag.epc).in_(sorted(epcs)), RfidTag.is_active.is_(True))
        .order_by(Equipment.id)
        .all()
    )
    return [
        EquipmentRef(
            id=row.id,
            name=row.name,
            epc=normalize_epc(row.epc),
            equipment_type_id=row.equipment_type_id,
            cost=Decimal(row.cost or 0),
        )
        for row in rows
    ]


def resolve_session(db: Session, session: ScanSession) -> Optional[ResolvedSession]:
    """
    Resolve a session to a truck and its scanned equipment.
    Returns None (with a diagnostic) when the session cannot be attributed
    to a business event: unknown reader, no truck tag, several truck tags,
    or no known equipment.
    """
    epcs = session_epcs(session)
    if not epcs:
        logger.info(f"[RESOLVE] Session {session.key()} has no usable EPCs — skipped")
        return None

    reader = db.get(Reader, session.reader_id)
    if reader is None or not reader.is_active:
        logger.warning(f"[RESOLVE] Session {session.key()} from unknown/inactive reader — skipped")
        return None

    trucks = (
        db.query(Truck.id, Truck.truck_number, Truck.driver_id)
        .join(RfidTag, Truck.tag_id == RfidTag.id)
        .filter(func.upper(RfidTag.epc).in_(sorted(epcs)), RfidTag.is_active.is_(True))
        .all()
    )
    if not trucks:
        logger.info(f"[RESOLVE] Session {session.key()} matched no truck tag ({len(epcs)} EPCs) — skipped")
        return None
    if len(trucks) > 1:
        numbers = ", ".join(t.truck_number for t in trucks)
        logger.warning(f"[RESOLVE] Session {session.key()} matched several trucks ({numbers}) — skipped")
        return None

    equipment = lookup_equipment(db, epcs)
    if not equipment:
        logger.info(f"[RESOLVE] Session {session.key()} truck={trucks[0].truck_number} has no known equipment — skipped")
        return None

    truck = trucks[0]
    return ResolvedSession(
        session=session,
        reader_id=reader.id,
        reader_direction=reader.direction,
        site_id=reader.site_id,
        truck_id=truck.id,
        truck_number=truck.truck_number,
        driver_id=truck.driver_id,
        epcs=epcs,
        equipment=equipment,
    )
