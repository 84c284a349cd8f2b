# yardgate/services/assignment_service.py
"""
Assignment Ledger — custody bookkeeping driven by gate crossings.

Entry: every scanned unit without an active assignment to the truck gets one.
Exit:  the active assignment of every scanned unit is returned.
Independent of the case lifecycle. The partial unique index on
(truck_id, equipment_id) WHERE returned_at IS NULL backs the
one-active-assignment rule against concurrent writers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List

from sqlalchemy.orm import Session

from yardgate.models.equipment_assignment import EquipmentAssignment
from yardgate.models.gate_crossing import Direction
from yardgate.services.identity_resolver import EquipmentRef
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CustodyChange:
    opened: List[int] = field(default_factory=list)     # equipment ids
    returned: List[int] = field(default_factory=list)


def active_assignments(db: Session, truck_id: int, equipment_ids: Iterable[int]):
    ids = list(equipment_ids)
    if not ids:
        return {}
    rows = (
        db.query(EquipmentAssignment)
        .filter(
            EquipmentAssignment.truck_id == truck_id,
            EquipmentAssignment.equipment_id.in_(ids),
            EquipmentAssignment.returned_at.is_(None),
        )
        .all()
    )
    return {row.equipment_id: row for row in rows}


def apply_custody(db: Session, truck_id: int, site_id: str, direction: Direction,
                  equipment: List[EquipmentRef], at: datetime) -> CustodyChange:
    change = CustodyChange()
    active = active_assignments(db, truck_id, (e.id for e in equipment))

    if direction == Direction.ENTRY:
        for unit in equipment:
            if unit.id in active:
                continue
            assignment = EquipmentAssignment(
                truck_id=truck_id,
                equipment_id=unit.id,
                site_id=site_id,
                assigned_at=at,
            )
            db.add(assignment)
            active[unit.id] = assignment
            change.opened.append(unit.id)
    else:
        for unit in equipment:
            assignment = active.get(unit.id)
            if assignment is None:
                continue
            assignment.returned_at = at
            change.returned.append(unit.id)

    if change.opened or change.returned:
        logger.info(
            f"[CUSTODY] Truck={truck_id} {direction.value}: "
            f"assigned={len(change.opened)} returned={len(change.returned)}"
        )
    return change
