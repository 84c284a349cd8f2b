# yardgate/services/kit_reconciliation.py
"""
Kit Reconciliation — what should have been on the truck vs what was scanned.

On Exit the expected set is the truck's kit (equipment types with a positive
required count) expanded to the units that were actually recorded on the
truck's most recent Entry of the same day. Units never seen coming in are
never expected going out, so a catalog-wide expansion cannot invent phantom
shortfalls. No Entry today means nothing is expected.

On Entry the scan is compared with the outstanding items of the truck's
open case; items whose EPC reappears are recovered.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from yardgate.models.equipment import Equipment
from yardgate.models.gate_crossing import Direction, GateCrossingItem
from yardgate.models.kit_template import KitTemplate
from yardgate.models.missing_case import MissingEquipmentCaseItem
from yardgate.services.gate_event_service import last_crossing
from yardgate.services.identity_resolver import EquipmentRef, ResolvedSession, normalize_epc
from yardgate.utils.clock import day_start
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class KitResult:
    entry_crossing_id: Optional[int]
    expected: List[EquipmentRef] = field(default_factory=list)
    missing: List[EquipmentRef] = field(default_factory=list)

    @property
    def missing_cost(self) -> Decimal:
        return sum((e.cost for e in self.missing), Decimal("0"))


def expected_equipment_for_exit(db: Session, truck_id: int, exit_time) -> Tuple[Optional[int], List[EquipmentRef]]:
    """Kit units recorded on the truck's latest Entry of the day. Returns (entry_crossing_id, units)."""
    entry = last_crossing(db, truck_id, since=day_start(exit_time), until=exit_time,
                          direction=Direction.ENTRY)
    if entry is None:
        return None, []

    rows = (
        db.query(Equipment.id, Equipment.name, Equipment.equipment_type_id, Equipment.cost,
                 GateCrossingItem.epc)
        .join(GateCrossingItem, GateCrossingItem.equipment_id == Equipment.id)
        .join(KitTemplate, KitTemplate.equipment_type_id == Equipment.equipment_type_id)
        .filter(
            GateCrossingItem.gate_crossing_id == entry.id,
            KitTemplate.truck_id == truck_id,
            KitTemplate.required_count > 0,
        )
        .order_by(Equipment.id)
        .all()
    )

    expected = {}
    for row in rows:
        epc = normalize_epc(row.epc)
        expected[epc] = EquipmentRef(
            id=row.id,
            name=row.name,
            epc=epc,
            equipment_type_id=row.equipment_type_id,
            cost=Decimal(row.cost or 0),
        )
    return entry.id, list(expected.values())


def reconcile_exit(db: Session, resolved: ResolvedSession) -> KitResult:
    entry_id, expected = expected_equipment_for_exit(db, resolved.truck_id, resolved.event_time)
    missing = [unit for unit in expected if unit.epc not in resolved.epcs]
    result = KitResult(entry_crossing_id=entry_id, expected=expected, missing=missing)

    if missing:
        logger.info(
            f"[KIT] Truck={resolved.truck_number} expected={len(expected)} "
            f"missing={len(missing)} cost={result.missing_cost}"
        )
    return result


def reconcile_entry(items: Iterable[MissingEquipmentCaseItem],
                    scanned_epcs: Set[str]) -> Tuple[List[MissingEquipmentCaseItem], List[MissingEquipmentCaseItem]]:
    """Split outstanding case items into (reappeared, still missing)."""
    reappeared, outstanding = [], []
    for item in items:
        if item.is_recovered:
            continue
        if normalize_epc(item.epc) in scanned_epcs:
            reappeared.append(item)
        else:
            outstanding.append(item)
    return reappeared, outstanding
