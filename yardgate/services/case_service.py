# yardgate/services/case_service.py
"""
Missing-Equipment Case Manager — one case per truck across gate events.

    Open ──(shortfall at entry)──▶ Investigation ──(all items recovered)──▶ Closed
      │                                   │
      └──────(operator resolve)──▶ Recovered ──(new shortfall)──▶ Investigation

Rules held by every path in this module:
  - a truck has at most one case whose status is not Closed (find-or-create)
  - an EPC is never added twice to the same case
  - item recovery is monotonic: once recovered, an item stays recovered
  - Closed is terminal; a closed case is invisible to find-or-create, so the
    truck's next shortfall opens a fresh case
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from yardgate.models.alert_rules import AlertRules
from yardgate.models.equipment import Equipment
from yardgate.models.missing_case import CaseStatus, MissingEquipmentCase, MissingEquipmentCaseItem
from yardgate.services.alert_service import emit_missing_equipment_alert
from yardgate.services.errors import CaseNotFoundError, InvalidCaseTransition
from yardgate.services.identity_resolver import EquipmentRef, ResolvedSession, normalize_epc
from yardgate.services.kit_reconciliation import reconcile_entry
from yardgate.services.severity_service import SeverityTable
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)


class CaseEvent(str, enum.Enum):
    SHORTFALL_AT_EXIT = "SHORTFALL_AT_EXIT"
    SHORTFALL_AT_ENTRY = "SHORTFALL_AT_ENTRY"
    ALL_RECOVERED = "ALL_RECOVERED"
    OPERATOR_RESOLVE = "OPERATOR_RESOLVE"
    OPERATOR_CLOSE = "OPERATOR_CLOSE"


_ACTIVE = (CaseStatus.OPEN, CaseStatus.INVESTIGATION, CaseStatus.RECOVERED)

# Allowed transitions: (current_status, event) -> next_status. None = no case yet.
_ALLOWED: Dict[Tuple[Optional[CaseStatus], CaseEvent], CaseStatus] = {
    (None, CaseEvent.SHORTFALL_AT_EXIT): CaseStatus.OPEN,
    (CaseStatus.OPEN, CaseEvent.SHORTFALL_AT_EXIT): CaseStatus.OPEN,
    (CaseStatus.INVESTIGATION, CaseEvent.SHORTFALL_AT_EXIT): CaseStatus.INVESTIGATION,
    (CaseStatus.RECOVERED, CaseEvent.SHORTFALL_AT_EXIT): CaseStatus.INVESTIGATION,
    (CaseStatus.OPEN, CaseEvent.OPERATOR_RESOLVE): CaseStatus.RECOVERED,
    (CaseStatus.INVESTIGATION, CaseEvent.OPERATOR_RESOLVE): CaseStatus.RECOVERED,
}
for _status in _ACTIVE:
    _ALLOWED[(_status, CaseEvent.SHORTFALL_AT_ENTRY)] = CaseStatus.INVESTIGATION
    _ALLOWED[(_status, CaseEvent.ALL_RECOVERED)] = CaseStatus.CLOSED
    _ALLOWED[(_status, CaseEvent.OPERATOR_CLOSE)] = CaseStatus.CLOSED


def next_status(current: Optional[CaseStatus], event: CaseEvent) -> CaseStatus:
    current = CaseStatus(current) if current is not None else None
    try:
        return _ALLOWED[(current, event)]
    except KeyError:
        raise InvalidCaseTransition(current, event) from None


@dataclass
class CaseOutcome:
    case_id: Optional[int]
    status: Optional[CaseStatus]
    opened: bool = False
    appended: List[str] = field(default_factory=list)
    recovered: List[str] = field(default_factory=list)
    outstanding: int = 0
    severity: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self.status == CaseStatus.CLOSED


def find_active_case(db: Session, truck_id: int) -> Optional[MissingEquipmentCase]:
    """The truck's single non-Closed case, if any."""
    return (
        db.query(MissingEquipmentCase)
        .filter(MissingEquipmentCase.truck_id == truck_id,
                MissingEquipmentCase.status != CaseStatus.CLOSED.value)
        .order_by(MissingEquipmentCase.opened_at.desc())
        .first()
    )


def _items_with_cost(db: Session, case_id: int) -> List[Tuple[MissingEquipmentCaseItem, Decimal]]:
    rows = (
        db.query(MissingEquipmentCaseItem, Equipment.cost)
        .join(Equipment, Equipment.id == MissingEquipmentCaseItem.equipment_id)
        .filter(MissingEquipmentCaseItem.case_id == case_id)
        .order_by(MissingEquipmentCaseItem.id)
        .all()
    )
    return [(item, Decimal(cost or 0)) for item, cost in rows]


def _recover(items: List[MissingEquipmentCaseItem], epcs: Set[str],
             at: datetime) -> Tuple[List[MissingEquipmentCaseItem], List[MissingEquipmentCaseItem]]:
    reappeared, outstanding = reconcile_entry(items, epcs)
    for item in reappeared:
        item.is_recovered = True
        item.recovered_at = at
    return reappeared, outstanding


def _close(case: MissingEquipmentCase, event: CaseEvent, at: datetime):
    case.status = next_status(case.status, event).value
    case.closed_at = at
    case.last_seen_at = at
    logger.info(f"[CASE] Case {case.id} truck={case.truck_id} closed ({event.value})")


async def apply_exit_scan(db: Session, resolved: ResolvedSession, missing: List[EquipmentRef],
                          severity_table: SeverityTable, rules: AlertRules) -> CaseOutcome:
    """
    Exit: recover case items seen leaving, then record the kit shortfall.
    Opens the truck's case on its first shortfall; appends only EPCs not yet on it.
    """
    now = resolved.event_time
    case = find_active_case(db, resolved.truck_id)

    rows = _items_with_cost(db, case.id) if case is not None else []
    reappeared, outstanding = _recover([item for item, _ in rows], resolved.epcs, now)
    recovered = [item.epc for item in reappeared]

    if not missing:
        if case is None:
            return CaseOutcome(case_id=None, status=None)
        if rows and not outstanding:
            _close(case, CaseEvent.ALL_RECOVERED, now)
        return CaseOutcome(case_id=case.id, status=CaseStatus(case.status),
                           recovered=recovered, outstanding=len(outstanding))

    known = {normalize_epc(item.epc) for item, _ in rows}
    new_units = [unit for unit in missing if unit.epc not in known]

    outstanding_ids = {item.id for item in outstanding}
    outstanding_cost = sum((cost for item, cost in rows if item.id in outstanding_ids), Decimal("0"))
    outstanding_cost += sum((unit.cost for unit in new_units), Decimal("0"))
    tier = severity_table.classify(outstanding_cost)

    opened = case is None
    if opened:
        case = MissingEquipmentCase(
            truck_id=resolved.truck_id,
            driver_id=resolved.driver_id,
            site_id=resolved.site_id,
            status=next_status(None, CaseEvent.SHORTFALL_AT_EXIT).value,
            severity_id=tier.id,
            opened_at=now,
            last_seen_at=now,
        )
        db.add(case)
        db.flush()  # case.id for items and alert keys
        logger.info(f"[CASE] Opened case {case.id} truck={resolved.truck_number} severity={tier.code}")
    else:
        case.status = next_status(case.status, CaseEvent.SHORTFALL_AT_EXIT).value
        case.severity_id = tier.id
        case.last_seen_at = now

    for unit in new_units:
        db.add(MissingEquipmentCaseItem(
            case_id=case.id,
            equipment_id=unit.id,
            epc=unit.epc,
            site_id=resolved.site_id,
            is_recovered=False,
        ))

    outstanding_count = len(outstanding) + len(new_units)
    for unit in new_units:
        await emit_missing_equipment_alert(
            db, rules, case_id=case.id, epc=unit.epc, equipment_name=unit.name,
            truck_id=resolved.truck_id, truck_number=resolved.truck_number,
            severity=tier.code, outstanding=outstanding_count, site_id=resolved.site_id,
            timestamp=now,
        )

    logger.info(
        f"[CASE] Case {case.id} truck={resolved.truck_number} status={case.status} "
        f"appended={len(new_units)} outstanding={outstanding_count} cost={outstanding_cost}"
    )
    return CaseOutcome(
        case_id=case.id,
        status=CaseStatus(case.status),
        opened=opened,
        appended=[unit.epc for unit in new_units],
        recovered=recovered,
        outstanding=outstanding_count,
        severity=tier.code,
    )


async def apply_entry_scan(db: Session, resolved: ResolvedSession,
                           severity_table: SeverityTable) -> CaseOutcome:
    """
    Entry: recover items that came back. Closes the case when nothing is
    outstanding, otherwise escalates it to Investigation and re-scores severity.
    """
    now = resolved.event_time
    case = find_active_case(db, resolved.truck_id)
    if case is None:
        return CaseOutcome(case_id=None, status=None)

    rows = _items_with_cost(db, case.id)
    reappeared, outstanding = _recover([item for item, _ in rows], resolved.epcs, now)
    recovered = [item.epc for item in reappeared]

    if not outstanding:
        _close(case, CaseEvent.ALL_RECOVERED, now)
        return CaseOutcome(case_id=case.id, status=CaseStatus.CLOSED, recovered=recovered)

    outstanding_ids = {item.id for item in outstanding}
    cost = sum((c for item, c in rows if item.id in outstanding_ids), Decimal("0"))
    tier = severity_table.classify(cost)

    case.status = next_status(case.status, CaseEvent.SHORTFALL_AT_ENTRY).value
    case.severity_id = tier.id
    case.last_seen_at = now
    logger.info(
        f"[CASE] Case {case.id} truck={resolved.truck_number} returned with "
        f"{len(outstanding)} item(s) still missing — {case.status}, severity={tier.code}"
    )
    return CaseOutcome(case_id=case.id, status=CaseStatus(case.status), recovered=recovered,
                       outstanding=len(outstanding), severity=tier.code)


def _get_case(db: Session, case_id: int) -> MissingEquipmentCase:
    case = db.get(MissingEquipmentCase, case_id)
    if case is None:
        raise CaseNotFoundError(case_id)
    return case


def resolve_case(db: Session, case_id: int, at: datetime) -> MissingEquipmentCase:
    """Operator workflow: nothing further to chase, but not formally closed."""
    case = _get_case(db, case_id)
    case.status = next_status(case.status, CaseEvent.OPERATOR_RESOLVE).value
    case.last_seen_at = at
    return case


def close_case(db: Session, case_id: int, at: datetime) -> MissingEquipmentCase:
    """Operator workflow: close regardless of outstanding items."""
    case = _get_case(db, case_id)
    _close(case, CaseEvent.OPERATOR_CLOSE, at)
    return case
