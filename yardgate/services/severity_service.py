# yardgate/services/severity_service.py
"""
Severity Classifier — maps the cost of missing equipment to a severity tier.

Tier intervals are parsed once into validated CostRange values and checked as
a whole: bounds are whole currency units, the tiers start at 0, are
contiguous ("$0-100", "$101-2000", "$2001+"), never overlap, and end with an
open tier. A broken table raises SeverityConfigError before anything is
classified.

Equipment costs carry cents, so classify() rounds the total up to the next
whole unit before the lookup ($100.50 is classified as $101). It then picks
the tier with the greatest minimum such that total >= min and (no max or
total <= max). No match (only possible for a negative total) raises
SeverityNotFoundError — there is no default tier.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from yardgate.models.severity_tier import SeverityTier
from yardgate.services.errors import SeverityConfigError, SeverityNotFoundError
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)

_STEP = Decimal("1")   # tiers are contiguous when next.min == prev.max + 1
_OPEN_RANGE = re.compile(r"^(\d+(?:\.\d+)?)\+$")
_CLOSED_RANGE = re.compile(r"^(\d+(?:\.\d+)?)-(\d+(?:\.\d+)?)$")


@dataclass(frozen=True)
class CostRange:
    minimum: Decimal
    maximum: Optional[Decimal] = None

    def __post_init__(self):
        if self.minimum < 0:
            raise SeverityConfigError(f"Cost range minimum {self.minimum} is negative")
        if self.maximum is not None and self.maximum < self.minimum:
            raise SeverityConfigError(f"Cost range {self.minimum}-{self.maximum} is inverted")

    def contains(self, amount: Decimal) -> bool:
        return amount >= self.minimum and (self.maximum is None or amount <= self.maximum)

    @classmethod
    def parse(cls, text: str) -> "CostRange":
        """Parse "$0-100", "$1,001 - 2,000" or "$2001+"."""
        if text is None:
            raise SeverityConfigError("Cost range is empty")
        cleaned = re.sub(r"[\s$,]", "", text)
        try:
            match = _OPEN_RANGE.match(cleaned)
            if match:
                return cls(Decimal(match.group(1)))
            match = _CLOSED_RANGE.match(cleaned)
            if match:
                return cls(Decimal(match.group(1)), Decimal(match.group(2)))
        except InvalidOperation as e:
            raise SeverityConfigError(f"Unparseable cost range '{text}'") from e
        raise SeverityConfigError(f"Unparseable cost range '{text}'")

    def __str__(self):
        return f"${self.minimum}+" if self.maximum is None else f"${self.minimum}-{self.maximum}"


@dataclass(frozen=True)
class Tier:
    id: Optional[int]
    code: str
    cost_range: CostRange
    priority: int = 0


class SeverityTable:
    """An ordered, gap-free, non-overlapping set of severity tiers."""

    def __init__(self, tiers: Iterable[Tier]):
        self.tiers: List[Tier] = sorted(tiers, key=lambda t: t.cost_range.minimum)
        self._validate()

    def _validate(self):
        if not self.tiers:
            raise SeverityConfigError("No severity tiers configured")

        for tier in self.tiers:
            bounds = [tier.cost_range.minimum, tier.cost_range.maximum]
            if any(b is not None and b != b.to_integral_value() for b in bounds):
                raise SeverityConfigError(
                    f"Severity tier {tier.code} ({tier.cost_range}) must use whole currency bounds"
                )

        first = self.tiers[0].cost_range
        if first.minimum != 0:
            raise SeverityConfigError(f"Lowest severity tier starts at {first.minimum}, not 0")

        for prev, nxt in zip(self.tiers, self.tiers[1:]):
            upper = prev.cost_range.maximum
            if upper is None or nxt.cost_range.minimum <= upper:
                raise SeverityConfigError(f"Severity tiers {prev.code} and {nxt.code} overlap")
            if nxt.cost_range.minimum > upper + _STEP:
                raise SeverityConfigError(f"Gap between severity tiers {prev.code} and {nxt.code}")

        if self.tiers[-1].cost_range.maximum is not None:
            raise SeverityConfigError(
                f"Top severity tier {self.tiers[-1].code} must be open-ended"
            )

    def classify(self, total: Decimal) -> Tier:
        amount = Decimal(total).to_integral_value(rounding=ROUND_CEILING)
        matches = [t for t in self.tiers if t.cost_range.contains(amount)]
        if not matches:
            raise SeverityNotFoundError(total)
        return max(matches, key=lambda t: t.cost_range.minimum)

    def by_id(self, tier_id: int) -> Optional[Tier]:
        return next((t for t in self.tiers if t.id == tier_id), None)

    @classmethod
    def from_config(cls, spec: str) -> "SeverityTable":
        """Build from "Low=$0-100;Medium=$101-2000;High=$2001+" (ids unset)."""
        tiers = []
        for priority, chunk in enumerate(p for p in (spec or "").split(";") if p.strip()):
            if "=" not in chunk:
                raise SeverityConfigError(f"Severity tier '{chunk}' is not CODE=RANGE")
            code, cost_range = chunk.split("=", 1)
            tiers.append(Tier(id=None, code=code.strip(), cost_range=CostRange.parse(cost_range),
                              priority=priority))
        return cls(tiers)


def load_severity_table(db: Session) -> SeverityTable:
    """Read and validate the tier table. Raises SeverityConfigError if it is unusable."""
    rows = db.query(SeverityTier).all()
    tiers = [
        Tier(
            id=row.id,
            code=row.code,
            cost_range=CostRange(Decimal(row.cost_range_min),
                                 None if row.cost_range_max is None else Decimal(row.cost_range_max)),
            priority=row.priority,
        )
        for row in rows
    ]
    table = SeverityTable(tiers)
    logger.debug("[SEVERITY] " + ", ".join(f"{t.code}={t.cost_range}" for t in table.tiers))
    return table


def seed_severity_tiers(db: Session, spec: str) -> List[SeverityTier]:
    """Insert the configured tiers when the table is empty. Validates before writing."""
    if db.query(SeverityTier.id).first():
        return []
    table = SeverityTable.from_config(spec)
    rows = [
        SeverityTier(code=t.code, priority=t.priority,
                     cost_range_min=t.cost_range.minimum, cost_range_max=t.cost_range.maximum)
        for t in table.tiers
    ]
    db.add_all(rows)
    db.commit()
    logger.info(f"[SEVERITY] Seeded {len(rows)} severity tier(s)")
    return rows
