# Yard Gate — Database Models
# Import all models here for SQLAlchemy discovery

from yardgate.models.rfid_tag import RfidTag                                   # noqa
from yardgate.models.reader import Reader                                      # noqa
from yardgate.models.truck import Truck                                        # noqa
from yardgate.models.equipment import Equipment                                # noqa
from yardgate.models.kit_template import KitTemplate                           # noqa
from yardgate.models.severity_tier import SeverityTier                         # noqa
from yardgate.models.alert_rules import AlertRules                             # noqa
from yardgate.models.rfid_scan import RfidScan                                 # noqa
from yardgate.models.gate_crossing import Direction, GateCrossing, GateCrossingItem  # noqa
from yardgate.models.missing_case import (                                     # noqa
    CaseStatus, MissingEquipmentCase, MissingEquipmentCaseItem,
)
from yardgate.models.equipment_assignment import EquipmentAssignment           # noqa
from yardgate.models.alert import Alert                                        # noqa
from yardgate.models.processor_heartbeat import ProcessorHeartbeat             # noqa
