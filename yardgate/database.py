# yardgate/database.py
"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL. All models are auto-imported here
so create_tables() creates every table in one call.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from yardgate.config import settings

_engine_kwargs = {
    "pool_pre_ping": True,       # Auto-reconnect if DB connection drops
    "echo": False,               # Set True to log all SQL queries (debug only)
}
if not settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(pool_size=10, max_overflow=20)

engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency — yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models():
    """Import every model module so Base.metadata knows all tables."""
    # Master data (read-only to the processor)
    from yardgate.models.rfid_tag import RfidTag                      # noqa
    from yardgate.models.reader import Reader                         # noqa
    from yardgate.models.truck import Truck                           # noqa
    from yardgate.models.equipment import Equipment                   # noqa
    from yardgate.models.kit_template import KitTemplate              # noqa
    from yardgate.models.severity_tier import SeverityTier            # noqa
    from yardgate.models.alert_rules import AlertRules                # noqa
    # Processor input / output
    from yardgate.models.rfid_scan import RfidScan                    # noqa
    from yardgate.models.gate_crossing import GateCrossing, GateCrossingItem  # noqa
    from yardgate.models.missing_case import MissingEquipmentCase, MissingEquipmentCaseItem  # noqa
    from yardgate.models.equipment_assignment import EquipmentAssignment  # noqa
    from yardgate.models.alert import Alert                           # noqa
    from yardgate.models.processor_heartbeat import ProcessorHeartbeat  # noqa


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    """
    import_models()
    Base.metadata.create_all(bind=bind or engine)
