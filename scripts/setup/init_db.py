"""
Initialize database — creates all tables, seeds severity tiers and alert rules.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from yardgate.database import SessionLocal, create_tables, engine
from yardgate.config import settings
from yardgate.services.alert_service import get_alert_rules
from yardgate.services.errors import SeverityConfigError
from yardgate.services.severity_service import load_severity_table, seed_severity_tiers
from sqlalchemy import inspect, text


def main():
    print("🗄️  Yard Gate DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  docker-compose up -d db")
        print("  # or: sudo systemctl start postgresql")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"✅ {len(tables)} tables ready:")
    for t in tables:
        print(f"   ✓ {t}")

    db = SessionLocal()
    try:
        print("\n🎚  Seeding severity tiers...")
        try:
            seed_severity_tiers(db, settings.SEVERITY_TIERS)
            table = load_severity_table(db)
        except SeverityConfigError as e:
            print(f"❌ Severity tier configuration rejected: {e}")
            sys.exit(1)
        for tier in table.tiers:
            print(f"   ✓ {tier.code:<10} {tier.cost_range}")

        rules = get_alert_rules(db)
        print(f"\n🔔 Alert rules: missing threshold={rules.missing_item_threshold}, "
              f"overdue={rules.overdue_minutes} min")
    finally:
        db.close()

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn yardgate.main:app --host 0.0.0.0 --port 8080")


if __name__ == "__main__":
    main()
