"""
Add carrier shipment columns to the orders table and create the carrier
settings and sync operation tables.

Usage:
    python migrations/add_carrier_shipment_columns.py
    python migrations/add_carrier_shipment_columns.py --database-url postgresql://...

The script is idempotent and safe to run multiple times. It inspects the current
schema before attempting to alter anything.
"""

import argparse
import os
import sys

from dotenv import load_dotenv

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import OperationalError, ProgrammingError

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_SQLITE_PATH = os.path.join(ROOT_DIR, "marketsync.sqlite")

# Load environment variables from a .env file if present
load_dotenv()

ORDER_COLUMNS = [
    ("shipping_status", "VARCHAR(32)"),
    ("carrier_order_id", "VARCHAR(64)"),
    ("carrier_shipment_id", "VARCHAR(64)"),
    ("awb_code", "VARCHAR(64)"),
    ("courier_name", "VARCHAR(128)"),
    ("estimated_delivery_date", "TIMESTAMP"),
    ("tracking_details", "JSON"),
]


def infer_database_url(cli_url: str = None) -> str:
    """Figure out which database to hit, honoring CLI and environment defaults."""
    for value in (cli_url, os.environ.get("DATABASE_URL")):
        if not value:
            continue
        value = value.strip()
        if value.startswith("postgres://"):
            # SQLAlchemy expects postgresql://
            return value.replace("postgres://", "postgresql://", 1)
        if "://" in value:
            return value
        # Treat anything else as a filesystem path to a SQLite DB
        path = value if os.path.isabs(value) else os.path.join(ROOT_DIR, value)
        return f"sqlite:///{path}"

    return f"sqlite:///{DEFAULT_SQLITE_PATH}"


def existing_columns(engine, table_name: str) -> set:
    return {col["name"] for col in inspect(engine).get_columns(table_name)}


def create_missing_tables(engine) -> list:
    """Create carrier_settings and sync_operations from the model definitions if absent."""
    sys.path.insert(0, ROOT_DIR)
    from marketsync.models import CarrierSettings, SyncOperation

    created = []
    tables = set(inspect(engine).get_table_names())
    for model in (CarrierSettings, SyncOperation):
        if model.__tablename__ not in tables:
            model.__table__.create(engine)
            created.append(model.__tablename__)
    return created


def migrate(database_url: str = None) -> bool:
    """Perform the migration, adding any missing shipment columns to orders."""
    db_url = infer_database_url(database_url)
    print(f"Connecting to database: {db_url}")

    engine = create_engine(db_url)

    try:
        if "orders" not in inspect(engine).get_table_names():
            print("✗ Table 'orders' does not exist. Nothing to migrate.")
            return False

        present = existing_columns(engine, "orders")
        missing = [(name, ddl) for name, ddl in ORDER_COLUMNS if name not in present]

        if missing:
            with engine.begin() as conn:
                for name, ddl in missing:
                    print(f"Adding column '{name}' to 'orders' table...")
                    conn.execute(text(f"ALTER TABLE orders ADD COLUMN {name} {ddl}"))
                if "carrier_order_id" in dict(missing):
                    conn.execute(text(
                        "CREATE INDEX IF NOT EXISTS ix_orders_carrier_order_id ON orders (carrier_order_id)"
                    ))
        else:
            print("✓ All shipment columns already exist on 'orders'.")

        for table in create_missing_tables(engine):
            print(f"✓ Created table '{table}'.")

        # Re-check to confirm
        still_missing = [name for name, _ in ORDER_COLUMNS if name not in existing_columns(engine, "orders")]
        if still_missing:
            print(f"✗ Columns still missing: {', '.join(still_missing)}. Please verify manually.")
            return False

        print("✓ Migration complete.")
        return True

    except (OperationalError, ProgrammingError) as exc:
        print(f"✗ Database error while migrating: {exc}")
        return False
    finally:
        engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Add carrier shipment columns and tables.")
    parser.add_argument(
        "--database-url",
        help="Override database URL (otherwise inferred from env or defaults).",
    )
    args = parser.parse_args()

    success = migrate(args.database_url)
    sys.exit(0 if success else 1)
