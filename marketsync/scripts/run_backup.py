"""
Run a backup from the command line.

Exports every entity (or a single one) to the configured backup directory and
records the run in the sync operation audit table.

Usage:
    python -m marketsync.scripts.run_backup                       # Full backup
    python -m marketsync.scripts.run_backup --entity transactions # One entity only
    python -m marketsync.scripts.run_backup --list                # List existing backups
"""

import argparse
from marketsync.backups.exporter import ENTITY_TYPES
from marketsync.logging_config import get_logger
from marketsync.scheduling.jobs import run_backup

logger = get_logger(__name__)


def main(app, entity=None, list_only=False):
    exporter = app.extensions["backup_exporter"]

    if list_only:
        artifacts = exporter.list_artifacts()
        for entity_type, filenames in artifacts.items():
            print(f"{entity_type} ({len(filenames)})")
            for filename in filenames:
                print(f"  {filename}")
        return artifacts

    if entity:
        with app.app_context():
            result = exporter.export_entity(entity)
        print(f"[OK] {entity}: {result.row_count} rows -> {result.path}")
        if result.upload_error:
            print(f"[WARN] Upload failed, local copy only: {result.upload_error}")
        return {entity: result}

    results = run_backup(app, exporter, operation_type="manual_backup")
    for entity_type, result in results.items():
        suffix = " (local only)" if result.upload_error else ""
        print(f"[OK] {entity_type}: {result.row_count} rows -> {result.filename}{suffix}")
    return results


if __name__ == "__main__":
    from marketsync import create_app

    parser = argparse.ArgumentParser(description="Export marketplace data to CSV backups")
    parser.add_argument("--entity", choices=ENTITY_TYPES,
                        help="Export a single entity type instead of all of them")
    parser.add_argument("--list", action="store_true", dest="list_only",
                        help="List existing backup files and exit")
    args = parser.parse_args()

    main(create_app(), entity=args.entity, list_only=args.list_only)
