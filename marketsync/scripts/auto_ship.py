"""
Ship every confirmed prepaid order that has no carrier order yet.

Usage:
    python -m marketsync.scripts.auto_ship            # Create shipments
    python -m marketsync.scripts.auto_ship --dry-run  # Quote and pick couriers only
"""

import argparse
import sys
from marketsync.logging_config import get_logger
from marketsync.shipping.errors import CarrierConfigError
from marketsync.shipping.service import ShipmentService

logger = get_logger(__name__)


def auto_ship(dry_run=False, service=None):
    service = service or ShipmentService()
    try:
        summary = service.auto_ship_pending(dry_run=dry_run)
    except CarrierConfigError as exc:
        print(f"[ERROR] {exc.message}")
        return None

    mode = "DRY RUN" if dry_run else "EXECUTE"
    print(f"[{mode}] {summary.shipped} succeeded, {summary.failed} failed ({len(summary.results)} orders)")
    for outcome in summary.results:
        if outcome.success:
            print(f"  [OK] order {outcome.order_id}: {outcome.courier_name or ''} {outcome.awb_code or ''}".rstrip())
        else:
            print(f"  [FAIL] order {outcome.order_id}: {outcome.error} ({outcome.code})")
    return summary


if __name__ == "__main__":
    from marketsync import create_app

    parser = argparse.ArgumentParser(description="Auto-ship confirmed prepaid orders")
    parser.add_argument("--dry-run", action="store_true",
                        help="Quote rates and choose couriers without creating shipments")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        result = auto_ship(dry_run=args.dry_run)
    sys.exit(0 if result is not None else 1)
