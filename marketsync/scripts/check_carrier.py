"""
Check carrier credentials and API access.

Logs in with the stored credentials and lists couriers, printing the carrier
error code on failure.

Usage:
    python -m marketsync.scripts.check_carrier
"""

import sys
from marketsync.shipping.errors import ShippingError
from marketsync.shipping.service import ShipmentService


def check_carrier(service=None):
    service = service or ShipmentService()
    try:
        result = service.test_connection()
    except ShippingError as exc:
        print(f"[ERROR] {exc.code}: {exc.message}")
        return False

    couriers = result.get("data")
    count = len(couriers.get("courier_data", [])) if isinstance(couriers, dict) else None
    print(f"[OK] {result['message']}" + (f" ({count} couriers)" if count is not None else ""))
    return True


if __name__ == "__main__":
    from marketsync import create_app

    app = create_app()
    with app.app_context():
        ok = check_carrier()
    sys.exit(0 if ok else 1)
