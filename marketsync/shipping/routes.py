from flask import jsonify, request

from marketsync.auth.utils import admin_required
from marketsync.logging_config import get_logger
from marketsync.models import Order, db
from marketsync.shipping import get_shipment_service, shipping_bp
from marketsync.shipping import service as shipping_service
from marketsync.shipping.carrier_auth import get_auth_token
from marketsync.shipping.errors import OrderNotFoundError, ShippingError

logger = get_logger(__name__)


def _error_response(exc: ShippingError):
    return jsonify(exc.to_dict()), exc.status_code


def _get_order(order_id) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


# -------------------------
# Settings
# -------------------------
@shipping_bp.route("/settings", methods=["GET"])
@admin_required
def get_settings():
    return jsonify(shipping_service.get_settings().to_dict()), 200


@shipping_bp.route("/settings", methods=["PUT"])
@admin_required
def update_settings():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "No JSON data provided"}), 400
    try:
        settings = shipping_service.save_settings(data)
    except ShippingError as exc:
        return _error_response(exc)
    return jsonify(settings.to_dict()), 200


@shipping_bp.route("/token", methods=["POST"])
@admin_required
def generate_token():
    """Log in to the carrier now. The token itself is never returned."""
    try:
        get_auth_token()
    except ShippingError as exc:
        return _error_response(exc)
    return jsonify({
        "success": True,
        "message": "Carrier token generated successfully",
        "settings": shipping_service.get_settings().to_dict(),
    }), 200


@shipping_bp.route("/test-connection", methods=["GET"])
@admin_required
def test_connection():
    try:
        return jsonify(get_shipment_service().test_connection()), 200
    except ShippingError as exc:
        logger.warning("Carrier connection test failed", code=exc.code)
        return _error_response(exc)


# -------------------------
# Rates & shipments
# -------------------------
@shipping_bp.route("/rates", methods=["GET"])
@admin_required
def get_rates():
    order_id = request.args.get("order_id", type=int)
    if order_id is None:
        return jsonify({"error": "order_id query parameter is required"}), 400
    try:
        order = _get_order(order_id)
        return jsonify(get_shipment_service().get_rates(order).to_dict()), 200
    except ShippingError as exc:
        return _error_response(exc)


@shipping_bp.route("/orders/<int:order_id>/ship", methods=["POST"])
@admin_required
def ship_order(order_id):
    """Create the carrier shipment for one order. Body: {"courier_id": optional}"""
    data = request.get_json(silent=True) or {}
    try:
        order = _get_order(order_id)
        result = get_shipment_service().create_shipment(order, data.get("courier_id"))
    except ShippingError as exc:
        return _error_response(exc)
    except Exception as exc:
        logger.error("Error shipping order", order_id=order_id, error=str(exc), exc_info=True)
        return jsonify({"error": "Failed to ship order", "details": str(exc)}), 500

    return jsonify({"message": "Order shipped successfully", "shipment": result.to_dict()}), 200


@shipping_bp.route("/orders/<int:order_id>/track", methods=["POST"])
@admin_required
def track_order(order_id):
    try:
        order = _get_order(order_id)
        return jsonify(get_shipment_service().track_shipment(order)), 200
    except ShippingError as exc:
        return _error_response(exc)


@shipping_bp.route("/auto-ship", methods=["POST"])
@admin_required
def auto_ship():
    data = request.get_json(silent=True) or {}
    try:
        summary = get_shipment_service().auto_ship_pending(dry_run=bool(data.get("dry_run")))
    except ShippingError as exc:
        return _error_response(exc)
    except Exception as exc:
        logger.error("Error in auto-ship", error=str(exc), exc_info=True)
        return jsonify({"error": "Failed to auto-ship orders", "details": str(exc)}), 500

    payload = summary.to_dict()
    payload["message"] = f"Auto-shipped {summary.shipped} of {len(summary.results)} orders"
    return jsonify(payload), 200


# -------------------------
# Listings
# -------------------------
@shipping_bp.route("/orders/pending", methods=["GET"])
@admin_required
def pending_orders():
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("limit", 10, type=int)
    return jsonify(shipping_service.list_pending_orders(page=page, per_page=per_page)), 200


@shipping_bp.route("/orders/shipped", methods=["GET"])
@admin_required
def shipped_orders():
    return jsonify({"orders": shipping_service.list_shipped_orders()}), 200
