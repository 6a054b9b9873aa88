"""
Shipping Module
Flask Blueprint for the admin carrier surface: settings, token checks, rates,
single-order shipment, tracking and batch auto-ship.
"""
from flask import Blueprint

shipping_bp = Blueprint("shipping", __name__, url_prefix="/api/shipping")


def get_shipment_service():
    from marketsync.shipping.service import ShipmentService
    return ShipmentService()


from marketsync.shipping import routes
