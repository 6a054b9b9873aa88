"""
Carrier error taxonomy.

Every error carries the structured {error, message, code} shape the admin
surface renders, plus the HTTP status to answer with. Raw carrier payloads are
attached as `details` only.
"""
from typing import Any, Optional


class ShippingError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    error = "Shipping operation failed"

    def __init__(self, message: Optional[str] = None, details: Any = None, code: Optional[str] = None,
                 status_code: Optional[int] = None):
        self.message = message or self.error
        self.details = details
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"error": self.error, "message": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class CarrierConfigError(ShippingError):
    """Missing credentials or settings row. Never retried automatically."""
    status_code = 400
    code = "CONFIG_MISSING"
    error = "Carrier settings not configured"


class CarrierAuthError(ShippingError):
    status_code = 401
    code = "AUTH_FAILED"
    error = "Authentication failed"


class CarrierPermissionError(ShippingError):
    """HTTP 403: the carrier account lacks API access on its current plan."""
    status_code = 403
    code = "PERMISSION_ERROR"
    error = "Insufficient API permissions"


class CarrierAPIError(ShippingError):
    """Transient or unexpected carrier failure (5xx, timeout, malformed response)."""
    status_code = 502
    code = "CARRIER_ERROR"
    error = "Error from carrier API"


class ShipmentValidationError(ShippingError):
    status_code = 400
    code = "VALIDATION_ERROR"
    error = "Invalid shipment request"


class OrderNotFoundError(ShippingError):
    status_code = 404
    code = "ORDER_NOT_FOUND"
    error = "Order not found"


class ShipmentAlreadyExistsError(ShippingError):
    """The order already carries a carrier_order_id; creating another would duplicate it."""
    status_code = 409
    code = "ALREADY_SHIPPED"
    error = "Order already shipped with carrier"


class ShipmentPartialError(ShippingError):
    """
    The carrier order exists but AWB assignment or pickup failed.

    The carrier ids were persisted on the order, so a retry can't create a
    duplicate carrier order; finishing the shipment is a manual step.
    """
    status_code = 502
    code = "SHIPMENT_INCOMPLETE"
    error = "Carrier order created but shipment incomplete"

    def __init__(self, message=None, details=None, carrier_order_id=None, carrier_shipment_id=None, stage=None):
        super().__init__(message, details)
        self.carrier_order_id = carrier_order_id
        self.carrier_shipment_id = carrier_shipment_id
        self.stage = stage

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update({
            "carrier_order_id": self.carrier_order_id,
            "carrier_shipment_id": self.carrier_shipment_id,
            "stage": self.stage,
        })
        return payload


PERMISSION_MESSAGE = (
    "Your carrier account doesn't have the necessary API access permissions. "
    "Please upgrade your plan or contact carrier support to enable API access."
)
AUTH_MESSAGE = "Authentication failed! Please check your carrier API credentials."
