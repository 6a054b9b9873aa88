"""
Shipment synchronization with the carrier.

Per-order progress is recorded in Order.shipping_status using ShipmentStage
values: unshipped -> rate-checked -> carrier-order-created -> awb-assigned ->
pickup-requested -> tracked.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from marketsync.config import Config as cfg
from marketsync.datetime_utils import isoformat_or_none, parse_carrier_date
from marketsync.logging_config import SyncContext, get_logger
from marketsync.models import CarrierSettings, Order, SellerSettings, ShipmentStage, db
from marketsync.services.sync_operation_service import SyncOperationService
from marketsync.shipping.errors import (
    CarrierAPIError,
    CarrierConfigError,
    ShipmentAlreadyExistsError,
    ShipmentPartialError,
    ShipmentValidationError,
    ShippingError,
)
from marketsync.shipping.payloads import (
    DEFAULT_DECLARED_VALUE,
    CarrierOrderPayload,
    PackageDimensions,
    ServiceabilityQuery,
    is_cod,
)
from marketsync.shipping.results import (
    AutoShipOutcome,
    AutoShipSummary,
    RateQuote,
    RatesResult,
    ShipmentResult,
)

logger = get_logger(__name__)

PICKUP_ALREADY_QUEUED = "Already in Pickup Queue."
AUTO_SHIP_OPERATION = "auto_ship"


class ShipmentService:
    """Rates, shipment creation, tracking and auto-ship against the carrier API."""

    def __init__(self, client=None):
        if client is None:
            from marketsync.shipping.client import get_carrier_client
            client = get_carrier_client()
        self.client = client

    # -------------------------
    # Rates
    # -------------------------
    def get_rates(self, order: Order, package: Optional[PackageDimensions] = None,
                  record_stage: bool = True) -> RatesResult:
        """
        Quote serviceable couriers for an order, cheapest first.

        Blocked couriers and the "Local" courier are dropped, rates are clamped
        to a floor of 40 and a missing ETA defaults to "3-5". The carrier's
        recommended courier id is passed through unchanged. With record_stage
        False the order row is left untouched.
        """
        if order.address is None or not order.address.pincode:
            raise ShipmentValidationError(f"Order {order.id} has no delivery address")

        query = ServiceabilityQuery(
            pickup_postcode=self._pickup_postcode(order),
            delivery_postcode=order.address.pincode,
            package=package or PackageDimensions.from_items(order.items),
            cod=is_cod(order),
            declared_value=order.total or DEFAULT_DECLARED_VALUE,
        )
        response = self.client.get_serviceability(query.to_params())

        data = response.get("data") if isinstance(response, dict) else None
        if not data:
            logger.info("Carrier returned no serviceable couriers", order_id=order.id)
            return RatesResult()

        couriers = []
        for courier in data.get("available_courier_companies") or []:
            if str(courier.get("blocked")) == "1" or courier.get("courier_name") == "Local":
                continue
            couriers.append(RateQuote.from_carrier(courier))
        couriers.sort(key=lambda quote: quote.rate)

        if record_stage and order.carrier_order_id is None:
            order.shipping_status = ShipmentStage.RATE_CHECKED.value
            db.session.commit()

        return RatesResult(
            couriers=couriers,
            recommended_courier_company_id=data.get("recommended_courier_company_id"),
        )

    def _pickup_postcode(self, order: Order) -> str:
        """Seller pickup address, then carrier settings pickup address, then the configured default."""
        seller_id = next(
            (item.product.seller_id for item in order.items if item.product and item.product.seller_id),
            None,
        )
        seller_settings = SellerSettings.for_seller(seller_id)
        if seller_settings and (seller_settings.pickup_address or {}).get("pincode"):
            return str(seller_settings.pickup_address["pincode"])

        settings = CarrierSettings.get_current()
        if settings and (settings.pickup_address or {}).get("pincode"):
            return str(settings.pickup_address["pincode"])

        return cfg.CARRIER_DEFAULT_PICKUP_POSTCODE

    # -------------------------
    # Shipment creation
    # -------------------------
    def create_shipment(self, order: Order, courier_id=None) -> ShipmentResult:
        """
        Create the carrier order, then assign an AWB and request pickup when a
        courier is known (argument, else settings default).

        Raises:
            ShipmentAlreadyExistsError: Order already has a carrier_order_id (no carrier call made)
            ShipmentValidationError: Order lacks an address or line items
            ShipmentPartialError: Carrier order exists but AWB or pickup failed
            ShippingError: Any other carrier failure before the carrier order exists
        """
        if order.carrier_order_id:
            raise ShipmentAlreadyExistsError(
                f"Order {order.id} is already shipped as carrier order {order.carrier_order_id}"
            )
        if order.address is None:
            raise ShipmentValidationError(f"Order {order.id} has no delivery address")
        if not order.items:
            raise ShipmentValidationError(f"Order {order.id} has no items")

        settings = CarrierSettings.get_current()
        if courier_id in (None, "") and settings is not None:
            courier_id = settings.default_courier or None

        payload = CarrierOrderPayload.from_order(
            order,
            pickup_location=self._pickup_location(settings),
            order_prefix=cfg.CARRIER_ORDER_PREFIX,
            country=cfg.CARRIER_COUNTRY,
        )
        response = self.client.create_adhoc_order(payload.to_dict())
        if not isinstance(response, dict) or not response.get("order_id"):
            raise CarrierAPIError("The carrier API returned an invalid response. Please try again.",
                                  details=response)

        order.carrier_order_id = str(response["order_id"])
        order.carrier_shipment_id = str(response["shipment_id"]) if response.get("shipment_id") else None
        order.shipping_status = ShipmentStage.CARRIER_ORDER_CREATED.value
        db.session.commit()
        logger.info("Carrier order created", order_id=order.id, carrier_order_id=order.carrier_order_id)

        pickup_already_queued = False
        if courier_id:
            try:
                self._assign_awb(order, courier_id)
                pickup_already_queued = self._request_pickup(order)
            except ShippingError as exc:
                db.session.commit()
                logger.error(
                    "Shipment left incomplete after carrier order creation",
                    order_id=order.id,
                    carrier_order_id=order.carrier_order_id,
                    stage=order.shipping_status,
                    error=exc.message,
                )
                raise ShipmentPartialError(
                    f"Carrier order {order.carrier_order_id} was created but {exc.message}",
                    details=exc.to_dict(),
                    carrier_order_id=order.carrier_order_id,
                    carrier_shipment_id=order.carrier_shipment_id,
                    stage=order.shipping_status,
                ) from exc

        order.status = "shipped"
        db.session.commit()

        return ShipmentResult(
            order_id=order.id,
            carrier_order_id=order.carrier_order_id,
            carrier_shipment_id=order.carrier_shipment_id,
            stage=order.shipping_status,
            awb_code=order.awb_code,
            courier_name=order.courier_name,
            estimated_delivery_date=isoformat_or_none(order.estimated_delivery_date),
            pickup_already_queued=pickup_already_queued,
        )

    @staticmethod
    def _pickup_location(settings: Optional[CarrierSettings]) -> str:
        if settings and (settings.pickup_address or {}).get("pickup_location"):
            return settings.pickup_address["pickup_location"]
        return cfg.CARRIER_PICKUP_LOCATION

    def _assign_awb(self, order: Order, courier_id):
        response = self.client.assign_awb(order.carrier_shipment_id, courier_id)
        if isinstance(response, dict) and response.get("awb_assign_status") == 0:
            raise CarrierAPIError(response.get("message") or "AWB assignment failed", details=response)

        data = _awb_data(response)
        order.awb_code = data.get("awb_code") or order.awb_code
        order.courier_name = data.get("courier_name") or order.courier_name
        order.estimated_delivery_date = parse_carrier_date(
            data.get("expected_delivery_date") or data.get("etd")
        ) or order.estimated_delivery_date
        order.shipping_status = ShipmentStage.AWB_ASSIGNED.value
        logger.info("AWB assigned", order_id=order.id, awb_code=order.awb_code)

    def _request_pickup(self, order: Order) -> bool:
        """Returns True when the carrier reports the shipment is already queued for pickup."""
        already_queued = False
        try:
            self.client.generate_pickup(order.carrier_shipment_id)
        except CarrierAPIError as exc:
            if not _is_already_queued(exc):
                raise
            already_queued = True
            logger.info("Shipment already in pickup queue", order_id=order.id)

        order.shipping_status = ShipmentStage.PICKUP_REQUESTED.value
        return already_queued

    # -------------------------
    # Batch
    # -------------------------
    def auto_ship_pending(self, dry_run: bool = False) -> AutoShipSummary:
        """
        Ship every confirmed, prepaid order that has no carrier order yet.

        Each order is handled independently; one order's failure is recorded
        in its outcome and the batch carries on.

        Raises:
            CarrierConfigError: Carrier credentials are not configured
        """
        settings = CarrierSettings.get_current()
        if settings is None or not settings.has_credentials:
            raise CarrierConfigError("Carrier settings not configured")
        default_courier = settings.default_courier or None

        orders = (
            Order.query
            .filter(Order.status == "confirmed")
            .filter(Order.carrier_order_id.is_(None))
            .filter(func.lower(Order.payment_method) != "cod")
            .order_by(Order.id)
            .all()
        )

        summary = AutoShipSummary()
        with SyncContext(AUTO_SHIP_OPERATION) as ctx:
            summary.operation_id = ctx.operation_id
            op = SyncOperationService.start(
                ctx.operation_id, AUTO_SHIP_OPERATION, context={"order_count": len(orders), "dry_run": dry_run}
            )
            ctx.logger.info(f"Auto-shipping {len(orders)} orders", dry_run=dry_run)

            for order in orders:
                outcome = self._auto_ship_one(order, default_courier, dry_run)
                summary.results.append(outcome)
                if outcome.success:
                    ctx.logger.info("Order auto-shipped", order_id=order.id, courier=outcome.courier_name)
                else:
                    ctx.logger.warning("Order auto-ship failed", order_id=order.id, error=outcome.error,
                                       code=outcome.code)

            SyncOperationService.complete(
                op,
                processed=summary.shipped,
                failed=summary.failed,
                context={"failed_orders": [r.order_id for r in summary.results if not r.success]},
            )
        return summary

    def _auto_ship_one(self, order: Order, default_courier, dry_run: bool) -> AutoShipOutcome:
        try:
            rates = self.get_rates(order, record_stage=not dry_run)
            courier = choose_courier(rates, default_courier)
            if dry_run:
                return AutoShipOutcome(order_id=order.id, success=True, courier_name=courier.courier_name)

            result = self.create_shipment(order, courier.courier_company_id)
            return AutoShipOutcome(
                order_id=order.id,
                success=True,
                carrier_order_id=result.carrier_order_id,
                awb_code=result.awb_code,
                courier_name=result.courier_name or courier.courier_name,
            )
        except ShippingError as exc:
            db.session.rollback()
            return AutoShipOutcome(order_id=order.id, success=False, error=exc.message, code=exc.code,
                                   carrier_order_id=order.carrier_order_id)
        except Exception as exc:
            db.session.rollback()
            logger.error("Unexpected error auto-shipping order", order_id=order.id, error=str(exc), exc_info=True)
            return AutoShipOutcome(order_id=order.id, success=False, error=str(exc), code="INTERNAL_ERROR")

    # -------------------------
    # Tracking
    # -------------------------
    def track_shipment(self, order: Order) -> dict:
        if not order.awb_code:
            raise ShipmentValidationError(f"Order {order.id} has no AWB code to track")

        response = self.client.track_awb(order.awb_code)
        tracking = response.get("tracking_data", response) if isinstance(response, dict) else response

        order.tracking_details = tracking
        order.shipping_status = ShipmentStage.TRACKED.value
        etd = parse_carrier_date(tracking.get("etd")) if isinstance(tracking, dict) else None
        if etd:
            order.estimated_delivery_date = etd
        db.session.commit()

        return {"order_id": order.id, "awb_code": order.awb_code, "tracking": tracking}

    # -------------------------
    # Account
    # -------------------------
    def test_connection(self) -> dict:
        """Log in and list couriers. Errors propagate with their carrier error codes."""
        couriers = self.client.list_couriers()
        return {
            "success": True,
            "message": "Successfully connected to carrier API",
            "data": couriers,
        }


def choose_courier(rates: RatesResult, default_courier=None) -> RateQuote:
    """
    Pick the courier for an automatic shipment.

    A configured default courier must be serviceable for the order. Without a
    default, the carrier's recommendation is used, else the cheapest quote.
    """
    if not rates.couriers:
        raise ShipmentValidationError("No serviceable couriers for this order", code="NO_COURIER")

    if default_courier:
        quote = rates.find(default_courier)
        if quote is None:
            raise ShipmentValidationError("Default courier not available for this order", code="NO_COURIER")
        return quote

    return rates.find(rates.recommended_courier_company_id) or rates.cheapest


def _awb_data(response) -> dict:
    if not isinstance(response, dict):
        return {}
    nested = (response.get("response") or {}).get("data")
    if isinstance(nested, dict):
        return nested
    return response


def _is_already_queued(exc: CarrierAPIError) -> bool:
    details = exc.details if isinstance(exc.details, dict) else {}
    return details.get("message") == PICKUP_ALREADY_QUEUED or exc.message == PICKUP_ALREADY_QUEUED


# -------------------------
# Settings & listings
# -------------------------
def get_settings() -> CarrierSettings:
    """The carrier settings row, created empty on first access."""
    settings = CarrierSettings.get_current()
    if settings is None:
        settings = CarrierSettings(auto_ship_enabled=False, updated_at=datetime.utcnow())
        db.session.add(settings)
        db.session.commit()
    return settings


def save_settings(data: dict) -> CarrierSettings:
    """
    Apply a partial settings update.

    An empty or missing password keeps the stored one; a changed email or
    password clears the stored token.
    """
    settings = get_settings()

    email = data.get("email")
    if email is not None and email != settings.email:
        settings.email = email
        settings.token = None
        settings.token_obtained_at = None

    password = data.get("password")
    if password and password != settings.password:
        settings.password = password
        settings.token = None
        settings.token_obtained_at = None

    if "default_courier" in data:
        settings.default_courier = str(data["default_courier"]) if data["default_courier"] else None
    if "auto_ship_enabled" in data:
        settings.auto_ship_enabled = bool(data["auto_ship_enabled"])
    if "pickup_address" in data:
        pickup = data["pickup_address"]
        if pickup is not None and not isinstance(pickup, dict):
            raise ShipmentValidationError("pickup_address must be an object")
        settings.pickup_address = pickup

    settings.updated_at = datetime.utcnow()
    db.session.commit()
    logger.info("Carrier settings updated", has_credentials=settings.has_credentials)
    return settings


def list_pending_orders(page: int = 1, per_page: int = 10) -> dict:
    """Orders with status 'pending', newest first, paginated."""
    page = max(page, 1)
    per_page = max(min(per_page, 100), 1)
    query = Order.query.filter(Order.status == "pending")
    total = query.count()
    orders = query.order_by(Order.date.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "orders": [order.to_dict() for order in orders],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
    }


def list_shipped_orders() -> list:
    """Orders already synchronized with the carrier, newest first."""
    orders = (
        Order.query
        .filter(Order.carrier_order_id.isnot(None))
        .order_by(Order.date.desc())
        .all()
    )
    return [order.to_dict() for order in orders]
