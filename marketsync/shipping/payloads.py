"""
Typed carrier request builders.

Defaulting rules live here and nowhere else:
- package dimensions never drop below 10 cm, weight never below 0.5 kg
- a product with missing dimensions counts as 10 cm, missing weight as 0.5 kg
- declared value falls back to 100 when the order has no total
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

MIN_DIMENSION_CM = 10.0
MIN_WEIGHT_KG = 0.5
DEFAULT_DECLARED_VALUE = 100


def _as_float(value, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


@dataclass
class PackageDimensions:
    weight: float = MIN_WEIGHT_KG
    length: float = MIN_DIMENSION_CM
    breadth: float = MIN_DIMENSION_CM
    height: float = MIN_DIMENSION_CM

    def __post_init__(self):
        self.weight = max(_as_float(self.weight, MIN_WEIGHT_KG), MIN_WEIGHT_KG)
        self.length = max(_as_float(self.length, MIN_DIMENSION_CM), MIN_DIMENSION_CM)
        self.breadth = max(_as_float(self.breadth, MIN_DIMENSION_CM), MIN_DIMENSION_CM)
        self.height = max(_as_float(self.height, MIN_DIMENSION_CM), MIN_DIMENSION_CM)

    @classmethod
    def from_items(cls, items) -> "PackageDimensions":
        """
        Aggregate a package from order line items.

        Weight is the sum of product weight x quantity; each dimension is the
        max across products (items are assumed to nest in the largest box).
        """
        total_weight = 0.0
        max_length = max_breadth = max_height = 0.0

        for item in items:
            product = item.product
            if product is None:
                continue
            quantity = item.quantity or 1
            total_weight += _as_float(product.weight, MIN_WEIGHT_KG) * quantity
            max_length = max(max_length, _as_float(product.length, MIN_DIMENSION_CM))
            max_breadth = max(max_breadth, _as_float(product.width, MIN_DIMENSION_CM))
            max_height = max(max_height, _as_float(product.height, MIN_DIMENSION_CM))

        return cls(weight=total_weight, length=max_length, breadth=max_breadth, height=max_height)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ServiceabilityQuery:
    """Query string for GET /courier/serviceability/."""
    pickup_postcode: str
    delivery_postcode: str
    package: PackageDimensions
    cod: bool = False
    declared_value: float = DEFAULT_DECLARED_VALUE
    mode: str = "Surface"
    is_return: bool = False
    order_id: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        params = {
            "pickup_postcode": str(self.pickup_postcode),
            "delivery_postcode": str(self.delivery_postcode),
            "cod": "1" if self.cod else "0",
            "weight": str(self.package.weight),
            "length": str(self.package.length),
            "breadth": str(self.package.breadth),
            "height": str(self.package.height),
            "declared_value": str(self.declared_value or DEFAULT_DECLARED_VALUE),
            "mode": self.mode,
            "is_return": "1" if self.is_return else "0",
        }
        if self.order_id:
            params["order_id"] = self.order_id
        return params


@dataclass
class CarrierOrderItem:
    name: str
    sku: str
    units: int
    selling_price: float
    discount: str = ""
    tax: str = ""
    hsn: str = ""


@dataclass
class CarrierContact:
    name: str
    address: str
    city: str
    pincode: str
    state: str
    country: str
    email: str
    phone: str


@dataclass
class CarrierOrderPayload:
    """Body for POST /orders/create/adhoc. Billing and shipping are the same contact."""
    order_id: str
    order_date: str
    pickup_location: str
    contact: CarrierContact
    items: List[CarrierOrderItem]
    payment_method: str
    sub_total: float
    package: PackageDimensions
    comment: str = ""
    channel_id: str = ""
    charges: Dict[str, float] = field(default_factory=lambda: {
        "shipping_charges": 0,
        "giftwrap_charges": 0,
        "transaction_charges": 0,
        "total_discount": 0,
    })

    @classmethod
    def from_order(cls, order, pickup_location: str, order_prefix: str, country: str,
                   comment: str = "") -> "CarrierOrderPayload":
        user = order.user
        address = order.address
        contact = CarrierContact(
            name=user.name or user.username,
            address=address.address,
            city=address.city,
            pincode=address.pincode,
            state=address.state,
            country=country,
            email=user.email,
            phone=user.phone or address.phone,
        )
        items = [
            CarrierOrderItem(
                name=item.product.name if item.product else f"Product ID: {item.product_id}",
                sku=(item.product.sku if item.product and item.product.sku else f"SKU-{item.product_id}"),
                units=item.quantity,
                selling_price=item.price,
            )
            for item in order.items
        ]
        order_date = order.date or datetime.utcnow()
        return cls(
            order_id=f"{order_prefix}{order.id}",
            order_date=order_date.strftime("%Y-%m-%d"),
            pickup_location=pickup_location,
            contact=contact,
            items=items,
            payment_method="COD" if is_cod(order) else "Prepaid",
            sub_total=order.total,
            package=PackageDimensions.from_items(order.items),
            comment=comment,
        )

    def to_dict(self) -> dict:
        payload = {
            "order_id": self.order_id,
            "order_date": self.order_date,
            "pickup_location": self.pickup_location,
            "channel_id": self.channel_id,
            "comment": self.comment,
            "shipping_is_billing": True,
            "order_items": [asdict(item) for item in self.items],
            "payment_method": self.payment_method,
            "sub_total": self.sub_total,
            **self.charges,
            **self.package.to_dict(),
        }
        for prefix in ("billing", "shipping"):
            payload.update({
                f"{prefix}_customer_name": self.contact.name,
                f"{prefix}_last_name": "",
                f"{prefix}_address": self.contact.address,
                f"{prefix}_address_2": "",
                f"{prefix}_city": self.contact.city,
                f"{prefix}_pincode": self.contact.pincode,
                f"{prefix}_state": self.contact.state,
                f"{prefix}_country": self.contact.country,
                f"{prefix}_email": self.contact.email,
                f"{prefix}_phone": self.contact.phone,
            })
        return payload


def is_cod(order) -> bool:
    return (order.payment_method or "").lower() == "cod"
