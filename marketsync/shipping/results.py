from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

MIN_RATE = 40.0
DEFAULT_ETA = "3-5"


@dataclass
class RateQuote:
    """One serviceable courier after filtering and rate clamping."""
    courier_company_id: Any
    courier_name: str
    rate: float
    estimated_delivery_days: str = DEFAULT_ETA
    etd: Optional[str] = None
    weight_limit: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_carrier(cls, courier: Dict[str, Any]) -> "RateQuote":
        try:
            rate = float(courier.get("rate"))
        except (TypeError, ValueError):
            rate = MIN_RATE
        try:
            weight_limit = float(courier.get("surface_max_weight") or courier.get("air_max_weight") or 0)
        except (TypeError, ValueError):
            weight_limit = 0.0

        return cls(
            courier_company_id=courier.get("courier_company_id"),
            courier_name=courier.get("courier_name") or "",
            rate=max(rate, MIN_RATE),
            estimated_delivery_days=str(courier.get("estimated_delivery_days") or DEFAULT_ETA),
            etd=courier.get("etd"),
            weight_limit=max(weight_limit, 0.0),
            raw=courier,
        )

    def to_dict(self) -> dict:
        return {
            **self.raw,
            "courier_company_id": self.courier_company_id,
            "courier_name": self.courier_name,
            "rate": self.rate,
            "estimated_delivery_days": self.estimated_delivery_days,
            "etd": self.etd,
            "weight_limit": self.weight_limit,
        }


@dataclass
class RatesResult:
    couriers: List[RateQuote] = field(default_factory=list)
    recommended_courier_company_id: Any = None

    def find(self, courier_id) -> Optional[RateQuote]:
        if courier_id in (None, ""):
            return None
        for quote in self.couriers:
            if str(quote.courier_company_id) == str(courier_id):
                return quote
        return None

    @property
    def cheapest(self) -> Optional[RateQuote]:
        return self.couriers[0] if self.couriers else None

    def to_dict(self) -> dict:
        return {
            "couriers": [quote.to_dict() for quote in self.couriers],
            "recommended_courier_company_id": self.recommended_courier_company_id,
        }


@dataclass
class ShipmentResult:
    order_id: int
    carrier_order_id: str
    carrier_shipment_id: Optional[str]
    stage: str
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None
    estimated_delivery_date: Optional[str] = None
    pickup_already_queued: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AutoShipOutcome:
    order_id: int
    success: bool
    carrier_order_id: Optional[str] = None
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AutoShipSummary:
    results: List[AutoShipOutcome] = field(default_factory=list)
    operation_id: Optional[str] = None

    @property
    def shipped(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "processed": len(self.results),
            "shipped": self.shipped,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
