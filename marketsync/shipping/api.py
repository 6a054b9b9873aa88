import requests
from typing import Dict, List, Optional

from marketsync.logging_config import get_logger
from marketsync.shipping.carrier_auth import get_auth_token
from marketsync.shipping.errors import (
    AUTH_MESSAGE,
    PERMISSION_MESSAGE,
    CarrierAPIError,
    CarrierAuthError,
    CarrierPermissionError,
)

logger = get_logger(__name__)


class CarrierAPI:
    """Carrier connection layer utilizing a requests session. Every call logs in fresh first."""

    def __init__(self, base_url: str, timeout: float = 30):
        if not base_url:
            raise ValueError("Missing carrier API base URL")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        # Reusable HTTP session
        self.session = requests.Session()

    def _update_auth_header(self):
        '''Adds a freshly issued bearer token to the session'''
        token = get_auth_token()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json"
        })

    def _request(self, method: str, endpoint: str, **kwargs):
        """
        Make an authenticated request and translate failures.

        Raises:
            CarrierAuthError: HTTP 401
            CarrierPermissionError: HTTP 403
            CarrierAPIError: Any other HTTP error, timeout or connection failure.
                The carrier's response body is attached as `details`.
        """
        self._update_auth_header()
        url = f"{self.base_url}{endpoint}"

        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise CarrierAPIError(f"Carrier request timed out: {method} {endpoint}") from e
        except requests.RequestException as e:
            raise CarrierAPIError(f"Carrier request failed: {e}") from e

        if r.status_code >= 400:
            payload = self._json_or_text(r)
            logger.warning("Carrier API error", method=method, endpoint=endpoint, status_code=r.status_code)
            if r.status_code == 401:
                raise CarrierAuthError(AUTH_MESSAGE, details=payload)
            if r.status_code == 403:
                raise CarrierPermissionError(PERMISSION_MESSAGE, details=payload)
            message = payload.get("message") if isinstance(payload, dict) else None
            raise CarrierAPIError(
                message or f"Carrier API returned HTTP {r.status_code}",
                details=payload,
                status_code=r.status_code if r.status_code >= 500 else 502,
            )

        return self._json_or_text(r) if r.text else None

    @staticmethod
    def _json_or_text(response):
        try:
            return response.json()
        except ValueError:
            return response.text

    def _get(self, endpoint: str, params: Optional[Dict] = None):
        return self._request("GET", endpoint, params=params)

    def _post(self, endpoint: str, data: Dict):
        return self._request("POST", endpoint, json=data)

    # -------------------------
    # Rates
    # -------------------------
    def get_serviceability(self, params: Dict[str, str]) -> Dict:
        return self._get("/courier/serviceability/", params=params)

    # -------------------------
    # Orders & shipments
    # -------------------------
    def create_adhoc_order(self, payload: Dict) -> Dict:
        return self._post("/orders/create/adhoc", payload)

    def assign_awb(self, shipment_id, courier_id) -> Dict:
        return self._post("/courier/assign/awb", {
            "shipment_id": [shipment_id],
            "courier_id": str(courier_id),
        })

    def generate_pickup(self, shipment_id) -> Dict:
        return self._post("/courier/generate/pickup", {"shipment_id": [shipment_id]})

    def track_awb(self, awb_code: str) -> Dict:
        return self._get(f"/courier/track/awb/{awb_code}")

    # -------------------------
    # Account
    # -------------------------
    def list_couriers(self) -> List[Dict]:
        return self._get("/courier/courierListWithCounts")
