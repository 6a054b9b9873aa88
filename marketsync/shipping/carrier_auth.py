import requests
from datetime import datetime

from marketsync.config import Config as cfg
from marketsync.logging_config import get_logger
from marketsync.models import CarrierSettings, db
from marketsync.shipping.errors import (
    AUTH_MESSAGE,
    PERMISSION_MESSAGE,
    CarrierAPIError,
    CarrierAuthError,
    CarrierConfigError,
    CarrierPermissionError,
)

logger = get_logger(__name__)

LOGIN_ENDPOINT = "/auth/login"


def _login(email: str, password: str) -> str:
    """POST credentials to the carrier login endpoint and return the bearer token."""
    url = f"{cfg.CARRIER_API_BASE}{LOGIN_ENDPOINT}"
    try:
        response = requests.post(
            url,
            json={"email": email, "password": password},
            headers={"Content-Type": "application/json"},
            timeout=cfg.CARRIER_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise CarrierAPIError(f"Could not reach carrier login endpoint: {exc}") from exc

    payload = _json_or_none(response)

    if response.status_code == 403:
        raise CarrierPermissionError(PERMISSION_MESSAGE, details=payload)
    if response.status_code == 401 or _mentions_auth(payload):
        raise CarrierAuthError(AUTH_MESSAGE, details=payload)
    if response.status_code >= 400:
        message = (payload or {}).get("message") if isinstance(payload, dict) else None
        raise CarrierAPIError(message or f"Carrier login failed with HTTP {response.status_code}",
                              details=payload, status_code=502)

    token = payload.get("token") if isinstance(payload, dict) else None
    if not token:
        raise CarrierAuthError("Carrier login response did not include a token", details=payload,
                               code="TOKEN_MISSING")
    return token


def _json_or_none(response):
    try:
        return response.json()
    except ValueError:
        return None


def _mentions_auth(payload) -> bool:
    if not isinstance(payload, dict) or payload.get("token"):
        return False
    message = str(payload.get("message") or "").lower()
    return "auth" in message or "credential" in message


def get_auth_token() -> str:
    """
    Log in with the stored credentials and return a fresh bearer token.

    A new token is requested on every call; the stored copy is written for
    observability and never handed back out.

    Raises:
        CarrierConfigError: No settings row or no credentials
        CarrierPermissionError: Carrier answered 403
        CarrierAuthError: Carrier answered 401, rejected the credentials, or sent no token
        CarrierAPIError: Anything else
    """
    settings = CarrierSettings.get_current()
    if settings is None or not settings.has_credentials:
        raise CarrierConfigError("Carrier credentials are not configured. Add them in shipping settings.")

    try:
        token = _login(settings.email, settings.password)
    except CarrierPermissionError:
        logger.error("Carrier login rejected: insufficient API permissions")
        raise
    except CarrierAuthError as exc:
        logger.error("Carrier login failed", code=exc.code)
        raise

    _persist_token(settings, token)
    return token


def _persist_token(settings: CarrierSettings, token: str):
    settings.token = token
    settings.token_obtained_at = datetime.utcnow()
    try:
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        logger.warning("Could not store carrier token", error=str(exc))
