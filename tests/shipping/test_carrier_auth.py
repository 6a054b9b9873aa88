"""
Tests for carrier login and the HTTP client's error translation.
"""
import pytest
import requests
from unittest.mock import Mock, patch

from marketsync.models import CarrierSettings
from marketsync.shipping.api import CarrierAPI
from marketsync.shipping.carrier_auth import get_auth_token
from marketsync.shipping.errors import (
    CarrierAPIError,
    CarrierAuthError,
    CarrierConfigError,
    CarrierPermissionError,
)


def make_response(status_code=200, payload=None, text=None):
    response = Mock()
    response.status_code = status_code
    if payload is None:
        response.json.side_effect = ValueError("no json")
        response.text = text or ""
    else:
        response.json.return_value = payload
        response.text = text if text is not None else "{...}"
    return response


class TestGetAuthToken:

    def test_missing_settings_is_config_error(self, app):
        with patch('marketsync.shipping.carrier_auth.requests.post') as post:
            with pytest.raises(CarrierConfigError) as exc_info:
                get_auth_token()

        post.assert_not_called()
        assert exc_info.value.to_dict()["code"] == "CONFIG_MISSING"
        assert exc_info.value.status_code == 400

    def test_missing_password_is_config_error(self, app, carrier_settings):
        carrier_settings.password = None

        with pytest.raises(CarrierConfigError):
            get_auth_token()

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_success_persists_token(self, mock_post, app, carrier_settings):
        mock_post.return_value = make_response(200, {"token": "tok-123"})

        token = get_auth_token()

        assert token == "tok-123"
        settings = CarrierSettings.get_current()
        assert settings.token == "tok-123"
        assert settings.token_obtained_at is not None
        assert mock_post.call_args.kwargs["json"] == {"email": "ops@example.com", "password": "carrier-pass"}
        assert mock_post.call_args.kwargs["timeout"] == 30

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_logs_in_fresh_every_call(self, mock_post, app, carrier_settings):
        mock_post.side_effect = [make_response(200, {"token": "first"}), make_response(200, {"token": "second"})]

        assert get_auth_token() == "first"
        assert get_auth_token() == "second"
        assert mock_post.call_count == 2

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_403_is_permission_error(self, mock_post, app, carrier_settings):
        mock_post.return_value = make_response(403, {"message": "Forbidden", "status_code": 403})

        with pytest.raises(CarrierPermissionError) as exc_info:
            get_auth_token()

        data = exc_info.value.to_dict()
        assert data["code"] == "PERMISSION_ERROR"
        assert data["error"] == "Insufficient API permissions"
        assert "upgrade your plan" in data["message"]
        assert data["details"] == {"message": "Forbidden", "status_code": 403}

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_401_is_auth_error(self, mock_post, app, carrier_settings):
        mock_post.return_value = make_response(401, {"message": "Invalid credentials"})

        with pytest.raises(CarrierAuthError) as exc_info:
            get_auth_token()

        assert exc_info.value.code == "AUTH_FAILED"
        assert exc_info.value.status_code == 401

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_auth_message_is_auth_error(self, mock_post, app, carrier_settings):
        mock_post.return_value = make_response(400, {"message": "Authentication failed for user"})

        with pytest.raises(CarrierAuthError):
            get_auth_token()

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_response_without_token(self, mock_post, app, carrier_settings):
        mock_post.return_value = make_response(200, {"id": 5})

        with pytest.raises(CarrierAuthError) as exc_info:
            get_auth_token()

        assert exc_info.value.code == "TOKEN_MISSING"
        assert CarrierSettings.get_current().token is None

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_server_error_surfaces_as_carrier_error(self, mock_post, app, carrier_settings):
        mock_post.return_value = make_response(500, {"message": "Internal error"})

        with pytest.raises(CarrierAPIError) as exc_info:
            get_auth_token()

        assert exc_info.value.code == "CARRIER_ERROR"
        assert exc_info.value.message == "Internal error"

    @patch('marketsync.shipping.carrier_auth.requests.post')
    def test_network_failure(self, mock_post, app, carrier_settings):
        mock_post.side_effect = requests.ConnectionError("unreachable")

        with pytest.raises(CarrierAPIError):
            get_auth_token()


class TestCarrierAPI:

    @pytest.fixture
    def api(self):
        api = CarrierAPI("https://carrier.test/v1/external/", timeout=30)
        api.session = Mock()
        return api

    @pytest.fixture(autouse=True)
    def mock_token(self):
        with patch('marketsync.shipping.api.get_auth_token', side_effect=["t1", "t2", "t3"]) as token:
            yield token

    def test_every_request_uses_a_fresh_token(self, api, mock_token):
        api.session.request.return_value = make_response(200, {"data": []})

        api.list_couriers()
        api.list_couriers()

        assert mock_token.call_count == 2
        api.session.headers.update.assert_called_with({
            "Authorization": "Bearer t2",
            "Content-Type": "application/json",
        })

    def test_request_url_and_timeout(self, api):
        api.session.request.return_value = make_response(200, {"tracking_data": {}})

        api.track_awb("AWB123")

        args, kwargs = api.session.request.call_args
        assert args == ("GET", "https://carrier.test/v1/external/courier/track/awb/AWB123")
        assert kwargs["timeout"] == 30

    def test_assign_awb_body(self, api):
        api.session.request.return_value = make_response(200, {"awb_assign_status": 1})

        api.assign_awb(222, 24)

        assert api.session.request.call_args.kwargs["json"] == {"shipment_id": [222], "courier_id": "24"}

    def test_403_translates_to_permission_error(self, api):
        api.session.request.return_value = make_response(403, {"message": "Unauthorized plan"})

        with pytest.raises(CarrierPermissionError):
            api.list_couriers()

    def test_401_translates_to_auth_error(self, api):
        api.session.request.return_value = make_response(401, {"message": "Token expired"})

        with pytest.raises(CarrierAuthError) as exc_info:
            api.get_serviceability({})

        assert exc_info.value.code == "AUTH_FAILED"
        assert exc_info.value.status_code == 401
        assert exc_info.value.details == {"message": "Token expired"}

    def test_4xx_translates_to_carrier_error_with_details(self, api):
        api.session.request.return_value = make_response(422, {"message": "Invalid pincode"})

        with pytest.raises(CarrierAPIError) as exc_info:
            api.get_serviceability({"delivery_postcode": "000000"})

        assert exc_info.value.message == "Invalid pincode"
        assert exc_info.value.details == {"message": "Invalid pincode"}
        assert exc_info.value.status_code == 502

    def test_timeout_translates_to_carrier_error(self, api):
        api.session.request.side_effect = requests.Timeout()

        with pytest.raises(CarrierAPIError, match="timed out"):
            api.list_couriers()

    def test_missing_base_url(self):
        with pytest.raises(ValueError):
            CarrierAPI("")
