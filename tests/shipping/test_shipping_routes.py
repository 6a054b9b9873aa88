"""
Tests for the admin shipping routes.
The shipment service is patched where a route would reach the carrier.
"""
import json
import pytest
from unittest.mock import Mock, patch

from marketsync.models import CarrierSettings, db
from marketsync.shipping.errors import CarrierPermissionError, ShipmentAlreadyExistsError
from marketsync.shipping.results import AutoShipOutcome, AutoShipSummary, RatesResult, ShipmentResult


@pytest.fixture
def mock_service():
    service = Mock()
    with patch('marketsync.shipping.routes.get_shipment_service', return_value=service):
        yield service


class TestAuthentication:

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/shipping/settings"),
        ("put", "/api/shipping/settings"),
        ("post", "/api/shipping/token"),
        ("get", "/api/shipping/rates?order_id=1"),
        ("post", "/api/shipping/orders/1/ship"),
        ("post", "/api/shipping/auto-ship"),
        ("get", "/api/shipping/orders/pending"),
    ])
    def test_requires_login(self, client, method, path):
        assert getattr(client, method)(path).status_code == 401

    def test_requires_admin(self, client, make_user):
        make_user(role="seller", username="seller1", password="pw")
        client.post('/api/auth/login', json={"username": "seller1", "password": "pw"})

        assert client.get('/api/shipping/settings').status_code == 403

    def test_admin_session(self, client, make_user):
        make_user(role="admin", username="boss", password="pw")
        client.post('/api/auth/login', json={"username": "boss", "password": "pw"})

        assert client.get('/api/shipping/settings').status_code == 200


@pytest.mark.usefixtures("as_admin")
class TestSettings:

    def test_get_creates_row_and_masks_password(self, client):
        response = client.get('/api/shipping/settings')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["password"] == ""
        assert CarrierSettings.query.count() == 1

    def test_password_change_clears_token(self, client, carrier_settings):
        carrier_settings.token = "old-token"
        db.session.commit()

        response = client.put('/api/shipping/settings', json={"password": "new-pass", "default_courier": 24})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["password"] == ""
        assert data["has_token"] is False
        settings = CarrierSettings.get_current()
        assert settings.password == "new-pass"
        assert settings.default_courier == "24"

    def test_blank_password_keeps_existing(self, client, carrier_settings):
        carrier_settings.token = "kept"
        db.session.commit()

        client.put('/api/shipping/settings', json={"email": "ops@example.com", "password": ""})

        settings = CarrierSettings.get_current()
        assert settings.password == "carrier-pass"
        assert settings.token == "kept"

    def test_put_requires_body(self, client):
        assert client.put('/api/shipping/settings').status_code == 400

    def test_token_route_reports_permission_error(self, client):
        with patch('marketsync.shipping.routes.get_auth_token',
                   side_effect=CarrierPermissionError("upgrade your plan")):
            response = client.post('/api/shipping/token')

        assert response.status_code == 403
        assert json.loads(response.data)["code"] == "PERMISSION_ERROR"

    def test_token_route_success_hides_token(self, client, carrier_settings):
        with patch('marketsync.shipping.routes.get_auth_token', return_value="secret-token"):
            response = client.post('/api/shipping/token')

        assert response.status_code == 200
        assert b"secret-token" not in response.data


@pytest.mark.usefixtures("as_admin")
class TestShipmentRoutes:

    def test_rates_requires_order_id(self, client, mock_service):
        assert client.get('/api/shipping/rates').status_code == 400

    def test_rates_unknown_order(self, client, mock_service):
        response = client.get('/api/shipping/rates?order_id=999')

        assert response.status_code == 404
        assert json.loads(response.data)["code"] == "ORDER_NOT_FOUND"

    def test_rates(self, client, mock_service, make_order):
        order = make_order()
        mock_service.get_rates.return_value = RatesResult(recommended_courier_company_id=13)

        response = client.get(f'/api/shipping/rates?order_id={order.id}')

        assert response.status_code == 200
        assert json.loads(response.data) == {"couriers": [], "recommended_courier_company_id": 13}

    def test_ship_order(self, client, mock_service, make_order):
        order = make_order()
        mock_service.create_shipment.return_value = ShipmentResult(
            order_id=order.id, carrier_order_id="111", carrier_shipment_id="222", stage="pickup-requested",
        )

        response = client.post(f'/api/shipping/orders/{order.id}/ship', json={"courier_id": 13})

        assert response.status_code == 200
        assert json.loads(response.data)["shipment"]["carrier_order_id"] == "111"
        assert mock_service.create_shipment.call_args.args[1] == 13

    def test_ship_order_already_shipped(self, client, mock_service, make_order):
        order = make_order()
        mock_service.create_shipment.side_effect = ShipmentAlreadyExistsError("already shipped")

        response = client.post(f'/api/shipping/orders/{order.id}/ship')

        assert response.status_code == 409
        data = json.loads(response.data)
        assert data["code"] == "ALREADY_SHIPPED"
        assert set(data) >= {"error", "message", "code"}

    def test_auto_ship(self, client, mock_service):
        mock_service.auto_ship_pending.return_value = AutoShipSummary(
            results=[
                AutoShipOutcome(order_id=1, success=True, carrier_order_id="501"),
                AutoShipOutcome(order_id=2, success=False, error="Authentication failed", code="AUTH_FAILED"),
            ],
            operation_id="abc12345",
        )

        response = client.post('/api/shipping/auto-ship')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["shipped"] == 1
        assert data["failed"] == 1
        assert data["message"] == "Auto-shipped 1 of 2 orders"

    def test_test_connection_error(self, client, mock_service):
        mock_service.test_connection.side_effect = CarrierPermissionError()

        response = client.get('/api/shipping/test-connection')

        assert response.status_code == 403
        assert json.loads(response.data)["error"] == "Insufficient API permissions"


@pytest.mark.usefixtures("as_admin")
class TestListings:

    def test_pending_orders_paginated(self, client, make_order):
        for _ in range(3):
            make_order(status="pending")
        make_order(status="confirmed")

        data = json.loads(client.get('/api/shipping/orders/pending?page=2&limit=2').data)

        assert data["total"] == 3
        assert data["pages"] == 2
        assert len(data["orders"]) == 1

    def test_shipped_orders(self, client, make_order):
        make_order(carrier_order_id="111", awb_code="AWB1")
        make_order()

        data = json.loads(client.get('/api/shipping/orders/shipped').data)

        assert len(data["orders"]) == 1
        assert data["orders"][0]["awb_code"] == "AWB1"
