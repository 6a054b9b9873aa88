"""
Shared fixtures: a Flask app on in-memory sqlite with a temporary backup
directory, plus small factories for marketplace rows.
"""
import pytest
from unittest.mock import Mock, patch

from marketsync import create_app
from marketsync.auth.utils import hash_password
from marketsync.config import TestingConfig
from marketsync.models import CarrierSettings, Order, OrderItem, Product, User, UserAddress, db


@pytest.fixture
def backup_dir(tmp_path):
    return tmp_path / "backups"


@pytest.fixture
def app(backup_dir):
    """Create Flask application for testing."""
    config_class = type("TempDirTestingConfig", (TestingConfig,), {"BACKUP_DIR": str(backup_dir)})
    app = create_app(config_class)
    app.config['SECRET_KEY'] = 'test-secret-key'

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def mock_admin_user():
    """Create a mock admin user for authentication."""
    user = Mock()
    user.id = 1
    user.username = "test_admin"
    user.is_admin = True
    user.is_co_admin = False
    user.is_active = True
    return user


@pytest.fixture
def as_admin(mock_admin_user):
    """Patch authentication so admin_required routes see an admin."""
    with patch('marketsync.auth.utils.get_current_user', return_value=mock_admin_user):
        yield mock_admin_user


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make_user(role="buyer", password="secret", **kwargs):
        counter["n"] += 1
        user = User(
            username=kwargs.pop("username", f"user{counter['n']}"),
            email=kwargs.pop("email", f"user{counter['n']}@example.com"),
            password_hash=hash_password(password),
            role=role,
            **kwargs,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_product(app, make_user):
    def _make_product(seller=None, **kwargs):
        seller = seller or make_user(role="seller")
        values = {
            "name": "Steel Bottle",
            "price": 450,
            "category": "Kitchen",
            "sku": "BTL-1",
            "weight": 0.4,
            "length": 25,
            "width": 8,
            "height": 8,
        }
        values.update(kwargs)
        product = Product(seller_id=seller.id, **values)
        db.session.add(product)
        db.session.commit()
        return product

    return _make_product


@pytest.fixture
def make_order(app, make_user, make_product):
    def _make_order(status="confirmed", payment_method="prepaid", total=900, quantity=2, product=None, **kwargs):
        buyer = make_user(name="Asha Buyer", phone="9876543210")
        address = UserAddress(
            user_id=buyer.id,
            full_name="Asha Buyer",
            address="12 MG Road",
            city="Bengaluru",
            state="Karnataka",
            pincode="560001",
            phone="9876543210",
        )
        db.session.add(address)
        db.session.flush()

        product = product or make_product()
        order = Order(
            user_id=buyer.id,
            address_id=address.id,
            status=status,
            payment_method=payment_method,
            total=total,
            **kwargs,
        )
        db.session.add(order)
        db.session.flush()
        db.session.add(OrderItem(order_id=order.id, product_id=product.id, quantity=quantity, price=product.price))
        db.session.commit()
        return order

    return _make_order


@pytest.fixture
def carrier_settings(app):
    settings = CarrierSettings(email="ops@example.com", password="carrier-pass", auto_ship_enabled=True)
    db.session.add(settings)
    db.session.commit()
    return settings
