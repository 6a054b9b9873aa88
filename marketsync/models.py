from datetime import datetime
from enum import Enum

import pandas as pd
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class SyncStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ShipmentStage(Enum):
    """Per-order progress through the carrier synchronization."""
    UNSHIPPED = "unshipped"
    RATE_CHECKED = "rate-checked"
    CARRIER_ORDER_CREATED = "carrier-order-created"
    AWB_ASSIGNED = "awb-assigned"
    PICKUP_REQUESTED = "pickup-requested"
    TRACKED = "tracked"


class User(db.Model):
    """Marketplace account (buyer, seller, admin)."""
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="buyer")  # 'buyer', 'seller', 'admin'
    name = db.Column(db.String(255))
    phone = db.Column(db.String(32))
    address = db.Column(db.Text)
    profile_image = db.Column(db.String(512))
    approved = db.Column(db.Boolean, nullable=False, default=False)
    rejected = db.Column(db.Boolean, nullable=False, default=False)
    is_co_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def is_admin(self):
        return self.role == "admin"

    def __repr__(self):
        return f"<User {self.id} - {self.username} ({self.role})>"


class UserAddress(db.Model):
    __tablename__ = "user_addresses"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    address_name = db.Column(db.String(64), nullable=False, default="Home")
    full_name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=False)
    city = db.Column(db.String(128), nullable=False)
    state = db.Column(db.String(128), nullable=False)
    pincode = db.Column(db.String(16), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    deleted = db.Column(db.Boolean, nullable=False, default=False)


class Product(db.Model):
    __tablename__ = "products"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    price = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(128), nullable=False)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    image_url = db.Column(db.String(512))
    sku = db.Column(db.String(64))
    stock = db.Column(db.Integer, nullable=False, default=0)
    approved = db.Column(db.Boolean, nullable=False, default=False)
    rejected = db.Column(db.Boolean, nullable=False, default=False)
    featured = db.Column(db.Boolean, nullable=False, default=False)
    is_draft = db.Column(db.Boolean, nullable=False, default=False)
    deleted = db.Column(db.Boolean, nullable=False, default=False)
    specifications = db.Column(db.Text)
    # Package attributes used for carrier requests: weight in kg, dimensions in cm
    weight = db.Column(db.Numeric(10, 3))
    length = db.Column(db.Numeric(10, 2))
    width = db.Column(db.Numeric(10, 2))
    height = db.Column(db.Numeric(10, 2))
    color = db.Column(db.String(64))
    size = db.Column(db.String(64))
    gst_rate = db.Column(db.Numeric(5, 2), default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    seller = db.relationship("User", lazy="joined")

    def __repr__(self):
        return f"<Product {self.id} - {self.name}>"


class Order(db.Model):
    __tablename__ = "orders"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    address_id = db.Column(db.Integer, db.ForeignKey("user_addresses.id"), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    total = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    payment_method = db.Column(db.String(32), nullable=False, default="cod")
    payment_status = db.Column(db.String(32))
    wallet_discount = db.Column(db.Integer, default=0)

    # Carrier shipment record
    shipping_status = db.Column(db.String(32), nullable=True)
    carrier_order_id = db.Column(db.String(64), nullable=True, index=True)
    carrier_shipment_id = db.Column(db.String(64), nullable=True)
    awb_code = db.Column(db.String(64), nullable=True)
    courier_name = db.Column(db.String(128), nullable=True)
    estimated_delivery_date = db.Column(db.DateTime, nullable=True)
    tracking_details = db.Column(db.JSON, nullable=True)

    user = db.relationship("User", lazy="joined")
    address = db.relationship("UserAddress", lazy="joined")
    items = db.relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")

    def __repr__(self):
        return f"<Order {self.id} - {self.status}>"

    def shipment_dict(self):
        from marketsync.datetime_utils import isoformat_or_none
        return {
            'carrier_order_id': self.carrier_order_id,
            'carrier_shipment_id': self.carrier_shipment_id,
            'awb_code': self.awb_code,
            'courier_name': self.courier_name,
            'estimated_delivery_date': isoformat_or_none(self.estimated_delivery_date),
            'shipping_status': self.shipping_status,
        }

    def to_dict(self):
        from marketsync.datetime_utils import isoformat_or_none
        return {
            'id': self.id,
            'user_id': self.user_id,
            'address_id': self.address_id,
            'status': self.status,
            'total': self.total,
            'date': isoformat_or_none(self.date),
            'payment_method': self.payment_method,
            'items': [item.to_dict() for item in self.items],
            **self.shipment_dict(),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product", lazy="joined")

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'price': self.price,
        }


class SellerSettings(db.Model):
    __tablename__ = "seller_settings"
    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    pickup_address = db.Column(db.JSON, nullable=True)  # {"pincode": ..., "address": ..., "city": ...}

    @classmethod
    def for_seller(cls, seller_id):
        if seller_id is None:
            return None
        return cls.query.filter_by(seller_id=seller_id).first()


class CarrierSettings(db.Model):
    '''Carrier account credentials and shipping defaults (single row)'''
    __tablename__ = "carrier_settings"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=True)
    password = db.Column(db.Text, nullable=True)
    # Last token handed out by the carrier. Kept for observability only, never reused.
    token = db.Column(db.Text, nullable=True)
    token_obtained_at = db.Column(db.DateTime, nullable=True)
    default_courier = db.Column(db.String(32), nullable=True)
    auto_ship_enabled = db.Column(db.Boolean, default=False)
    pickup_address = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get_current(cls):
        '''Get the settings row; the first row by id is authoritative'''
        return cls.query.order_by(cls.id).first()

    @property
    def has_credentials(self):
        return bool(self.email and self.password)

    def to_dict(self):
        from marketsync.datetime_utils import isoformat_or_none
        return {
            'id': self.id,
            'email': self.email or "",
            'password': "",  # never sent back to clients
            'has_token': bool(self.token),
            'token_obtained_at': isoformat_or_none(self.token_obtained_at),
            'default_courier': self.default_courier or "",
            'auto_ship_enabled': bool(self.auto_ship_enabled),
            'pickup_address': self.pickup_address,
            'updated_at': isoformat_or_none(self.updated_at),
        }


class SyncOperation(db.Model):
    """Track backup runs and auto-ship batches."""
    __tablename__ = "sync_operations"

    id = db.Column(db.Integer, primary_key=True)
    operation_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    operation_type = db.Column(db.String(50), nullable=False, index=True)  # 'scheduled_backup', 'auto_ship', etc.
    status = db.Column(db.Enum(SyncStatus), nullable=False, default=SyncStatus.PENDING)

    # Timing
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    duration_seconds = db.Column(db.Float, nullable=True)

    # Operation details
    records_processed = db.Column(db.Integer, default=0)
    records_failed = db.Column(db.Integer, default=0)

    # Error information
    error_type = db.Column(db.String(100), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    context = db.Column(db.JSON, nullable=True)

    def __repr__(self):
        return f"<SyncOperation {self.operation_id} - {self.operation_type} - {self.status}>"

    def to_dict(self):
        from marketsync.datetime_utils import format_datetime_local
        return {
            'id': self.id,
            'operation_id': self.operation_id,
            'operation_type': self.operation_type,
            'status': self.status.value,
            'started_at': format_datetime_local(self.started_at),
            'completed_at': format_datetime_local(self.completed_at),
            'duration_seconds': self.duration_seconds,
            'records_processed': self.records_processed,
            'records_failed': self.records_failed,
            'error_type': self.error_type,
            'error_message': self.error_message,
            'metadata': self.context
        }


# Backup projections. Each returns a DataFrame whose columns are the CSV headers.

def query_accounts():
    users = User.query.order_by(User.id).all()
    return pd.DataFrame(
        [
            {
                "ID": u.id,
                "Username": u.username,
                "Email": u.email,
                "Role": u.role,
                "Name": u.name,
                "Phone": u.phone,
                "Address": u.address,
                "Profile Image URL": u.profile_image,
                "Approved": u.approved,
                "Rejected": u.rejected,
                "Is Co-Admin": u.is_co_admin,
            }
            for u in users
        ],
        columns=ACCOUNT_COLUMNS,
    )


def query_catalog_items():
    products = Product.query.filter(Product.deleted.is_(False)).order_by(Product.id).all()
    return pd.DataFrame(
        [
            {
                "ID": p.id,
                "Name": p.name,
                "Description": p.description,
                "Price": p.price,
                "Seller ID": p.seller_id,
                "Seller Username": p.seller.username if p.seller else None,
                "Seller Name": p.seller.name if p.seller else None,
                "Category": p.category,
                "Image URL": p.image_url,
                "SKU": p.sku,
                "Stock Quantity": p.stock,
                "Approved": p.approved,
                "Rejected": p.rejected,
                "Featured": p.featured,
                "Is Draft": p.is_draft,
                "Specifications": p.specifications,
                "Height": p.height,
                "Width": p.width,
                "Length": p.length,
                "Weight": p.weight,
                "Color": p.color,
                "Size": p.size,
                "GST Rate": p.gst_rate,
                "Created At": p.created_at,
            }
            for p in products
        ],
        columns=CATALOG_ITEM_COLUMNS,
    )


def query_transactions():
    orders = Order.query.order_by(Order.id).all()
    return pd.DataFrame(
        [
            {
                "ID": o.id,
                "User ID": o.user_id,
                "User Name": o.user.username if o.user else None,
                "User Email": o.user.email if o.user else None,
                "Address ID": o.address_id,
                "Total": o.total,
                "Status": o.status,
                "Payment Method": o.payment_method,
                "Payment Status": o.payment_status,
                "Wallet Discount": o.wallet_discount,
                "Carrier Order ID": o.carrier_order_id,
                "AWB Code": o.awb_code,
                "Courier": o.courier_name,
                "Shipping Status": o.shipping_status,
                "Created At": o.date,
            }
            for o in orders
        ],
        columns=TRANSACTION_COLUMNS,
    )


ACCOUNT_COLUMNS = [
    "ID", "Username", "Email", "Role", "Name", "Phone", "Address",
    "Profile Image URL", "Approved", "Rejected", "Is Co-Admin",
]

CATALOG_ITEM_COLUMNS = [
    "ID", "Name", "Description", "Price", "Seller ID", "Seller Username",
    "Seller Name", "Category", "Image URL", "SKU", "Stock Quantity", "Approved",
    "Rejected", "Featured", "Is Draft", "Specifications", "Height", "Width",
    "Length", "Weight", "Color", "Size", "GST Rate", "Created At",
]

TRANSACTION_COLUMNS = [
    "ID", "User ID", "User Name", "User Email", "Address ID", "Total", "Status",
    "Payment Method", "Payment Status", "Wallet Discount", "Carrier Order ID",
    "AWB Code", "Courier", "Shipping Status", "Created At",
]
