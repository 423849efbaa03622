from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, Enum, Index, UniqueConstraint

from orders_service.db import db


class OrderStatus(PyEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


class PaymentStatus(PyEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class PaymentProvider(PyEnum):
    PAYPAL = "PAYPAL"
    STRIPE = "STRIPE"
    ESCROW = "ESCROW"
    BANK_GATEWAY = "BANK_GATEWAY"


class WineStatus(PyEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SOLD = "SOLD"


ADMIN_ROLES = {"ADMIN", "SUPER_ADMIN"}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    first_name = db.Column(db.String(80))
    last_name = db.Column(db.String(80))
    role = db.Column(db.String(20), nullable=False, default="USER")
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class Wine(db.Model):
    __tablename__ = "wines"

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(
        Enum(WineStatus, name="wine_status"),
        nullable=False,
        default=WineStatus.ACTIVE,
        index=True,
    )
    sold_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_wine_quantity_non_negative"),
    )


class ShippingAddress(db.Model):
    __tablename__ = "shipping_addresses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    company = db.Column(db.String(120))
    address1 = db.Column(db.String(200), nullable=False)
    address2 = db.Column(db.String(200))
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100))
    zip_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(80), nullable=False)
    phone = db.Column(db.String(30))
    is_default = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class Cart(db.Model):
    """In-progress purchase from one seller; becomes an Order at checkout."""

    __tablename__ = "carts"

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    items = db.relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )
    seller = db.relationship("User", foreign_keys=[seller_id])

    __table_args__ = (
        UniqueConstraint("buyer_id", "seller_id", name="uq_cart_buyer_seller"),
    )


class CartItem(db.Model):
    __tablename__ = "cart_items"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    wine_id = db.Column(db.Integer, db.ForeignKey("wines.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    # price at the moment of adding; later listing price changes do not touch the cart
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    cart = db.relationship("Cart", back_populates="items")
    wine = db.relationship("Wine")

    __table_args__ = (
        UniqueConstraint("cart_id", "wine_id", name="uq_cart_item_wine"),
        CheckConstraint("quantity >= 1", name="ck_cart_item_quantity"),
    )


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), unique=True, nullable=False)
    batch_id = db.Column(db.String(36), index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(
        Enum(OrderStatus, name="order_status"),
        nullable=False,
        default=OrderStatus.CONFIRMED,
    )
    subtotal = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    shipping_cost = db.Column(db.Numeric(10, 2))
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    payment_provider = db.Column(Enum(PaymentProvider, name="payment_provider"))
    payment_status = db.Column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_id = db.Column(db.String(100))

    shipping_address_id = db.Column(db.Integer, db.ForeignKey("shipping_addresses.id"))
    tracking_number = db.Column(db.String(64))
    shipping_label_url = db.Column(db.String(500))
    carrier = db.Column(db.String(80))
    estimated_delivery = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)

    # set once stock has been decremented for this order
    fulfillment_applied = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    shipping_address = db.relationship("ShippingAddress")
    seller = db.relationship("User", foreign_keys=[seller_id])
    buyer = db.relationship("User", foreign_keys=[buyer_id])

    __table_args__ = (
        Index("ix_order_status_created", "status", "created_at"),
    )


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    wine_id = db.Column(db.Integer, db.ForeignKey("wines.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    order = db.relationship("Order", back_populates="items")
    wine = db.relationship("Wine")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity"),
    )


__all__ = [
    "db",
    "User",
    "Wine",
    "ShippingAddress",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "PaymentProvider",
    "WineStatus",
    "ADMIN_ROLES",
]
