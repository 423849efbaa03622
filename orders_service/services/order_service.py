import logging
import time
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from orders_service.db import db, unit_of_work
from orders_service.errors import (
    AlreadyPaid,
    CannotCancelShippedOrDelivered,
    EmptyCart,
    Forbidden,
    InvalidTransition,
    ItemUnavailable,
    NotFound,
    OrderNotFound,
    ShippingAddressRequired,
    UnsupportedProvider,
    ValidationError,
)
from orders_service.extensions import payment_gateway, shipping_labels
from orders_service.models import (
    ADMIN_ROLES,
    Cart,
    Order,
    OrderItem,
    OrderStatus,
    PaymentProvider,
    PaymentStatus,
    ShippingAddress,
    WineStatus,
)
from orders_service.services.cart_service import buyer_carts
from orders_service.services.inventory_service import apply_fulfillment, assert_purchasable, load_wine
from orders_service.services.shipping import shipping_cost
from orders_service.utils.money import to_money
from orders_service.utils.parsing import parse_datetime, parse_enum, parse_quantity

logger = logging.getLogger(__name__)

# Every legal status change. Anything not listed here is rejected.
TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.DISPUTED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.DISPUTED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.DISPUTED},
    OrderStatus.DELIVERED: {OrderStatus.DISPUTED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.DISPUTED: set(),
}

ADDRESS_FIELDS = (
    "first_name", "last_name", "company", "address1", "address2",
    "city", "state", "zip_code", "country", "phone",
)
REQUIRED_ADDRESS_FIELDS = ("first_name", "last_name", "address1", "city", "zip_code", "country")

MAX_PAGE_SIZE = 100


def generate_order_number() -> str:
    return f"WM-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


def is_admin(role) -> bool:
    return str(role or "").upper() in ADMIN_ROLES


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in TRANSITIONS.get(current, set())


def _assert_transition(order: Order, new_status: OrderStatus) -> None:
    if not can_transition(order.status, new_status):
        raise InvalidTransition(
            f"Cannot change order status from {order.status.value} to {new_status.value}",
            from_status=order.status.value,
            to_status=new_status.value,
        )


def _load_order(order_id, lock: bool = False) -> Order:
    q = db.select(Order).where(Order.id == order_id)
    if lock:
        q = q.with_for_update()
    order = db.session.execute(q).scalar_one_or_none()
    if order is None:
        raise OrderNotFound()
    return order


def _parse_provider(payment_provider, gateway) -> PaymentProvider:
    provider = parse_enum(PaymentProvider, payment_provider, "payment_provider")
    gateway.get(provider)
    return provider


# ---------- Shipping address ----------
def resolve_shipping_address(buyer_id, shipping_address_id=None, shipping_address=None) -> ShippingAddress:
    if shipping_address_id:
        address = db.session.get(ShippingAddress, shipping_address_id)
        if address is None or address.user_id != buyer_id:
            raise NotFound("Shipping address not found")
        return address
    if shipping_address:
        data = {k: (str(v).strip() if v is not None else None) for k, v in shipping_address.items()}
        miss = [k for k in REQUIRED_ADDRESS_FIELDS if not data.get(k)]
        if miss:
            raise ValidationError("missing fields: " + ", ".join(miss))
        address = ShippingAddress(user_id=buyer_id, **{k: data.get(k) for k in ADDRESS_FIELDS})
        db.session.add(address)
        db.session.flush()
        return address
    raise ShippingAddressRequired()


# ---------- Confirmation ----------
def _build_order(buyer_id, seller_id, lines, batch_id, address, provider) -> Order:
    """lines: iterable of (wine_id, quantity, unit_price)."""
    lines = list(lines)
    subtotal = to_money(sum((to_money(price) * qty for _, qty, price in lines), Decimal("0")))
    shipping = shipping_cost(subtotal, sum(qty for _, qty, _ in lines))
    order = Order(
        order_number=generate_order_number(),
        batch_id=batch_id,
        buyer_id=buyer_id,
        seller_id=seller_id,
        status=OrderStatus.CONFIRMED,
        subtotal=subtotal,
        shipping_cost=shipping,
        total_amount=subtotal + shipping,
        payment_provider=provider,
        payment_status=PaymentStatus.PENDING,
        shipping_address_id=address.id,
        items=[OrderItem(wine_id=w, quantity=q, unit_price=p) for w, q, p in lines],
    )
    db.session.add(order)
    return order


def confirm_cart(cart: Cart, batch_id: str, address: ShippingAddress, provider) -> Order:
    """Turn one seller cart into a CONFIRMED order and drop the cart."""
    order = _build_order(
        cart.buyer_id,
        cart.seller_id,
        [(i.wine_id, i.quantity, i.unit_price) for i in cart.items],
        batch_id,
        address,
        provider,
    )
    db.session.delete(cart)
    return order


def _batch_result(batch_id, orders) -> dict:
    return {
        "batch_id": batch_id,
        "total_orders": len(orders),
        "orders": orders,
        "grand_total": to_money(sum((to_money(o.total_amount) for o in orders), Decimal("0"))),
    }


def checkout(buyer_id, payment_provider, shipping_address_id=None, shipping_address=None, gateway=None) -> dict:
    provider = _parse_provider(payment_provider, gateway or payment_gateway())
    with unit_of_work():
        carts = buyer_carts(buyer_id)
        filled = [c for c in carts if c.items]
        if not filled:
            raise EmptyCart()

        # validate the whole basket before confirming anything
        for cart in filled:
            for item in cart.items:
                wine = load_wine(item.wine_id, lock=True)
                if wine.status != WineStatus.ACTIVE or wine.quantity < item.quantity:
                    raise ItemUnavailable(wine.title)

        address = resolve_shipping_address(buyer_id, shipping_address_id, shipping_address)
        batch_id = str(uuid.uuid4())
        orders = [confirm_cart(c, batch_id, address, provider) for c in filled]
        for cart in carts:
            if not cart.items:
                db.session.delete(cart)
        db.session.flush()
        logger.info("Checkout %s for buyer %s confirmed %s orders", batch_id, buyer_id, len(orders))
    return _batch_result(batch_id, orders)


def create_order(buyer_id, items, payment_provider=None, shipping_address_id=None,
                 shipping_address=None, gateway=None) -> dict:
    """Direct purchase without a cart: one CONFIRMED order per seller, one batch."""
    if not items:
        raise ValidationError("items must not be empty")
    provider = _parse_provider(payment_provider, gateway or payment_gateway()) if payment_provider else None

    wanted = {}
    for entry in items:
        wine_id = (entry or {}).get("wine_id")
        if wine_id is None:
            raise ValidationError("missing fields: wine_id")
        wanted[wine_id] = wanted.get(wine_id, 0) + parse_quantity(entry.get("quantity"))

    with unit_of_work():
        by_seller = {}
        for wine_id, qty in wanted.items():
            wine = load_wine(wine_id, lock=True)
            assert_purchasable(wine, buyer_id, qty)
            by_seller.setdefault(wine.seller_id, []).append((wine.id, qty, wine.price))

        address = resolve_shipping_address(buyer_id, shipping_address_id, shipping_address)
        batch_id = str(uuid.uuid4())
        orders = [
            _build_order(buyer_id, seller_id, lines, batch_id, address, provider)
            for seller_id, lines in by_seller.items()
        ]
        db.session.flush()
    return _batch_result(batch_id, orders)


# ---------- Queries ----------
def list_orders(user_id=None, role=None, status=None, payment_status=None, seller_id=None,
                buyer_id=None, start_date=None, end_date=None, page=1, limit=20) -> dict:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 20), 1), MAX_PAGE_SIZE)

    q = db.select(Order)
    if status:
        q = q.where(Order.status.in_(status))
    if payment_status:
        q = q.where(Order.payment_status.in_(payment_status))
    if seller_id is not None:
        q = q.where(Order.seller_id == seller_id)
    if buyer_id is not None:
        q = q.where(Order.buyer_id == buyer_id)
    start = parse_datetime(start_date, "start_date")
    end = parse_datetime(end_date, "end_date")
    if start:
        q = q.where(Order.created_at >= start)
    if end:
        q = q.where(Order.created_at <= end)
    if not is_admin(role) and user_id is not None:
        q = q.where(or_(Order.buyer_id == user_id, Order.seller_id == user_id))

    q = q.order_by(Order.created_at.desc(), Order.id.desc())
    pagination = db.paginate(q, page=page, per_page=limit, error_out=False)
    return {
        "orders": pagination.items,
        "total": pagination.total,
        "page": page,
        "limit": limit,
        "total_pages": pagination.pages,
    }


def list_user_orders(target_user_id, actor_role, page=1, limit=20) -> dict:
    if not is_admin(actor_role):
        raise Forbidden("Admin role required")
    return list_orders(role=actor_role, buyer_id=target_user_id, page=page, limit=limit)


def get_order(order_id, user_id, role) -> Order:
    order = _load_order(order_id)
    if not is_admin(role) and user_id not in (order.buyer_id, order.seller_id):
        raise Forbidden("You can only access your own orders")
    return order


# ---------- Status machine ----------
def _apply_shipping(order: Order, tracking_number, estimated_delivery, shipping_label_url, labels) -> None:
    if tracking_number:
        order.tracking_number = tracking_number
        order.estimated_delivery = parse_datetime(estimated_delivery, "estimated_delivery")
        order.shipping_label_url = shipping_label_url
        return
    label = labels.generate(order)
    if not label.get("success"):
        # the shipment still goes out, just without tracking data
        logger.warning("No shipping label for order %s: %s", order.id, label.get("error"))
        return
    order.tracking_number = label["tracking_number"]
    order.shipping_label_url = label.get("label_url")
    order.carrier = label.get("carrier")
    order.estimated_delivery = parse_datetime(estimated_delivery, "estimated_delivery") or label.get("estimated_delivery")


def _cancel(order: Order, gateway) -> dict | None:
    refund = None
    if order.payment_status == PaymentStatus.COMPLETED and order.payment_id and order.payment_provider:
        try:
            refund = gateway.refund_payment(order.payment_id, order.total_amount, order.payment_provider)
        except UnsupportedProvider as e:
            refund = {"success": False, "error": e.message, "provider": order.payment_provider.value}
        if refund.get("success"):
            order.payment_status = PaymentStatus.REFUNDED
        else:
            logger.error(
                "Refund failed for order %s (payment %s): %s. Payment state must be reconciled manually",
                order.id, order.payment_id, refund.get("error"),
            )
    order.status = OrderStatus.CANCELLED
    return refund


def update_status(order_id, status, actor_id, role, tracking_number=None, estimated_delivery=None,
                  shipping_label_url=None, gateway=None, labels=None) -> Order:
    new_status = parse_enum(OrderStatus, status, "status")
    with unit_of_work():
        order = _load_order(order_id, lock=True)
        if not is_admin(role) and order.seller_id != actor_id:
            raise Forbidden("Only the seller or admin can update order status")
        _assert_transition(order, new_status)
        old_status = order.status

        if new_status == OrderStatus.CANCELLED:
            _cancel(order, gateway or payment_gateway())
            logger.info("Order %s: %s -> %s by user %s", order.id, old_status.value, new_status.value, actor_id)
            return order

        if new_status == OrderStatus.SHIPPED:
            _apply_shipping(order, tracking_number, estimated_delivery, shipping_label_url,
                            labels or shipping_labels())
        elif tracking_number:
            order.tracking_number = tracking_number

        if new_status == OrderStatus.DELIVERED:
            order.delivered_at = datetime.utcnow()
            apply_fulfillment(order)
            if order.payment_provider == PaymentProvider.ESCROW and order.payment_status == PaymentStatus.PENDING:
                logger.info("Releasing escrow for order %s", order.id)
                order.payment_status = PaymentStatus.COMPLETED

        logger.info("Order %s: %s -> %s by user %s", order.id, old_status.value, new_status.value, actor_id)
        order.status = new_status
    return order


def cancel_order(order_id, actor_id, role, gateway=None) -> dict:
    with unit_of_work():
        order = _load_order(order_id, lock=True)
        if not is_admin(role) and actor_id not in (order.buyer_id, order.seller_id):
            raise Forbidden("You can only cancel your own orders")
        if order.status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            raise CannotCancelShippedOrDelivered()
        _assert_transition(order, OrderStatus.CANCELLED)
        refund = _cancel(order, gateway or payment_gateway())
    return {"order": order, "refund": refund}


# ---------- Payment ----------
def process_payment(order_id, buyer_id, payment_provider=None, provider_data=None,
                    payment_id=None, gateway=None) -> dict:
    gateway = gateway or payment_gateway()
    with unit_of_work():
        order = _load_order(order_id, lock=True)
        if order.buyer_id != buyer_id:
            raise Forbidden("You can only pay for your own orders")
        if order.payment_status == PaymentStatus.COMPLETED:
            raise AlreadyPaid()
        if order.status != OrderStatus.CONFIRMED:
            raise InvalidTransition(f"Cannot pay for an order in status {order.status.value}")

        provider = _parse_provider(payment_provider, gateway) if payment_provider else order.payment_provider
        if provider is None:
            raise ValidationError("payment_provider is required")

        result = gateway.process_payment(order.id, order.total_amount, provider, provider_data)
        order.payment_provider = provider
        if not result.get("success"):
            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.FAILED
        elif result.get("requires_redirect"):
            # outcome arrives on the gateway callback
            order.payment_status = PaymentStatus.PENDING
            order.payment_id = result.get("transaction_id")
        else:
            order.status = OrderStatus.PAID
            order.payment_status = PaymentStatus(result["status"])
            order.payment_id = payment_id or result.get("transaction_id")
        logger.info("Payment for order %s via %s: %s", order.id, provider.value, result.get("status"))
    return {"order": order, "payment": result}


# ---------- Expiry ----------
def expire_unpaid_orders(max_age_hours=None, now=None) -> int:
    """Cancel CONFIRMED orders whose payment never arrived within the allowed window."""
    if max_age_hours is None:
        max_age_hours = current_app.config["PAYMENT_EXPIRY_HOURS"]
    cutoff = (now or datetime.utcnow()) - timedelta(hours=max_age_hours)
    with unit_of_work():
        orders = db.session.execute(
            db.select(Order)
            .where(
                Order.status == OrderStatus.CONFIRMED,
                Order.payment_status == PaymentStatus.PENDING,
                Order.created_at < cutoff,
            )
            .with_for_update()
        ).scalars().all()
        for order in orders:
            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.CANCELLED
    logger.info("Expired %s unpaid orders older than %s hours", len(orders), max_age_hours)
    return len(orders)
