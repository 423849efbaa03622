import logging

import pytest

from conftest import reload
from orders_service.db import db
from orders_service.errors import Forbidden, InsufficientQuantity, InvalidTransition
from orders_service.models import OrderStatus, PaymentStatus, WineStatus
from orders_service.services import order_service, shipping
from orders_service.services.inventory_service import apply_fulfillment
from orders_service.services.order_service import TRANSITIONS, can_transition
from orders_service.services.shipping import ShippingLabelClient


class FailingLabels:
    def generate(self, order):
        return {"success": False, "error": "label service down"}


def _advance(order, seller, *statuses, **kw):
    for s in statuses:
        order = order_service.update_status(order.id, s, seller.id, "USER", **kw)
    return order


def _paid(place_order, users, provider="PAYPAL", **kw):
    order, wine = place_order(**kw)
    order = order_service.process_payment(order.id, users.buyer.id, provider)["order"]
    return order, wine


def test_adjacency():
    assert can_transition(OrderStatus.CONFIRMED, OrderStatus.PAID)
    assert not can_transition(OrderStatus.CONFIRMED, OrderStatus.DELIVERED)
    assert not can_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED)
    assert TRANSITIONS[OrderStatus.CANCELLED] == set()
    assert TRANSITIONS[OrderStatus.DISPUTED] == set()


def test_cannot_skip_states(users, place_order):
    order, _ = place_order()
    with pytest.raises(InvalidTransition) as exc:
        order_service.update_status(order.id, "DELIVERED", users.seller_a.id, "USER")
    assert exc.value.details == {"from_status": "CONFIRMED", "to_status": "DELIVERED"}
    assert reload(order).status == OrderStatus.CONFIRMED


def test_only_seller_or_admin_updates_status(users, place_order):
    order, _ = _paid(place_order, users)
    with pytest.raises(Forbidden):
        order_service.update_status(order.id, "PROCESSING", users.buyer.id, "USER")
    order = order_service.update_status(order.id, "processing", users.admin.id, "ADMIN")
    assert order.status == OrderStatus.PROCESSING


def test_full_lifecycle_sells_out_listing(users, place_order):
    order, wine = _paid(place_order, users, quantity=3, stock=3)
    assert (order.status, order.payment_status) == (OrderStatus.PAID, PaymentStatus.COMPLETED)
    assert order.payment_id.startswith("PP_")

    order = _advance(order, users.seller_a, "PROCESSING", "SHIPPED")
    assert order.tracking_number.startswith("TN")
    assert order.carrier == "Poste Italiane"
    assert order.estimated_delivery is not None
    assert reload(wine).quantity == 3

    order = _advance(order, users.seller_a, "DELIVERED")
    assert order.delivered_at is not None
    assert order.fulfillment_applied is True
    wine = reload(wine)
    assert wine.quantity == 0
    assert wine.status == WineStatus.SOLD
    assert wine.sold_at is not None


def test_partial_delivery_keeps_listing_active(users, place_order):
    order, wine = _paid(place_order, users, quantity=2, stock=5)
    _advance(order, users.seller_a, "PROCESSING", "SHIPPED", "DELIVERED")
    wine = reload(wine)
    assert wine.quantity == 3
    assert wine.status == WineStatus.ACTIVE
    assert wine.sold_at is None


def test_explicit_tracking_number(users, place_order):
    order, _ = _paid(place_order, users)
    order = _advance(order, users.seller_a, "PROCESSING")
    order = order_service.update_status(
        order.id, "SHIPPED", users.seller_a.id, "USER",
        tracking_number="RR123456789IT", estimated_delivery="2030-01-05T10:00:00Z",
    )
    assert order.tracking_number == "RR123456789IT"
    assert order.estimated_delivery.year == 2030


def test_label_failure_does_not_block_shipping(users, place_order):
    order, _ = _paid(place_order, users)
    order = _advance(order, users.seller_a, "PROCESSING")
    order = order_service.update_status(order.id, "SHIPPED", users.seller_a.id, "USER", labels=FailingLabels())
    assert order.status == OrderStatus.SHIPPED
    assert order.tracking_number is None


def test_delivery_aborts_when_stock_is_short(users, place_order):
    order, wine = _paid(place_order, users, quantity=2, stock=5)
    order = _advance(order, users.seller_a, "PROCESSING", "SHIPPED")
    wine = reload(wine)
    wine.quantity = 1
    db.session.commit()

    with pytest.raises(InsufficientQuantity):
        order_service.update_status(order.id, "DELIVERED", users.seller_a.id, "USER")
    order = reload(order)
    assert order.status == OrderStatus.SHIPPED
    assert order.fulfillment_applied is False
    assert reload(wine).quantity == 1


def test_escrow_released_on_delivery(users, place_order):
    order, _ = _paid(place_order, users, provider="ESCROW")
    assert (order.status, order.payment_status) == (OrderStatus.PAID, PaymentStatus.PENDING)
    order = _advance(order, users.seller_a, "PROCESSING", "SHIPPED", "DELIVERED")
    assert order.payment_status == PaymentStatus.COMPLETED


def test_disputed_is_terminal(users, place_order):
    order, _ = _paid(place_order, users)
    order = _advance(order, users.seller_a, "PROCESSING", "SHIPPED", "DELIVERED", "DISPUTED")
    assert order.status == OrderStatus.DISPUTED
    with pytest.raises(InvalidTransition):
        order_service.update_status(order.id, "DELIVERED", users.admin.id, "ADMIN")


def test_fulfillment_applies_once(users, place_order):
    order, wine = place_order(quantity=2, stock=5)
    assert apply_fulfillment(order) is True
    assert apply_fulfillment(order) is False
    db.session.commit()
    assert reload(wine).quantity == 3


def test_malformed_label_date_does_not_block_shipping(users, place_order, monkeypatch):
    class Resp:
        def raise_for_status(self):
            pass

        def json(self):
            return {"tracking_number": "RR1", "estimated_delivery": "in 3 days"}

    monkeypatch.setattr(shipping.requests, "post", lambda *a, **kw: Resp())
    order, _ = _paid(place_order, users)
    order = _advance(order, users.seller_a, "PROCESSING")

    order = order_service.update_status(
        order.id, "SHIPPED", users.seller_a.id, "USER", labels=ShippingLabelClient("http://labels.test"),
    )
    assert order.status == OrderStatus.SHIPPED
    assert order.tracking_number is None


def test_cancel_through_status_update_is_logged(users, place_order, caplog):
    order, _ = place_order()
    with caplog.at_level(logging.INFO, logger="orders_service.services.order_service"):
        order_service.update_status(order.id, "CANCELLED", users.seller_a.id, "USER")
    assert f"Order {order.id}: CONFIRMED -> CANCELLED by user {users.seller_a.id}" in caplog.text
