import re
from decimal import Decimal

import pytest

from conftest import ADDRESS
from orders_service.db import db
from orders_service.errors import (
    CannotBuyOwnListing,
    EmptyCart,
    ItemUnavailable,
    NotFound,
    ShippingAddressRequired,
    ValidationError,
)
from orders_service.models import Cart, Order, OrderStatus, PaymentProvider, PaymentStatus, ShippingAddress, Wine
from orders_service.services import cart_service, order_service


@pytest.fixture
def two_seller_cart(users, make_wine):
    red = make_wine(users.seller_a, "20.00", quantity=10)
    barolo = make_wine(users.seller_b, "100.00", quantity=2, title="Barolo")
    cart_service.add_item(users.buyer.id, red.id, 2)
    cart_service.add_item(users.buyer.id, barolo.id, 1)
    return red, barolo


def _order_count():
    return db.session.execute(db.select(db.func.count(Order.id))).scalar()


def test_checkout_confirms_one_order_per_seller(users, two_seller_cart):
    red, barolo = two_seller_cart
    result = order_service.checkout(users.buyer.id, "paypal", shipping_address=ADDRESS)

    assert result["total_orders"] == 2
    assert result["grand_total"] == Decimal("151.00")
    orders = result["orders"]
    assert {o.batch_id for o in orders} == {result["batch_id"]}
    assert len({o.order_number for o in orders}) == 2
    for o in orders:
        assert re.fullmatch(r"WM-\d+-[0-9A-F]{6}", o.order_number)
        assert o.status == OrderStatus.CONFIRMED
        assert o.payment_status == PaymentStatus.PENDING
        assert o.payment_provider == PaymentProvider.PAYPAL
        assert o.buyer_id == users.buyer.id

    by_seller = {o.seller_id: o for o in orders}
    a = by_seller[users.seller_a.id]
    assert (a.subtotal, a.shipping_cost, a.total_amount) == (Decimal("40.00"), Decimal("11.00"), Decimal("51.00"))
    assert [(i.wine_id, i.quantity, i.unit_price) for i in a.items] == [(red.id, 2, Decimal("20.00"))]
    assert by_seller[users.seller_b.id].total_amount == Decimal("100.00")

    assert db.session.execute(db.select(db.func.count(Cart.id))).scalar() == 0
    # stock only moves on delivery or a successful gateway callback
    assert db.session.get(Wine, red.id).quantity == 10


def test_checkout_is_all_or_nothing(users, two_seller_cart):
    _, barolo = two_seller_cart
    barolo.quantity = 0
    db.session.commit()

    with pytest.raises(ItemUnavailable) as exc:
        order_service.checkout(users.buyer.id, "PAYPAL", shipping_address=ADDRESS)
    assert exc.value.details == {"wine_title": "Barolo"}
    assert _order_count() == 0
    assert db.session.execute(db.select(db.func.count(Cart.id))).scalar() == 2


def test_checkout_empty_cart(users):
    with pytest.raises(EmptyCart):
        order_service.checkout(users.buyer.id, "PAYPAL", shipping_address=ADDRESS)


def test_checkout_requires_address(users, two_seller_cart):
    with pytest.raises(ShippingAddressRequired):
        order_service.checkout(users.buyer.id, "PAYPAL")
    with pytest.raises(ValidationError, match="city"):
        order_service.checkout(users.buyer.id, "PAYPAL", shipping_address={**ADDRESS, "city": " "})
    assert _order_count() == 0


def test_checkout_with_saved_address(users, two_seller_cart):
    mine = ShippingAddress(user_id=users.buyer.id, **ADDRESS)
    theirs = ShippingAddress(user_id=users.seller_a.id, **ADDRESS)
    db.session.add_all([mine, theirs])
    db.session.commit()

    with pytest.raises(NotFound):
        order_service.checkout(users.buyer.id, "PAYPAL", shipping_address_id=theirs.id)

    result = order_service.checkout(users.buyer.id, "PAYPAL", shipping_address_id=mine.id)
    assert {o.shipping_address_id for o in result["orders"]} == {mine.id}


def test_checkout_rejects_unknown_provider(users, two_seller_cart):
    with pytest.raises(ValidationError):
        order_service.checkout(users.buyer.id, "BITCOIN", shipping_address=ADDRESS)


def test_direct_create_groups_by_seller(users, make_wine):
    red = make_wine(users.seller_a, "20.00", quantity=10)
    white = make_wine(users.seller_a, "15.00", quantity=10, title="Vermentino")
    barolo = make_wine(users.seller_b, "100.00", quantity=2, title="Barolo")

    result = order_service.create_order(
        users.buyer.id,
        [
            {"wine_id": red.id, "quantity": 1},
            {"wine_id": barolo.id, "quantity": 1},
            {"wine_id": white.id, "quantity": 1},
            {"wine_id": red.id, "quantity": 1},
        ],
        payment_provider="STRIPE",
        shipping_address=ADDRESS,
    )

    assert result["total_orders"] == 2
    by_seller = {o.seller_id: o for o in result["orders"]}
    a = by_seller[users.seller_a.id]
    assert sorted((i.wine_id, i.quantity) for i in a.items) == sorted([(red.id, 2), (white.id, 1)])
    assert a.subtotal == Decimal("55.00")
    assert a.shipping_cost == Decimal("0.00")
    assert result["grand_total"] == Decimal("155.00")


def test_direct_create_validates_items(users, make_wine):
    own = make_wine(users.seller_a, "20.00")
    with pytest.raises(ValidationError):
        order_service.create_order(users.buyer.id, [], shipping_address=ADDRESS)
    with pytest.raises(CannotBuyOwnListing):
        order_service.create_order(users.seller_a.id, [{"wine_id": own.id, "quantity": 1}], shipping_address=ADDRESS)
    assert _order_count() == 0
