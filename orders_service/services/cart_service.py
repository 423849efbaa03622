import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from orders_service.db import db, unit_of_work
from orders_service.errors import NotFound, ValidationError
from orders_service.models import Cart, CartItem
from orders_service.services.inventory_service import assert_purchasable, check_available, load_wine
from orders_service.services.shipping import shipping_cost
from orders_service.utils.money import to_money
from orders_service.utils.parsing import parse_quantity

logger = logging.getLogger(__name__)


def buyer_carts(buyer_id) -> list:
    return db.session.execute(
        db.select(Cart).where(Cart.buyer_id == buyer_id).order_by(Cart.created_at, Cart.id)
    ).scalars().all()


def find_cart(buyer_id, seller_id, lock: bool = False) -> Cart | None:
    q = db.select(Cart).where(Cart.buyer_id == buyer_id, Cart.seller_id == seller_id)
    if lock:
        q = q.with_for_update()
    return db.session.execute(q).scalar_one_or_none()


def cart_subtotal(cart: Cart) -> Decimal:
    return to_money(sum((to_money(i.unit_price) * i.quantity for i in cart.items), Decimal("0")))


def cart_item_count(cart: Cart) -> int:
    return sum(i.quantity for i in cart.items)


def recompute_total(cart: Cart) -> Decimal:
    cart.total_amount = cart_subtotal(cart)
    return cart.total_amount


def _seller_json(cart: Cart) -> dict:
    s = cart.seller
    if s is None:
        return {"id": cart.seller_id}
    return {
        "id": s.id,
        "username": s.username,
        "first_name": s.first_name,
        "last_name": s.last_name,
    }


def _group_json(cart: Cart) -> dict:
    subtotal = cart_subtotal(cart)
    count = cart_item_count(cart)
    shipping = shipping_cost(subtotal, count)
    return {
        "cart_id": cart.id,
        "seller": _seller_json(cart),
        "items": [
            {
                "wine_id": i.wine_id,
                "title": i.wine.title if i.wine else None,
                "quantity": i.quantity,
                "unit_price": float(to_money(i.unit_price)),
                "line_total": float(to_money(i.unit_price) * i.quantity),
                "available_quantity": i.wine.quantity if i.wine else 0,
            }
            for i in cart.items
        ],
        "item_count": count,
        "subtotal": float(subtotal),
        "shipping_cost": float(shipping),
        "total": float(subtotal + shipping),
    }


def get_cart(buyer_id) -> dict:
    """Buyer's cart grouped by seller. An empty cart is all zeros, not an error."""
    carts = [c for c in buyer_carts(buyer_id) if c.items]
    total_amount = Decimal("0")
    shipping = Decimal("0")
    for c in carts:
        subtotal = cart_subtotal(c)
        total_amount += subtotal
        shipping += shipping_cost(subtotal, cart_item_count(c))
    return {
        "sellers": [_group_json(c) for c in carts],
        "total_items": sum(cart_item_count(c) for c in carts),
        "total_amount": float(to_money(total_amount)),
        "shipping_cost": float(to_money(shipping)),
        "grand_total": float(to_money(total_amount + shipping)),
    }


def _add(buyer_id, wine_id, quantity: int) -> None:
    wine = load_wine(wine_id, lock=True)
    assert_purchasable(wine, buyer_id, quantity)

    cart = find_cart(buyer_id, wine.seller_id, lock=True)
    if cart is None:
        cart = Cart(buyer_id=buyer_id, seller_id=wine.seller_id, total_amount=0)
        db.session.add(cart)
        db.session.flush()

    item = next((i for i in cart.items if i.wine_id == wine.id), None)
    if item is not None:
        check_available(wine, item.quantity + quantity)
        item.quantity += quantity
    else:
        cart.items.append(CartItem(wine_id=wine.id, quantity=quantity, unit_price=wine.price))
    db.session.flush()
    recompute_total(cart)


def add_item(buyer_id, wine_id, quantity) -> dict:
    if wine_id is None:
        raise ValidationError("missing fields: wine_id")
    quantity = parse_quantity(quantity)
    try:
        with unit_of_work():
            _add(buyer_id, wine_id, quantity)
    except IntegrityError:
        # a concurrent request created the same cart or line first; apply on top of it
        logger.info("Cart row race for buyer %s wine %s, retrying", buyer_id, wine_id)
        with unit_of_work():
            _add(buyer_id, wine_id, quantity)
    return get_cart(buyer_id)


def _cart_item(buyer_id, wine_id, lock: bool = False):
    q = (
        db.select(CartItem)
        .join(Cart)
        .where(Cart.buyer_id == buyer_id, CartItem.wine_id == wine_id)
    )
    if lock:
        q = q.with_for_update()
    return db.session.execute(q).scalar_one_or_none()


def update_item(buyer_id, wine_id, quantity) -> dict:
    quantity = parse_quantity(quantity)
    with unit_of_work():
        wine = load_wine(wine_id, lock=True)
        cart = find_cart(buyer_id, wine.seller_id, lock=True)
        if cart is None:
            raise NotFound("Cart not found")
        item = next((i for i in cart.items if i.wine_id == wine.id), None)
        if item is None:
            raise NotFound("Item not found in cart")
        assert_purchasable(wine, buyer_id, quantity)
        item.quantity = quantity
        db.session.flush()
        recompute_total(cart)
    return get_cart(buyer_id)


def remove_item(buyer_id, wine_id) -> dict:
    with unit_of_work():
        item = _cart_item(buyer_id, wine_id, lock=True)
        if item is None:
            raise NotFound("Item not found in cart")
        cart = item.cart
        cart.items.remove(item)
        db.session.flush()
        if not cart.items:
            db.session.delete(cart)
        else:
            recompute_total(cart)
    return get_cart(buyer_id)


def clear_cart(buyer_id) -> dict:
    with unit_of_work():
        carts = buyer_carts(buyer_id)
        if not carts:
            raise NotFound("Cart not found")
        for cart in carts:
            db.session.delete(cart)
    return get_cart(buyer_id)
