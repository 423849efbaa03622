import logging
from datetime import datetime

from sqlalchemy import update

from orders_service.db import db
from orders_service.errors import CannotBuyOwnListing, InsufficientQuantity, ItemUnavailable, NotFound
from orders_service.models import Order, Wine, WineStatus

logger = logging.getLogger(__name__)


def load_wine(wine_id, lock: bool = False) -> Wine:
    """Read the live listing row, optionally locking it for the rest of the transaction."""
    q = db.select(Wine).where(Wine.id == wine_id).execution_options(populate_existing=True)
    if lock:
        q = q.with_for_update()
    wine = db.session.execute(q).scalar_one_or_none()
    if wine is None:
        raise NotFound(f"Wine with ID {wine_id} not found")
    return wine


def check_available(wine: Wine, requested: int) -> None:
    if wine.quantity < requested:
        raise InsufficientQuantity(wine.quantity, requested, wine.title)


def assert_purchasable(wine: Wine, buyer_id: int, requested: int) -> None:
    if wine.status != WineStatus.ACTIVE:
        raise ItemUnavailable(wine.title)
    if wine.seller_id == buyer_id:
        raise CannotBuyOwnListing()
    check_available(wine, requested)


def decrement(wine_id, qty: int) -> int:
    """Take qty bottles out of stock; a listing that reaches zero becomes SOLD."""
    now = datetime.utcnow()
    result = db.session.execute(
        update(Wine)
        .where(Wine.id == wine_id, Wine.quantity >= qty)
        .values(quantity=Wine.quantity - qty, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    wine = load_wine(wine_id)
    if result.rowcount == 0:
        raise InsufficientQuantity(wine.quantity, qty, wine.title)
    if wine.quantity == 0:
        wine.status = WineStatus.SOLD
        wine.sold_at = now
    return wine.quantity


def apply_fulfillment(order: Order) -> bool:
    """Commit an order's bottles as sold. Runs at most once per order."""
    if order.fulfillment_applied:
        logger.info("Stock already committed for order %s, skipping", order.id)
        return False
    for item in order.items:
        remaining = decrement(item.wine_id, item.quantity)
        logger.info("Wine %s decremented by %s, %s left", item.wine_id, item.quantity, remaining)
    order.fulfillment_applied = True
    return True
