from flask import Blueprint, current_app, g, request

from orders_service.auth import require_admin, require_auth
from orders_service.models import OrderStatus, PaymentStatus
from orders_service.serializers import batch_json, order_json, page_json
from orders_service.services import cart_service, order_service
from orders_service.utils.parsing import parse_enum_list, parse_int
from orders_service.utils.responses import ok

bp = Blueprint("orders", __name__, url_prefix="/orders")


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _page_args():
    page = parse_int(request.args.get("page"), 1, minv=1)
    limit = parse_int(request.args.get("limit"), 20, minv=1)
    return page, min(limit, order_service.MAX_PAGE_SIZE)


# ---------- Orders ----------
@bp.post("")
@require_auth
def create_order():
    d = _body()
    result = order_service.create_order(
        g.current_user["id"],
        d.get("items") or [],
        payment_provider=d.get("payment_provider"),
        shipping_address_id=d.get("shipping_address_id"),
        shipping_address=d.get("shipping_address"),
    )
    return ok(batch_json(result), 201)


@bp.get("")
@require_auth
def list_orders():
    page, limit = _page_args()
    result = order_service.list_orders(
        user_id=g.current_user["id"],
        role=g.current_user["role"],
        status=parse_enum_list(OrderStatus, request.args.getlist("status"), "status"),
        payment_status=parse_enum_list(PaymentStatus, request.args.getlist("payment_status"), "payment_status"),
        seller_id=parse_int(request.args.get("seller_id")),
        buyer_id=parse_int(request.args.get("buyer_id")),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        page=page,
        limit=limit,
    )
    return ok(page_json(result))


@bp.get("/user/<int:user_id>")
@require_admin
def list_user_orders(user_id):
    page, limit = _page_args()
    result = order_service.list_user_orders(user_id, g.current_user["role"], page=page, limit=limit)
    return ok(page_json(result))


@bp.get("/<int:order_id>")
@require_auth
def get_order(order_id):
    o = order_service.get_order(order_id, g.current_user["id"], g.current_user["role"])
    return ok(order_json(o))


@bp.patch("/<int:order_id>/status")
@require_auth
def update_status(order_id):
    d = _body()
    o = order_service.update_status(
        order_id,
        d.get("status"),
        g.current_user["id"],
        g.current_user["role"],
        tracking_number=d.get("tracking_number"),
        estimated_delivery=d.get("estimated_delivery"),
        shipping_label_url=d.get("shipping_label_url"),
    )
    current_app.logger.info("Order %s status set to %s", order_id, o.status.value)
    return ok(order_json(o))


@bp.post("/<int:order_id>/payment")
@require_auth
def process_payment(order_id):
    d = _body()
    result = order_service.process_payment(
        order_id,
        g.current_user["id"],
        payment_provider=d.get("payment_provider"),
        provider_data=d.get("provider_data"),
        payment_id=d.get("payment_id"),
    )
    return ok({"order": order_json(result["order"]), "payment": result["payment"]})


@bp.delete("/<int:order_id>")
@require_auth
def cancel_order(order_id):
    result = order_service.cancel_order(order_id, g.current_user["id"], g.current_user["role"])
    return ok({"order": order_json(result["order"]), "refund": result["refund"]})


# ---------- Cart ----------
@bp.get("/cart")
@require_auth
def get_cart():
    return ok(cart_service.get_cart(g.current_user["id"]))


@bp.post("/cart/items")
@require_auth
def add_cart_item():
    d = _body()
    return ok(cart_service.add_item(g.current_user["id"], d.get("wine_id"), d.get("quantity")), 201)


@bp.patch("/cart/items/<int:wine_id>")
@require_auth
def update_cart_item(wine_id):
    d = _body()
    return ok(cart_service.update_item(g.current_user["id"], wine_id, d.get("quantity")))


@bp.delete("/cart/items/<int:wine_id>")
@require_auth
def remove_cart_item(wine_id):
    return ok(cart_service.remove_item(g.current_user["id"], wine_id))


@bp.delete("/cart")
@require_auth
def clear_cart():
    return ok(cart_service.clear_cart(g.current_user["id"]))


@bp.post("/cart/checkout")
@require_auth
def checkout():
    d = _body()
    result = order_service.checkout(
        g.current_user["id"],
        d.get("payment_provider"),
        shipping_address_id=d.get("shipping_address_id"),
        shipping_address=d.get("shipping_address"),
    )
    current_app.logger.info("Checkout %s: %s orders", result["batch_id"], result["total_orders"])
    return ok(batch_json(result), 201)
