from orders_service.models import Order, OrderItem, ShippingAddress
from orders_service.utils.money import as_float


def _iso(dt):
    return dt.isoformat() if dt else None


def _enum(v):
    return v.value if v is not None else None


def address_json(a: ShippingAddress | None):
    if a is None:
        return None
    return {
        "id": a.id,
        "first_name": a.first_name,
        "last_name": a.last_name,
        "company": a.company,
        "address1": a.address1,
        "address2": a.address2,
        "city": a.city,
        "state": a.state,
        "zip_code": a.zip_code,
        "country": a.country,
        "phone": a.phone,
    }


def order_item_json(i: OrderItem) -> dict:
    return {
        "id": i.id,
        "wine_id": i.wine_id,
        "title": i.wine.title if i.wine else None,
        "quantity": i.quantity,
        "unit_price": as_float(i.unit_price),
        "line_total": as_float(i.unit_price * i.quantity),
    }


def order_json(o: Order) -> dict:
    return {
        "id": o.id,
        "order_number": o.order_number,
        "batch_id": o.batch_id,
        "buyer_id": o.buyer_id,
        "seller_id": o.seller_id,
        "status": _enum(o.status),
        "subtotal": as_float(o.subtotal),
        "shipping_cost": as_float(o.shipping_cost),
        "total_amount": as_float(o.total_amount),
        "payment_provider": _enum(o.payment_provider),
        "payment_status": _enum(o.payment_status),
        "payment_id": o.payment_id,
        "tracking_number": o.tracking_number,
        "shipping_label_url": o.shipping_label_url,
        "carrier": o.carrier,
        "estimated_delivery": _iso(o.estimated_delivery),
        "delivered_at": _iso(o.delivered_at),
        "shipping_address": address_json(o.shipping_address),
        "items": [order_item_json(i) for i in o.items],
        "created_at": _iso(o.created_at),
        "updated_at": _iso(o.updated_at),
    }


def batch_json(result: dict) -> dict:
    return {
        "batch_id": result["batch_id"],
        "total_orders": result["total_orders"],
        "orders": [order_json(o) for o in result["orders"]],
        "grand_total": as_float(result["grand_total"]),
    }


def page_json(result: dict) -> dict:
    return {
        "data": [order_json(o) for o in result["orders"]],
        "total": result["total"],
        "page": result["page"],
        "limit": result["limit"],
        "total_pages": result["total_pages"],
    }
