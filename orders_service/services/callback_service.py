import logging

from orders_service.db import db, unit_of_work
from orders_service.errors import (
    InsufficientQuantity,
    InvalidSignature,
    InvalidTransition,
    OrderNotFound,
    ValidationError,
)
from orders_service.models import Order, OrderStatus, PaymentStatus
from orders_service.payments.mac import verify_callback_mac
from orders_service.services.inventory_service import apply_fulfillment
from orders_service.utils.parsing import parse_int

logger = logging.getLogger(__name__)

# esito -> (order status, payment status)
OUTCOMES = {
    "OK": (OrderStatus.PAID, PaymentStatus.COMPLETED),
    "KO": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
}

SUCCESS_REDIRECT = "/orders?success=true"
ERROR_REDIRECT = "/checkout?error=payment_failed"
CANCEL_REDIRECT = "/cart"


def map_outcome(esito):
    if esito in OUTCOMES:
        return OUTCOMES[esito]
    logger.warning("Unknown gateway outcome %r, treating as failed", esito)
    return OUTCOMES["KO"]


def _locked_order(order_id) -> Order:
    order = db.session.execute(
        db.select(Order).where(Order.id == order_id).with_for_update()
    ).scalar_one_or_none()
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return order


def handle_gateway_callback(fields: dict, mac_key: str) -> dict:
    """Server-to-server payment notification from the bank gateway."""
    if not verify_callback_mac(fields, mac_key):
        logger.error("Rejected gateway callback with bad MAC: codTrans=%s", fields.get("codTrans"))
        raise InvalidSignature()

    order_id = parse_int(fields.get("orderId"))
    if order_id is None:
        raise ValidationError("Missing orderId in callback")

    esito = fields.get("esito")
    status, payment_status = map_outcome(esito)
    cod_trans = fields.get("codTrans")

    with unit_of_work():
        order = _locked_order(order_id)
        if order.status != OrderStatus.CONFIRMED or order.payment_status != PaymentStatus.PENDING:
            logger.warning(
                "Ignoring gateway callback for order %s in %s/%s: esito=%s codTrans=%s",
                order_id, order.status.value, order.payment_status.value, esito, cod_trans,
            )
            raise InvalidTransition(f"Order {order_id} is not awaiting payment")
        if not cod_trans or cod_trans != order.payment_id:
            logger.warning(
                "Ignoring gateway callback for order %s: codTrans %s does not match %s",
                order_id, cod_trans, order.payment_id,
            )
            raise ValidationError(f"Transaction {cod_trans} does not belong to order {order_id}")
        order.status = status
        order.payment_status = payment_status
        order.payment_id = cod_trans
        logger.info(
            "Gateway callback for order %s: esito=%s codTrans=%s -> %s/%s",
            order_id, esito, cod_trans, status.value, payment_status.value,
        )

    fulfilled = False
    if esito == "OK":
        try:
            with unit_of_work():
                fulfilled = apply_fulfillment(_locked_order(order_id))
        except InsufficientQuantity as e:
            # money is taken but the stock is gone; left for manual reconciliation
            logger.error("Order %s paid but oversold: %s", order_id, e.message)

    return {
        "success": True,
        "order_id": order_id,
        "status": status.value,
        "payment_status": payment_status.value,
        "transaction_id": cod_trans,
        "fulfilled": fulfilled,
    }


def handle_redirect(kind: str, fields: dict, mac_key: str) -> dict:
    """Where to send the buyer's browser after the gateway page. Never touches orders."""
    signed = bool(fields.get("mac"))
    valid = signed and verify_callback_mac(fields, mac_key)

    if kind == "success":
        if signed and not valid:
            logger.warning("Bad MAC on success redirect for order %s", fields.get("orderId"))
            return {"success": False, "redirect_url": ERROR_REDIRECT, "error": InvalidSignature.default_message}
        return {"success": True, "redirect_url": SUCCESS_REDIRECT, "order_id": fields.get("orderId")}

    if signed and not valid:
        logger.warning("Bad MAC on %s redirect for order %s", kind, fields.get("orderId"))

    if kind == "error":
        return {
            "success": False,
            "redirect_url": ERROR_REDIRECT,
            "error": fields.get("messaggio") or fields.get("error") or "Payment failed",
        }
    return {"success": False, "redirect_url": CANCEL_REDIRECT, "message": "Payment cancelled by user"}
