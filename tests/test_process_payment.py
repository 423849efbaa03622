import pytest

from orders_service.errors import AlreadyPaid, Forbidden, InvalidTransition, UnsupportedProvider
from orders_service.models import OrderStatus, PaymentProvider, PaymentStatus
from orders_service.services import order_service


class DecliningGateway:
    def get(self, provider):
        return None

    def process_payment(self, order_id, amount, provider, provider_data=None):
        return {"success": False, "status": "FAILED", "error": "card declined", "provider": provider.value}


def test_synchronous_payment_marks_paid(users, place_order):
    order, _ = place_order(provider="STRIPE")
    result = order_service.process_payment(order.id, users.buyer.id)
    assert result["payment"]["amount"] == 51.0
    order = result["order"]
    assert (order.status, order.payment_status) == (OrderStatus.PAID, PaymentStatus.COMPLETED)
    assert order.payment_provider == PaymentProvider.STRIPE
    assert order.payment_id == result["payment"]["transaction_id"]


def test_client_supplied_payment_id_is_kept(users, place_order):
    order, _ = place_order()
    order = order_service.process_payment(order.id, users.buyer.id, "PAYPAL", payment_id="PAYID-123")["order"]
    assert order.payment_id == "PAYID-123"


def test_bank_gateway_waits_for_callback(users, place_order):
    order, _ = place_order(provider="BANK_GATEWAY")
    result = order_service.process_payment(order.id, users.buyer.id)
    assert result["payment"]["requires_redirect"] is True
    order = result["order"]
    assert (order.status, order.payment_status) == (OrderStatus.CONFIRMED, PaymentStatus.PENDING)
    assert order.payment_id == result["payment"]["transaction_id"]
    assert order.payment_id.startswith("BGW_")


def test_declined_payment_cancels_order(users, place_order):
    order, _ = place_order()
    order = order_service.process_payment(order.id, users.buyer.id, gateway=DecliningGateway())["order"]
    assert (order.status, order.payment_status) == (OrderStatus.CANCELLED, PaymentStatus.FAILED)


def test_payment_guards(users, place_order):
    order, _ = place_order()
    with pytest.raises(Forbidden):
        order_service.process_payment(order.id, users.seller_a.id, "PAYPAL")

    order_service.process_payment(order.id, users.buyer.id, "PAYPAL")
    with pytest.raises(AlreadyPaid):
        order_service.process_payment(order.id, users.buyer.id, "PAYPAL")

    other, _ = place_order()
    order_service.cancel_order(other.id, users.buyer.id, "USER")
    with pytest.raises(InvalidTransition):
        order_service.process_payment(other.id, users.buyer.id, "PAYPAL")


def test_disabled_provider_rejected(users, place_order, app):
    order, _ = place_order()
    app.extensions["payment_gateway"].providers.pop(PaymentProvider.STRIPE)
    with pytest.raises(UnsupportedProvider):
        order_service.process_payment(order.id, users.buyer.id, "STRIPE")
