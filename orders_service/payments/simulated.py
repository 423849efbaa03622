from decimal import Decimal

from orders_service.models import PaymentProvider, PaymentStatus
from orders_service.payments.base import PaymentProviderBase


class PayPalProvider(PaymentProviderBase):
    provider = PaymentProvider.PAYPAL
    fee_rate = Decimal("0.029")
    transaction_prefix = "PP"
    refund_prefix = "PPR"


class StripeProvider(PaymentProviderBase):
    provider = PaymentProvider.STRIPE
    fee_rate = Decimal("0.029")
    fixed_fee = Decimal("0.30")
    transaction_prefix = "ST"
    refund_prefix = "STR"


class EscrowProvider(PaymentProviderBase):
    # funds are held until delivery, so a charge never settles immediately
    provider = PaymentProvider.ESCROW
    fee_rate = Decimal("0.025")
    transaction_prefix = "ESC"
    refund_prefix = "ESCR"
    settled_status = PaymentStatus.PENDING
