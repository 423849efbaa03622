import logging
import time
import uuid
from decimal import Decimal

from orders_service.models import PaymentStatus
from orders_service.utils.money import to_money

logger = logging.getLogger(__name__)


def transaction_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class PaymentProviderBase:
    """One payment provider. Expected failures come back as dicts, never as exceptions."""

    provider = None
    fee_rate = Decimal("0")
    fixed_fee = Decimal("0")
    transaction_prefix = "TX"
    refund_prefix = "TXR"
    settled_status = PaymentStatus.COMPLETED

    def fees(self, amount) -> Decimal:
        return to_money(to_money(amount) * self.fee_rate + self.fixed_fee)

    def process_payment(self, order_id, amount, provider_data=None) -> dict:
        amount = to_money(amount)
        logger.info("Processing %s payment for order %s, amount: %s", self.provider.value, order_id, amount)
        try:
            result = self._charge(order_id, amount, provider_data or {})
        except Exception as e:
            logger.error("%s payment failed for order %s: %s", self.provider.value, order_id, e)
            return {
                "success": False,
                "status": PaymentStatus.FAILED.value,
                "error": str(e),
                "provider": self.provider.value,
            }
        return {
            "success": True,
            "amount": float(amount),
            "fees": float(self.fees(amount)),
            "provider": self.provider.value,
            **result,
        }

    def refund_payment(self, payment_id, amount) -> dict:
        amount = to_money(amount)
        logger.info("Processing %s refund for payment %s, amount: %s", self.provider.value, payment_id, amount)
        try:
            result = self._refund(payment_id, amount)
        except Exception as e:
            logger.error("%s refund failed for payment %s: %s", self.provider.value, payment_id, e)
            return {"success": False, "error": str(e), "provider": self.provider.value}
        return {
            "success": True,
            "status": PaymentStatus.REFUNDED.value,
            "amount": float(amount),
            "provider": self.provider.value,
            **result,
        }

    def _charge(self, order_id, amount: Decimal, provider_data: dict) -> dict:
        if amount <= 0:
            raise ValueError("amount must be positive")
        return {
            "transaction_id": transaction_id(self.transaction_prefix),
            "status": self.settled_status.value,
        }

    def _refund(self, payment_id, amount: Decimal) -> dict:
        if not payment_id:
            raise ValueError("missing payment id")
        if amount <= 0:
            raise ValueError("amount must be positive")
        return {"refund_id": transaction_id(self.refund_prefix)}
