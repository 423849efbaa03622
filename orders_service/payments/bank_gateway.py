import logging
import time
from decimal import Decimal
from urllib.parse import urlencode

from orders_service.errors import GatewayConfigMissing
from orders_service.models import PaymentProvider, PaymentStatus
from orders_service.payments.base import PaymentProviderBase, transaction_id
from orders_service.payments.mac import sign_payment_request
from orders_service.utils.money import to_minor_units

logger = logging.getLogger(__name__)


class BankGatewayProvider(PaymentProviderBase):
    """Redirect-based bank gateway.

    A charge only produces a signed URL the buyer's browser must be sent to;
    the outcome arrives later on the callback endpoint.
    """

    provider = PaymentProvider.BANK_GATEWAY
    fee_rate = Decimal("0.018")
    transaction_prefix = "BGW"
    refund_prefix = "BGWR"

    def __init__(self, config):
        if not (config.alias and config.mac_key):
            raise GatewayConfigMissing()
        self.config = config
        logger.info(
            "Bank gateway configured: alias=%s terminal=%s environment=%s",
            config.alias, config.terminal_id, config.environment,
        )

    def build_payment_request(self, order_id, amount, cod_trans: str) -> dict:
        importo = to_minor_units(amount)
        divisa = self.config.currency
        params = {
            "alias": self.config.alias,
            "importo": importo,
            "divisa": divisa,
            "codTrans": cod_trans,
            "orderId": str(order_id),
            "url": self.config.success_url,
            "url_back": self.config.cancel_url,
            "urlpost": self.config.callback_url,
            "session_id": f"SES_{int(time.time() * 1000)}",
            "descrizione": f"Wine Marketplace Order {order_id}",
        }
        params["mac"] = sign_payment_request(cod_trans, divisa, importo, self.config.mac_key)
        return {
            "payment_url": self.config.payment_url,
            "parameters": params,
            "method": "POST",
        }

    def _charge(self, order_id, amount, provider_data) -> dict:
        if amount <= 0:
            raise ValueError("amount must be positive")
        cod_trans = transaction_id(self.transaction_prefix)
        request = self.build_payment_request(order_id, amount, cod_trans)
        return {
            "transaction_id": cod_trans,
            "status": PaymentStatus.PENDING.value,
            "requires_redirect": True,
            "redirect_url": f"{request['payment_url']}?{urlencode(request['parameters'])}",
            "environment": self.config.environment,
        }

    def _refund(self, payment_id, amount) -> dict:
        result = super()._refund(payment_id, amount)
        result["original_payment_id"] = payment_id
        return result
