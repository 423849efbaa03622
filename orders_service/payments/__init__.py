from orders_service.errors import UnsupportedProvider
from orders_service.models import PaymentProvider
from orders_service.payments.bank_gateway import BankGatewayProvider
from orders_service.payments.simulated import EscrowProvider, PayPalProvider, StripeProvider

PROVIDER_CLASSES = {
    PaymentProvider.PAYPAL: PayPalProvider,
    PaymentProvider.STRIPE: StripeProvider,
    PaymentProvider.ESCROW: EscrowProvider,
    PaymentProvider.BANK_GATEWAY: BankGatewayProvider,
}


class PaymentGateway:
    """Dispatches payments and refunds to the provider registered for each enum value."""

    def __init__(self, providers: dict):
        self.providers = dict(providers)

    @classmethod
    def from_config(cls, config) -> "PaymentGateway":
        providers = {}
        for p in config.providers:
            provider_cls = PROVIDER_CLASSES[p]
            providers[p] = provider_cls(config) if p == PaymentProvider.BANK_GATEWAY else provider_cls()
        return cls(providers)

    def get(self, provider):
        try:
            if not isinstance(provider, PaymentProvider):
                provider = PaymentProvider(str(provider).strip().upper())
        except ValueError:
            raise UnsupportedProvider() from None
        impl = self.providers.get(provider)
        if impl is None:
            raise UnsupportedProvider(f"Payment provider {provider.value} is not enabled")
        return impl

    def process_payment(self, order_id, amount, provider, provider_data=None) -> dict:
        return self.get(provider).process_payment(order_id, amount, provider_data)

    def refund_payment(self, payment_id, amount, provider) -> dict:
        return self.get(provider).refund_payment(payment_id, amount)


__all__ = [
    "PaymentGateway",
    "PROVIDER_CLASSES",
    "BankGatewayProvider",
    "PayPalProvider",
    "StripeProvider",
    "EscrowProvider",
]
