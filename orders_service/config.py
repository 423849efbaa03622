# config.py
import os

from dotenv import load_dotenv

from orders_service.errors import GatewayConfigMissing
from orders_service.models import PaymentProvider

load_dotenv()


def _split(value) -> list:
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip().upper() for v in value if str(v).strip()]
    return [v.strip().upper() for v in (value or "").split(",") if v.strip()]


class Config:
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///orders.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_ISOLATION_LEVEL = os.getenv("DB_ISOLATION_LEVEL")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Bearer tokens are issued by the auth service
    JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
    JWT_ALGO = "HS256"

    # Service URLs / constants
    WEB_URL = os.getenv("WEB_URL", "http://localhost:3000")
    API_URL = os.getenv("API_URL", "http://localhost:5006")
    CURRENCY = os.getenv("CURRENCY", "EUR")

    # Payments
    PAYMENT_PROVIDERS = os.getenv("PAYMENT_PROVIDERS", "PAYPAL,STRIPE,ESCROW,BANK_GATEWAY")
    PAYMENT_EXPIRY_HOURS = int(os.getenv("PAYMENT_EXPIRY_HOURS", "48"))

    # Redirect bank gateway credentials
    BANK_GATEWAY_ALIAS = os.getenv("BANK_GATEWAY_ALIAS")
    BANK_GATEWAY_MAC_KEY = os.getenv("BANK_GATEWAY_MAC_KEY")
    BANK_GATEWAY_TERMINAL_ID = os.getenv("BANK_GATEWAY_TERMINAL_ID")
    BANK_GATEWAY_ENVIRONMENT = os.getenv("BANK_GATEWAY_ENVIRONMENT", "test")

    # Shipping label provider; unset means labels are simulated locally
    SHIPPING_LABEL_URL = os.getenv("SHIPPING_LABEL_URL")
    SHIPPING_LABEL_TIMEOUT = float(os.getenv("SHIPPING_LABEL_TIMEOUT", "6"))


class GatewayConfig:
    """Everything the payment providers need, read once at startup."""

    PRODUCTION_URL = "https://ecommerce.nexi.it/ecomm/ecomm/DispatcherServlet"
    TEST_URL = "https://int-ecommerce.nexi.it/ecomm/ecomm/DispatcherServlet"

    def __init__(self, providers, alias=None, mac_key=None, terminal_id=None,
                 environment="test", currency="EUR", web_url="", api_url=""):
        self.providers = [PaymentProvider(p) for p in _split(providers)]
        self.alias = alias
        self.mac_key = mac_key
        self.terminal_id = terminal_id
        self.environment = environment or "test"
        self.currency = currency
        self.web_url = (web_url or "").rstrip("/")
        self.api_url = (api_url or "").rstrip("/")

    @classmethod
    def from_mapping(cls, cfg) -> "GatewayConfig":
        return cls(
            providers=cfg.get("PAYMENT_PROVIDERS", ""),
            alias=cfg.get("BANK_GATEWAY_ALIAS"),
            mac_key=cfg.get("BANK_GATEWAY_MAC_KEY"),
            terminal_id=cfg.get("BANK_GATEWAY_TERMINAL_ID"),
            environment=cfg.get("BANK_GATEWAY_ENVIRONMENT", "test"),
            currency=cfg.get("CURRENCY", "EUR"),
            web_url=cfg.get("WEB_URL", ""),
            api_url=cfg.get("API_URL", ""),
        )

    def validate(self) -> "GatewayConfig":
        if PaymentProvider.BANK_GATEWAY in self.providers and not (self.alias and self.mac_key):
            raise GatewayConfigMissing()
        return self

    @property
    def payment_url(self) -> str:
        return self.PRODUCTION_URL if self.environment == "production" else self.TEST_URL

    @property
    def callback_url(self) -> str:
        return f"{self.api_url}/payments/gateway/callback"

    @property
    def success_url(self) -> str:
        return f"{self.web_url}/checkout/success"

    @property
    def cancel_url(self) -> str:
        return f"{self.web_url}/payment/cancel"
