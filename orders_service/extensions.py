from flask import current_app

from orders_service.config import GatewayConfig
from orders_service.payments import PaymentGateway
from orders_service.services.shipping import ShippingLabelClient


def init_extensions(app):
    gateway_config = GatewayConfig.from_mapping(app.config).validate()
    app.extensions["gateway_config"] = gateway_config
    app.extensions["payment_gateway"] = PaymentGateway.from_config(gateway_config)
    app.extensions["shipping_labels"] = ShippingLabelClient(
        app.config.get("SHIPPING_LABEL_URL"),
        timeout=app.config.get("SHIPPING_LABEL_TIMEOUT", 6),
    )


def gateway_config() -> GatewayConfig:
    return current_app.extensions["gateway_config"]


def payment_gateway() -> PaymentGateway:
    return current_app.extensions["payment_gateway"]


def shipping_labels() -> ShippingLabelClient:
    return current_app.extensions["shipping_labels"]
