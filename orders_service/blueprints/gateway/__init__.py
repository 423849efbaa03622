from flask import Blueprint

bp = Blueprint("gateway", __name__, url_prefix="/payments/gateway")

from orders_service.blueprints.gateway import controllers  # noqa: E402,F401
