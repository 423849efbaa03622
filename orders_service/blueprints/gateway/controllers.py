# blueprints/gateway/controllers.py
from flask import current_app, request

from . import bp

from orders_service.errors import OrderServiceError
from orders_service.extensions import gateway_config
from orders_service.services.callback_service import handle_gateway_callback, handle_redirect
from orders_service.utils.responses import ok


def _fields() -> dict:
    """Gateway fields may arrive as query string, form post or JSON."""
    fields = request.args.to_dict()
    fields.update(request.form.to_dict())
    if request.is_json:
        fields.update(request.get_json(silent=True) or {})
    return fields


# ---------- Server-to-server notification ----------
@bp.route("/callback", methods=["GET", "POST"])
def callback():
    # the gateway retries on anything but 200, so errors are reported in the body
    fields = _fields()
    current_app.logger.info(
        "Gateway callback: orderId=%s codTrans=%s esito=%s",
        fields.get("orderId"), fields.get("codTrans"), fields.get("esito"),
    )
    try:
        return ok(handle_gateway_callback(fields, gateway_config().mac_key))
    except OrderServiceError as e:
        current_app.logger.warning("Gateway callback rejected: %s", e.message)
        return ok({"success": False, "error": e.message})
    except Exception as e:
        current_app.logger.exception("Gateway callback failed")
        return ok({"success": False, "error": str(e)})


# ---------- Browser landings ----------
@bp.post("/success")
def success():
    return ok(handle_redirect("success", _fields(), gateway_config().mac_key))


@bp.post("/error")
def error():
    return ok(handle_redirect("error", _fields(), gateway_config().mac_key))


@bp.post("/cancel")
def cancel():
    return ok(handle_redirect("cancel", _fields(), gateway_config().mac_key))
