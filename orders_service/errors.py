class OrderServiceError(Exception):
    """Base for every error the service reports back to a caller."""

    status_code = 400
    code = "bad_request"
    default_message = "Bad request"

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.details}


class Unauthorized(OrderServiceError):
    status_code = 401
    code = "unauthorized"
    default_message = "Missing or invalid bearer token"


class NotFound(OrderServiceError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class OrderNotFound(NotFound):
    code = "order_not_found"
    default_message = "Order not found"


class Forbidden(OrderServiceError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden"


class ValidationError(OrderServiceError):
    code = "validation_error"
    default_message = "Invalid request"


class InvalidQuantity(ValidationError):
    code = "invalid_quantity"
    default_message = "Quantity must be between 1 and 999"


class InvalidTransition(ValidationError):
    code = "invalid_transition"
    default_message = "Status transition not allowed"


class AlreadyPaid(ValidationError):
    code = "already_paid"
    default_message = "Order has already been paid"


class InsufficientQuantity(OrderServiceError):
    code = "insufficient_quantity"

    def __init__(self, available: int, requested: int, wine_title: str | None = None):
        title = f' for wine "{wine_title}"' if wine_title else ""
        super().__init__(
            f"Insufficient quantity{title}. Available: {available}, Requested: {requested}",
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


class CannotBuyOwnListing(OrderServiceError):
    code = "cannot_buy_own_listing"
    default_message = "You cannot buy your own wine"


class EmptyCart(OrderServiceError):
    code = "empty_cart"
    default_message = "Cart is empty"


class ShippingAddressRequired(OrderServiceError):
    code = "shipping_address_required"
    default_message = "Shipping address is required"


class ItemUnavailable(OrderServiceError):
    code = "item_unavailable"

    def __init__(self, wine_title: str):
        super().__init__(f'Wine "{wine_title}" is not available for purchase', wine_title=wine_title)
        self.wine_title = wine_title


class CannotCancelShippedOrDelivered(OrderServiceError):
    code = "cannot_cancel_shipped_or_delivered"
    default_message = "Cannot cancel shipped or delivered orders"


class UnsupportedProvider(OrderServiceError):
    code = "unsupported_provider"
    default_message = "Unsupported payment provider"


class InvalidSignature(OrderServiceError):
    code = "invalid_signature"
    default_message = "Invalid MAC signature"


class GatewayConfigMissing(OrderServiceError):
    status_code = 500
    code = "gateway_config_missing"
    default_message = "Bank gateway configuration missing: set BANK_GATEWAY_ALIAS and BANK_GATEWAY_MAC_KEY"
