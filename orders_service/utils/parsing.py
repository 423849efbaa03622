from datetime import datetime
from enum import Enum

from orders_service.errors import InvalidQuantity, ValidationError

MAX_QUANTITY = 999


def parse_int(v, default=None, minv=None, maxv=None):
    if v is None or v == "":
        return default
    try:
        n = int(v)
    except (TypeError, ValueError):
        return default
    if minv is not None and n < minv:
        return default
    if maxv is not None and n > maxv:
        return default
    return n


def parse_quantity(v) -> int:
    """Cart/order line quantity: an integer in [1, 999]."""
    if isinstance(v, bool):
        raise InvalidQuantity()
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise InvalidQuantity() from None
    if isinstance(v, float) and v != n:
        raise InvalidQuantity()
    if n < 1 or n > MAX_QUANTITY:
        raise InvalidQuantity()
    return n


def parse_enum(enum_cls: type[Enum], value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}") from None


def parse_enum_list(enum_cls: type[Enum], values, field: str) -> list:
    out = []
    for raw in values or []:
        for part in str(raw).split(","):
            if part.strip():
                out.append(parse_enum(enum_cls, part, field))
    return out


def parse_datetime(value, field: str):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date") from None
