from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value) -> str:
    """Amount in cents as the bank gateway expects it, e.g. 151.00 -> "15100"."""
    return str(int((to_money(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def as_float(value):
    return float(to_money(value)) if value is not None else None
