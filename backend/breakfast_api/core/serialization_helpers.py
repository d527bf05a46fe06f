"""
Generic serialization helpers.
No business logic here, only formatting utilities.
"""
from decimal import Decimal, ROUND_HALF_UP


def serialize_decimal(value):
    """Decimal -> float rounded to cents for JSON"""
    if value is None:
        return None
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def serialize_datetime(value):
    """datetime -> ISO string for JSON"""
    if value is None:
        return None
    return value.isoformat()
