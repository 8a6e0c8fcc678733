# pos_inventory/utils.py
from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from pos_inventory.errors import ValidationError

METER_STEP = Decimal("0.001")
CENT = Decimal("0.01")
# payments within a cent of the total count as settled
MONEY_TOLERANCE = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def naive_utc(value: datetime) -> datetime:
    """Comparable form of a timestamp; SQLite hands back naive datetimes."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_decimal(value: Any, field: str = "value") -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats like 0.1 don't drag binary noise along
        return Decimal(str(value).replace(",", "."))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid number for {field}: {value!r}")


def quantize_meters(value: Any) -> Decimal:
    return to_decimal(value, "length").quantize(METER_STEP, rounding=ROUND_HALF_UP)


def quantize_money(value: Any) -> Decimal:
    return to_decimal(value, "amount").quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_pieces(value: Any) -> Decimal:
    """EACH quantities are whole pieces."""
    d = to_decimal(value, "quantity")
    if d != d.to_integral_value():
        raise ValidationError(f"Quantity must be a whole number of pieces, got {value}")
    return d.quantize(Decimal("1"))
