from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Quantities are stored with three decimals (grams of a kg, ml of a litre)
QUANTITY_EXPONENT = Decimal("0.001")

UNITS = ("piece", "kg", "g", "l", "ml", "m", "box")
ADJUSTMENT_TYPES = ("add", "remove", "sale", "return")
PAYMENT_METHODS = ("cash", "card", "split")
DISCOUNT_TYPES = ("fixed", "percentage", "total")


def round_cents(value: Decimal) -> int:
    """Round a (possibly fractional) cent amount to a whole cent, half-up."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_decimal(value: Any, field: str) -> Decimal:
    # bool is an int subclass; reject it explicitly
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={"field": field})
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", details={"field": field})
    else:
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})
    return result


def to_quantity(value: Any, field: str = "quantity") -> Decimal:
    """
    Coerce a quantity to a Decimal with three decimal places.

    More than three decimals is rejected rather than silently rounded.
    """
    dec = to_decimal(value, field)
    quantity = dec.quantize(QUANTITY_EXPONENT, rounding=ROUND_HALF_UP)
    if quantity != dec:
        raise ValidationError(
            f"{field} allows at most three decimal places",
            details={"field": field},
        )
    return quantity


def to_id(value: Any, field: str) -> int:
    """Coerce a record id ("12" or 12) to a positive int."""
    if isinstance(value, int) and not isinstance(value, bool):
        record_id = value
    else:
        dec = to_decimal(value, field)
        if dec != dec.to_integral_value():
            raise ValidationError(f"{field} must be a whole number", details={"field": field})
        record_id = int(dec)

    if record_id <= 0:
        raise ValidationError(f"{field} must be a positive id", details={"field": field})
    return record_id


def to_cents(value: Any, field: str, *, allow_negative: bool = False) -> int:
    """
    Coerce an amount in cents to int.

    Integers pass through; integral decimals/strings ("1500") are accepted.
    Fractional cents are rejected rather than silently rounded.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        cents = value
    else:
        dec = to_decimal(value, field)
        if dec != dec.to_integral_value():
            raise ValidationError(f"{field} must be a whole number of cents", details={"field": field})
        cents = int(dec)

    if cents < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative", details={"field": field})
    if abs(cents) > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum amount", details={"field": field})
    return cents


def to_optional_cents(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return to_cents(value, field)


def require_choice(value: Any, choices: tuple[str, ...], field: str) -> str:
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            details={"field": field, "value": value},
        )
    return value
