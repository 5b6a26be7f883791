from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from bim.domain.errors import ValidationError

# Tunisian Dinar: 1 TND = 1000 millimes
MILLIME = Decimal("0.001")
MILLIMES_PER_UNIT = 1000
ZERO = Decimal("0.000")


def to_decimal(value: object, field: str = "amount") -> Decimal:
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, float):
        # str() keeps the shortest repr, so 0.1 stays 0.1 instead of 0.1000000000000000055...
        d = Decimal(str(value))
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"{field} must be a number.") from e
    if not d.is_finite():
        raise ValidationError(f"{field} must be a finite number.")
    return d


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MILLIME, rounding=ROUND_HALF_UP)


def to_money(value: object, field: str = "amount") -> Decimal:
    return round_money(to_decimal(value, field))


def to_millimes(value: Decimal) -> int:
    return int(round_money(value) * MILLIMES_PER_UNIT)


def from_millimes(value: int) -> Decimal:
    return (Decimal(int(value)) / MILLIMES_PER_UNIT).quantize(MILLIME)


def format_money(value: Decimal) -> str:
    return f"{round_money(value):,.3f}".replace(",", " ")
