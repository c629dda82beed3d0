# booking_engine/domain/money.py

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

ZERO = Decimal("0.00")
PENNY = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


def to_money(value: Amount | None) -> Decimal:
    """Coerce ints, floats, strings and Decimals to a 2dp Decimal."""
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        # str() first so 0.1 stays 0.1 rather than its binary expansion
        amount = Decimal(str(value))
    else:
        amount = Decimal(value if value is not None else 0)
    return amount.quantize(PENNY, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(units: int) -> Decimal:
    return to_money(Decimal(units) / 100)


def is_settled(amount: Decimal) -> bool:
    """True when the amount is within one penny of zero."""
    return abs(to_money(amount)) < PENNY
