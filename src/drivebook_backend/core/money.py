'''
Money helpers. All amounts are Decimal, rounded half-up to pence.
'''
from decimal import Decimal, ROUND_HALF_UP

PENNY = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerces ints, floats (via str) and Decimals to a 2dp Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(PENNY, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: int | Decimal) -> Decimal:
    return to_money(Decimal(amount) * Decimal(percent) / Decimal(100))
