"""Currency helpers. Values stay unrounded until they are stored."""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def dsum(values: Iterable[Decimal | None]) -> Decimal:
    return sum((v for v in values if v is not None), ZERO)


def percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    """``numerator / denominator * 100`` at currency precision, 0 for a zero denominator."""
    if not denominator:
        return to_money(ZERO)
    return to_money(numerator / denominator * HUNDRED)
