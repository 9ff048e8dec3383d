from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

from src.core.exceptions import InvalidAmount


ZERO = Decimal("0.00")


def round_money(value: Union[Decimal, float, int, str]) -> Decimal:
    """
    Round monetary value to 2 decimal places using ROUND_HALF_UP.

    Examples:
        >>> round_money(10.125)
        Decimal('10.13')
        >>> round_money(10.124)
        Decimal('10.12')
        >>> round_money("10.115")
        Decimal('10.12')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value < 0:
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_DOWN)
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """
    Convert a caller-supplied amount to a positive 2dp Decimal.

    Raises InvalidAmount for non-numeric, non-finite, zero or negative values,
    and for values that round to zero.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(value) from None
    if not amount.is_finite():
        raise InvalidAmount(value)
    amount = round_money(amount)
    if amount <= 0:
        raise InvalidAmount(value)
    return amount
