"""Fixed-point helpers for currency amounts."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .exceptions import InvalidAmountError

CENT = Decimal("0.01")
EPSILON = Decimal("0.01")
ZERO = Decimal("0.00")

AmountLike = Union[Decimal, int, float, str]


def quantize(value: Decimal) -> Decimal:
    """Round a Decimal to whole cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: AmountLike) -> Decimal:
    """
    Convert a user or file supplied value to a two-place Decimal.

    Floats go through ``str`` first so 0.1 stays 0.10 rather than its
    binary expansion.

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        try:
            amount = Decimal(text)
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"Invalid amount: {value!r}") from None

    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    return quantize(amount)
