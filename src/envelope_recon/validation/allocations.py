"""
Allocation validation.

Pure functions over a transaction amount and a proposed allocation set;
nothing here touches storage. Rules, in order:

1. every allocation references an envelope id greater than zero;
2. an empty set is only acceptable while the transaction stays unapproved;
3. the absolute allocation amounts sum to the absolute transaction amount,
   within the epsilon.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..models import Allocation
from ..utils.exceptions import (
    AmountMismatch,
    InvalidEnvelopeReference,
    NoEnvelopeAssigned,
    ValidationError,
)
from ..utils.money import EPSILON, ZERO, to_money


def _parse_envelope_id(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidEnvelopeReference(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidEnvelopeReference(value) from None


def normalize_allocations(raw: Iterable[Any]) -> tuple[Allocation, ...]:
    """
    Coerce user supplied allocations into :class:`Allocation` values.

    Accepts ``Allocation`` instances, ``(envelope_id, amount)`` pairs, or
    mappings with ``envelope_id``/``envelopeId`` and ``amount`` keys.
    """
    allocations: list[Allocation] = []
    for item in raw:
        if isinstance(item, Allocation):
            envelope_id, amount = item.envelope_id, item.amount
        elif isinstance(item, Mapping):
            envelope_id = item.get("envelope_id", item.get("envelopeId"))
            amount = item.get("amount", "0")
        else:
            envelope_id, amount = item
        allocations.append(
            Allocation(envelope_id=_parse_envelope_id(envelope_id), amount=to_money(amount))
        )
    return tuple(allocations)


def allocation_total(allocations: Iterable[Allocation]) -> Decimal:
    """Sum of absolute allocation amounts."""
    return sum((abs(a.amount) for a in allocations), ZERO)


def net_by_envelope(allocations: Iterable[Allocation]) -> dict[int, Decimal]:
    """Signed allocation amounts summed per envelope, zeros dropped."""
    totals: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for allocation in allocations:
        totals[allocation.envelope_id] += allocation.amount
    return {envelope_id: total for envelope_id, total in totals.items() if total != ZERO}


def check_allocations(
    transaction_amount: Decimal,
    allocations: Sequence[Allocation],
    *,
    approving: bool = True,
    epsilon: Decimal = EPSILON,
) -> Optional[ValidationError]:
    """
    Decide whether an allocation set is legal.

    Args:
        transaction_amount: Signed transaction amount
        allocations: Proposed allocation set
        approving: Whether the set is being submitted for approval; drafts
            only need valid envelope references
        epsilon: Largest tolerated difference between totals

    Returns:
        None when the set is valid, otherwise the error describing why not
    """
    for allocation in allocations:
        if allocation.envelope_id is None or allocation.envelope_id <= 0:
            return InvalidEnvelopeReference(allocation.envelope_id)

    if not approving:
        return None

    if not allocations:
        return NoEnvelopeAssigned()

    expected = abs(to_money(transaction_amount))
    actual = allocation_total(allocations)
    if abs(actual - expected) >= epsilon:
        return AmountMismatch(expected=expected, actual=actual)

    return None


def validate_allocations(
    transaction_amount: Decimal,
    allocations: Sequence[Allocation],
    *,
    approving: bool = True,
    epsilon: Decimal = EPSILON,
) -> None:
    """
    Raise the first rule violation found by :func:`check_allocations`.

    Raises:
        ValidationError: AmountMismatch, NoEnvelopeAssigned or
            InvalidEnvelopeReference
    """
    error = check_allocations(
        transaction_amount, allocations, approving=approving, epsilon=epsilon
    )
    if error is not None:
        raise error
