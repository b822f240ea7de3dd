"""Reconciliation status and the bank-versus-envelope summary."""

from decimal import Decimal
from typing import Iterable, Mapping

from ..models import (
    Account,
    AccountType,
    DuplicateStatus,
    ReconciliationStatus,
    ReconciliationSummary,
    Transaction,
)
from ..utils.money import EPSILON, ZERO


def classify_status(transaction: Transaction) -> ReconciliationStatus:
    """Approved if approved, pending if it has allocations, else unmatched."""
    return transaction.status


def is_edited(transaction: Transaction) -> bool:
    """True for an approved transaction changed since its last approval."""
    return transaction.is_approved and transaction.is_edited


def needs_review(transaction: Transaction) -> bool:
    """Whether the transaction should be shown in the review queue."""
    return (
        transaction.status is not ReconciliationStatus.APPROVED
        or transaction.is_edited
        or transaction.duplicate_status is DuplicateStatus.POTENTIAL
    )


def total_bank_balance(accounts: Iterable[Account]) -> Decimal:
    """Sum of active, non-credit account balances."""
    return sum(
        (
            a.balance
            for a in accounts
            if a.is_active and a.type is not AccountType.CREDIT
        ),
        ZERO,
    )


def build_summary(
    accounts: Iterable[Account],
    envelope_balances: Mapping[int, Decimal],
    transactions: Iterable[Transaction],
    epsilon: Decimal = EPSILON,
) -> ReconciliationSummary:
    """
    Compute the reconciliation summary.

    Args:
        accounts: The user's accounts
        envelope_balances: Consistent balance snapshot, keyed by envelope id
        transactions: The user's transactions
        epsilon: Largest difference still treated as reconciled

    Returns:
        Summary with totals and per-status counts
    """
    counts = {status: 0 for status in ReconciliationStatus}
    potential = 0
    for transaction in transactions:
        counts[classify_status(transaction)] += 1
        if transaction.duplicate_status is DuplicateStatus.POTENTIAL:
            potential += 1

    return ReconciliationSummary(
        total_bank_balance=total_bank_balance(accounts),
        total_envelope_balance=sum(envelope_balances.values(), ZERO),
        unmatched_count=counts[ReconciliationStatus.UNMATCHED],
        pending_count=counts[ReconciliationStatus.PENDING],
        approved_count=counts[ReconciliationStatus.APPROVED],
        potential_duplicate_count=potential,
        epsilon=epsilon,
    )
