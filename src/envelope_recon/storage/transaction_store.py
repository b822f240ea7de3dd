"""
Transaction store: transaction records, their allocation sets, and the
units of work that keep envelope balances consistent with them.
"""

from contextlib import ExitStack, contextmanager
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Iterator, Optional, Sequence
import logging
import threading

from ..ledger.envelope_ledger import EnvelopeLedger
from ..matching.duplicates import compute_fingerprint
from ..models import (
    Allocation,
    DuplicateStatus,
    EntryKind,
    SourceType,
    Transaction,
)
from ..utils.exceptions import InvariantViolation, TransactionNotFound
from ..utils.money import ZERO, to_money
from ..validation.allocations import net_by_envelope
from .repository import Repository

logger = logging.getLogger(__name__)

_UNSET = object()


class TransactionStore:
    """
    Owns transaction records and their allocation sets.

    Allocation sets are replaced whole, never patched. Balance effects of
    approval and deletion go through the ledger; the store computes them
    against what the ledger's journal says was applied.
    """

    def __init__(self, repository: Repository, ledger: EnvelopeLedger):
        self.repository = repository
        self.ledger = ledger
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, transaction_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(transaction_id)
            if lock is None:
                lock = self._locks[transaction_id] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, *transaction_ids: int) -> Iterator[None]:
        """Serialize mutations of the given transactions (ascending id order)."""
        with ExitStack() as stack:
            for transaction_id in sorted(set(transaction_ids)):
                stack.enter_context(self._lock_for(transaction_id))
            yield

    # Reads

    def get(self, transaction_id: int) -> Transaction:
        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        return transaction

    def list_for_user(self, user_id: int) -> list[Transaction]:
        return self.repository.list_transactions(user_id=user_id)

    def list_for_account(self, account_id: int) -> list[Transaction]:
        return self.repository.list_transactions(account_id=account_id)

    # Writes

    def create(
        self,
        *,
        user_id: int,
        account_id: int,
        amount: Decimal,
        merchant: str,
        txn_date: date,
        description: Optional[str] = None,
        source_type: SourceType = SourceType.MANUAL,
        bank_transaction_id: Optional[str] = None,
        bank_reference: Optional[str] = None,
        bank_memo: Optional[str] = None,
        duplicate_status: DuplicateStatus = DuplicateStatus.NONE,
        duplicate_of_id: Optional[int] = None,
    ) -> Transaction:
        """Persist a new, unapproved transaction with its fingerprint."""
        value = to_money(amount)
        transaction = Transaction(
            id=self.repository.next_id("transaction"),
            user_id=user_id,
            account_id=account_id,
            amount=value,
            merchant=merchant,
            date=txn_date,
            description=description,
            is_approved=False,
            source_type=source_type,
            bank_transaction_id=bank_transaction_id,
            bank_reference=bank_reference,
            bank_memo=bank_memo,
            fingerprint=compute_fingerprint(account_id, txn_date, value, merchant),
            duplicate_status=duplicate_status,
            duplicate_of_id=duplicate_of_id,
        )
        self.repository.add_transaction(transaction)
        logger.debug(
            f"Created transaction {transaction.id} ({source_type.value}) "
            f"{merchant} {value:.2f} on {txn_date}"
        )
        return transaction

    def update(self, transaction_id: int, **changes) -> Transaction:
        """Apply field changes that carry no balance effect."""
        with self.locked(transaction_id):
            transaction = self.get(transaction_id)
            updated = replace(transaction, **changes)
            return self.repository.save_transaction(updated)

    def replace_allocations(
        self, transaction_id: int, allocations: Sequence[Allocation]
    ) -> Transaction:
        """
        Swap the draft allocation set without touching balances.

        An approved transaction keeps its approval but is marked edited.
        """
        with self.locked(transaction_id):
            transaction = self.get(transaction_id)
            updated = replace(
                transaction,
                allocations=tuple(allocations),
                is_edited=transaction.is_edited or transaction.is_approved,
            )
            return self.repository.save_transaction(updated)

    def ensure_fingerprints(self, account_id: Optional[int] = None) -> int:
        """Backfill fingerprints on records that lack one. Returns the count."""
        filled = 0
        for transaction in self.repository.list_transactions(account_id=account_id):
            if transaction.fingerprint:
                continue
            self.update(
                transaction.id,
                fingerprint=compute_fingerprint(
                    transaction.account_id,
                    transaction.date,
                    transaction.amount,
                    transaction.merchant,
                ),
            )
            filled += 1
        if filled:
            logger.info(f"Backfilled fingerprints on {filled} transactions")
        return filled

    # Units of work with balance effects

    def check_consistency(self, transaction: Transaction) -> dict[int, Decimal]:
        """
        Compare a record against the ledger journal.

        Returns:
            The per-envelope amounts the journal holds for the transaction

        Raises:
            InvariantViolation: If the record and the journal disagree
        """
        applied = self.ledger.applied_for(transaction.id)

        if not transaction.is_approved and applied:
            message = (
                f"Transaction {transaction.id} is not approved but has applied "
                f"envelope deltas {self._format(applied)}"
            )
            logger.error(message)
            raise InvariantViolation(message)

        if transaction.is_approved and not transaction.is_edited:
            expected = net_by_envelope(transaction.allocations)
            if expected != applied:
                message = (
                    f"Transaction {transaction.id} allocations {self._format(expected)} "
                    f"disagree with applied deltas {self._format(applied)}"
                )
                logger.error(message)
                raise InvariantViolation(message)

        return applied

    def commit_approval(
        self,
        transaction_id: int,
        allocations: Sequence[Allocation],
        description=_UNSET,
        label_ids: Optional[Iterable[int]] = None,
    ) -> Transaction:
        """
        Replace the allocation set, apply the balance difference, and
        mark the transaction approved, as one unit.

        The caller has already validated ``allocations``. Only the net
        change against what was previously applied reaches the ledger, so
        re-approving an unchanged set writes nothing.
        """
        with self.locked(transaction_id):
            transaction = self.get(transaction_id)
            applied = self.check_consistency(transaction)

            target = net_by_envelope(allocations)
            deltas = {
                envelope_id: target.get(envelope_id, ZERO) - applied.get(envelope_id, ZERO)
                for envelope_id in set(target) | set(applied)
            }

            changes = {
                "allocations": tuple(allocations),
                "is_approved": True,
                "is_edited": False,
            }
            if description is not _UNSET:
                changes["description"] = description
            if label_ids is not None:
                changes["label_ids"] = tuple(label_ids)
            updated = replace(transaction, **changes)

            self.ledger.apply_deltas(
                deltas,
                kind=EntryKind.ALLOCATION,
                transaction_id=transaction_id,
                description=f"Approve transaction {transaction_id}",
            )
            try:
                saved = self.repository.save_transaction(updated)
            except Exception:
                logger.error(
                    f"Saving approved transaction {transaction_id} failed; reversing ledger deltas"
                )
                self.ledger.apply_deltas(
                    {envelope_id: -amount for envelope_id, amount in deltas.items()},
                    kind=EntryKind.REVERSAL,
                    transaction_id=transaction_id,
                    description=f"Roll back approval of transaction {transaction_id}",
                )
                raise

        logger.info(
            f"Approved transaction {transaction_id} across "
            f"{len(target)} envelope(s)"
        )
        return saved

    def remove(self, transaction_id: int) -> Transaction:
        """
        Reverse whatever the transaction applied to envelopes, then delete it.

        If the reversal fails the record is left in place.
        """
        with self.locked(transaction_id):
            transaction = self.get(transaction_id)
            applied = self.check_consistency(transaction)

            self.ledger.apply_deltas(
                {envelope_id: -amount for envelope_id, amount in applied.items()},
                kind=EntryKind.REVERSAL,
                transaction_id=transaction_id,
                description=f"Delete transaction {transaction_id}",
            )
            self.repository.delete_transaction(transaction_id)

        logger.info(
            f"Deleted transaction {transaction_id}, reversed {len(applied)} envelope delta(s)"
        )
        return transaction

    @staticmethod
    def _format(amounts: dict[int, Decimal]) -> str:
        return "{" + ", ".join(f"{k}: {v:.2f}" for k, v in sorted(amounts.items())) + "}"
