"""
Envelope ledger: the only component that writes envelope balances.

Every mutation locks the affected envelopes in ascending id order, checks
that all of them exist, and only then writes the new balances together
with one journal entry per envelope. The journal lets the ledger prove
``current_balance == opening_balance + sum(entries)`` at any time and
records what has been applied for each transaction.
"""

from collections import defaultdict
from contextlib import ExitStack, contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Iterable, Iterator, Mapping, Optional
import logging
import threading
import uuid

from ..models import Envelope, EntryKind, LedgerEntry, TransferResult
from ..storage.repository import Repository
from ..utils.exceptions import EnvelopeNotFound, InvalidTransferError, InvariantViolation
from ..utils.money import ZERO, AmountLike, quantize, to_money

logger = logging.getLogger(__name__)


class EnvelopeLedger:
    """Atomic credit, debit and transfer operations over envelope balances."""

    def __init__(self, repository: Repository):
        """
        Initialize the ledger.

        Args:
            repository: Storage holding envelopes and the journal
        """
        self.repository = repository
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, envelope_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(envelope_id)
            if lock is None:
                lock = self._locks[envelope_id] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, envelope_ids: Iterable[int]) -> Iterator[None]:
        """Hold the locks of several envelopes, acquired in ascending id order."""
        with ExitStack() as stack:
            for envelope_id in sorted(set(envelope_ids)):
                stack.enter_context(self._lock_for(envelope_id))
            yield

    def open_envelope(self, envelope: Envelope) -> Envelope:
        """Register a new envelope whose balance starts at its opening balance."""
        opening = to_money(envelope.opening_balance)
        stored = self.repository.add_envelope(
            replace(
                envelope,
                opening_balance=opening,
                current_balance=opening,
                budgeted_amount=to_money(envelope.budgeted_amount),
            )
        )
        logger.info(f"Opened envelope {stored.id} ({stored.name}) at {opening:.2f}")
        return stored

    def balance(self, envelope_id: int) -> Decimal:
        with self.locked([envelope_id]):
            envelope = self.repository.get_envelope(envelope_id)
            if envelope is None:
                raise EnvelopeNotFound(envelope_id)
            return envelope.current_balance

    def snapshot(self, envelope_ids: Optional[Iterable[int]] = None) -> dict[int, Decimal]:
        """
        Read balances under the envelopes' locks.

        No transfer or multi-envelope approval can be half applied in
        the returned mapping.
        """
        if envelope_ids is None:
            envelope_ids = [e.id for e in self.repository.list_envelopes()]
        ids = sorted(set(envelope_ids))

        with self.locked(ids):
            balances: dict[int, Decimal] = {}
            for envelope_id in ids:
                envelope = self.repository.get_envelope(envelope_id)
                if envelope is not None:
                    balances[envelope_id] = envelope.current_balance
            return balances

    def ensure_exists(self, envelope_ids: Iterable[int]) -> None:
        for envelope_id in sorted(set(envelope_ids)):
            if self.repository.get_envelope(envelope_id) is None:
                raise EnvelopeNotFound(envelope_id)

    def apply_delta(
        self,
        envelope_id: int,
        signed_amount: AmountLike,
        *,
        kind: EntryKind = EntryKind.ADJUSTMENT,
        transaction_id: Optional[int] = None,
        description: str = "",
    ) -> Decimal:
        """
        Add a signed amount to one envelope.

        Returns:
            The envelope's new balance
        """
        balances = self.apply_deltas(
            {envelope_id: to_money(signed_amount)},
            kind=kind,
            transaction_id=transaction_id,
            description=description,
        )
        if envelope_id in balances:
            return balances[envelope_id]
        return self.balance(envelope_id)

    def apply_deltas(
        self,
        deltas: Mapping[int, Decimal],
        *,
        kind: EntryKind,
        transaction_id: Optional[int] = None,
        reference: Optional[str] = None,
        description: str = "",
    ) -> dict[int, Decimal]:
        """
        Apply signed deltas to several envelopes as one unit.

        Zero deltas are dropped. Either every envelope changes or none does.

        Returns:
            New balances for the envelopes that changed

        Raises:
            EnvelopeNotFound: If any envelope is missing (nothing is written)
        """
        pending = {
            envelope_id: quantize(Decimal(amount))
            for envelope_id, amount in deltas.items()
            if quantize(Decimal(amount)) != ZERO
        }
        if not pending:
            return {}

        with self.locked(pending):
            current: dict[int, Decimal] = {}
            for envelope_id in sorted(pending):
                envelope = self.repository.get_envelope(envelope_id)
                if envelope is None:
                    raise EnvelopeNotFound(envelope_id)
                current[envelope_id] = envelope.current_balance

            new_balances = {
                envelope_id: current[envelope_id] + amount
                for envelope_id, amount in pending.items()
            }
            entries = [
                LedgerEntry(
                    id=self.repository.next_id("ledger_entry"),
                    envelope_id=envelope_id,
                    amount=amount,
                    kind=kind,
                    transaction_id=transaction_id,
                    reference=reference,
                    description=description,
                )
                for envelope_id, amount in sorted(pending.items())
            ]

            self.repository.set_envelope_balances(new_balances)
            self.repository.add_ledger_entries(entries)

        for envelope_id, amount in sorted(pending.items()):
            logger.debug(
                f"Envelope {envelope_id}: {kind.value} {amount:+.2f} -> "
                f"{new_balances[envelope_id]:.2f}"
            )
        return new_balances

    def transfer(
        self,
        from_envelope_id: int,
        to_envelope_id: int,
        amount: AmountLike,
        description: Optional[str] = None,
    ) -> TransferResult:
        """
        Move money between two envelopes.

        Raises:
            InvalidTransferError: If the amount is not positive or both ids match
            EnvelopeNotFound: If either envelope is missing
        """
        value = to_money(amount)
        if value <= ZERO:
            raise InvalidTransferError(f"Transfer amount must be positive (got {value:.2f})")
        if from_envelope_id == to_envelope_id:
            raise InvalidTransferError("Cannot transfer an envelope to itself")

        reference = f"transfer-{uuid.uuid4().hex[:12]}"
        balances = self.apply_deltas(
            {from_envelope_id: -value, to_envelope_id: value},
            kind=EntryKind.TRANSFER,
            reference=reference,
            description=description or "",
        )
        logger.info(
            f"Transferred {value:.2f} from envelope {from_envelope_id} "
            f"to envelope {to_envelope_id} ({reference})"
        )
        return TransferResult(
            from_envelope_id=from_envelope_id,
            to_envelope_id=to_envelope_id,
            amount=value,
            from_balance=balances[from_envelope_id],
            to_balance=balances[to_envelope_id],
            reference=reference,
        )

    def applied_for(self, transaction_id: int) -> dict[int, Decimal]:
        """Net amount currently applied per envelope for a transaction."""
        totals: dict[int, Decimal] = defaultdict(lambda: ZERO)
        for entry in self.repository.list_ledger_entries(transaction_id=transaction_id):
            totals[entry.envelope_id] += entry.amount
        return {envelope_id: total for envelope_id, total in totals.items() if total != ZERO}

    def verify(self, envelope_id: Optional[int] = None) -> None:
        """
        Check the balance invariant against the journal.

        Raises:
            InvariantViolation: If any envelope's balance has drifted
        """
        envelopes = (
            [self.repository.get_envelope(envelope_id)]
            if envelope_id is not None
            else self.repository.list_envelopes()
        )
        for envelope in envelopes:
            if envelope is None:
                raise EnvelopeNotFound(envelope_id)
            with self.locked([envelope.id]):
                entries = self.repository.list_ledger_entries(envelope_id=envelope.id)
                current = self.repository.get_envelope(envelope.id).current_balance
                expected = envelope.opening_balance + sum(
                    (e.amount for e in entries), ZERO
                )
                if current != expected:
                    logger.error(
                        f"Envelope {envelope.id} balance {current:.2f} does not match "
                        f"journal total {expected:.2f}"
                    )
                    raise InvariantViolation(
                        f"Envelope {envelope.id} balance {current:.2f} != expected {expected:.2f}"
                    )
