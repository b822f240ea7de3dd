"""
Reconciliation orchestrator.
Sequences the ledger, validator, duplicate matcher, CSV parser and
transaction store into the approval, transfer, deletion, import and bank
sync workflows.
"""

from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Union
import logging
import threading

from ..config import EngineConfig
from ..ledger import EnvelopeLedger
from ..matching import DuplicateMatcher, normalize_merchant
from ..models import (
    Account,
    AccountType,
    Allocation,
    BankConnection,
    BankSyncCandidate,
    ClassificationResult,
    DuplicateStatus,
    Envelope,
    ImportResult,
    Label,
    LedgerEntry,
    MatchAction,
    MerchantMemory,
    ReconciliationSummary,
    ResolutionAction,
    RowError,
    SourceType,
    SyncResult,
    Transaction,
    TransferResult,
)
from ..parsers import BankCsvParser
from ..storage import InMemoryRepository, Repository
from ..storage.transaction_store import TransactionStore
from ..sync import BankFeed, SimulatedBankFeed
from ..utils.exceptions import (
    AccountNotFound,
    BankConnectionNotFound,
    EnvelopeNotFound,
    LabelNotFound,
    ValidationError,
)
from ..utils.money import ZERO, AmountLike, to_money
from ..validation import normalize_allocations, validate_allocations
from .seed import seed_demo_data
from .status import build_summary

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Entry point for every operation that changes transactions or balances.

    Balances are only ever written by the envelope ledger; allocation sets
    and approval flags only by the transaction store. This class decides
    what to ask of them and in which order.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        repository: Optional[Repository] = None,
        bank_feed: Optional[BankFeed] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (defaults when omitted)
            repository: Storage backend (an empty in-memory one when omitted)
            bank_feed: Producer of bank sync candidates
        """
        self.config = config or EngineConfig()
        self.repository = repository or InMemoryRepository()
        self.ledger = EnvelopeLedger(self.repository)
        self.store = TransactionStore(self.repository, self.ledger)
        self.matcher = DuplicateMatcher.from_config(self.config)
        self.parser = BankCsvParser(self.config)
        self.bank_feed = bank_feed or SimulatedBankFeed()
        self.epsilon = self.config.ledger.epsilon

        self._import_locks: dict[int, threading.Lock] = {}
        self._import_locks_guard = threading.Lock()
        self._merchant_memory_lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: EngineConfig, bank_feed: Optional[BankFeed] = None
    ) -> "ReconciliationEngine":
        """
        Build an engine over the configured state file.

        Existing state is loaded; otherwise demo data is seeded when enabled.
        """
        state_file = Path(config.storage.state_file) if config.storage.state_file else None
        repository = InMemoryRepository(state_file)
        engine = cls(config=config, repository=repository, bank_feed=bank_feed)

        if repository.load():
            engine.store.ensure_fingerprints()
        elif config.storage.seed_demo_data:
            seed_demo_data(engine)

        return engine

    def persist(self) -> None:
        """Write engine state to the repository's backing store."""
        self.repository.persist()

    def _import_lock(self, account_id: int) -> threading.Lock:
        with self._import_locks_guard:
            lock = self._import_locks.get(account_id)
            if lock is None:
                lock = self._import_locks[account_id] = threading.Lock()
            return lock

    # Read models

    def get_envelopes(self, user_id: int) -> list[Envelope]:
        """Envelopes of a user with balances from one consistent snapshot."""
        envelopes = self.repository.list_envelopes(user_id=user_id)
        balances = self.ledger.snapshot(e.id for e in envelopes)
        return [
            replace(e, current_balance=balances.get(e.id, e.current_balance))
            for e in envelopes
        ]

    def get_envelope(self, envelope_id: int) -> Envelope:
        envelope = self.repository.get_envelope(envelope_id)
        if envelope is None:
            raise EnvelopeNotFound(envelope_id)
        return envelope

    def get_transactions(
        self, user_id: int, account_id: Optional[int] = None
    ) -> list[Transaction]:
        """Transactions of a user, newest first."""
        transactions = [
            t
            for t in self.store.list_for_user(user_id)
            if account_id is None or t.account_id == account_id
        ]
        return sorted(transactions, key=lambda t: (t.date, t.id), reverse=True)

    def get_transaction(self, transaction_id: int) -> Transaction:
        return self.store.get(transaction_id)

    def get_accounts(self, user_id: int) -> list[Account]:
        return self.repository.list_accounts(user_id=user_id)

    def get_account(self, account_id: int) -> Account:
        account = self.repository.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    def get_ledger_entries(self, envelope_id: Optional[int] = None) -> list[LedgerEntry]:
        return self.repository.list_ledger_entries(envelope_id=envelope_id)

    # Records without invariants of their own

    def create_envelope(
        self,
        user_id: int,
        name: str,
        opening_balance: AmountLike = "0",
        budgeted_amount: AmountLike = "0",
        icon: str = "📁",
        category_id: Optional[int] = None,
        is_monitored: bool = False,
    ) -> Envelope:
        if not name or not name.strip():
            raise ValidationError("Envelope name is required")

        envelope = Envelope(
            id=self.repository.next_id("envelope"),
            user_id=user_id,
            name=name.strip(),
            icon=icon,
            category_id=category_id,
            budgeted_amount=to_money(budgeted_amount),
            opening_balance=to_money(opening_balance),
            is_monitored=is_monitored,
        )
        return self.ledger.open_envelope(envelope)

    def create_account(
        self,
        user_id: int,
        name: str,
        account_type: Union[AccountType, str] = AccountType.CHECKING,
        balance: AmountLike = "0",
    ) -> Account:
        try:
            kind = AccountType(account_type)
        except ValueError:
            raise ValidationError(f"Unknown account type: {account_type}") from None

        account = Account(
            id=self.repository.next_id("account"),
            user_id=user_id,
            name=name,
            type=kind,
            balance=to_money(balance),
        )
        logger.info(f"Created {kind.value} account {account.id} ({name})")
        return self.repository.add_account(account)

    def update_account_balance(self, account_id: int, balance: AmountLike) -> Account:
        account = self.get_account(account_id)
        return self.repository.save_account(replace(account, balance=to_money(balance)))

    def create_label(self, user_id: int, name: str, color: str = "#3B82F6") -> Label:
        label = Label(
            id=self.repository.next_id("label"), user_id=user_id, name=name, color=color
        )
        return self.repository.add_label(label)

    def create_bank_connection(
        self, user_id: int, account_id: int, bank_name: str
    ) -> BankConnection:
        self.get_account(account_id)
        connection = BankConnection(
            id=self.repository.next_id("bank_connection"),
            user_id=user_id,
            account_id=account_id,
            bank_name=bank_name,
        )
        logger.info(f"Linked {bank_name} to account {account_id} (connection {connection.id})")
        return self.repository.add_bank_connection(connection)

    # Manual entry and allocation edits

    def create_transaction(
        self,
        *,
        user_id: int,
        account_id: int,
        amount: AmountLike,
        merchant: str,
        txn_date: date,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Record a manually entered transaction. It always starts unmatched.

        Raises:
            AccountNotFound: If the account does not exist
            ValidationError: If the merchant is blank or the amount invalid
        """
        self.get_account(account_id)
        if not merchant or not merchant.strip():
            raise ValidationError("Merchant is required")

        return self.store.create(
            user_id=user_id,
            account_id=account_id,
            amount=to_money(amount),
            merchant=merchant.strip(),
            txn_date=txn_date,
            description=description,
            source_type=SourceType.MANUAL,
        )

    def set_allocations(
        self, transaction_id: int, allocations: Iterable[Any]
    ) -> Transaction:
        """
        Replace the allocation set without approving or touching balances.

        Raises:
            TransactionNotFound: If the transaction does not exist
            InvalidEnvelopeReference: If an allocation has no envelope
            EnvelopeNotFound: If an allocation names an unknown envelope
        """
        allocation_set = normalize_allocations(allocations)
        validate_allocations(
            ZERO, allocation_set, approving=False, epsilon=self.epsilon
        )
        self.store.get(transaction_id)
        self.ledger.ensure_exists(a.envelope_id for a in allocation_set)
        return self.store.replace_allocations(transaction_id, allocation_set)

    def update_transaction(
        self,
        transaction_id: int,
        description: Optional[str] = None,
        label_ids: Optional[Iterable[int]] = None,
    ) -> Transaction:
        """Edit description or labels. An approved transaction becomes edited."""
        changes: dict[str, Any] = {}
        if description is not None:
            changes["description"] = description
        if label_ids is not None:
            changes["label_ids"] = self._check_labels(label_ids)

        with self.store.locked(transaction_id):
            transaction = self.store.get(transaction_id)
            if not changes:
                return transaction
            if transaction.is_approved:
                changes["is_edited"] = True
            return self.store.update(transaction_id, **changes)

    def approve_transaction(
        self,
        transaction_id: int,
        allocations: Iterable[Any],
        description: Optional[str] = None,
        label_ids: Optional[Iterable[int]] = None,
    ) -> Transaction:
        """
        Validate an allocation set and commit it as the approved one.

        Only the difference against what is already applied reaches the
        envelope balances.

        Args:
            transaction_id: Transaction to approve
            allocations: Full allocation set (replaces the current one)
            description: New description, unchanged when None
            label_ids: New labels, unchanged when None

        Returns:
            The approved transaction

        Raises:
            TransactionNotFound: If the transaction does not exist
            ValidationError: If the allocation set is not legal
            EnvelopeNotFound: If an allocation names an unknown envelope
            InvariantViolation: If the record disagrees with the ledger journal
        """
        allocation_set = normalize_allocations(allocations)
        labels = self._check_labels(label_ids) if label_ids is not None else None

        with self.store.locked(transaction_id):
            transaction = self.store.get(transaction_id)
            validate_allocations(transaction.amount, allocation_set, epsilon=self.epsilon)
            self.ledger.ensure_exists(a.envelope_id for a in allocation_set)

            kwargs: dict[str, Any] = {}
            if description is not None:
                kwargs["description"] = description
            approved = self.store.commit_approval(
                transaction_id, allocation_set, label_ids=labels, **kwargs
            )

        self._remember_merchant(approved)
        return approved

    def _check_labels(self, label_ids: Iterable[int]) -> tuple[int, ...]:
        ids = tuple(int(label_id) for label_id in label_ids)
        for label_id in ids:
            if self.repository.get_label(label_id) is None:
                raise LabelNotFound(label_id)
        return ids

    def _remember_merchant(self, transaction: Transaction) -> None:
        if not transaction.allocations:
            return
        primary = max(transaction.allocations, key=lambda a: abs(a.amount))
        key = normalize_merchant(transaction.merchant)

        with self._merchant_memory_lock:
            memory = self.repository.get_merchant_memory(transaction.user_id, key)
            if memory is None:
                memory = MerchantMemory(
                    user_id=transaction.user_id,
                    merchant=key,
                    last_envelope_id=primary.envelope_id,
                )
            else:
                memory = replace(
                    memory,
                    last_envelope_id=primary.envelope_id,
                    frequency=memory.frequency + 1,
                    last_used=datetime.now(),
                )
            self.repository.save_merchant_memory(memory)

    def suggest_allocation(self, transaction_id: int) -> Optional[tuple[Allocation, ...]]:
        """
        Propose a full-amount allocation to the envelope last used for
        this merchant, or None when there is nothing to suggest.
        """
        transaction = self.store.get(transaction_id)
        memory = self.repository.get_merchant_memory(
            transaction.user_id, normalize_merchant(transaction.merchant)
        )
        if memory is None:
            return None

        envelope = self.repository.get_envelope(memory.last_envelope_id)
        if envelope is None or not envelope.is_active:
            return None

        return (Allocation(envelope_id=envelope.id, amount=transaction.amount),)

    # Deletion and transfers

    def delete_transaction(self, transaction_id: int) -> Transaction:
        """
        Reverse the transaction's applied deltas, then delete it.

        Raises:
            TransactionNotFound: If the transaction does not exist
            InvariantViolation: If the record disagrees with the ledger journal
        """
        return self._remove(transaction_id)

    def delete_transactions(self, transaction_ids: Iterable[int]) -> list[Transaction]:
        """Delete several transactions; all ids are checked before any deletion."""
        ids = list(dict.fromkeys(transaction_ids))
        for transaction_id in ids:
            self.store.get(transaction_id)
        return [self._remove(transaction_id) for transaction_id in ids]

    def _remove(self, transaction_id: int) -> Transaction:
        removed = self.store.remove(transaction_id)

        # Flags pointing at the removed record no longer mean anything
        for transaction in self.store.list_for_account(removed.account_id):
            if (
                transaction.duplicate_of_id == transaction_id
                and transaction.duplicate_status is DuplicateStatus.POTENTIAL
            ):
                self.store.update(
                    transaction.id,
                    duplicate_status=DuplicateStatus.NONE,
                    duplicate_of_id=None,
                )
                logger.debug(f"Cleared duplicate flag on transaction {transaction.id}")
        return removed

    def transfer_between_envelopes(
        self,
        from_envelope_id: int,
        to_envelope_id: int,
        amount: AmountLike,
        description: Optional[str] = None,
    ) -> TransferResult:
        """Move money directly between two envelopes."""
        return self.ledger.transfer(from_envelope_id, to_envelope_id, amount, description)

    # CSV import and bank sync

    def import_csv(self, raw_bytes: bytes, account_id: int) -> ImportResult:
        """
        Import a bank CSV export into an account.

        Rows are classified one after another, so a later row sees the
        records created or merged by earlier ones.

        Raises:
            AccountNotFound: If the account does not exist
            CsvFormatError: If the file has no usable header
        """
        account = self.get_account(account_id)
        parsed = self.parser.parse_bytes(raw_bytes)
        result = ImportResult(errors=list(parsed.errors))

        with self._import_lock(account_id):
            for row in parsed.rows:
                try:
                    outcome = self._ingest(
                        row.to_candidate(account_id), account.user_id, SourceType.IMPORT
                    )
                except ValidationError as e:
                    logger.warning(f"Row {row.row_number}: {e}")
                    result.errors.append(RowError(row_number=row.row_number, reason=str(e)))
                    continue
                self._count(result, outcome.action)

        result.errors.sort(key=lambda e: e.row_number)
        logger.info(
            f"CSV import into account {account_id}: {result.imported} imported "
            f"({result.created} created, {result.merged} merged, {result.flagged} flagged), "
            f"{result.skipped} skipped, {len(result.errors)} errors"
        )
        return result

    def sync_bank_account(self, connection_id: int) -> SyncResult:
        """
        Pull candidates from the bank feed and classify each one.

        Raises:
            BankConnectionNotFound: If the connection does not exist
            ValidationError: If the connection is inactive
        """
        connection = self.repository.get_bank_connection(connection_id)
        if connection is None:
            raise BankConnectionNotFound(connection_id)
        if not connection.is_active:
            raise ValidationError(f"Bank connection {connection_id} is inactive")

        account = self.get_account(connection.account_id)
        self.store.ensure_fingerprints(account.id)
        candidates = self.bank_feed.fetch(connection)
        logger.info(
            f"Syncing {len(candidates)} transactions from {connection.bank_name} "
            f"into account {account.id}"
        )

        result = SyncResult()
        with self._import_lock(account.id):
            for candidate in candidates:
                if candidate.account_id != account.id:
                    candidate = replace(candidate, account_id=account.id)
                outcome = self._ingest(candidate, account.user_id, SourceType.BANK_SYNC)
                self._count(result, outcome.action)
                result.details.append(self._describe(candidate, outcome))

        self.repository.save_bank_connection(replace(connection, last_sync=datetime.now()))
        logger.info(
            f"Sync of connection {connection_id}: {result.created} created, "
            f"{result.merged} merged, {result.flagged} flagged, {result.skipped} skipped"
        )
        return result

    def _ingest(
        self, candidate: BankSyncCandidate, user_id: int, source_type: SourceType
    ) -> ClassificationResult:
        existing = self.store.list_for_account(candidate.account_id)
        outcome = self.matcher.classify(candidate, existing)
        logger.debug(
            f"{candidate.merchant} {candidate.amount:.2f} on {candidate.date}: "
            f"{outcome.action.value} ({outcome.reason})"
        )
        self._apply_classification(candidate, outcome, user_id, source_type)
        return outcome

    def _apply_classification(
        self,
        candidate: BankSyncCandidate,
        outcome: ClassificationResult,
        user_id: int,
        source_type: SourceType,
    ) -> Optional[Transaction]:
        if outcome.action is MatchAction.SKIP:
            return None

        if outcome.action is MatchAction.MERGE:
            # Allocations and approval of the manual record stay as they are
            return self.store.update(
                outcome.matched_transaction_id,
                bank_transaction_id=candidate.external_id,
                bank_memo=candidate.memo,
                duplicate_status=DuplicateStatus.CONFIRMED,
            )

        flagged = outcome.action is MatchAction.FLAG
        return self.store.create(
            user_id=user_id,
            account_id=candidate.account_id,
            amount=candidate.amount,
            merchant=candidate.merchant,
            txn_date=candidate.date,
            description=candidate.description,
            source_type=source_type,
            bank_transaction_id=candidate.external_id,
            bank_memo=candidate.memo,
            duplicate_status=DuplicateStatus.POTENTIAL if flagged else DuplicateStatus.NONE,
            duplicate_of_id=outcome.matched_transaction_id if flagged else None,
        )

    @staticmethod
    def _count(result: Union[ImportResult, SyncResult], action: MatchAction) -> None:
        if action is MatchAction.CREATE:
            result.created += 1
        elif action is MatchAction.MERGE:
            result.merged += 1
        elif action is MatchAction.FLAG:
            result.flagged += 1
        else:
            result.skipped += 1

    @staticmethod
    def _describe(candidate: BankSyncCandidate, outcome: ClassificationResult) -> str:
        label = f"{candidate.merchant} - ${abs(candidate.amount):.2f}"
        if outcome.action is MatchAction.MERGE:
            return f"Merged with existing transaction {outcome.matched_transaction_id}: {label}"
        if outcome.action is MatchAction.FLAG:
            return (
                f"Flagged as potential duplicate of transaction "
                f"{outcome.matched_transaction_id}: {label}"
            )
        if outcome.action is MatchAction.SKIP:
            return f"Already imported: {label}"
        return f"Created new transaction: {label}"

    # Duplicate review

    def list_potential_duplicates(
        self, user_id: int
    ) -> list[tuple[Transaction, Optional[Transaction]]]:
        """Each flagged transaction paired with the record it may duplicate."""
        pairs = []
        for transaction in self.get_transactions(user_id):
            if transaction.duplicate_status is not DuplicateStatus.POTENTIAL:
                continue
            original = (
                self.repository.get_transaction(transaction.duplicate_of_id)
                if transaction.duplicate_of_id is not None
                else None
            )
            pairs.append((transaction, original))
        return pairs

    def resolve_duplicate(
        self,
        bank_transaction_id: int,
        manual_transaction_id: int,
        action: Union[ResolutionAction, str],
    ) -> Transaction:
        """
        Resolve a flagged pair.

        Args:
            bank_transaction_id: The bank-sourced copy
            manual_transaction_id: The record it was flagged against
            action: ``merge``, ``keep_both`` or ``delete_bank``

        Returns:
            The manual transaction after resolution

        Raises:
            ValidationError: For an unknown action, identical ids, or a
                merge whose manual allocations cannot be approved
            TransactionNotFound: If either transaction does not exist
        """
        try:
            resolution = ResolutionAction(action)
        except ValueError:
            raise ValidationError(f"Unknown resolution action: {action}") from None

        if bank_transaction_id == manual_transaction_id:
            raise ValidationError("Cannot resolve a transaction against itself")

        with self.store.locked(bank_transaction_id, manual_transaction_id):
            bank = self.store.get(bank_transaction_id)
            manual = self.store.get(manual_transaction_id)

            if resolution is ResolutionAction.KEEP_BOTH:
                self.store.update(bank.id, duplicate_status=DuplicateStatus.REVIEWED)
                resolved = self.store.update(
                    manual.id, duplicate_status=DuplicateStatus.REVIEWED
                )
            elif resolution is ResolutionAction.DELETE_BANK:
                self._remove(bank.id)
                resolved = self.store.get(manual.id)
                if resolved.duplicate_status is DuplicateStatus.POTENTIAL:
                    resolved = self.store.update(
                        manual.id,
                        duplicate_status=DuplicateStatus.NONE,
                        duplicate_of_id=None,
                    )
            else:
                resolved = self._merge_pair(bank, manual)

        logger.info(
            f"Resolved transactions {bank_transaction_id}/{manual_transaction_id}: "
            f"{resolution.value}"
        )
        return resolved

    def _merge_pair(self, bank: Transaction, manual: Transaction) -> Transaction:
        validate_allocations(manual.amount, manual.allocations, epsilon=self.epsilon)
        self.ledger.ensure_exists(a.envelope_id for a in manual.allocations)

        self.store.commit_approval(manual.id, manual.allocations)
        merged = self.store.update(
            manual.id,
            bank_transaction_id=bank.bank_transaction_id,
            bank_reference=bank.bank_reference,
            bank_memo=bank.bank_memo,
            duplicate_status=DuplicateStatus.CONFIRMED,
            duplicate_of_id=None,
        )
        self._remove(bank.id)
        return merged

    # Reconciliation

    def get_reconciliation_summary(self, user_id: int) -> ReconciliationSummary:
        envelopes = [e for e in self.repository.list_envelopes(user_id=user_id) if e.is_active]
        balances = self.ledger.snapshot(e.id for e in envelopes)
        return build_summary(
            accounts=self.repository.list_accounts(user_id=user_id),
            envelope_balances=balances,
            transactions=self.store.list_for_user(user_id),
            epsilon=self.epsilon,
        )

    def verify(self) -> None:
        """
        Check every envelope against the journal and every transaction
        against what the journal says was applied for it.

        Raises:
            InvariantViolation: On the first inconsistency found
        """
        self.ledger.verify()
        for transaction in self.repository.list_transactions():
            self.store.check_consistency(transaction)
