"""
Repository interface for engine state and its in-memory implementation.

Lifecycle: construct, then ``load()`` a persisted state file or seed demo
data, serve requests, and optionally ``persist()`` on the way out. The
reconciliation logic only talks to :class:`Repository`, so a durable
backend can replace :class:`InMemoryRepository` without touching it.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional
import logging
import threading

from pydantic import BaseModel, Field

from ..models import (
    Account,
    BankConnection,
    Envelope,
    Label,
    LedgerEntry,
    MerchantMemory,
    Transaction,
)

logger = logging.getLogger(__name__)


class Repository(ABC):
    """Storage operations the engine depends on."""

    @abstractmethod
    def next_id(self, kind: str) -> int:
        """Allocate the next identifier for an entity kind."""
        pass

    # Envelopes

    @abstractmethod
    def add_envelope(self, envelope: Envelope) -> Envelope:
        pass

    @abstractmethod
    def get_envelope(self, envelope_id: int) -> Optional[Envelope]:
        pass

    @abstractmethod
    def list_envelopes(self, user_id: Optional[int] = None) -> list[Envelope]:
        pass

    @abstractmethod
    def set_envelope_balances(self, balances: dict[int, Decimal]) -> None:
        """Write new current balances for several envelopes at once."""
        pass

    # Ledger journal

    @abstractmethod
    def add_ledger_entries(self, entries: Iterable[LedgerEntry]) -> None:
        pass

    @abstractmethod
    def list_ledger_entries(
        self,
        envelope_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> list[LedgerEntry]:
        pass

    # Transactions

    @abstractmethod
    def add_transaction(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        pass

    @abstractmethod
    def save_transaction(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> None:
        pass

    @abstractmethod
    def list_transactions(
        self,
        user_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> list[Transaction]:
        pass

    # Accounts, bank connections, labels

    @abstractmethod
    def add_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        pass

    @abstractmethod
    def save_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    def list_accounts(self, user_id: Optional[int] = None) -> list[Account]:
        pass

    @abstractmethod
    def add_bank_connection(self, connection: BankConnection) -> BankConnection:
        pass

    @abstractmethod
    def get_bank_connection(self, connection_id: int) -> Optional[BankConnection]:
        pass

    @abstractmethod
    def save_bank_connection(self, connection: BankConnection) -> BankConnection:
        pass

    @abstractmethod
    def add_label(self, label: Label) -> Label:
        pass

    @abstractmethod
    def get_label(self, label_id: int) -> Optional[Label]:
        pass

    # Merchant memory

    @abstractmethod
    def get_merchant_memory(self, user_id: int, merchant: str) -> Optional[MerchantMemory]:
        pass

    @abstractmethod
    def save_merchant_memory(self, memory: MerchantMemory) -> MerchantMemory:
        pass

    # Lifecycle

    def load(self) -> bool:
        """Load persisted state. Returns True if anything was loaded."""
        return False

    def persist(self) -> None:
        """Write state to durable storage, if the backend has any."""
        pass


class RepositoryState(BaseModel):
    """Serializable image of an in-memory repository."""

    sequences: dict[str, int] = Field(default_factory=dict)
    envelopes: list[Envelope] = Field(default_factory=list)
    ledger_entries: list[LedgerEntry] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    bank_connections: list[BankConnection] = Field(default_factory=list)
    labels: list[Label] = Field(default_factory=list)
    merchant_memory: list[MerchantMemory] = Field(default_factory=list)


class InMemoryRepository(Repository):
    """
    Dictionary-backed repository with optional JSON persistence.

    All access goes through one re-entrant lock; callers that need
    multi-step atomicity lock at the ledger or store level. Records are
    copied on the way in and out, so changing a returned object never
    changes stored state.
    """

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = state_file
        self._lock = threading.RLock()
        self._sequences: dict[str, int] = {}
        self._envelopes: dict[int, Envelope] = {}
        self._ledger_entries: list[LedgerEntry] = []
        self._transactions: dict[int, Transaction] = {}
        self._accounts: dict[int, Account] = {}
        self._bank_connections: dict[int, BankConnection] = {}
        self._labels: dict[int, Label] = {}
        self._merchant_memory: dict[tuple[int, str], MerchantMemory] = {}

    def next_id(self, kind: str) -> int:
        with self._lock:
            value = self._sequences.get(kind, 0) + 1
            self._sequences[kind] = value
            return value

    # Envelopes

    def add_envelope(self, envelope: Envelope) -> Envelope:
        with self._lock:
            self._envelopes[envelope.id] = replace(envelope)
            return replace(envelope)

    def get_envelope(self, envelope_id: int) -> Optional[Envelope]:
        with self._lock:
            envelope = self._envelopes.get(envelope_id)
            return replace(envelope) if envelope else None

    def list_envelopes(self, user_id: Optional[int] = None) -> list[Envelope]:
        with self._lock:
            return [
                replace(e)
                for e in sorted(self._envelopes.values(), key=lambda e: e.id)
                if user_id is None or e.user_id == user_id
            ]

    def set_envelope_balances(self, balances: dict[int, Decimal]) -> None:
        with self._lock:
            for envelope_id, balance in balances.items():
                envelope = self._envelopes[envelope_id]
                self._envelopes[envelope_id] = replace(envelope, current_balance=balance)

    # Ledger journal

    def add_ledger_entries(self, entries: Iterable[LedgerEntry]) -> None:
        with self._lock:
            self._ledger_entries.extend(entries)

    def list_ledger_entries(
        self,
        envelope_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> list[LedgerEntry]:
        with self._lock:
            return [
                entry
                for entry in self._ledger_entries
                if (envelope_id is None or entry.envelope_id == envelope_id)
                and (transaction_id is None or entry.transaction_id == transaction_id)
            ]

    # Transactions

    def add_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            self._transactions[transaction.id] = replace(transaction)
            return replace(transaction)

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        with self._lock:
            transaction = self._transactions.get(transaction_id)
            return replace(transaction) if transaction else None

    def save_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            if transaction.id not in self._transactions:
                raise KeyError(transaction.id)
            self._transactions[transaction.id] = replace(transaction)
            return replace(transaction)

    def delete_transaction(self, transaction_id: int) -> None:
        with self._lock:
            self._transactions.pop(transaction_id, None)

    def list_transactions(
        self,
        user_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> list[Transaction]:
        with self._lock:
            return [
                replace(t)
                for t in sorted(self._transactions.values(), key=lambda t: t.id)
                if (user_id is None or t.user_id == user_id)
                and (account_id is None or t.account_id == account_id)
            ]

    # Accounts, bank connections, labels

    def add_account(self, account: Account) -> Account:
        with self._lock:
            self._accounts[account.id] = replace(account)
            return replace(account)

    def get_account(self, account_id: int) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(account_id)
            return replace(account) if account else None

    def save_account(self, account: Account) -> Account:
        return self.add_account(account)

    def list_accounts(self, user_id: Optional[int] = None) -> list[Account]:
        with self._lock:
            return [
                replace(a)
                for a in sorted(self._accounts.values(), key=lambda a: a.id)
                if user_id is None or a.user_id == user_id
            ]

    def add_bank_connection(self, connection: BankConnection) -> BankConnection:
        with self._lock:
            self._bank_connections[connection.id] = replace(connection)
            return replace(connection)

    def get_bank_connection(self, connection_id: int) -> Optional[BankConnection]:
        with self._lock:
            connection = self._bank_connections.get(connection_id)
            return replace(connection) if connection else None

    def save_bank_connection(self, connection: BankConnection) -> BankConnection:
        return self.add_bank_connection(connection)

    def add_label(self, label: Label) -> Label:
        with self._lock:
            self._labels[label.id] = label
            return label

    def get_label(self, label_id: int) -> Optional[Label]:
        with self._lock:
            return self._labels.get(label_id)

    # Merchant memory

    def get_merchant_memory(self, user_id: int, merchant: str) -> Optional[MerchantMemory]:
        with self._lock:
            return self._merchant_memory.get((user_id, merchant))

    def save_merchant_memory(self, memory: MerchantMemory) -> MerchantMemory:
        with self._lock:
            self._merchant_memory[(memory.user_id, memory.merchant)] = memory
            return memory

    # Lifecycle

    def export_state(self) -> RepositoryState:
        with self._lock:
            return RepositoryState(
                sequences=dict(self._sequences),
                envelopes=list(self._envelopes.values()),
                ledger_entries=list(self._ledger_entries),
                transactions=list(self._transactions.values()),
                accounts=list(self._accounts.values()),
                bank_connections=list(self._bank_connections.values()),
                labels=list(self._labels.values()),
                merchant_memory=list(self._merchant_memory.values()),
            )

    def import_state(self, state: RepositoryState) -> None:
        with self._lock:
            self._sequences = dict(state.sequences)
            self._envelopes = {e.id: e for e in state.envelopes}
            self._ledger_entries = list(state.ledger_entries)
            self._transactions = {t.id: t for t in state.transactions}
            self._accounts = {a.id: a for a in state.accounts}
            self._bank_connections = {c.id: c for c in state.bank_connections}
            self._labels = {label.id: label for label in state.labels}
            self._merchant_memory = {
                (m.user_id, m.merchant): m for m in state.merchant_memory
            }

    def load(self) -> bool:
        if self.state_file is None or not self.state_file.exists():
            return False

        logger.info(f"Loading engine state from: {self.state_file}")
        state = RepositoryState.model_validate_json(self.state_file.read_text(encoding="utf-8"))
        self.import_state(state)
        logger.debug(
            f"Loaded {len(state.transactions)} transactions, "
            f"{len(state.envelopes)} envelopes, {len(state.ledger_entries)} journal entries"
        )
        return True

    def persist(self) -> None:
        if self.state_file is None:
            return

        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        payload = self.export_state().model_dump_json(indent=2)

        # Replace atomically; readers never see a partial file
        tmp_path = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(self.state_file)
        logger.info(f"Engine state saved: {self.state_file}")
