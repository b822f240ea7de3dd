"""Data models for envelope reconciliation."""

from .account import Account, AccountType, BankConnection, Label
from .envelope import (
    Envelope,
    EntryKind,
    LedgerEntry,
    MerchantMemory,
    TransferResult,
)
from .reconciliation import (
    CsvParseResult,
    ImportResult,
    NormalizedRow,
    ReconciliationSummary,
    RowError,
    SyncResult,
)
from .transaction import (
    Allocation,
    BankSyncCandidate,
    ClassificationResult,
    DuplicateStatus,
    MatchAction,
    ReconciliationStatus,
    ResolutionAction,
    SourceType,
    Transaction,
)

__all__ = [
    "Account",
    "AccountType",
    "BankConnection",
    "Label",
    "Envelope",
    "EntryKind",
    "LedgerEntry",
    "MerchantMemory",
    "TransferResult",
    "CsvParseResult",
    "ImportResult",
    "NormalizedRow",
    "ReconciliationSummary",
    "RowError",
    "SyncResult",
    "Allocation",
    "BankSyncCandidate",
    "ClassificationResult",
    "DuplicateStatus",
    "MatchAction",
    "ReconciliationStatus",
    "ResolutionAction",
    "SourceType",
    "Transaction",
]
