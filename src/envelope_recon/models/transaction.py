"""Data models for transactions, allocations and bank candidates."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class SourceType(Enum):
    """Where a transaction record came from."""

    MANUAL = "manual"
    BANK_SYNC = "bank_sync"
    IMPORT = "import"


class DuplicateStatus(Enum):
    """Duplicate-review tag carried by a transaction."""

    NONE = "none"
    POTENTIAL = "potential"  # Flagged, awaiting user resolution
    CONFIRMED = "confirmed"  # Bank record merged into this one
    REVIEWED = "reviewed"  # User kept both; excluded from further matching


class ReconciliationStatus(Enum):
    """Review state shown to the user."""

    UNMATCHED = "unmatched"
    PENDING = "pending"
    APPROVED = "approved"


class MatchAction(Enum):
    """Outcome of classifying a bank candidate against stored transactions."""

    CREATE = "create"
    MERGE = "merge"
    FLAG = "flag"
    SKIP = "skip"


class ResolutionAction(Enum):
    """User decision on a flagged duplicate pair."""

    MERGE = "merge"
    KEEP_BOTH = "keep_both"
    DELETE_BANK = "delete_bank"


@dataclass(frozen=True)
class Allocation:
    """A slice of a transaction assigned to one envelope."""

    envelope_id: Optional[int]
    amount: Decimal


@dataclass
class Transaction:
    """
    A monetary event on one account.

    Allocations are held as a tuple and only ever replaced as a whole.
    """

    id: int
    user_id: int
    account_id: int

    # Signed; negative is money out
    amount: Decimal

    merchant: str
    date: date
    description: Optional[str] = None

    is_approved: bool = False

    # True once an approved transaction has been changed and not re-approved
    is_edited: bool = False

    source_type: SourceType = SourceType.MANUAL

    # Bank-origin fields
    bank_transaction_id: Optional[str] = None
    bank_reference: Optional[str] = None
    bank_memo: Optional[str] = None
    fingerprint: Optional[str] = None

    duplicate_status: DuplicateStatus = DuplicateStatus.NONE
    duplicate_of_id: Optional[int] = None

    label_ids: tuple[int, ...] = ()
    allocations: tuple[Allocation, ...] = ()

    created_at: datetime = field(default_factory=datetime.now)

    @property
    def status(self) -> ReconciliationStatus:
        """Reconciliation status derived from approval and allocations."""
        if self.is_approved:
            return ReconciliationStatus.APPROVED
        if self.allocations:
            return ReconciliationStatus.PENDING
        return ReconciliationStatus.UNMATCHED

    @property
    def is_bank_linked(self) -> bool:
        return self.bank_transaction_id is not None


@dataclass(frozen=True)
class BankSyncCandidate:
    """
    A transaction offered by a bank feed or a CSV row.

    Never persisted; the duplicate matcher turns it into an action first.
    """

    account_id: int
    amount: Decimal
    date: date
    merchant: str
    description: Optional[str] = None
    external_id: Optional[str] = None
    memo: Optional[str] = None


@dataclass(frozen=True)
class ClassificationResult:
    """Decision produced by the duplicate matcher for one candidate."""

    action: MatchAction
    fingerprint: str
    matched_transaction_id: Optional[int] = None
    similarity: Optional[float] = None
    reason: str = ""
