"""Result and summary models for imports, syncs and reconciliation."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from .transaction import BankSyncCandidate


@dataclass(frozen=True)
class RowError:
    """A CSV line that could not be imported."""

    row_number: int
    reason: str

    def __str__(self) -> str:
        return f"Row {self.row_number}: {self.reason}"


@dataclass(frozen=True)
class NormalizedRow:
    """A CSV row mapped onto the fields the engine understands."""

    row_number: int
    date: date
    amount: Decimal
    merchant: str
    memo: Optional[str] = None
    unique_id: Optional[str] = None
    tran_type: Optional[str] = None

    def to_candidate(self, account_id: int) -> BankSyncCandidate:
        return BankSyncCandidate(
            account_id=account_id,
            amount=self.amount,
            date=self.date,
            merchant=self.merchant,
            external_id=self.unique_id,
            memo=self.memo,
        )


@dataclass
class CsvParseResult:
    rows: list[NormalizedRow] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    header_row: Optional[int] = None


@dataclass
class ImportResult:
    """Outcome of importing one CSV file."""

    created: int = 0
    merged: int = 0
    flagged: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return self.created + self.merged + self.flagged


@dataclass
class SyncResult:
    """Outcome of one bank sync run."""

    created: int = 0
    merged: int = 0
    flagged: int = 0
    skipped: int = 0
    details: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReconciliationSummary:
    """Bank versus envelope totals, recomputed on every read."""

    total_bank_balance: Decimal
    total_envelope_balance: Decimal
    unmatched_count: int
    pending_count: int
    approved_count: int
    potential_duplicate_count: int
    epsilon: Decimal = Decimal("0.01")

    @property
    def difference(self) -> Decimal:
        return self.total_bank_balance - self.total_envelope_balance

    @property
    def is_reconciled(self) -> bool:
        return abs(self.difference) < self.epsilon

    @property
    def total_count(self) -> int:
        return self.unmatched_count + self.pending_count + self.approved_count
