"""Data models for envelopes and the ledger journal."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class EntryKind(Enum):
    """Kind of balance mutation recorded in the ledger journal."""

    ALLOCATION = "allocation"
    REVERSAL = "reversal"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


@dataclass
class Envelope:
    """A budget bucket whose balance is owned by the ledger."""

    id: int
    user_id: int
    name: str
    icon: str = "📁"
    category_id: Optional[int] = None
    budgeted_amount: Decimal = Decimal("0.00")
    opening_balance: Decimal = Decimal("0.00")
    current_balance: Decimal = Decimal("0.00")
    is_monitored: bool = False
    is_active: bool = True


@dataclass(frozen=True)
class LedgerEntry:
    """One applied balance delta for one envelope."""

    id: int
    envelope_id: int
    amount: Decimal
    kind: EntryKind
    transaction_id: Optional[int] = None
    reference: Optional[str] = None
    description: str = ""
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class TransferResult:
    """Balances on both sides after an envelope transfer."""

    from_envelope_id: int
    to_envelope_id: int
    amount: Decimal
    from_balance: Decimal
    to_balance: Decimal
    reference: str


@dataclass
class MerchantMemory:
    """Last envelope chosen for a merchant."""

    user_id: int
    merchant: str
    last_envelope_id: int
    frequency: int = 1
    last_used: datetime = field(default_factory=datetime.now)
