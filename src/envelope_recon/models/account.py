"""Data models for accounts, bank connections and labels."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class AccountType(Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"


@dataclass
class Account:
    """A bank account whose balance is reported by the bank."""

    id: int
    user_id: int
    name: str
    type: AccountType = AccountType.CHECKING
    balance: Decimal = Decimal("0.00")
    is_active: bool = True


@dataclass
class BankConnection:
    """Link between an external bank feed and an account."""

    id: int
    user_id: int
    account_id: int
    bank_name: str
    last_sync: Optional[datetime] = None
    is_active: bool = True


@dataclass
class Label:
    id: int
    user_id: int
    name: str
    color: str = "#3B82F6"
