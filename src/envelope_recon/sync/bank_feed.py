"""
Bank feed boundary.

The real bank integration lives outside the engine; it only has to hand
over :class:`BankSyncCandidate` values for a connection.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from ..models import BankConnection, BankSyncCandidate


class BankFeed(ABC):
    """Producer of bank transaction candidates."""

    @abstractmethod
    def fetch(self, connection: BankConnection) -> list[BankSyncCandidate]:
        """
        Fetch candidates for a bank connection.

        Args:
            connection: Connection whose account is being synced

        Returns:
            Candidates in the order the bank reported them
        """
        pass


class SimulatedBankFeed(BankFeed):
    """
    Demo feed returning a fixed pair of transactions.

    External ids are derived from the connection id so re-syncing the
    same connection delivers the same ids.
    """

    DEMO_TRANSACTIONS = [
        {
            "amount": "-45.50",
            "date": date(2024, 12, 21),
            "merchant": "New World Auckland Central",
            "description": "EFTPOS Purchase",
        },
        {
            "amount": "-120.00",
            "date": date(2024, 12, 20),
            "merchant": "Genesis Energy Online",
            "description": "Direct Debit",
        },
    ]

    def fetch(self, connection: BankConnection) -> list[BankSyncCandidate]:
        return [
            BankSyncCandidate(
                account_id=connection.account_id,
                amount=Decimal(item["amount"]),
                date=item["date"],
                merchant=item["merchant"],
                description=item["description"],
                external_id=f"sim-{connection.id}-{index}",
                memo=item["description"],
            )
            for index, item in enumerate(self.DEMO_TRANSACTIONS, start=1)
        ]


class StaticBankFeed(BankFeed):
    """Feed serving preset candidates per connection id."""

    def __init__(self, candidates: Optional[dict[int, Iterable[BankSyncCandidate]]] = None):
        self._candidates = {
            connection_id: list(items) for connection_id, items in (candidates or {}).items()
        }

    def add(self, connection_id: int, candidate: BankSyncCandidate) -> None:
        self._candidates.setdefault(connection_id, []).append(candidate)

    def fetch(self, connection: BankConnection) -> list[BankSyncCandidate]:
        return list(self._candidates.get(connection.id, []))
