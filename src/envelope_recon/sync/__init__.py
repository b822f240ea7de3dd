"""Bank feed boundary."""

from .bank_feed import BankFeed, SimulatedBankFeed, StaticBankFeed

__all__ = ["BankFeed", "SimulatedBankFeed", "StaticBankFeed"]
