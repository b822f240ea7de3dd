"""Shared fixtures: an empty engine with one account and two envelopes."""

from datetime import date

import pytest

from envelope_recon.config import EngineConfig
from envelope_recon.reconciliation import ReconciliationEngine
from envelope_recon.sync import StaticBankFeed


@pytest.fixture
def bank_feed():
    return StaticBankFeed()


@pytest.fixture
def engine(bank_feed):
    """Engine over an empty in-memory repository."""
    return ReconciliationEngine(config=EngineConfig(), bank_feed=bank_feed)


@pytest.fixture
def account(engine):
    return engine.create_account(1, "Everyday", "checking", "1000.00")


@pytest.fixture
def envelope_a(engine):
    return engine.create_envelope(
        1, "Groceries", opening_balance="100.00", budgeted_amount="800.00"
    )


@pytest.fixture
def envelope_b(engine):
    return engine.create_envelope(
        1, "Transport", opening_balance="50.00", budgeted_amount="300.00"
    )


@pytest.fixture
def make_transaction(engine, account):
    """Factory for manual transactions on the fixture account."""

    def _make(amount="-45.67", merchant="Countdown", txn_date=date(2024, 12, 21), description=None):
        return engine.create_transaction(
            user_id=1,
            account_id=account.id,
            amount=amount,
            merchant=merchant,
            txn_date=txn_date,
            description=description,
        )

    return _make
