"""Demo data for a fresh engine."""

from datetime import date
from typing import TYPE_CHECKING
import logging

if TYPE_CHECKING:
    from .engine import ReconciliationEngine

logger = logging.getLogger(__name__)

DEMO_USER_ID = 1


def seed_demo_data(engine: "ReconciliationEngine") -> None:
    """
    Populate an empty engine with the demo user's account, envelopes and
    two approved transactions.

    Envelope opening balances are chosen so that, after the demo
    transactions are approved through the ledger, Groceries sits at
    534.67 and Transport at 245.80.
    """
    account = engine.create_account(
        DEMO_USER_ID, "ASB Everyday Account", "checking", "2534.67"
    )
    engine.create_bank_connection(DEMO_USER_ID, account.id, "ASB Bank")

    groceries = engine.create_envelope(
        DEMO_USER_ID,
        "Groceries",
        opening_balance="580.34",
        budgeted_amount="800.00",
        icon="🛒",
        is_monitored=True,
    )
    transport = engine.create_envelope(
        DEMO_USER_ID,
        "Transport",
        opening_balance="271.70",
        budgeted_amount="300.00",
        icon="🚗",
    )

    for merchant, amount, when, envelope in (
        ("Countdown", "-45.67", date(2025, 1, 5), groceries),
        ("BP Service Station", "-25.90", date(2025, 1, 6), transport),
    ):
        transaction = engine.create_transaction(
            user_id=DEMO_USER_ID,
            account_id=account.id,
            amount=amount,
            merchant=merchant,
            txn_date=when,
        )
        engine.approve_transaction(
            transaction.id, [{"envelope_id": envelope.id, "amount": amount}]
        )

    logger.info("Seeded demo data for user 1")
