"""
Duplicate matcher for bank-sourced transaction candidates.

Classification is a pure function of the candidate and a snapshot of the
account's stored transactions, so it can be re-derived after a restart
from persisted fingerprints alone.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Sequence
import hashlib
import logging

from ..config import EngineConfig
from ..models import (
    BankSyncCandidate,
    ClassificationResult,
    DuplicateStatus,
    MatchAction,
    SourceType,
    Transaction,
)
from ..utils.money import quantize, to_money
from .strategies import MerchantSimilarity, SequenceRatioSimilarity, get_similarity, normalize_merchant

logger = logging.getLogger(__name__)


def compute_fingerprint(account_id: int, txn_date: date, amount: Decimal, merchant: str) -> str:
    """SHA-256 over account, date, amount rounded to cents and normalized merchant."""
    payload = "|".join(
        [
            str(account_id),
            txn_date.isoformat(),
            f"{quantize(to_money(amount)):.2f}",
            normalize_merchant(merchant),
        ]
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def fingerprint_of(transaction: Transaction) -> str:
    """Stored fingerprint, recomputed when the record predates fingerprints."""
    return transaction.fingerprint or compute_fingerprint(
        transaction.account_id, transaction.date, transaction.amount, transaction.merchant
    )


class DuplicateMatcher:
    """
    Decides whether a bank candidate is new, a merge or a possible duplicate.

    Checks run in order of confidence:

    1. the candidate's external id is already stored on the account: skip;
    2. exact fingerprint match against a manual record not yet linked to
       the bank: merge;
    3. amount, date and merchant similarity within tolerance: flag;
    4. anything else: create.
    """

    def __init__(
        self,
        duplicate_threshold: float = 0.9,
        date_tolerance_days: int = 2,
        amount_tolerance: Decimal = Decimal("0.01"),
        similarity: Optional[MerchantSimilarity] = None,
    ):
        """
        Initialize with matching tolerances.

        Args:
            duplicate_threshold: Minimum merchant similarity for a flag
            date_tolerance_days: Maximum days between candidate and match
            amount_tolerance: Maximum absolute amount difference
            similarity: Merchant similarity strategy (difflib ratio by default)
        """
        self.duplicate_threshold = duplicate_threshold
        self.date_tolerance_days = date_tolerance_days
        self.amount_tolerance = amount_tolerance
        self.similarity = similarity or SequenceRatioSimilarity()

    @classmethod
    def from_config(cls, config: EngineConfig) -> "DuplicateMatcher":
        sync = config.sync
        return cls(
            duplicate_threshold=sync.duplicate_threshold,
            date_tolerance_days=sync.date_tolerance_days,
            amount_tolerance=sync.amount_tolerance,
            similarity=get_similarity(sync.similarity),
        )

    def classify(
        self,
        candidate: BankSyncCandidate,
        existing: Sequence[Transaction],
    ) -> ClassificationResult:
        """
        Classify a candidate against the stored transactions.

        Args:
            candidate: Incoming bank or CSV transaction
            existing: Stored transactions (other accounts are ignored)

        Returns:
            Classification with the action and the matched transaction id
        """
        fingerprint = compute_fingerprint(
            candidate.account_id, candidate.date, candidate.amount, candidate.merchant
        )
        same_account = sorted(
            (t for t in existing if t.account_id == candidate.account_id),
            key=lambda t: t.id,
        )

        if candidate.external_id:
            for txn in same_account:
                if txn.bank_transaction_id == candidate.external_id:
                    return ClassificationResult(
                        action=MatchAction.SKIP,
                        fingerprint=fingerprint,
                        matched_transaction_id=txn.id,
                        reason=f"Bank reference {candidate.external_id} already imported",
                    )

        for txn in same_account:
            if self._is_merge_target(txn) and fingerprint_of(txn) == fingerprint:
                return ClassificationResult(
                    action=MatchAction.MERGE,
                    fingerprint=fingerprint,
                    matched_transaction_id=txn.id,
                    similarity=1.0,
                    reason="Exact match on account, date, amount and merchant",
                )

        best = self._best_fuzzy_match(candidate, same_account)
        if best is not None:
            txn, score = best
            return ClassificationResult(
                action=MatchAction.FLAG,
                fingerprint=fingerprint,
                matched_transaction_id=txn.id,
                similarity=score,
                reason=f"Possible duplicate, merchant similarity {score:.0%}",
            )

        return ClassificationResult(
            action=MatchAction.CREATE,
            fingerprint=fingerprint,
            reason="No matching transaction",
        )

    def _is_merge_target(self, txn: Transaction) -> bool:
        return (
            txn.source_type is SourceType.MANUAL
            and not txn.is_bank_linked
            and txn.duplicate_status not in (DuplicateStatus.CONFIRMED, DuplicateStatus.REVIEWED)
        )

    def _best_fuzzy_match(
        self,
        candidate: BankSyncCandidate,
        transactions: Sequence[Transaction],
    ) -> Optional[tuple[Transaction, float]]:
        best: Optional[tuple[Transaction, float]] = None
        best_key: Optional[tuple[float, int, int]] = None
        candidate_amount = to_money(candidate.amount)

        for txn in transactions:
            if txn.duplicate_status is DuplicateStatus.REVIEWED:
                continue
            if abs(txn.amount - candidate_amount) > self.amount_tolerance:
                continue

            date_diff = abs((txn.date - candidate.date).days)
            if date_diff > self.date_tolerance_days:
                continue

            score = self.similarity.score(candidate.merchant, txn.merchant)
            if score < self.duplicate_threshold:
                continue

            # Highest similarity, then closest date, then oldest record
            key = (-score, date_diff, txn.id)
            if best_key is None or key < best_key:
                best, best_key = (txn, score), key

        return best
