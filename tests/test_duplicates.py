"""Tests for the duplicate matcher and merchant similarity strategies."""

from datetime import date
from decimal import Decimal
import random

import pytest

from envelope_recon.config import EngineConfig
from envelope_recon.matching import (
    DuplicateMatcher,
    SequenceRatioSimilarity,
    compute_fingerprint,
    get_similarity,
    normalize_merchant,
)
from envelope_recon.models import (
    BankSyncCandidate,
    DuplicateStatus,
    MatchAction,
    SourceType,
    Transaction,
)
from envelope_recon.utils.exceptions import ConfigurationError

DAY = date(2024, 12, 21)


def _txn(id, amount="-45.50", merchant="New World", txn_date=DAY, account_id=1, **kwargs):
    value = Decimal(amount)
    return Transaction(
        id=id,
        user_id=1,
        account_id=account_id,
        amount=value,
        merchant=merchant,
        date=txn_date,
        fingerprint=compute_fingerprint(account_id, txn_date, value, merchant),
        **kwargs,
    )


def _candidate(amount="-45.50", merchant="New World", txn_date=DAY, account_id=1, external_id=None):
    return BankSyncCandidate(
        account_id=account_id,
        amount=Decimal(amount),
        date=txn_date,
        merchant=merchant,
        external_id=external_id,
    )


@pytest.fixture
def matcher():
    return DuplicateMatcher()


class TestFingerprint:
    """Tests for content fingerprints."""

    def test_ignores_case_punctuation_and_amount_format(self):
        assert compute_fingerprint(1, DAY, Decimal("-45.5"), "NEW WORLD!") == compute_fingerprint(
            1, DAY, Decimal("-45.50"), "new  world"
        )

    def test_depends_on_account(self):
        assert compute_fingerprint(1, DAY, Decimal("-45.50"), "New World") != compute_fingerprint(
            2, DAY, Decimal("-45.50"), "New World"
        )

    def test_is_sha256_hex(self):
        assert len(compute_fingerprint(1, DAY, Decimal("1.00"), "x")) == 64

    def test_normalize_merchant(self):
        assert normalize_merchant("  Pak'n Save, Albany ") == "pakn save albany"


class TestClassify:
    """Tests for candidate classification."""

    def test_identical_manual_transaction_merges(self, matcher):
        manual = _txn(1)
        result = matcher.classify(_candidate(), [manual])

        assert result.action is MatchAction.MERGE
        assert result.matched_transaction_id == 1

    def test_no_existing_transactions_creates(self, matcher):
        result = matcher.classify(_candidate(), [])

        assert result.action is MatchAction.CREATE
        assert result.matched_transaction_id is None

    def test_other_accounts_are_ignored(self, matcher):
        result = matcher.classify(_candidate(), [_txn(1, account_id=2)])
        assert result.action is MatchAction.CREATE

    def test_known_external_id_is_skipped(self, matcher):
        existing = _txn(1, source_type=SourceType.BANK_SYNC, bank_transaction_id="abc")
        result = matcher.classify(_candidate(external_id="abc"), [existing])

        assert result.action is MatchAction.SKIP
        assert result.matched_transaction_id == 1

    def test_bank_linked_record_is_flagged_not_merged(self, matcher):
        existing = _txn(1, bank_transaction_id="other")
        result = matcher.classify(_candidate(), [existing])

        assert result.action is MatchAction.FLAG
        assert result.similarity == pytest.approx(1.0)

    def test_confirmed_record_is_flagged_not_merged(self, matcher):
        existing = _txn(1, duplicate_status=DuplicateStatus.CONFIRMED)
        assert matcher.classify(_candidate(), [existing]).action is MatchAction.FLAG

    def test_imported_record_is_not_a_merge_target(self, matcher):
        existing = _txn(1, source_type=SourceType.IMPORT)
        assert matcher.classify(_candidate(), [existing]).action is MatchAction.FLAG

    def test_reviewed_record_is_excluded(self, matcher):
        existing = _txn(1, duplicate_status=DuplicateStatus.REVIEWED)
        assert matcher.classify(_candidate(), [existing]).action is MatchAction.CREATE

    def test_nearby_date_is_flagged(self, matcher):
        manual = _txn(1, txn_date=date(2024, 12, 20))
        result = matcher.classify(_candidate(), [manual])

        assert result.action is MatchAction.FLAG
        assert result.matched_transaction_id == 1

    @pytest.mark.parametrize(
        "amount, action",
        [("-45.51", MatchAction.FLAG), ("-45.52", MatchAction.CREATE)],
    )
    def test_amount_tolerance(self, matcher, amount, action):
        result = matcher.classify(_candidate(amount=amount), [_txn(1)])
        assert result.action is action

    @pytest.mark.parametrize(
        "existing_date, action",
        [(date(2024, 12, 19), MatchAction.FLAG), (date(2024, 12, 18), MatchAction.CREATE)],
    )
    def test_date_tolerance(self, matcher, existing_date, action):
        result = matcher.classify(_candidate(), [_txn(1, txn_date=existing_date)])
        assert result.action is action

    def test_dissimilar_merchant_creates(self, matcher):
        existing = _txn(1, merchant="Genesis Energy", txn_date=date(2024, 12, 20))
        assert matcher.classify(_candidate(), [existing]).action is MatchAction.CREATE

    def test_threshold_is_configurable(self):
        existing = _txn(1, merchant="New World Auckland", txn_date=date(2024, 12, 20))
        candidate = _candidate(merchant="New World Auckland Central")

        assert DuplicateMatcher().classify(candidate, [existing]).action is MatchAction.CREATE
        lenient = DuplicateMatcher(duplicate_threshold=0.5)
        assert lenient.classify(candidate, [existing]).action is MatchAction.FLAG

    def test_best_match_prefers_closest_date(self, matcher):
        existing = [
            _txn(1, txn_date=date(2024, 12, 19)),
            _txn(2, txn_date=date(2024, 12, 20)),
        ]
        assert matcher.classify(_candidate(), existing).matched_transaction_id == 2

    def test_best_match_prefers_higher_similarity(self, matcher):
        existing = [
            _txn(1, merchant="New World", txn_date=date(2024, 12, 19)),
            _txn(2, merchant="New Worlds", txn_date=date(2024, 12, 20)),
        ]
        assert matcher.classify(_candidate(), existing).matched_transaction_id == 1

    def test_ties_go_to_lowest_id(self, matcher):
        existing = [
            _txn(5, txn_date=date(2024, 12, 20)),
            _txn(3, txn_date=date(2024, 12, 22)),
        ]
        assert matcher.classify(_candidate(), existing).matched_transaction_id == 3

    def test_classification_is_deterministic(self, matcher):
        existing = [
            _txn(1, txn_date=date(2024, 12, 19)),
            _txn(2, merchant="New Worlds", txn_date=date(2024, 12, 20)),
            _txn(3, merchant="Countdown"),
            _txn(4, txn_date=date(2024, 12, 23)),
        ]
        expected = matcher.classify(_candidate(), existing)

        for seed in range(5):
            shuffled = list(existing)
            random.Random(seed).shuffle(shuffled)
            assert matcher.classify(_candidate(), shuffled) == expected

    def test_from_config(self):
        config = EngineConfig()
        config.sync.duplicate_threshold = 0.5
        config.sync.similarity = "token_set"

        matcher = DuplicateMatcher.from_config(config)

        assert matcher.duplicate_threshold == 0.5
        assert matcher.similarity.name == "token_set"


class TestSimilarity:
    """Tests for merchant similarity strategies."""

    def test_sequence_ratio_identical(self):
        assert SequenceRatioSimilarity().score("New World", "NEW WORLD.") == 1.0

    def test_sequence_ratio_empty(self):
        assert SequenceRatioSimilarity().score("", "New World") == 0.0

    def test_token_set_ignores_word_order(self):
        strategy = get_similarity("token_set")
        assert strategy.score("New World Auckland", "Auckland New World") == 1.0
        assert strategy.score("New World", "New World Auckland") == pytest.approx(2 / 3)

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError):
            get_similarity("soundex")
