"""Tests for state persistence across restarts."""

from datetime import date
from decimal import Decimal

from envelope_recon.config import EngineConfig, StorageConfig
from envelope_recon.models import DuplicateStatus, EntryKind, ReconciliationStatus
from envelope_recon.reconciliation import ReconciliationEngine
from envelope_recon.storage import InMemoryRepository


def _engine(state_file, seed=False):
    config = EngineConfig(storage=StorageConfig(state_file=str(state_file), seed_demo_data=seed))
    return ReconciliationEngine.from_config(config)


class TestPersistence:
    """Tests for the JSON state file."""

    def test_missing_file_loads_nothing(self, tmp_path):
        repository = InMemoryRepository(tmp_path / "absent.json")
        assert repository.load() is False

    def test_persist_without_file_is_a_no_op(self, tmp_path):
        InMemoryRepository().persist()
        assert list(tmp_path.iterdir()) == []

    def test_round_trip(self, tmp_path):
        state_file = tmp_path / "state.json"
        engine = _engine(state_file, seed=True)
        engine.persist()

        restored = _engine(state_file)

        assert [e.current_balance for e in restored.get_envelopes(1)] == [
            Decimal("534.67"),
            Decimal("245.80"),
        ]
        txn = restored.get_transaction(1)
        assert txn.date == date(2025, 1, 5)
        assert txn.status is ReconciliationStatus.APPROVED
        assert txn.duplicate_status is DuplicateStatus.NONE
        assert restored.get_ledger_entries(1)[0].kind is EntryKind.ALLOCATION
        restored.verify()

    def test_restored_state_still_reverses_on_delete(self, tmp_path):
        state_file = tmp_path / "state.json"
        _engine(state_file, seed=True).persist()

        restored = _engine(state_file)
        restored.delete_transaction(1)

        assert restored.ledger.balance(1) == Decimal("580.34")
        restored.verify()

    def test_identifiers_continue_after_restart(self, tmp_path):
        state_file = tmp_path / "state.json"
        _engine(state_file, seed=True).persist()

        restored = _engine(state_file)
        txn = restored.create_transaction(
            user_id=1, account_id=1, amount="-5.00", merchant="Cafe", txn_date=date(2025, 1, 7)
        )

        assert txn.id == 3

    def test_restart_keeps_duplicate_classification(self, tmp_path):
        state_file = tmp_path / "state.json"
        engine = _engine(state_file, seed=True)
        engine.persist()

        restored = _engine(state_file)
        result = restored.import_csv(
            b"Date,Payee,Amount\n2025-01-05,Countdown,-45.67\n", 1
        )

        assert result.merged == 1
        assert len(restored.get_transactions(1)) == 2
