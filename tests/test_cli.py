"""Tests for the command-line interface."""

import logging

import pytest
from click.testing import CliRunner

from envelope_recon.cli import main


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.getLogger("envelope_recon").handlers = []


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def state(tmp_path):
    return tmp_path / "state.json"


@pytest.fixture
def invoke(runner, state):
    def _invoke(*args):
        return runner.invoke(main, ["--state", str(state), *args])

    return _invoke


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "export.csv"
    path.write_text(
        "Date,Unique Id,Payee,Amount,Memo\n"
        "2025/01/10,U100,Pak n Save,-30.00,EFTPOS\n"
        "2025/01/12,U101,Countdown,-20.00,EFTPOS\n"
    )
    return path


class TestCli:
    """Tests for CLI commands against a seeded state file."""

    def test_init_config(self, runner, tmp_path):
        output = tmp_path / "config.yaml"

        result = runner.invoke(main, ["init-config", "-o", str(output)])

        assert result.exit_code == 0
        assert output.exists()

    def test_summary_on_fresh_state(self, invoke):
        result = invoke("summary")

        assert result.exit_code == 0
        assert "$2,534.67" in result.output
        assert "$780.47" in result.output

    def test_envelopes(self, invoke):
        result = invoke("envelopes")

        assert result.exit_code == 0
        assert "$534.67" in result.output
        assert "$245.80" in result.output

    def test_import_then_approve(self, invoke, csv_file, state):
        imported = invoke("import-csv", str(csv_file), "-a", "1")
        assert imported.exit_code == 0
        assert state.exists()

        approved = invoke("approve", "3", "-a", "1:-30.00")
        assert approved.exit_code == 0

        assert "$504.67" in invoke("envelopes").output

    def test_approve_uses_remembered_envelope(self, invoke, csv_file):
        invoke("import-csv", str(csv_file), "-a", "1")

        result = invoke("approve", "4")

        assert result.exit_code == 0
        assert "Using remembered envelope 1" in result.output
        assert "$514.67" in invoke("envelopes").output

    def test_approve_amount_mismatch(self, invoke):
        result = invoke("approve", "1", "-a", "1:-10.00")

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_approve_bad_allocation_format(self, invoke):
        result = invoke("approve", "1", "-a", "nonsense")
        assert result.exit_code == 2

    def test_transfer(self, invoke):
        result = invoke("transfer", "1", "2", "10.00")

        assert result.exit_code == 0
        assert "$524.67" in result.output
        assert "$255.80" in result.output

    def test_delete_unknown_transaction(self, invoke):
        result = invoke("delete", "99")
        assert result.exit_code == 1

    def test_resolve_rejects_unknown_action(self, invoke):
        result = invoke("resolve", "1", "2", "ignore")
        assert result.exit_code == 2

    def test_sync_demo_connection(self, invoke):
        result = invoke("sync", "1")

        assert result.exit_code == 0
        assert "2 created" in result.output

        again = invoke("sync", "1")
        assert "2 skipped" in again.output

    def test_parse_csv(self, invoke, csv_file):
        result = invoke("parse-csv", str(csv_file))

        assert result.exit_code == 0
        assert "Rows parsed: 2" in result.output

    def test_report(self, invoke, tmp_path):
        output = tmp_path / "report.xlsx"

        result = invoke("report", "-o", str(output))

        assert result.exit_code == 0
        assert output.exists()

    def test_transactions_review_queue(self, invoke, csv_file):
        invoke("import-csv", str(csv_file), "-a", "1")

        everything = invoke("transactions")
        queue = invoke("transactions", "--review")

        assert queue.exit_code == 0
        assert "Review Queue" in queue.output
        assert "$-25.90" in everything.output
        assert "$-25.90" not in queue.output
        assert "$-30.00" in queue.output
