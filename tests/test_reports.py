"""Tests for the Excel report generator."""

from datetime import date

import pytest
from openpyxl import load_workbook

from envelope_recon.config import EngineConfig
from envelope_recon.reports import ExcelReportGenerator
from envelope_recon.utils.exceptions import ReportGenerationError


def _write(engine, config, path):
    return ExcelReportGenerator(config).generate_report(
        summary=engine.get_reconciliation_summary(1),
        envelopes=engine.get_envelopes(1),
        transactions=engine.get_transactions(1),
        journal=engine.get_ledger_entries(),
        output_path=path,
    )


@pytest.fixture
def populated(engine, account, envelope_a, make_transaction):
    approved = make_transaction()
    engine.approve_transaction(approved.id, [(envelope_a.id, "-45.67")])
    make_transaction(amount="-45.67", merchant="Countdown", txn_date=date(2024, 12, 22))
    return engine


class TestExcelReportGenerator:
    """Tests for ExcelReportGenerator."""

    def test_all_sheets_written(self, populated, tmp_path):
        path = _write(populated, EngineConfig(), tmp_path / "out" / "report.xlsx")

        wb = load_workbook(path)
        assert wb.sheetnames == [
            "Summary",
            "Envelopes",
            "Transactions",
            "Potential Duplicates",
            "Ledger Journal",
        ]
        assert wb["Summary"]["B8"].value == "No"
        assert wb["Envelopes"]["E2"].value == pytest.approx(54.33)
        assert wb["Transactions"].max_row == 3
        assert wb["Ledger Journal"]["D2"].value == "allocation"

    def test_disabled_sheet_is_skipped(self, populated, tmp_path):
        config = EngineConfig(output={"sheets": {"journal": {"enabled": False, "name": "Ledger Journal"}}})

        wb = load_workbook(_write(populated, config, tmp_path / "report.xlsx"))

        assert "Ledger Journal" not in wb.sheetnames

    def test_all_sheets_disabled(self, populated, tmp_path):
        off = {"enabled": False, "name": "x"}
        config = EngineConfig(
            output={
                "sheets": {
                    "summary": off,
                    "envelopes": off,
                    "transactions": off,
                    "duplicates": off,
                    "journal": off,
                }
            }
        )

        with pytest.raises(ReportGenerationError):
            _write(populated, config, tmp_path / "report.xlsx")

    def test_default_output_path(self, tmp_path):
        path = ExcelReportGenerator(EngineConfig()).default_output_path(tmp_path)

        assert path.parent == tmp_path
        assert path.name.startswith("envelope_report_")
        assert path.suffix == ".xlsx"
