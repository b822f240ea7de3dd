"""
Excel report generator for envelope reconciliation.
Creates a multi-sheet workbook with the summary, envelope balances,
transactions, flagged duplicates and the ledger journal.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import EngineConfig, SheetConfig
from ..models import (
    DuplicateStatus,
    Envelope,
    LedgerEntry,
    ReconciliationStatus,
    ReconciliationSummary,
    Transaction,
)
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
APPROVED_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
PENDING_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

STATUS_FILLS = {
    ReconciliationStatus.APPROVED: APPROVED_FILL,
    ReconciliationStatus.PENDING: PENDING_FILL,
    ReconciliationStatus.UNMATCHED: UNMATCHED_FILL,
}


class ExcelReportGenerator:
    """Generates Excel reconciliation reports with multiple sheets."""

    def __init__(self, config: EngineConfig):
        """
        Initialize the report generator.

        Args:
            config: Engine configuration
        """
        self.config = config
        self.sheet_config = config.output.sheets

    def default_output_path(self, output_dir: Path) -> Path:
        """Build a timestamped report path from the filename template."""
        now = datetime.now()
        filename = self.config.output.filename_template.format(
            date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S")
        )
        return output_dir / filename

    def generate_report(
        self,
        summary: ReconciliationSummary,
        envelopes: list[Envelope],
        transactions: list[Transaction],
        journal: list[LedgerEntry],
        output_path: Path,
    ) -> Path:
        """
        Generate the complete reconciliation report.

        Args:
            summary: Reconciliation summary
            envelopes: Envelopes with current balances
            transactions: Transactions to list
            journal: Ledger journal entries
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()

        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)

        envelope_names = {e.id: e.name for e in envelopes}
        sheets = self.sheet_config

        if sheets.summary.enabled:
            self._create_summary_sheet(wb, sheets.summary, summary)
        if sheets.envelopes.enabled:
            self._create_envelopes_sheet(wb, sheets.envelopes, envelopes)
        if sheets.transactions.enabled:
            self._create_transactions_sheet(
                wb, sheets.transactions, transactions, envelope_names
            )
        if sheets.duplicates.enabled:
            flagged = [
                t for t in transactions if t.duplicate_status is DuplicateStatus.POTENTIAL
            ]
            self._create_duplicates_sheet(wb, sheets.duplicates, flagged, transactions)
        if sheets.journal.enabled:
            self._create_journal_sheet(wb, sheets.journal, journal, envelope_names)

        if not wb.worksheets:
            raise ReportGenerationError("All report sheets are disabled")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Could not write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(
        self, wb: Workbook, sheet: SheetConfig, summary: ReconciliationSummary
    ) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(sheet.name)

        ws["A1"] = "Envelope Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")
        ws["A2"] = f"Generated {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"

        ws["A4"] = "Balances"
        ws["A4"].font = Font(bold=True)

        balance_data = [
            ("Total Bank Balance:", f"${summary.total_bank_balance:,.2f}"),
            ("Total Envelope Balance:", f"${summary.total_envelope_balance:,.2f}"),
            ("Difference:", f"${summary.difference:,.2f}"),
            ("Reconciled:", "Yes" if summary.is_reconciled else "No"),
        ]
        for i, (label, value) in enumerate(balance_data, start=5):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        ws["B8"].fill = APPROVED_FILL if summary.is_reconciled else UNMATCHED_FILL

        ws["A10"] = "Transaction Status"
        ws["A10"].font = Font(bold=True)

        count_data = [
            ("Unmatched:", summary.unmatched_count),
            ("Pending:", summary.pending_count),
            ("Approved:", summary.approved_count),
            ("Total:", summary.total_count),
            ("Potential Duplicates:", summary.potential_duplicate_count),
        ]
        for i, (label, value) in enumerate(count_data, start=11):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 25

    def _create_envelopes_sheet(
        self, wb: Workbook, sheet: SheetConfig, envelopes: list[Envelope]
    ) -> None:
        """Create the envelope balances sheet."""
        ws = wb.create_sheet(sheet.name)
        self._write_headers(
            ws,
            1,
            ["ID", "Name", "Budgeted", "Opening Balance", "Current Balance", "Monitored", "Active"],
        )

        for row_num, envelope in enumerate(envelopes, start=2):
            row_data = [
                envelope.id,
                f"{envelope.icon} {envelope.name}",
                float(envelope.budgeted_amount),
                float(envelope.opening_balance),
                float(envelope.current_balance),
                "Yes" if envelope.is_monitored else "",
                "Yes" if envelope.is_active else "No",
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if col == 5 and envelope.current_balance < 0:
                    cell.fill = UNMATCHED_FILL

        self._auto_fit_columns(ws)

    def _create_transactions_sheet(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        transactions: list[Transaction],
        envelope_names: dict[int, str],
    ) -> None:
        """Create the transactions sheet, coloured by status."""
        ws = wb.create_sheet(sheet.name)
        self._write_headers(
            ws,
            1,
            [
                "ID",
                "Date",
                "Merchant",
                "Amount",
                "Status",
                "Edited",
                "Source",
                "Envelopes",
                "Bank Reference",
                "Description",
            ],
        )

        for row_num, txn in enumerate(transactions, start=2):
            splits = ", ".join(
                f"{envelope_names.get(a.envelope_id, a.envelope_id)}: {a.amount:.2f}"
                for a in txn.allocations
            )
            row_data = [
                txn.id,
                txn.date,
                txn.merchant,
                float(txn.amount),
                txn.status.value,
                "Yes" if txn.is_edited else "",
                txn.source_type.value,
                splits,
                txn.bank_transaction_id or "",
                txn.description or "",
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if col == 5:
                    cell.fill = STATUS_FILLS[txn.status]

        self._auto_fit_columns(ws)

    def _create_duplicates_sheet(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        flagged: list[Transaction],
        transactions: list[Transaction],
    ) -> None:
        """Create the potential duplicates sheet, one row per flagged pair."""
        ws = wb.create_sheet(sheet.name)
        self._write_headers(
            ws,
            1,
            [
                "Flagged ID",
                "Flagged Date",
                "Flagged Merchant",
                "Flagged Amount",
                "Original ID",
                "Original Date",
                "Original Merchant",
                "Original Amount",
            ],
        )

        by_id = {t.id: t for t in transactions}
        for row_num, txn in enumerate(flagged, start=2):
            original: Optional[Transaction] = by_id.get(txn.duplicate_of_id)
            row_data = [
                txn.id,
                txn.date,
                txn.merchant,
                float(txn.amount),
                original.id if original else "",
                original.date if original else "",
                original.merchant if original else "",
                float(original.amount) if original else "",
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = PENDING_FILL

        self._auto_fit_columns(ws)

    def _create_journal_sheet(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        journal: list[LedgerEntry],
        envelope_names: dict[int, str],
    ) -> None:
        """Create the ledger journal sheet."""
        ws = wb.create_sheet(sheet.name)
        self._write_headers(
            ws,
            1,
            ["Entry", "Timestamp", "Envelope", "Kind", "Amount", "Transaction", "Reference", "Description"],
        )

        for row_num, entry in enumerate(journal, start=2):
            row_data = [
                entry.id,
                entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                envelope_names.get(entry.envelope_id, str(entry.envelope_id)),
                entry.kind.value,
                float(entry.amount),
                entry.transaction_id or "",
                entry.reference or "",
                entry.description,
            ]
            for col, value in enumerate(row_data, start=1):
                ws.cell(row=row_num, column=col, value=value).border = THIN_BORDER

        self._auto_fit_columns(ws)

    @staticmethod
    def _write_headers(ws: Worksheet, row: int, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            column = column_cells[0].column_letter
            max_length = max(
                (len(str(cell.value)) for cell in column_cells if cell.value is not None),
                default=0,
            )
            ws.column_dimensions[column].width = min(max_length + 2, 50)
