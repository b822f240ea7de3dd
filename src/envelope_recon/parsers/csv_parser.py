"""
Bank CSV export parser.
Finds the header row under any banner lines, maps columns by header name,
and converts each data row independently into a normalized row.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional
import csv
import logging
import re

import pandas as pd

from ..config import EngineConfig
from ..models import CsvParseResult, NormalizedRow, RowError
from ..utils.exceptions import CsvFormatError
from ..utils.money import ZERO, quantize

logger = logging.getLogger(__name__)

# Commas are only accepted as thousands separators: 1,234 or 1,234.56
THOUSANDS_PATTERN = re.compile(r"-?\d{1,3}(,\d{3})+(\.\d*)?")


@dataclass(frozen=True)
class ColumnMap:
    """Column index for each role found in the header."""

    date: int
    amount: int
    merchant: Optional[int] = None
    memo: Optional[int] = None
    unique_id: Optional[int] = None
    tran_type: Optional[int] = None


def parse_date(text: str) -> date:
    """
    Parse a bank export date.

    ``YYYY/MM/DD`` and ``DD/MM/YYYY`` are told apart by whether the first
    group has four digits; ``YYYY-MM-DD`` is also accepted.

    Raises:
        ValueError: If the text is not a valid date in a known format
    """
    value = text.strip()

    if "/" in value:
        parts = value.split("/")
        if len(parts) != 3:
            raise ValueError(f"Invalid date format: {text}")
        if len(parts[0]) == 4:
            year, month, day = parts
        else:
            day, month, year = parts
            if len(year) != 4:
                raise ValueError(f"Invalid date format: {text}")
    elif "-" in value:
        parts = value.split("-")
        if len(parts) != 3 or len(parts[0]) != 4:
            raise ValueError(f"Invalid date format: {text}")
        year, month, day = parts
    else:
        raise ValueError(f"Invalid date format: {text}")

    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        raise ValueError(f"Invalid date: {text}") from None


def parse_amount(text: str) -> Decimal:
    """
    Parse an amount, ignoring currency symbols and thousands separators.
    Accounting-style parentheses mean a negative amount.

    Raises:
        ValueError: If no number can be read, a comma is not a thousands
            separator, or the value has sub-cent digits
    """
    value = text.strip()
    negative = value.startswith("(") and value.endswith(")")
    cleaned = re.sub(r"[^\d.,\-]", "", value)

    if "," in cleaned:
        if not THOUSANDS_PATTERN.fullmatch(cleaned):
            raise ValueError(f"Invalid amount: {text}")
        cleaned = cleaned.replace(",", "")

    if not cleaned or cleaned in ("-", ".", "-."):
        raise ValueError(f"Invalid amount: {text}")

    try:
        exact = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {text}") from None
    amount = quantize(exact)
    if exact != amount:
        raise ValueError(f"Invalid amount: {text}")

    return -abs(amount) if negative else amount


class BankCsvParser:
    """
    Parser for bank CSV exports.

    Handles banner lines before the header, quoted fields with embedded
    commas, two date dialects and optional id/memo columns. A bad row is
    reported and skipped; it never stops the rest of the file.
    """

    def __init__(self, config: EngineConfig):
        """
        Initialize the parser with configuration.

        Args:
            config: Engine configuration object
        """
        self.config = config
        self.csv_config = config.csv

    def parse_file(self, file_path: Path) -> CsvParseResult:
        """Read and parse a CSV file from disk."""
        logger.info(f"Parsing bank CSV file: {file_path}")
        return self.parse_bytes(file_path.read_bytes())

    def parse_bytes(self, raw: bytes) -> CsvParseResult:
        """
        Decode raw upload bytes and parse them.

        Raises:
            CsvFormatError: If the bytes are not valid text in the configured encoding
        """
        try:
            text = raw.decode(self.csv_config.encoding)
        except UnicodeDecodeError as e:
            raise CsvFormatError(
                f"CSV file is not valid {self.csv_config.encoding} text: {e}"
            ) from e
        return self.parse(text)

    def parse(self, raw_text: str) -> CsvParseResult:
        """
        Parse CSV text into normalized rows and per-row errors.

        Args:
            raw_text: Entire file content

        Returns:
            Parsed rows, row errors, and the header's line number

        Raises:
            CsvFormatError: If the file is empty or has no recognizable header
        """
        numbered = [
            (number, line)
            for number, line in enumerate(raw_text.splitlines(), start=1)
            if line.strip()
        ]
        if not numbered:
            raise CsvFormatError("CSV file is empty")

        header_pos = self._find_header(numbered)
        if header_pos is None:
            raise CsvFormatError(
                "No header row with date and amount columns found in the first "
                f"{self.csv_config.header_scan_lines} lines"
            )

        header_number, header_line = numbered[header_pos]
        columns = self._map_columns(self._split_row(header_line))
        logger.debug(f"Header found at line {header_number}: {columns}")

        result = CsvParseResult(header_row=header_number)
        for line_number, line in numbered[header_pos + 1 :]:
            try:
                fields = self._split_row(line)
                result.rows.append(self._normalize_row(fields, line_number, columns))
            except ValueError as e:
                logger.warning(f"Row {line_number}: {e}")
                result.errors.append(RowError(row_number=line_number, reason=str(e)))

        logger.info(
            f"Parsed {len(result.rows)} rows with {len(result.errors)} errors "
            f"(header at line {header_number})"
        )
        return result

    def _split_row(self, line: str) -> list[str]:
        """Split one line into fields, honouring double-quoted fields."""
        try:
            reader = csv.reader(
                [line],
                delimiter=self.csv_config.delimiter,
                skipinitialspace=True,
                strict=True,
            )
            fields = next(reader, [])
        except csv.Error as e:
            raise ValueError(f"Malformed row: {e}") from None
        return [f.strip() for f in fields]

    def _find_header(self, numbered: list[tuple[int, str]]) -> Optional[int]:
        """Position in ``numbered`` of the header, searched by physical line number."""
        aliases = self.csv_config.columns
        for pos, (line_number, line) in enumerate(numbered):
            if line_number > self.csv_config.header_scan_lines:
                break
            try:
                names = [f.lower() for f in self._split_row(line)]
            except ValueError:
                continue
            has_date = any(self._matches(n, aliases.date) for n in names)
            has_amount = any(self._matches(n, aliases.amount) for n in names)
            if has_date and has_amount:
                return pos
        return None

    @staticmethod
    def _matches(name: str, aliases: list[str]) -> bool:
        return any(alias.lower() in name for alias in aliases)

    def _map_columns(self, header: list[str]) -> ColumnMap:
        """Assign each header column to at most one role, first match wins."""
        aliases = self.csv_config.columns
        names = [h.lower() for h in header]
        claimed: set[int] = set()
        found: dict[str, Optional[int]] = {}

        for role in ("date", "amount", "unique_id", "tran_type", "merchant", "memo"):
            found[role] = None
            for index, name in enumerate(names):
                if index not in claimed and self._matches(name, getattr(aliases, role)):
                    found[role] = index
                    claimed.add(index)
                    break

        return ColumnMap(**found)

    def _normalize_row(
        self, fields: list[str], line_number: int, columns: ColumnMap
    ) -> NormalizedRow:
        """
        Convert split fields into a normalized row.

        Raises:
            ValueError: With a user-readable reason when the row is unusable
        """
        if len(fields) <= max(columns.date, columns.amount):
            raise ValueError("Insufficient columns")

        def field(index: Optional[int]) -> str:
            if index is None or index >= len(fields):
                return ""
            return fields[index]

        date_text = field(columns.date)
        amount_text = field(columns.amount)
        memo = field(columns.memo)
        merchant = field(columns.merchant) or memo

        if not date_text or not amount_text or not merchant:
            raise ValueError("Missing required fields (date, merchant, or amount)")

        return NormalizedRow(
            row_number=line_number,
            date=parse_date(date_text),
            amount=parse_amount(amount_text),
            merchant=merchant,
            memo=memo or None,
            unique_id=field(columns.unique_id) or None,
            tran_type=field(columns.tran_type) or None,
        )

    def summarize(self, rows: list[NormalizedRow]) -> dict[str, Any]:
        """
        Summarize parsed rows for preview before import.

        Args:
            rows: Rows returned by :meth:`parse`

        Returns:
            Dictionary with row count, date range, totals and top merchants
        """
        if not rows:
            return {
                "row_count": 0,
                "date_range": {"start": None, "end": None},
                "totals": {
                    "debit_count": 0,
                    "credit_count": 0,
                    "total_debits": ZERO,
                    "total_credits": ZERO,
                },
                "top_merchants": {},
                "tran_types": {},
            }

        df = pd.DataFrame(
            {
                "date": pd.to_datetime([r.date for r in rows]),
                "amount": [r.amount for r in rows],
                "merchant": [r.merchant for r in rows],
                "tran_type": [r.tran_type or "" for r in rows],
            }
        )

        debits = df.loc[df["amount"] < ZERO, "amount"]
        credits = df.loc[df["amount"] >= ZERO, "amount"]
        top_merchants = df["merchant"].value_counts().head(5)
        tran_types = df.loc[df["tran_type"] != "", "tran_type"].value_counts()

        return {
            "row_count": len(df),
            "date_range": {
                "start": df["date"].min().date().isoformat(),
                "end": df["date"].max().date().isoformat(),
            },
            "totals": {
                "debit_count": len(debits),
                "credit_count": len(credits),
                "total_debits": sum(debits, ZERO),
                "total_credits": sum(credits, ZERO),
            },
            "top_merchants": {str(k): int(v) for k, v in top_merchants.items()},
            "tran_types": {str(k): int(v) for k, v in tran_types.items()},
        }
