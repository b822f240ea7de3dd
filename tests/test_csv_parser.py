"""Tests for the bank CSV parser."""

from datetime import date
from decimal import Decimal

import pytest

from envelope_recon.config import EngineConfig
from envelope_recon.parsers import BankCsvParser, parse_amount, parse_date
from envelope_recon.utils.exceptions import CsvFormatError


@pytest.fixture
def parser():
    return BankCsvParser(EngineConfig())


class TestParseDate:
    """Tests for the accepted date dialects."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2024/12/21", date(2024, 12, 21)),
            ("21/12/2024", date(2024, 12, 21)),
            ("1/2/2024", date(2024, 2, 1)),
            ("2024-12-21", date(2024, 12, 21)),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_date(text) == expected

    @pytest.mark.parametrize("text", ["12/21/24", "2024/13/01", "31/02/2024", "yesterday", "21-12-2024"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_date(text)


class TestParseAmount:
    """Tests for amount cleanup."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("-45.50", Decimal("-45.50")),
            ("$1,234.56", Decimal("1234.56")),
            ("(12.00)", Decimal("-12.00")),
            (" 7 ", Decimal("7.00")),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_amount(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "-", "1.2.3"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_amount(text)

    @pytest.mark.parametrize("text", ["-1.234,56", "12,5", "1,23,456.00"])
    def test_comma_must_separate_thousands(self, text):
        with pytest.raises(ValueError, match="Invalid amount"):
            parse_amount(text)

    def test_sub_cent_digits_are_rejected(self):
        with pytest.raises(ValueError, match="Invalid amount"):
            parse_amount("12.345")

    def test_trailing_zero_is_not_rounding(self):
        assert parse_amount("12.340") == Decimal("12.34")

    def test_european_amount_becomes_row_error(self, parser):
        result = parser.parse('Date,Payee,Amount\n21/12/2024,New World,"-1.234,56"\n')

        assert result.rows == []
        assert result.errors[0].row_number == 2
        assert "Invalid amount" in result.errors[0].reason


class TestHeaderDetection:
    """Tests for locating the header under banner lines."""

    def test_skips_banner_lines(self, parser):
        text = (
            "Account: 12-3456-7890\n"
            "Statement period,01/12/2024 - 31/12/2024\n"
            "\n"
            "Date,Payee,Amount,Memo\n"
            "21/12/2024,New World,-45.50,\n"
        )
        result = parser.parse(text)

        assert result.header_row == 4
        assert len(result.rows) == 1
        assert result.rows[0].row_number == 5

    def test_missing_header(self, parser):
        with pytest.raises(CsvFormatError):
            parser.parse("foo,bar\n1,2\n")

    def test_header_needs_amount_column(self, parser):
        with pytest.raises(CsvFormatError):
            parser.parse("Date,Payee\n21/12/2024,New World\n")

    def test_header_beyond_scan_window(self, parser):
        banner = "".join(f"Banner line {i}\n" for i in range(10))
        with pytest.raises(CsvFormatError):
            parser.parse(banner + "Date,Payee,Amount\n21/12/2024,New World,-45.50\n")

    def test_blank_lines_count_toward_scan_window(self, parser):
        text = "Exported statement\n" + "\n" * 12 + "Date,Payee,Amount\n21/12/2024,New World,-45.50\n"
        with pytest.raises(CsvFormatError):
            parser.parse(text)

    def test_header_on_last_line_of_window(self, parser):
        text = "\n" * 9 + "Date,Payee,Amount\n21/12/2024,New World,-45.50\n"
        result = parser.parse(text)

        assert result.header_row == 10
        assert len(result.rows) == 1

    def test_empty_file(self, parser):
        with pytest.raises(CsvFormatError):
            parser.parse("\n\n")


class TestRows:
    """Tests for row normalization and per-row isolation."""

    def test_simple_row(self, parser):
        result = parser.parse("Date,Payee,Amount,Memo\n21/12/2024,New World,-45.50,\n")

        row = result.rows[0]
        assert row.date == date(2024, 12, 21)
        assert row.merchant == "New World"
        assert row.amount == Decimal("-45.50")
        assert row.memo is None
        assert row.unique_id is None
        assert result.errors == []

    def test_quoted_fields_keep_commas(self, parser):
        text = 'Date,Payee,Amount,Memo\n2024/12/21,"Smith, J & Co",-10.00,"Ref 1, 2"\n'
        row = parser.parse(text).rows[0]

        assert row.merchant == "Smith, J & Co"
        assert row.memo == "Ref 1, 2"
        assert row.amount == Decimal("-10.00")

    def test_columns_located_by_name(self, parser):
        text = (
            "Tran Type,Unique Id,Amount,Payee,Memo,Date\n"
            "D/C,ABC123,-20.00,BP Connect,Fuel,2024/12/20\n"
        )
        row = parser.parse(text).rows[0]

        assert row.tran_type == "D/C"
        assert row.unique_id == "ABC123"
        assert row.amount == Decimal("-20.00")
        assert row.merchant == "BP Connect"
        assert row.memo == "Fuel"
        assert row.date == date(2024, 12, 20)

    def test_merchant_falls_back_to_memo(self, parser):
        row = parser.parse("Date,Amount,Description\n21/12/2024,-5.00,Coffee\n").rows[0]

        assert row.merchant == "Coffee"
        assert row.memo == "Coffee"

    def test_one_bad_row_does_not_stop_the_rest(self, parser):
        text = (
            "Date,Payee,Amount,Memo\n"
            "21/12/2024,New World,-45.50,\n"
            "20/12/2024,Genesis Energy,-120.00,\n"
            "32/13/2024,Bad Row,-1.00,\n"
            "19/12/2024,BP,-60.00,\n"
            "18/12/2024,Salary,2500.00,\n"
        )
        result = parser.parse(text)

        assert len(result.rows) == 4
        assert len(result.errors) == 1
        assert result.errors[0].row_number == 4
        assert "Invalid date" in result.errors[0].reason

    def test_row_without_merchant_or_memo(self, parser):
        result = parser.parse("Date,Payee,Amount,Memo\n21/12/2024,,-5.00,\n")

        assert result.rows == []
        assert "Missing required fields" in result.errors[0].reason

    def test_short_row(self, parser):
        result = parser.parse("Date,Payee,Amount\n21/12/2024\n")
        assert result.errors[0].reason == "Insufficient columns"

    def test_unterminated_quote(self, parser):
        text = 'Date,Payee,Amount\n21/12/2024,"Broken,-5.00\n21/12/2024,Fine,-1.00\n'
        result = parser.parse(text)

        assert [r.merchant for r in result.rows] == ["Fine"]
        assert result.errors[0].row_number == 2

    def test_bytes_with_bom_and_crlf(self, parser):
        raw = b"\xef\xbb\xbfDate,Payee,Amount\r\n21/12/2024,New World,-45.50\r\n"
        result = parser.parse_bytes(raw)

        assert result.header_row == 1
        assert result.rows[0].merchant == "New World"

    def test_undecodable_bytes(self, parser):
        with pytest.raises(CsvFormatError):
            parser.parse_bytes(b"\xff\xfe\x00bad")


class TestSummarize:
    """Tests for the preview summary."""

    def test_summary(self, parser):
        text = (
            "Date,Payee,Amount\n"
            "21/12/2024,New World,-45.50\n"
            "23/12/2024,New World,-20.00\n"
            "20/12/2024,Salary,100.00\n"
        )
        summary = parser.summarize(parser.parse(text).rows)

        assert summary["row_count"] == 3
        assert summary["date_range"] == {"start": "2024-12-20", "end": "2024-12-23"}
        assert summary["totals"]["debit_count"] == 2
        assert summary["totals"]["total_debits"] == Decimal("-65.50")
        assert summary["totals"]["credit_count"] == 1
        assert summary["totals"]["total_credits"] == Decimal("100.00")
        assert summary["top_merchants"]["New World"] == 2

    def test_empty(self, parser):
        assert parser.summarize([])["row_count"] == 0
