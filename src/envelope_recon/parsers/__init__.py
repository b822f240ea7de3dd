"""Parsers for bank CSV exports."""

from .csv_parser import BankCsvParser, ColumnMap, parse_amount, parse_date

__all__ = ["BankCsvParser", "ColumnMap", "parse_amount", "parse_date"]
