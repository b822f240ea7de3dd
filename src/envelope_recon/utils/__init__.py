"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    ValidationError,
    AmountMismatch,
    NoEnvelopeAssigned,
    InvalidEnvelopeReference,
    InvalidAmountError,
    InvalidTransferError,
    CsvFormatError,
    NotFoundError,
    TransactionNotFound,
    EnvelopeNotFound,
    AccountNotFound,
    BankConnectionNotFound,
    LabelNotFound,
    InvariantViolation,
    ConfigurationError,
    ReportGenerationError,
)
from .logging_config import setup_logging
from .money import to_money, quantize, EPSILON, ZERO

__all__ = [
    "ReconciliationError",
    "ValidationError",
    "AmountMismatch",
    "NoEnvelopeAssigned",
    "InvalidEnvelopeReference",
    "InvalidAmountError",
    "InvalidTransferError",
    "CsvFormatError",
    "NotFoundError",
    "TransactionNotFound",
    "EnvelopeNotFound",
    "AccountNotFound",
    "BankConnectionNotFound",
    "LabelNotFound",
    "InvariantViolation",
    "ConfigurationError",
    "ReportGenerationError",
    "setup_logging",
    "to_money",
    "quantize",
    "EPSILON",
    "ZERO",
]
