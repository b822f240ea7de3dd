"""Custom exceptions for the reconciliation engine."""

from decimal import Decimal
from typing import Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class ValidationError(ReconciliationError):
    """User-actionable validation failure, safe to show verbatim."""

    pass


class AmountMismatch(ValidationError):
    """Allocation total does not equal the transaction amount."""

    def __init__(self, expected: Decimal, actual: Decimal):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Envelope amounts ({actual:.2f}) must equal transaction amount ({expected:.2f})"
        )


class NoEnvelopeAssigned(ValidationError):
    """Approval attempted without any envelope allocation."""

    def __init__(self, message: str = "Cannot approve transaction without envelope assignment"):
        super().__init__(message)


class InvalidEnvelopeReference(ValidationError):
    """An allocation points at a placeholder or unset envelope."""

    def __init__(self, envelope_id: Optional[int] = None):
        self.envelope_id = envelope_id
        super().__init__(
            f"All envelope assignments must have valid envelope IDs (got {envelope_id!r})"
        )


class InvalidAmountError(ValidationError):
    """A monetary value could not be parsed."""

    pass


class InvalidTransferError(ValidationError):
    """Envelope transfer request is not acceptable."""

    pass


class CsvFormatError(ValidationError):
    """The CSV file as a whole cannot be imported."""

    pass


class NotFoundError(ReconciliationError):
    """A referenced entity does not exist."""

    entity = "Entity"

    def __init__(self, entity_id):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class TransactionNotFound(NotFoundError):
    entity = "Transaction"


class EnvelopeNotFound(NotFoundError):
    entity = "Envelope"


class AccountNotFound(NotFoundError):
    entity = "Account"


class BankConnectionNotFound(NotFoundError):
    entity = "Bank connection"


class LabelNotFound(NotFoundError):
    entity = "Label"


class InvariantViolation(ReconciliationError):
    """A write would leave envelope balances inconsistent."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
