"""Custom exceptions for model, store, and lifecycle layers."""

from typing import Optional

from .enums import ErrorKind, ParseErrorKind


class ModelError(Exception):
    """Base class for model-related failures."""


class ModelValidationError(ModelError):
    """Raised when model data fails custom business validation."""


class ModelNotFoundError(ModelError):
    """Raised when a requested record does not exist."""


class VersionConflictError(ModelError):
    """Raised when optimistic concurrency version checks fail."""


class ParseError(ModelValidationError):
    """Raised when a human-entered quantity cannot be parsed."""

    def __init__(self, kind: ParseErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class LoanError(ModelError):
    """Base class for rejected loan actions."""

    kind: ErrorKind = ErrorKind.ALREADY_HANDLED

    def __init__(self, message: str, loan_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.loan_id = loan_id


class UnauthorizedActionError(LoanError):
    """Raised when the actor is not allowed to perform the transition."""

    kind = ErrorKind.UNAUTHORIZED


class AlreadyHandledError(LoanError):
    """Raised when the loan or payment is not in the required state."""

    kind = ErrorKind.ALREADY_HANDLED


class LoanNotFoundError(LoanError):
    """Raised when a referenced loan or payment does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidAmountError(LoanError):
    """Raised when a payment amount is out of range for the loan."""

    kind = ErrorKind.INVALID_AMOUNT


class StoreUnavailableError(LoanError):
    """Raised when the record store backend fails."""

    kind = ErrorKind.STORE_UNAVAILABLE
