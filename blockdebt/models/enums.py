"""Reusable enums for loan tracking domain models."""

from enum import Enum


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""


class LoanCategory(StringEnum):
    """What a loan is denominated in."""

    MONEY = "MONEY"
    ITEM = "ITEM"
    KILL = "KILL"
    INFO = "INFO"


class LoanStatus(StringEnum):
    """Loan lifecycle states."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    DECLINED = "DECLINED"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further transition is possible."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LoanStatus.DECLINED, LoanStatus.COMPLETED, LoanStatus.CLOSED})

ALLOWED_TRANSITIONS = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE, LoanStatus.DECLINED, LoanStatus.CLOSED}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.COMPLETED, LoanStatus.CLOSED}),
    LoanStatus.DECLINED: frozenset(),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.CLOSED: frozenset(),
}


class PaymentStatus(StringEnum):
    """Payment ledger entry states."""

    PROPOSED = "PROPOSED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class ErrorKind(StringEnum):
    """Reasons a loan action can be rejected."""

    UNAUTHORIZED = "UNAUTHORIZED"
    ALREADY_HANDLED = "ALREADY_HANDLED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INVALID_INPUT = "INVALID_INPUT"


class ParseErrorKind(StringEnum):
    """Reasons a human-entered quantity is rejected."""

    EMPTY = "EMPTY"
    FORBIDDEN_SEPARATOR = "FORBIDDEN_SEPARATOR"
    BAD_FORMAT = "BAD_FORMAT"
    TOO_LARGE = "TOO_LARGE"
    INVALID_EXTRA = "INVALID_EXTRA"
    TOO_MANY_STACKS = "TOO_MANY_STACKS"
    TOO_MANY_ITEMS = "TOO_MANY_ITEMS"
    TOO_MANY_KILLS = "TOO_MANY_KILLS"
    TEXT_TOO_LONG = "TEXT_TOO_LONG"
