"""Public model package exports for the BlockDebt loan tracker."""

from .base import UNKNOWN_ACTOR, ActorId, Amount, BaseRecordModel, utc_now
from .enums import (
    ALLOWED_TRANSITIONS,
    ErrorKind,
    LoanCategory,
    LoanStatus,
    ParseErrorKind,
    PaymentStatus,
)
from .exceptions import (
    AlreadyHandledError,
    InvalidAmountError,
    LoanError,
    LoanNotFoundError,
    ModelError,
    ModelNotFoundError,
    ModelValidationError,
    ParseError,
    StoreUnavailableError,
    UnauthorizedActionError,
    VersionConflictError,
)
from .loans import LoanModel
from .payments import PaymentModel
from .repositories import LoanStore

__all__ = [
    "UNKNOWN_ACTOR",
    "ActorId",
    "Amount",
    "BaseRecordModel",
    "utc_now",
    "ALLOWED_TRANSITIONS",
    "ErrorKind",
    "LoanCategory",
    "LoanStatus",
    "ParseErrorKind",
    "PaymentStatus",
    "ModelError",
    "ModelValidationError",
    "ModelNotFoundError",
    "VersionConflictError",
    "ParseError",
    "LoanError",
    "UnauthorizedActionError",
    "AlreadyHandledError",
    "LoanNotFoundError",
    "InvalidAmountError",
    "StoreUnavailableError",
    "LoanModel",
    "PaymentModel",
    "LoanStore",
]
