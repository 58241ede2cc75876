"""Record store interface for backend-agnostic loan and payment access."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Dict, List, Optional

from .enums import LoanStatus
from .exceptions import ModelNotFoundError, StoreUnavailableError, VersionConflictError
from .loans import LoanModel
from .payments import PaymentModel


class LoanStore(ABC):
    """Common contract for loan and payment persistence.

    Every lifecycle transition runs as ``with store.atomic(): read, check,
    write`` so that two concurrent confirmations of the same loan cannot both
    pass their precondition checks.
    """

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Return a context manager wrapping one serialized transaction.

        Nested calls join the outer transaction.
        """

    @abstractmethod
    def get_loan(self, loan_id: int) -> Optional[LoanModel]:
        """Return a loan by identifier, or None.

        Raises:
            StoreUnavailableError: If the backend fails.
        """

    @abstractmethod
    def insert_loan(self, model: LoanModel) -> LoanModel:
        """Persist a new loan and return it with its assigned id."""

    @abstractmethod
    def update_loan(
        self,
        loan_id: int,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> LoanModel:
        """Apply partial field changes and bump the loan version.

        Raises:
            ModelNotFoundError: If loan does not exist.
            VersionConflictError: If ``expected_version`` does not match the stored loan.
            StoreUnavailableError: If the backend fails.
        """

    @abstractmethod
    def list_loans_by_status(self, status: LoanStatus) -> List[LoanModel]:
        """Return every loan currently in ``status``."""

    @abstractmethod
    def insert_payment(self, model: PaymentModel) -> PaymentModel:
        """Append a payment ledger entry and return it with its assigned id."""

    @abstractmethod
    def get_payment(self, payment_id: int) -> Optional[PaymentModel]:
        """Return a payment by identifier, or None."""

    @abstractmethod
    def update_payment(self, payment_id: int, changes: Dict[str, Any]) -> PaymentModel:
        """Apply partial field changes to a payment.

        Raises:
            ModelNotFoundError: If payment does not exist.
        """

    @abstractmethod
    def list_payments(self, loan_id: int) -> List[PaymentModel]:
        """Return ledger entries for a loan in recording order."""


__all__ = [
    "LoanStore",
    "ModelNotFoundError",
    "StoreUnavailableError",
    "VersionConflictError",
]
