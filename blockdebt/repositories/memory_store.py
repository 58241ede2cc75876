"""In-memory implementation of the loan record store."""

from contextlib import contextmanager
import logging
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional

from blockdebt.models.base import utc_now
from blockdebt.models.enums import LoanStatus
from blockdebt.models.exceptions import ModelNotFoundError, VersionConflictError
from blockdebt.models.loans import LoanModel
from blockdebt.models.payments import PaymentModel
from blockdebt.models.repositories import LoanStore


logger = logging.getLogger(__name__)


class InMemoryLoanStore(LoanStore):
    """Keep loans and payments in process memory behind a re-entrant lock.

    Records are stored as plain dicts and replaced, never mutated, so a
    shallow snapshot is enough to roll a failed transaction back.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._loans: Dict[int, Dict[str, Any]] = {}
        self._payments: Dict[int, Dict[str, Any]] = {}
        self._next_loan_id = 1
        self._next_payment_id = 1
        logger.info("Initialized InMemoryLoanStore")

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Serialize the block and restore prior state if it raises."""
        with self._lock:
            loans = dict(self._loans)
            payments = dict(self._payments)
            counters = (self._next_loan_id, self._next_payment_id)
            try:
                yield
            except BaseException:
                self._loans = loans
                self._payments = payments
                self._next_loan_id, self._next_payment_id = counters
                raise

    def get_loan(self, loan_id: int) -> Optional[LoanModel]:
        with self._lock:
            record = self._loans.get(loan_id)
            if record is None:
                return None
            return LoanModel.from_record(record)

    def insert_loan(self, model: LoanModel) -> LoanModel:
        with self._lock:
            loan_id = self._next_loan_id
            self._next_loan_id += 1
            stored = model.with_changes({"id": loan_id})
            self._loans[loan_id] = stored.to_record()
            logger.debug("Inserted loan id=%s", loan_id)
            return stored

    def update_loan(
        self,
        loan_id: int,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> LoanModel:
        with self._lock:
            record = self._loans.get(loan_id)
            if record is None:
                raise ModelNotFoundError("Loan not found: {0}".format(loan_id))
            if expected_version is not None and record["version"] != expected_version:
                raise VersionConflictError("Version conflict for loan_id={0}".format(loan_id))

            payload = dict(changes)
            payload.setdefault("updated_at", utc_now())
            payload["version"] = record["version"] + 1
            updated = LoanModel.from_record(record).with_changes(payload)
            self._loans[loan_id] = updated.to_record()
            return updated

    def list_loans_by_status(self, status: LoanStatus) -> List[LoanModel]:
        with self._lock:
            return [
                LoanModel.from_record(record)
                for _, record in sorted(self._loans.items())
                if record["status"] == status
            ]

    def insert_payment(self, model: PaymentModel) -> PaymentModel:
        with self._lock:
            if model.loan_id not in self._loans:
                raise ModelNotFoundError("Loan not found: {0}".format(model.loan_id))
            payment_id = self._next_payment_id
            self._next_payment_id += 1
            stored = model.with_changes({"id": payment_id})
            self._payments[payment_id] = stored.to_record()
            return stored

    def get_payment(self, payment_id: int) -> Optional[PaymentModel]:
        with self._lock:
            record = self._payments.get(payment_id)
            if record is None:
                return None
            return PaymentModel.from_record(record)

    def update_payment(self, payment_id: int, changes: Dict[str, Any]) -> PaymentModel:
        with self._lock:
            record = self._payments.get(payment_id)
            if record is None:
                raise ModelNotFoundError("Payment not found: {0}".format(payment_id))
            payload = dict(changes)
            payload.setdefault("updated_at", utc_now())
            payload["version"] = record["version"] + 1
            updated = PaymentModel.from_record(record).with_changes(payload)
            self._payments[payment_id] = updated.to_record()
            return updated

    def list_payments(self, loan_id: int) -> List[PaymentModel]:
        with self._lock:
            return [
                PaymentModel.from_record(record)
                for _, record in sorted(self._payments.items())
                if record["loan_id"] == loan_id
            ]
