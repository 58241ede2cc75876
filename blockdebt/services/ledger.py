"""Append-only payment ledger."""

import logging
from typing import List

from blockdebt.core.clock import Clock
from blockdebt.models.enums import PaymentStatus
from blockdebt.models.exceptions import AlreadyHandledError, LoanNotFoundError
from blockdebt.models.loans import LoanModel
from blockdebt.models.payments import PaymentModel
from blockdebt.models.repositories import LoanStore


logger = logging.getLogger(__name__)


class PaymentLedger:
    """Record payments proposed by debtors and their resolution by creditors.

    Entries are never deleted: a rejected payment stays in the ledger with
    status REJECTED. Only the lifecycle service moves loan balances.
    """

    def __init__(self, store: LoanStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    def propose(self, loan: LoanModel, payer_id: str, amount: float) -> PaymentModel:
        """Append an unconfirmed payment."""
        now = self._clock.now()
        payment = self._store.insert_payment(
            PaymentModel(
                loan_id=loan.id,
                payer_id=payer_id,
                amount=amount,
                recorded_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Payment proposed payment_id=%s loan_id=%s amount=%s", payment.id, loan.id, amount)
        return payment

    def get(self, payment_id: int) -> PaymentModel:
        """Return a payment.

        Raises:
            LoanNotFoundError: If the payment does not exist.
        """
        payment = self._store.get_payment(payment_id)
        if payment is None:
            raise LoanNotFoundError("Payment not found: {0}".format(payment_id))
        return payment

    def get_open(self, payment_id: int) -> PaymentModel:
        """Return a payment that still awaits the creditor.

        Raises:
            LoanNotFoundError: If the payment does not exist.
            AlreadyHandledError: If it was already confirmed or rejected.
        """
        payment = self.get(payment_id)
        if not payment.is_open:
            raise AlreadyHandledError(
                "Payment {0} is already {1}.".format(payment_id, payment.status.value.lower()),
                loan_id=payment.loan_id,
            )
        return payment

    def confirm(self, payment: PaymentModel) -> PaymentModel:
        return self._resolve(payment, PaymentStatus.CONFIRMED)

    def reject(self, payment: PaymentModel) -> PaymentModel:
        return self._resolve(payment, PaymentStatus.REJECTED)

    def _resolve(self, payment: PaymentModel, status: PaymentStatus) -> PaymentModel:
        resolved = self._store.update_payment(
            payment.id,
            {"status": status, "resolved_at": self._clock.now()},
        )
        logger.info("Payment %s payment_id=%s loan_id=%s", status.value.lower(), payment.id, payment.loan_id)
        return resolved

    def pending_for(self, loan_id: int) -> List[PaymentModel]:
        """Return payments of ``loan_id`` awaiting confirmation."""
        return [payment for payment in self._store.list_payments(loan_id) if payment.is_open]

    def history(self, loan_id: int) -> List[PaymentModel]:
        """Return every ledger entry of ``loan_id``, oldest first."""
        return self._store.list_payments(loan_id)

    def total_confirmed(self, loan_id: int) -> float:
        """Sum of confirmed payments on ``loan_id``."""
        return sum(payment.amount for payment in self._store.list_payments(loan_id) if payment.confirmed)
