"""Loan lifecycle state machine.

    PENDING --accept--> ACTIVE --confirm_payment/confirm_completion--> COMPLETED
       |  \\                 \\
       |   decline            confirm_close
       |      \\                 \\
       |       DECLINED          CLOSED
       +--confirm_close-------> CLOSED

Every operation re-reads the loan inside one store transaction, checks the
actor and the current state there, and only then writes. A rejected action
raises a :class:`LoanError` and leaves the store untouched.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass
import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from pydantic import ValidationError

from blockdebt.common.categories import rules_for
from blockdebt.core.clock import Clock
from blockdebt.models.base import UNKNOWN_ACTOR
from blockdebt.models.enums import ALLOWED_TRANSITIONS, LoanCategory, LoanStatus
from blockdebt.models.exceptions import (
    AlreadyHandledError,
    InvalidAmountError,
    LoanNotFoundError,
    ModelNotFoundError,
    ModelValidationError,
    UnauthorizedActionError,
    VersionConflictError,
)
from blockdebt.models.loans import LoanModel
from blockdebt.models.payments import PaymentModel
from blockdebt.models.repositories import LoanStore

from .accrual import AccrualEngine, AccrualResult
from .ledger import PaymentLedger


logger = logging.getLogger(__name__)

EPSILON: float = 1e-2


@dataclass(frozen=True)
class LoanDisplay:
    """Rendered loan fields handed to the gateway."""

    loan_id: Optional[int]
    category: str
    status: str
    creditor: str
    debtor: str
    original: str
    current: str
    notes: str
    completion_requested: bool
    close_requested_by: Optional[str]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_display(loan: LoanModel) -> LoanDisplay:
    """Render ``loan`` with its category's formatter."""
    rules = rules_for(loan.category)
    return LoanDisplay(
        loan_id=loan.id,
        category=rules.label,
        status=loan.status.value,
        creditor=loan.creditor_name or loan.creditor_id,
        debtor=loan.debtor_name or loan.debtor_id,
        original=rules.format_amount(loan.original_amount),
        current=rules.format_amount(loan.current_amount),
        notes=loan.notes,
        completion_requested=loan.completion_requested_at is not None,
        close_requested_by=loan.close_requested_by,
    )


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of one lifecycle operation."""

    loan: LoanModel
    display: LoanDisplay
    payment: Optional[PaymentModel] = None
    accrual: Optional[AccrualResult] = None

    @property
    def status(self) -> LoanStatus:
        return self.loan.status


class LoanLifecycleService:
    """Create loans and move them through their lifecycle."""

    def __init__(
        self,
        store: LoanStore,
        clock: Clock,
        accrual: AccrualEngine,
        ledger: PaymentLedger,
        epsilon: float = EPSILON,
    ) -> None:
        self._store = store
        self._clock = clock
        self._accrual = accrual
        self._ledger = ledger
        self._epsilon = epsilon

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Run a block atomically, reporting lost races as already handled."""
        try:
            with self._store.atomic():
                yield
        except VersionConflictError as exc:
            logger.warning("Concurrent update detected: %s", exc)
            raise AlreadyHandledError("Loan was changed by another action. Try again.") from exc
        except ModelNotFoundError as exc:
            raise LoanNotFoundError(str(exc)) from exc

    def _load(self, loan_id: int) -> LoanModel:
        loan = self._store.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError("Loan not found: {0}".format(loan_id), loan_id=loan_id)
        return loan

    def _require_actor(self, loan: LoanModel, actor_id: str, allowed: Iterable[str], action: str) -> None:
        allowed_ids = {actor for actor in allowed if actor != UNKNOWN_ACTOR}
        if actor_id not in allowed_ids:
            logger.warning("Unauthorized %s loan_id=%s actor=%s", action, loan.id, actor_id)
            raise UnauthorizedActionError(
                "You are not allowed to {0} loan #{1}.".format(action, loan.id),
                loan_id=loan.id,
            )

    def _require_debtor(self, loan: LoanModel, actor_id: str, action: str) -> None:
        self._require_actor(loan, actor_id, [loan.debtor_id], action)

    def _require_creditor(self, loan: LoanModel, actor_id: str, action: str) -> None:
        self._require_actor(loan, actor_id, [loan.creditor_id], action)

    def _require_party(self, loan: LoanModel, actor_id: str, action: str) -> None:
        self._require_actor(loan, actor_id, [loan.creditor_id, loan.debtor_id], action)

    def _require_status(self, loan: LoanModel, allowed: Iterable[LoanStatus], action: str) -> None:
        if loan.status not in set(allowed):
            logger.warning("Rejected %s loan_id=%s status=%s", action, loan.id, loan.status.value)
            raise AlreadyHandledError(
                "Loan #{0} is already {1}.".format(loan.id, loan.status.value.lower()),
                loan_id=loan.id,
            )

    def _write(self, loan: LoanModel, changes: Dict[str, Any]) -> LoanModel:
        return self._store.update_loan(loan.id, changes, expected_version=loan.version)

    def _transition(self, loan: LoanModel, target: LoanStatus, changes: Optional[Dict[str, Any]] = None) -> LoanModel:
        if target not in ALLOWED_TRANSITIONS[loan.status]:
            raise AlreadyHandledError(
                "Loan #{0} cannot move from {1} to {2}.".format(loan.id, loan.status.value, target.value),
                loan_id=loan.id,
            )
        payload = dict(changes or {})
        payload["status"] = target
        updated = self._write(loan, payload)
        logger.info("Loan transition loan_id=%s %s->%s", loan.id, loan.status.value, target.value)
        return updated

    def _result(
        self,
        loan: LoanModel,
        payment: Optional[PaymentModel] = None,
        accrual: Optional[AccrualResult] = None,
    ) -> TransitionResult:
        return TransitionResult(loan=loan, display=build_display(loan), payment=payment, accrual=accrual)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        category: LoanCategory,
        creditor_id: str,
        debtor_id: str = UNKNOWN_ACTOR,
        raw_fields: Optional[Mapping[str, Optional[str]]] = None,
        creditor_name: str = "",
        debtor_name: str = "",
        guild_id: Optional[str] = None,
    ) -> TransitionResult:
        """Create a PENDING loan from raw modal fields.

        ``raw_fields`` holds ``amount`` (Money, Kill, Item as text), ``stacks``
        and ``extra`` (Item), or ``notes`` (Info).

        Raises:
            ParseError: If the fields do not parse for the category.
            InvalidAmountError: If an accruing loan has a zero amount.
            UnauthorizedActionError: If creditor and debtor are the same actor.
            ModelValidationError: If the creditor is blank or the loan fields are invalid.
        """
        category = LoanCategory(category)
        rules = rules_for(category)
        amount, notes = rules.parse_creation(raw_fields or {})
        if rules.accrues and amount <= 0:
            raise InvalidAmountError("Amount must be greater than zero.")
        creditor_id = (creditor_id or "").strip()
        debtor_id = (debtor_id or "").strip() or UNKNOWN_ACTOR
        if not creditor_id:
            raise ModelValidationError("A creditor is required.")
        if debtor_id == creditor_id:
            raise UnauthorizedActionError("You cannot open a loan with yourself.")

        now = self._clock.now()
        try:
            loan = LoanModel(
                guild_id=guild_id,
                category=category,
                creditor_id=creditor_id,
                creditor_name=creditor_name,
                debtor_id=debtor_id,
                debtor_name=debtor_name,
                original_amount=amount,
                current_amount=amount,
                status=LoanStatus.PENDING,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        except ValidationError as exc:
            logger.warning("Rejected loan fields creditor=%s: %s", creditor_id, exc)
            raise ModelValidationError(str(exc)) from exc
        with self._transaction():
            stored = self._store.insert_loan(loan)
        logger.info(
            "Loan created loan_id=%s category=%s creditor=%s debtor=%s amount=%s",
            stored.id,
            category.value,
            creditor_id,
            stored.debtor_id,
            amount,
        )
        return self._result(stored)

    def attach_thread(self, loan_id: int, thread_ref: str) -> TransitionResult:
        """Remember the conversation the gateway opened for a loan."""
        with self._transaction():
            loan = self._load(loan_id)
            updated = self._write(loan, {"thread_ref": thread_ref, "updated_at": self._clock.now()})
        return self._result(updated)

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    def accept(self, loan_id: int, actor_id: str) -> TransitionResult:
        """Debtor accepts; interest starts counting now."""
        with self._transaction():
            loan = self._load(loan_id)
            self._require_debtor(loan, actor_id, "accept")
            self._require_status(loan, [LoanStatus.PENDING], "accept")
            now = self._clock.now()
            updated = self._transition(
                loan,
                LoanStatus.ACTIVE,
                {"accepted_at": now, "last_accrual_at": now, "close_requested_by": None, "updated_at": now},
            )
        return self._result(updated)

    def decline(self, loan_id: int, actor_id: str) -> TransitionResult:
        """Debtor declines a pending loan."""
        with self._transaction():
            loan = self._load(loan_id)
            self._require_debtor(loan, actor_id, "decline")
            self._require_status(loan, [LoanStatus.PENDING], "decline")
            updated = self._transition(loan, LoanStatus.DECLINED, {"updated_at": self._clock.now()})
        return self._result(updated)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def propose_payment(self, loan_id: int, actor_id: str, raw_amount: Optional[str]) -> TransitionResult:
        """Debtor proposes a partial payment; the balance is untouched until confirmed.

        Raises:
            ParseError: If ``raw_amount`` does not parse for the loan category.
            InvalidAmountError: If the amount is zero or above the current balance.
        """
        with self._transaction():
            loan = self._load(loan_id)
            self._require_debtor(loan, actor_id, "pay")
            self._require_status(loan, [LoanStatus.ACTIVE], "pay")
            loan, accrual = self._accrual.accrue_loaded(loan)

            rules = rules_for(loan.category)
            amount = rules.parse_amount(raw_amount)
            if amount <= 0:
                raise InvalidAmountError("Payment must be greater than zero.", loan_id=loan.id)
            if amount > rules.max_payment(loan.current_amount, self._epsilon):
                raise InvalidAmountError(
                    "You cannot pay more than the remaining balance.",
                    loan_id=loan.id,
                )
            payment = self._ledger.propose(loan, actor_id, amount)
        return self._result(loan, payment=payment, accrual=accrual)

    def confirm_payment(self, payment_id: int, actor_id: str) -> TransitionResult:
        """Creditor confirms a payment and the balance goes down.

        A remainder that rounds to nothing (Item, Kill) or sits at or below
        epsilon (Money) is cleared and the loan completes.
        """
        with self._transaction():
            payment = self._ledger.get(payment_id)
            loan = self._load(payment.loan_id)
            self._require_creditor(loan, actor_id, "confirm payments on")
            payment = self._ledger.get_open(payment_id)
            self._require_status(loan, [LoanStatus.ACTIVE], "confirm payments on")
            loan, accrual = self._accrual.accrue_loaded(loan)

            rules = rules_for(loan.category)
            if payment.amount > rules.max_payment(loan.current_amount, self._epsilon):
                raise InvalidAmountError(
                    "Payment exceeds the remaining balance; reject it instead.",
                    loan_id=loan.id,
                )

            now = self._clock.now()
            remaining = loan.current_amount - payment.amount
            if rules.is_settled(remaining, self._epsilon):
                updated = self._transition(
                    loan,
                    LoanStatus.COMPLETED,
                    {"current_amount": 0.0, "completion_requested_at": None, "updated_at": now},
                )
            else:
                updated = self._write(loan, {"current_amount": remaining, "updated_at": now})
            payment = self._ledger.confirm(payment)
        logger.info(
            "Payment applied loan_id=%s payment_id=%s remaining=%s",
            updated.id,
            payment.id,
            updated.current_amount,
        )
        return self._result(updated, payment=payment, accrual=accrual)

    def reject_payment(self, payment_id: int, actor_id: str) -> TransitionResult:
        """Creditor rejects a payment; the balance does not change."""
        with self._transaction():
            payment = self._ledger.get(payment_id)
            loan = self._load(payment.loan_id)
            self._require_creditor(loan, actor_id, "reject payments on")
            payment = self._ledger.get_open(payment_id)
            payment = self._ledger.reject(payment)
        return self._result(loan, payment=payment)

    def mark_paid(self, loan_id: int, actor_id: str) -> TransitionResult:
        """Debtor asks the creditor to confirm the loan is fully settled."""
        with self._transaction():
            loan = self._load(loan_id)
            self._require_debtor(loan, actor_id, "mark as paid")
            self._require_status(loan, [LoanStatus.ACTIVE], "mark as paid")
            if loan.completion_requested_at is not None:
                raise AlreadyHandledError(
                    "Completion of loan #{0} is already awaiting confirmation.".format(loan.id),
                    loan_id=loan.id,
                )
            loan, accrual = self._accrual.accrue_loaded(loan)
            now = self._clock.now()
            updated = self._write(loan, {"completion_requested_at": now, "updated_at": now})
        return self._result(updated, accrual=accrual)

    def confirm_completion(self, loan_id: int, actor_id: str) -> TransitionResult:
        """Creditor confirms a pending mark-paid request."""
        with self._transaction():
            loan = self._load(loan_id)
            self._require_creditor(loan, actor_id, "confirm completion of")
            self._require_status(loan, [LoanStatus.ACTIVE], "confirm completion of")
            if loan.completion_requested_at is None:
                raise AlreadyHandledError(
                    "Loan #{0} has no completion request pending.".format(loan.id),
                    loan_id=loan.id,
                )
            updated = self._transition(
                loan,
                LoanStatus.COMPLETED,
                {"current_amount": 0.0, "completion_requested_at": None, "updated_at": self._clock.now()},
            )
        return self._result(updated)

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def request_close(self, loan_id: int, actor_id: str) -> TransitionResult:
        """Creditor or debtor asks to force-close; needs a second confirmation."""
        with self._transaction():
            loan = self._load(loan_id)
            self._require_party(loan, actor_id, "close")
            self._require_status(loan, [LoanStatus.PENDING, LoanStatus.ACTIVE], "close")
            if loan.close_requested_by == actor_id:
                raise AlreadyHandledError(
                    "Closing loan #{0} is already awaiting your confirmation.".format(loan.id),
                    loan_id=loan.id,
                )
            updated = self._write(loan, {"close_requested_by": actor_id, "updated_at": self._clock.now()})
        return self._result(updated)

    def confirm_close(self, loan_id: int, actor_id: str) -> TransitionResult:
        """The actor who requested the close confirms it."""
        with self._transaction():
            loan = self._load(loan_id)
            self._require_party(loan, actor_id, "close")
            self._require_status(loan, [LoanStatus.PENDING, LoanStatus.ACTIVE], "close")
            if loan.close_requested_by is None:
                raise AlreadyHandledError(
                    "Loan #{0} has no close request pending.".format(loan.id),
                    loan_id=loan.id,
                )
            if loan.close_requested_by != actor_id:
                raise UnauthorizedActionError(
                    "Only the member who asked to close loan #{0} can confirm it.".format(loan.id),
                    loan_id=loan.id,
                )
            loan, accrual = self._accrual.accrue_loaded(loan)
            updated = self._transition(loan, LoanStatus.CLOSED, {"updated_at": self._clock.now()})
        return self._result(updated, accrual=accrual)

    # ------------------------------------------------------------------
    # Reads and refresh
    # ------------------------------------------------------------------

    def refresh(self, loan_id: int, actor_id: str) -> TransitionResult:
        """Apply pending interest on request of the creditor or the debtor."""
        with self._transaction():
            loan = self._load(loan_id)
            self._require_party(loan, actor_id, "refresh")
            loan, accrual = self._accrual.accrue_loaded(loan)
        return self._result(loan, accrual=accrual)

    def get_view(self, loan_id: int) -> TransitionResult:
        """Return a loan with interest brought up to date."""
        with self._transaction():
            loan = self._load(loan_id)
            loan, accrual = self._accrual.accrue_loaded(loan)
        return self._result(loan, accrual=accrual)

    def payment_history(self, loan_id: int) -> List[PaymentModel]:
        """Return every ledger entry of a loan."""
        self._load(loan_id)
        return self._ledger.history(loan_id)

    def pending_payments(self, loan_id: int) -> List[PaymentModel]:
        """Return payments of a loan awaiting the creditor."""
        self._load(loan_id)
        return self._ledger.pending_for(loan_id)
