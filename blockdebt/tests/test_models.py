"""Unit tests for loan and payment domain models."""

from datetime import datetime, timedelta, timezone
import unittest

from pydantic import ValidationError

from blockdebt.models.base import UNKNOWN_ACTOR
from blockdebt.models.enums import (
    ALLOWED_TRANSITIONS,
    ErrorKind,
    LoanCategory,
    LoanStatus,
    ParseErrorKind,
    PaymentStatus,
)
from blockdebt.models.exceptions import (
    AlreadyHandledError,
    InvalidAmountError,
    LoanNotFoundError,
    ModelValidationError,
    ParseError,
    StoreUnavailableError,
    UnauthorizedActionError,
)
from blockdebt.models.loans import LoanModel
from blockdebt.models.payments import PaymentModel


class ModelValidationTests(unittest.TestCase):
    """Test model happy paths and business rules."""

    def _loan(self, **overrides) -> LoanModel:
        payload = {
            "category": LoanCategory.MONEY,
            "creditor_id": "100",
            "debtor_id": "200",
            "original_amount": 1000.0,
            "current_amount": 1000.0,
        }
        payload.update(overrides)
        return LoanModel(**payload)

    def test_loan_model_happy_path(self) -> None:
        """Create a valid loan model."""
        loan = self._loan()
        self.assertEqual(loan.status, LoanStatus.PENDING)
        self.assertEqual(loan.version, 1)
        self.assertIsNone(loan.accrual_anchor)
        self.assertTrue(loan.debtor_known)
        self.assertTrue(loan.is_party("100"))
        self.assertFalse(loan.is_party("300"))

    def test_unknown_debtor(self) -> None:
        """Flag a loan whose debtor did not resolve."""
        loan = self._loan(debtor_id=UNKNOWN_ACTOR)
        self.assertFalse(loan.debtor_known)

    def test_info_loans_carry_no_amount(self) -> None:
        """Reject amounts on Info loans."""
        with self.assertRaises(ValidationError):
            self._loan(category=LoanCategory.INFO)
        loan = self._loan(category=LoanCategory.INFO, original_amount=0.0, current_amount=0.0, notes="coords")
        self.assertEqual(loan.notes, "coords")

    def test_active_requires_accepted_at(self) -> None:
        """Require an acceptance time on active loans."""
        with self.assertRaises(ValidationError):
            self._loan(status=LoanStatus.ACTIVE)

    def test_negative_amount_rejected(self) -> None:
        """Reject negative balances."""
        with self.assertRaises(ValidationError):
            self._loan(current_amount=-1.0)

    def test_timestamps_are_normalized_to_utc(self) -> None:
        """Normalize timestamps to UTC."""
        naive = datetime(2026, 1, 1, 12, 0, 0)
        loan = self._loan(status=LoanStatus.ACTIVE, accepted_at=naive)
        self.assertEqual(loan.accepted_at, naive.replace(tzinfo=timezone.utc))

        offset = datetime(2026, 1, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        loan = self._loan(status=LoanStatus.ACTIVE, accepted_at=offset, last_accrual_at=offset)
        self.assertEqual(loan.last_accrual_at.utcoffset(), timedelta(0))
        self.assertEqual(loan.accrual_anchor, datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))

    def test_record_round_trip(self) -> None:
        """Verify record serialization round trip."""
        loan = self._loan(id=7, thread_ref="123")
        restored = LoanModel.from_record(loan.to_record())
        self.assertEqual(restored, loan)

    def test_from_record_assigns_missing_id(self) -> None:
        """Fill a missing id from the record key."""
        record = self._loan().to_record()
        self.assertEqual(LoanModel.from_record(record, record_id=9).id, 9)

    def test_with_changes_validates(self) -> None:
        """Validate changes applied to a copy."""
        loan = self._loan()
        with self.assertRaises(ModelValidationError):
            loan.with_changes({"status": LoanStatus.ACTIVE})
        changed = loan.with_changes({"current_amount": 50.0})
        self.assertEqual(changed.current_amount, 50.0)
        self.assertEqual(loan.current_amount, 1000.0)

    def test_payment_model(self) -> None:
        """Create a valid payment model."""
        payment = PaymentModel(loan_id=1, payer_id="200", amount=25.0)
        self.assertEqual(payment.status, PaymentStatus.PROPOSED)
        self.assertTrue(payment.is_open)
        self.assertFalse(payment.confirmed)
        with self.assertRaises(ValidationError):
            PaymentModel(loan_id=1, payer_id="200", amount=0.0)
        with self.assertRaises(ValidationError):
            PaymentModel(loan_id=0, payer_id="200", amount=1.0)


class EnumAndErrorTests(unittest.TestCase):
    """Lifecycle tables and typed error kinds."""

    def test_terminal_statuses(self) -> None:
        """Mark declined, completed and closed as terminal."""
        self.assertFalse(LoanStatus.PENDING.is_terminal)
        self.assertFalse(LoanStatus.ACTIVE.is_terminal)
        for status in (LoanStatus.DECLINED, LoanStatus.COMPLETED, LoanStatus.CLOSED):
            self.assertTrue(status.is_terminal)
            self.assertEqual(ALLOWED_TRANSITIONS[status], frozenset())

    def test_allowed_transitions(self) -> None:
        """Allow only the documented status moves."""
        self.assertEqual(
            ALLOWED_TRANSITIONS[LoanStatus.PENDING],
            {LoanStatus.ACTIVE, LoanStatus.DECLINED, LoanStatus.CLOSED},
        )
        self.assertEqual(ALLOWED_TRANSITIONS[LoanStatus.ACTIVE], {LoanStatus.COMPLETED, LoanStatus.CLOSED})

    def test_error_kinds(self) -> None:
        """Give each loan error its kind."""
        self.assertEqual(UnauthorizedActionError("x").kind, ErrorKind.UNAUTHORIZED)
        self.assertEqual(AlreadyHandledError("x").kind, ErrorKind.ALREADY_HANDLED)
        self.assertEqual(LoanNotFoundError("x").kind, ErrorKind.NOT_FOUND)
        self.assertEqual(InvalidAmountError("x").kind, ErrorKind.INVALID_AMOUNT)
        self.assertEqual(StoreUnavailableError("x").kind, ErrorKind.STORE_UNAVAILABLE)
        self.assertEqual(AlreadyHandledError("x", loan_id=3).loan_id, 3)

    def test_parse_error_carries_kind(self) -> None:
        """Carry the parse failure reason."""
        error = ParseError(ParseErrorKind.TOO_LARGE, "too big")
        self.assertEqual(error.kind, ParseErrorKind.TOO_LARGE)
        self.assertEqual(str(error), "too big")
        self.assertIsInstance(error, ModelValidationError)
