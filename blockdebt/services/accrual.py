"""Daily compounding interest on outstanding loan balances.

Every accruing loan grows by ``DAILY_RATE`` per whole elapsed day, each day
compounding on the already-grown balance:

    new_amount = current_amount * (1 + DAILY_RATE) ** days

Days are whole 24 hour periods counted from ``last_accrual_at`` (or
``accepted_at`` before the first accrual). A period whose closing date is a
configured holiday is skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
from typing import AbstractSet, Optional, Tuple

from blockdebt.common.categories import rules_for
from blockdebt.core.clock import Clock
from blockdebt.models.base import ensure_utc
from blockdebt.models.enums import LoanStatus
from blockdebt.models.exceptions import LoanNotFoundError
from blockdebt.models.loans import LoanModel
from blockdebt.models.repositories import LoanStore


logger = logging.getLogger(__name__)

DAILY_RATE: float = 0.03
_DAY = timedelta(days=1)


@dataclass(frozen=True)
class AccrualResult:
    """Interest applied to one loan in one accrual pass."""

    loan_id: Optional[int]
    days: int
    previous_amount: float
    new_amount: float
    accrued_at: datetime

    @property
    def growth(self) -> float:
        return self.new_amount - self.previous_amount


def compute_elapsed_days(
    last: datetime,
    now: datetime,
    holidays: AbstractSet[date] = frozenset(),
) -> int:
    """Count whole days between ``last`` and ``now``, skipping holidays.

    Returns 0 when ``now`` is not after ``last``.
    """
    last = ensure_utc(last)
    now = ensure_utc(now)
    if now <= last:
        return 0

    whole_days = (now - last) // _DAY
    if not holidays:
        return whole_days
    return sum(
        1
        for offset in range(1, whole_days + 1)
        if (last + offset * _DAY).date() not in holidays
    )


def compound(amount: float, days: int, daily_rate: float = DAILY_RATE) -> float:
    """Grow ``amount`` by ``daily_rate`` per day, compounding."""
    return amount * (1 + daily_rate) ** days


def compute_accrual(
    loan: LoanModel,
    now: datetime,
    holidays: AbstractSet[date] = frozenset(),
    daily_rate: float = DAILY_RATE,
) -> Optional[AccrualResult]:
    """Return the interest due on ``loan`` at ``now``, or None when nothing accrues."""
    if loan.status != LoanStatus.ACTIVE:
        return None
    if not rules_for(loan.category).accrues:
        return None

    anchor = loan.accrual_anchor
    if anchor is None:
        return None

    days = compute_elapsed_days(anchor, now, holidays)
    if days <= 0:
        return None

    return AccrualResult(
        loan_id=loan.id,
        days=days,
        previous_amount=loan.current_amount,
        new_amount=compound(loan.current_amount, days, daily_rate),
        accrued_at=ensure_utc(now),
    )


class AccrualEngine:
    """Apply pending interest to stored loans."""

    def __init__(
        self,
        store: LoanStore,
        clock: Clock,
        holidays: AbstractSet[date] = frozenset(),
        daily_rate: float = DAILY_RATE,
    ) -> None:
        self._store = store
        self._clock = clock
        self._holidays = frozenset(holidays)
        self._daily_rate = daily_rate

    @property
    def daily_rate(self) -> float:
        return self._daily_rate

    def preview(self, loan: LoanModel) -> Optional[AccrualResult]:
        """Compute interest due now without writing anything."""
        return compute_accrual(loan, self._clock.now(), self._holidays, self._daily_rate)

    def accrue_loaded(self, loan: LoanModel) -> Tuple[LoanModel, Optional[AccrualResult]]:
        """Apply interest to a loan the caller read inside its own transaction.

        Returns:
            Tuple[LoanModel, Optional[AccrualResult]]: The (possibly updated)
            loan and the applied accrual, if any.
        """
        result = self.preview(loan)
        if result is None:
            return loan, None

        updated = self._store.update_loan(
            loan.id,
            {"current_amount": result.new_amount, "last_accrual_at": result.accrued_at},
            expected_version=loan.version,
        )
        logger.info(
            "Accrued interest loan_id=%s days=%d amount=%.4f->%.4f",
            loan.id,
            result.days,
            result.previous_amount,
            result.new_amount,
        )
        return updated, result

    def apply_accrual(self, loan_id: int) -> Optional[AccrualResult]:
        """Re-read ``loan_id`` and apply interest in one transaction.

        Raises:
            LoanNotFoundError: If the loan does not exist.
            StoreUnavailableError: If the store backend fails.
        """
        with self._store.atomic():
            loan = self._store.get_loan(loan_id)
            if loan is None:
                raise LoanNotFoundError("Loan not found: {0}".format(loan_id), loan_id=loan_id)
            _, result = self.accrue_loaded(loan)
        return result
