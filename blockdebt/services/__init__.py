"""Service layer exports."""

from .accrual import DAILY_RATE, AccrualEngine, AccrualResult, compound, compute_accrual, compute_elapsed_days
from .accrual_sweeper import AccrualSweeper, SweepReport
from .ledger import PaymentLedger
from .lifecycle import EPSILON, LoanDisplay, LoanLifecycleService, TransitionResult, build_display

__all__ = [
    "DAILY_RATE",
    "EPSILON",
    "AccrualEngine",
    "AccrualResult",
    "AccrualSweeper",
    "LoanDisplay",
    "LoanLifecycleService",
    "PaymentLedger",
    "SweepReport",
    "TransitionResult",
    "build_display",
    "compound",
    "compute_accrual",
    "compute_elapsed_days",
]
