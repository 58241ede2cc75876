"""Background service that applies interest to every active loan."""

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, Optional

from blockdebt.core.config import AppSettings
from blockdebt.models.enums import LoanStatus
from blockdebt.models.loans import LoanModel
from blockdebt.models.repositories import LoanStore

from .accrual import AccrualEngine, AccrualResult


logger = logging.getLogger(__name__)

AccruedCallback = Callable[[LoanModel, AccrualResult], Awaitable[None]]


@dataclass(frozen=True)
class SweepReport:
    """Counts of one sweep cycle."""

    scanned: int = 0
    accrued: int = 0
    failed: int = 0


class AccrualSweeper:
    """Periodically bring interest up to date across all active loans.

    ``on_accrued`` is awaited for every loan that grew, so the gateway can
    refresh the loan message. A failure on one loan is logged and the sweep
    moves on to the next.
    """

    def __init__(
        self,
        settings: AppSettings,
        accrual: AccrualEngine,
        store: LoanStore,
        on_accrued: Optional[AccruedCallback] = None,
    ) -> None:
        self._settings = settings
        self._accrual = accrual
        self._store = store
        self._on_accrued = on_accrued
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_callback(self, on_accrued: Optional[AccruedCallback]) -> None:
        """Replace the callback awaited after each accrual."""
        self._on_accrued = on_accrued

    async def start(self) -> None:
        """Start the sweep loop as a background task."""
        if self.running:
            logger.info("Accrual sweeper already running.")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="accrual-sweeper")
        logger.info(
            "Accrual sweeper started interval_sec=%s",
            self._settings.accrual_sweep_interval_sec,
        )

    async def stop(self) -> None:
        """Gracefully stop the background task."""
        if not self._task:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Accrual sweeper task cancelled.")
        except Exception:
            logger.exception("Unexpected error while stopping accrual sweeper.")
        finally:
            self._task = None

    async def _run_loop(self) -> None:
        logger.info("Accrual sweeper loop running.")
        while not self._stop_event.is_set():
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Unhandled error during accrual sweep cycle.")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=float(self._settings.accrual_sweep_interval_sec),
                )
            except asyncio.TimeoutError:
                continue

    async def sweep_once(self) -> SweepReport:
        """Run one accrual pass over every ACTIVE loan."""
        loans = self._store.list_loans_by_status(LoanStatus.ACTIVE)
        accrued = 0
        failed = 0
        for loan in loans:
            try:
                result = self._accrual.apply_accrual(loan.id)
            except Exception:
                failed += 1
                logger.exception("Accrual failed loan_id=%s", loan.id)
                continue
            if result is None:
                continue

            accrued += 1
            if self._on_accrued is None:
                continue
            try:
                refreshed = self._store.get_loan(loan.id) or loan
                await self._on_accrued(refreshed, result)
            except Exception:
                failed += 1
                logger.exception("Accrual callback failed loan_id=%s", loan.id)

        report = SweepReport(scanned=len(loans), accrued=accrued, failed=failed)
        logger.info(
            "Accrual sweep finished scanned=%d accrued=%d failed=%d",
            report.scanned,
            report.accrued,
            report.failed,
        )
        return report
