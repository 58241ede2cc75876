"""Tests for the background accrual sweeper."""

import asyncio
from datetime import datetime, timedelta, timezone
import unittest
from unittest import mock

from blockdebt.core.clock import ManualClock
from blockdebt.core.config import AppSettings
from blockdebt.models.enums import LoanCategory, LoanStatus
from blockdebt.models.exceptions import StoreUnavailableError
from blockdebt.models.loans import LoanModel
from blockdebt.repositories.memory_store import InMemoryLoanStore
from blockdebt.services.accrual import AccrualEngine
from blockdebt.services.accrual_sweeper import AccrualSweeper, SweepReport
from blockdebt.services.ledger import PaymentLedger
from blockdebt.services.lifecycle import LoanLifecycleService


START = datetime(2026, 5, 10, 0, 0, tzinfo=timezone.utc)


class AccrualSweeperTests(unittest.IsolatedAsyncioTestCase):
    """Sweep cycles over active loans."""

    async def asyncSetUp(self) -> None:
        self.store = InMemoryLoanStore()
        self.clock = ManualClock(START)
        self.accrual = AccrualEngine(self.store, self.clock)
        self.settings = AppSettings(store_backend="memory", accrual_sweep_interval_sec=3600)
        self.calls = []

    def _insert(self, status: LoanStatus = LoanStatus.ACTIVE, accepted_at: datetime = START) -> LoanModel:
        return self.store.insert_loan(
            LoanModel(
                category=LoanCategory.MONEY,
                creditor_id="100",
                debtor_id="200",
                original_amount=1000.0,
                current_amount=1000.0,
                status=status,
                accepted_at=accepted_at if status == LoanStatus.ACTIVE else None,
                last_accrual_at=accepted_at if status == LoanStatus.ACTIVE else None,
            )
        )

    async def _record(self, loan, result) -> None:
        self.calls.append((loan.id, result.days, loan.current_amount))

    async def test_sweep_once_accrues_due_loans(self) -> None:
        """Accrue only active loans with a full day due."""
        due = self._insert()
        fresh = self._insert(accepted_at=START + timedelta(hours=20))
        self._insert(status=LoanStatus.PENDING)
        self.clock.advance(days=1)

        sweeper = AccrualSweeper(self.settings, self.accrual, self.store, on_accrued=self._record)
        report = await sweeper.sweep_once()

        self.assertEqual(report, SweepReport(scanned=2, accrued=1, failed=0))
        self.assertEqual(len(self.calls), 1)
        loan_id, days, amount = self.calls[0]
        self.assertEqual((loan_id, days), (due.id, 1))
        self.assertAlmostEqual(amount, 1030.0)
        self.assertEqual(self.store.get_loan(fresh.id).current_amount, 1000.0)

    async def test_second_sweep_same_day_is_noop(self) -> None:
        """Skip loans already accrued today."""
        self._insert()
        self.clock.advance(days=1)
        sweeper = AccrualSweeper(self.settings, self.accrual, self.store)
        await sweeper.sweep_once()
        report = await sweeper.sweep_once()
        self.assertEqual(report.accrued, 0)

    async def test_callback_failure_does_not_stop_sweep(self) -> None:
        """Keep sweeping when a callback fails."""
        first = self._insert()
        second = self._insert()
        self.clock.advance(days=2)

        async def flaky(loan, result) -> None:
            if loan.id == first.id:
                raise RuntimeError("thread deleted")
            await self._record(loan, result)

        sweeper = AccrualSweeper(self.settings, self.accrual, self.store, on_accrued=flaky)
        report = await sweeper.sweep_once()

        self.assertEqual(report, SweepReport(scanned=2, accrued=2, failed=1))
        self.assertEqual([call[0] for call in self.calls], [second.id])
        self.assertAlmostEqual(self.store.get_loan(first.id).current_amount, 1060.9)

    async def test_store_failure_on_one_loan(self) -> None:
        """Keep sweeping when one loan cannot be stored."""
        first = self._insert()
        second = self._insert()
        self.clock.advance(days=1)
        original = self.accrual.apply_accrual

        def failing(loan_id):
            if loan_id == first.id:
                raise StoreUnavailableError("disk full", loan_id=loan_id)
            return original(loan_id)

        sweeper = AccrualSweeper(self.settings, self.accrual, self.store)
        with mock.patch.object(self.accrual, "apply_accrual", side_effect=failing):
            report = await sweeper.sweep_once()

        self.assertEqual(report, SweepReport(scanned=2, accrued=1, failed=1))
        self.assertEqual(self.store.get_loan(first.id).current_amount, 1000.0)
        self.assertAlmostEqual(self.store.get_loan(second.id).current_amount, 1030.0)

    async def test_start_and_stop(self) -> None:
        """Run the loop in the background until stopped."""
        self._insert()
        self.clock.advance(days=1)
        sweeper = AccrualSweeper(self.settings, self.accrual, self.store, on_accrued=self._record)

        await sweeper.start()
        self.assertTrue(sweeper.running)
        await sweeper.start()
        for _ in range(20):
            if self.calls:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        self.assertFalse(sweeper.running)
        self.assertEqual(len(self.calls), 1)

    async def test_set_callback(self) -> None:
        """Use a callback installed after construction."""
        self._insert()
        self.clock.advance(days=1)
        sweeper = AccrualSweeper(self.settings, self.accrual, self.store)
        sweeper.set_callback(self._record)
        await sweeper.sweep_once()
        self.assertEqual(len(self.calls), 1)

    async def test_loan_scenario_with_daily_sweep(self) -> None:
        """Run a money loan from creation to a partial payment across one sweep."""
        lifecycle = LoanLifecycleService(self.store, self.clock, self.accrual, PaymentLedger(self.store, self.clock))
        loan_id = lifecycle.create(LoanCategory.MONEY, "100", "200", {"amount": "1.5m"}).loan.id
        lifecycle.accept(loan_id, "200")

        self.clock.advance(days=1)
        sweeper = AccrualSweeper(self.settings, self.accrual, self.store, on_accrued=self._record)
        report = await sweeper.sweep_once()
        self.assertEqual(report, SweepReport(scanned=1, accrued=1, failed=0))
        self.assertAlmostEqual(self.calls[0][2], 1_545_000.0, places=2)

        proposed = lifecycle.propose_payment(loan_id, "200", "500k")
        self.assertIsNone(proposed.accrual)
        confirmed = lifecycle.confirm_payment(proposed.payment.id, "100")

        self.assertEqual(confirmed.status, LoanStatus.ACTIVE)
        self.assertAlmostEqual(confirmed.loan.current_amount, 1_045_000.0, places=2)
        self.assertEqual(confirmed.display.current, "1.05M")
