"""HTTP API tests using FastAPI's test client."""

from datetime import datetime, timezone
import unittest
from unittest import mock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from blockdebt.api.router import build_router
from blockdebt.core.clock import ManualClock
from blockdebt.models.exceptions import StoreUnavailableError
from blockdebt.repositories.memory_store import InMemoryLoanStore
from blockdebt.services.accrual import AccrualEngine
from blockdebt.services.ledger import PaymentLedger
from blockdebt.services.lifecycle import LoanLifecycleService


START = datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)
CREDITOR = "1001"
DEBTOR = "2002"


class LoanRouterTests(unittest.TestCase):
    """Exercise loan routes end to end against the in-memory store."""

    def setUp(self) -> None:
        store = InMemoryLoanStore()
        self.clock = ManualClock(START)
        accrual = AccrualEngine(store, self.clock)
        ledger = PaymentLedger(store, self.clock)
        self.lifecycle = LoanLifecycleService(store, self.clock, accrual, ledger)
        app = FastAPI()
        app.include_router(build_router(self.lifecycle))
        self.client = TestClient(app)

    def _create(self, amount: str = "1.5m") -> int:
        response = self.client.post(
            "/loans",
            json={"category": "MONEY", "creditor_id": CREDITOR, "debtor_id": DEBTOR, "amount": amount},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["loan"]["id"]

    def _action(self, loan_id: int, action: str, actor_id: str):
        return self.client.post("/loans/{0}/{1}".format(loan_id, action), json={"actor_id": actor_id})

    def test_root_and_health(self) -> None:
        """Answer the status endpoints."""
        self.assertEqual(self.client.get("/").json(), {"status": "online"})
        self.assertEqual(self.client.get("/health").json(), {"status": "healthy"})

    def test_create_returns_loan_and_display(self) -> None:
        """Return the stored loan with its display."""
        response = self.client.post(
            "/loans",
            json={"category": "ITEM", "creditor_id": CREDITOR, "debtor_id": DEBTOR, "stacks": "3", "extra": "20"},
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["loan"]["status"], "PENDING")
        self.assertEqual(body["loan"]["original_amount"], 212.0)
        self.assertEqual(body["display"]["current"], "212 units (3 stacks + 20)")

    def test_parse_error_is_422(self) -> None:
        """Answer 422 with the parse failure kind."""
        response = self.client.post(
            "/loans",
            json={"category": "MONEY", "creditor_id": CREDITOR, "debtor_id": DEBTOR, "amount": "1,5m"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["kind"], "FORBIDDEN_SEPARATOR")

    def test_error_mapping(self) -> None:
        """Map each rejection kind to its status code."""
        loan_id = self._create()
        self.assertEqual(self._action(loan_id, "accept", CREDITOR).status_code, 403)
        self.assertEqual(self._action(999, "accept", DEBTOR).status_code, 404)
        self.assertEqual(self._action(loan_id, "accept", DEBTOR).status_code, 200)

        conflict = self._action(loan_id, "accept", DEBTOR)
        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.json()["detail"]["kind"], "ALREADY_HANDLED")

        overpay = self.client.post(
            "/loans/{0}/payments".format(loan_id),
            json={"actor_id": DEBTOR, "amount": "2m"},
        )
        self.assertEqual(overpay.status_code, 422)
        self.assertEqual(overpay.json()["detail"]["kind"], "INVALID_AMOUNT")

    def test_blank_actor_ids(self) -> None:
        """Answer 422 for a blank creditor and file a blank debtor as unknown."""
        blank_creditor = self.client.post(
            "/loans",
            json={"category": "MONEY", "creditor_id": "   ", "debtor_id": DEBTOR, "amount": "1k"},
        )
        self.assertEqual(blank_creditor.status_code, 422)
        self.assertEqual(blank_creditor.json()["detail"]["kind"], "INVALID_INPUT")

        blank_debtor = self.client.post(
            "/loans",
            json={"category": "MONEY", "creditor_id": CREDITOR, "debtor_id": "   ", "amount": "1k"},
        )
        self.assertEqual(blank_debtor.status_code, 201, blank_debtor.text)
        self.assertEqual(blank_debtor.json()["loan"]["debtor_id"], "unknown")

        padded_self_loan = self.client.post(
            "/loans",
            json={"category": "MONEY", "creditor_id": CREDITOR, "debtor_id": " 1001 ", "amount": "1k"},
        )
        self.assertEqual(padded_self_loan.status_code, 403)

    def test_store_failure_is_503(self) -> None:
        """Answer 503 when the store is down."""
        with mock.patch.object(self.lifecycle, "get_view", side_effect=StoreUnavailableError("down")):
            response = self.client.get("/loans/1")
        self.assertEqual(response.status_code, 503)

    def test_unknown_action(self) -> None:
        """Answer 404 for unknown loan actions."""
        loan_id = self._create()
        self.assertEqual(self._action(loan_id, "explode", DEBTOR).status_code, 404)

    def test_missing_actor_is_rejected(self) -> None:
        """Require an actor on every action."""
        loan_id = self._create()
        response = self.client.post("/loans/{0}/accept".format(loan_id), json={})
        self.assertEqual(response.status_code, 422)

    def test_payment_flow(self) -> None:
        """Propose and confirm a payment over HTTP."""
        loan_id = self._create("1.5m")
        self._action(loan_id, "accept", DEBTOR)
        self.clock.advance(days=1)

        proposed = self.client.post(
            "/loans/{0}/payments".format(loan_id),
            json={"actor_id": DEBTOR, "amount": "500k"},
        )
        self.assertEqual(proposed.status_code, 200, proposed.text)
        self.assertEqual(proposed.json()["accrual"]["days"], 1)
        payment_id = proposed.json()["payment"]["id"]

        confirmed = self.client.post("/payments/{0}/confirm".format(payment_id), json={"actor_id": CREDITOR})
        self.assertEqual(confirmed.status_code, 200)
        self.assertAlmostEqual(confirmed.json()["loan"]["current_amount"], 1_045_000.0, places=2)
        self.assertEqual(confirmed.json()["payment"]["status"], "CONFIRMED")

        view = self.client.get("/loans/{0}".format(loan_id)).json()
        self.assertEqual(view["loan"]["status"], "ACTIVE")

        payments = self.client.get("/loans/{0}/payments".format(loan_id)).json()
        self.assertEqual([p["status"] for p in payments], ["CONFIRMED"])

    def test_reject_payment(self) -> None:
        """Keep the balance when a payment is rejected."""
        loan_id = self._create("1m")
        self._action(loan_id, "accept", DEBTOR)
        payment_id = self.client.post(
            "/loans/{0}/payments".format(loan_id),
            json={"actor_id": DEBTOR, "amount": "1k"},
        ).json()["payment"]["id"]
        rejected = self.client.post("/payments/{0}/reject".format(payment_id), json={"actor_id": CREDITOR})
        self.assertEqual(rejected.json()["payment"]["status"], "REJECTED")
        self.assertEqual(rejected.json()["loan"]["current_amount"], 1_000_000.0)

    def test_completion_and_close_routes(self) -> None:
        """Complete and close loans over HTTP."""
        completed = self._create()
        self._action(completed, "accept", DEBTOR)
        self._action(completed, "mark-paid", DEBTOR)
        done = self._action(completed, "confirm-completion", CREDITOR)
        self.assertEqual(done.json()["loan"]["status"], "COMPLETED")

        closed = self._create()
        self._action(closed, "request-close", CREDITOR)
        result = self._action(closed, "confirm-close", CREDITOR)
        self.assertEqual(result.json()["loan"]["status"], "CLOSED")

    def test_refresh_and_decline(self) -> None:
        """Refresh an active loan and decline a pending one."""
        active = self._create()
        self._action(active, "accept", DEBTOR)
        self.clock.advance(days=2)
        refreshed = self._action(active, "refresh", CREDITOR).json()
        self.assertEqual(refreshed["accrual"]["days"], 2)

        pending = self._create()
        self.assertEqual(self._action(pending, "decline", DEBTOR).json()["loan"]["status"], "DECLINED")
