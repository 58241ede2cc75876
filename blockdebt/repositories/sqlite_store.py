"""SQLite implementation of the loan record store."""

from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Sequence

from blockdebt.models.base import utc_now
from blockdebt.models.enums import LoanStatus
from blockdebt.models.exceptions import ModelNotFoundError, StoreUnavailableError, VersionConflictError
from blockdebt.models.loans import LoanModel
from blockdebt.models.payments import PaymentModel
from blockdebt.models.repositories import LoanStore


logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS loans (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  guild_id TEXT,
  category TEXT NOT NULL,
  creditor_id TEXT NOT NULL,
  creditor_name TEXT NOT NULL DEFAULT '',
  debtor_id TEXT NOT NULL,
  debtor_name TEXT NOT NULL DEFAULT '',
  original_amount REAL NOT NULL,
  current_amount REAL NOT NULL,
  status TEXT NOT NULL,
  accepted_at TEXT,
  last_accrual_at TEXT,
  thread_ref TEXT,
  notes TEXT NOT NULL DEFAULT '',
  completion_requested_at TEXT,
  close_requested_by TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  version INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_loans_status ON loans (status);

CREATE TABLE IF NOT EXISTS payments (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  loan_id INTEGER NOT NULL REFERENCES loans (id),
  payer_id TEXT NOT NULL,
  amount REAL NOT NULL,
  recorded_at TEXT NOT NULL,
  status TEXT NOT NULL,
  resolved_at TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  version INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_payments_loan ON payments (loan_id);
"""

_LOAN_COLUMNS = (
    "guild_id",
    "category",
    "creditor_id",
    "creditor_name",
    "debtor_id",
    "debtor_name",
    "original_amount",
    "current_amount",
    "status",
    "accepted_at",
    "last_accrual_at",
    "thread_ref",
    "notes",
    "completion_requested_at",
    "close_requested_by",
    "created_at",
    "updated_at",
    "version",
)

_PAYMENT_COLUMNS = (
    "loan_id",
    "payer_id",
    "amount",
    "recorded_at",
    "status",
    "resolved_at",
    "created_at",
    "updated_at",
    "version",
)


def _row_values(model: Any, columns: Sequence[str]) -> List[Any]:
    """Serialize a model into column order with JSON-friendly scalars."""
    payload = model.model_dump(mode="json")
    return [payload[column] for column in columns]


class SqliteLoanStore(LoanStore):
    """Persist loans and payments in an embedded SQLite database.

    The connection runs in autocommit mode; :meth:`atomic` opens an explicit
    ``BEGIN IMMEDIATE`` transaction so the write lock is taken before the
    precondition read.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = RLock()
        self._depth = 0
        try:
            if path != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(_SCHEMA)
            logger.info("Initialized SqliteLoanStore path=%s", path)
        except (sqlite3.Error, OSError) as exc:
            logger.exception("Failed to open SQLite database path=%s", path)
            raise StoreUnavailableError("Database unavailable: {0}".format(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run one statement, translating driver errors."""
        try:
            return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            logger.exception("SQLite statement failed sql=%s", sql.split("\n", 1)[0])
            raise StoreUnavailableError("Database unavailable: {0}".format(exc)) from exc

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._execute("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                self._execute("COMMIT")

    def get_loan(self, loan_id: int) -> Optional[LoanModel]:
        with self._lock:
            row = self._execute("SELECT * FROM loans WHERE id = ?", (loan_id,)).fetchone()
        if row is None:
            return None
        return LoanModel.from_record(dict(row))

    def insert_loan(self, model: LoanModel) -> LoanModel:
        placeholders = ", ".join("?" for _ in _LOAN_COLUMNS)
        sql = "INSERT INTO loans ({0}) VALUES ({1})".format(", ".join(_LOAN_COLUMNS), placeholders)
        with self._lock:
            cursor = self._execute(sql, _row_values(model, _LOAN_COLUMNS))
            loan_id = cursor.lastrowid
        logger.debug("Inserted loan id=%s", loan_id)
        return model.with_changes({"id": loan_id})

    def update_loan(
        self,
        loan_id: int,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> LoanModel:
        with self.atomic():
            current = self.get_loan(loan_id)
            if current is None:
                raise ModelNotFoundError("Loan not found: {0}".format(loan_id))
            if expected_version is not None and current.version != expected_version:
                raise VersionConflictError("Version conflict for loan_id={0}".format(loan_id))

            payload = dict(changes)
            payload.setdefault("updated_at", utc_now())
            payload["version"] = current.version + 1
            updated = current.with_changes(payload)

            assignments = ", ".join("{0} = ?".format(column) for column in _LOAN_COLUMNS)
            cursor = self._execute(
                "UPDATE loans SET {0} WHERE id = ? AND version = ?".format(assignments),
                _row_values(updated, _LOAN_COLUMNS) + [loan_id, current.version],
            )
            if cursor.rowcount == 0:
                raise VersionConflictError("Version conflict for loan_id={0}".format(loan_id))
            return updated

    def list_loans_by_status(self, status: LoanStatus) -> List[LoanModel]:
        with self._lock:
            rows = self._execute(
                "SELECT * FROM loans WHERE status = ? ORDER BY id",
                (LoanStatus(status).value,),
            ).fetchall()
        return [LoanModel.from_record(dict(row)) for row in rows]

    def insert_payment(self, model: PaymentModel) -> PaymentModel:
        placeholders = ", ".join("?" for _ in _PAYMENT_COLUMNS)
        sql = "INSERT INTO payments ({0}) VALUES ({1})".format(", ".join(_PAYMENT_COLUMNS), placeholders)
        with self.atomic():
            if self.get_loan(model.loan_id) is None:
                raise ModelNotFoundError("Loan not found: {0}".format(model.loan_id))
            cursor = self._execute(sql, _row_values(model, _PAYMENT_COLUMNS))
            payment_id = cursor.lastrowid
        return model.with_changes({"id": payment_id})

    def get_payment(self, payment_id: int) -> Optional[PaymentModel]:
        with self._lock:
            row = self._execute("SELECT * FROM payments WHERE id = ?", (payment_id,)).fetchone()
        if row is None:
            return None
        return PaymentModel.from_record(dict(row))

    def update_payment(self, payment_id: int, changes: Dict[str, Any]) -> PaymentModel:
        with self.atomic():
            current = self.get_payment(payment_id)
            if current is None:
                raise ModelNotFoundError("Payment not found: {0}".format(payment_id))

            payload = dict(changes)
            payload.setdefault("updated_at", utc_now())
            payload["version"] = current.version + 1
            updated = current.with_changes(payload)

            assignments = ", ".join("{0} = ?".format(column) for column in _PAYMENT_COLUMNS)
            self._execute(
                "UPDATE payments SET {0} WHERE id = ?".format(assignments),
                _row_values(updated, _PAYMENT_COLUMNS) + [payment_id],
            )
            return updated

    def list_payments(self, loan_id: int) -> List[PaymentModel]:
        with self._lock:
            rows = self._execute(
                "SELECT * FROM payments WHERE loan_id = ? ORDER BY id",
                (loan_id,),
            ).fetchall()
        return [PaymentModel.from_record(dict(row)) for row in rows]
