"""
SQLite adapters for the credit system ports.

Every balance mutation runs inside a `BEGIN IMMEDIATE` transaction: the
balance is updated relative to its stored value (`balance = balance - ?`)
and the ledger row is written in the same transaction, so concurrent
writers, including other processes sharing the file, never apply a delta
to a stale balance. Daily activity relies on a UNIQUE(user_id,
activity_date) constraint, and payment status changes are conditional
UPDATEs.

Blocking sqlite3 calls run in a worker thread via asyncio.to_thread.
"""

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, List, Optional

from tradecredits.credits import models
from tradecredits.credits.ids import TimestampIdGenerator
from tradecredits.credits.models import (
    CreditBalance,
    CreditTransaction,
    Payment,
    PaymentStatus,
    TransactionType,
    UserTier,
    init_database,
)
from tradecredits.credits.ports import (
    BalanceNotFoundError,
    CreditStore,
    IdGenerator,
    PaymentStore,
)

logger = logging.getLogger("tradecredits.credits.sqlite")

BALANCE_COLUMNS = "user_id, balance, lifetime_spent, tier, last_activity_date, created_at, updated_at"
TRANSACTION_COLUMNS = (
    "id, user_id, type, amount, balance_after, reference_id, reference_type, metadata_json, created_at"
)
PAYMENT_COLUMNS = (
    "id, user_id, stripe_payment_intent_id, amount_eur, credits_granted, status, created_at, updated_at"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _row_to_balance(row) -> CreditBalance:
    return CreditBalance(
        user_id=row[0],
        balance=row[1],
        lifetime_spent=row[2],
        tier=UserTier(row[3]),
        last_activity_date=row[4],
        created_at=datetime.fromisoformat(row[5]),
        updated_at=datetime.fromisoformat(row[6]),
    )


def _row_to_transaction(row) -> CreditTransaction:
    return CreditTransaction(
        id=row[0],
        user_id=row[1],
        type=TransactionType(row[2]),
        amount=row[3],
        balance_after=row[4],
        reference_id=row[5],
        reference_type=row[6],
        metadata=json.loads(row[7]) if row[7] else None,
        created_at=datetime.fromisoformat(row[8]),
    )


def _row_to_payment(row) -> Payment:
    return Payment(
        id=row[0],
        user_id=row[1],
        stripe_payment_intent_id=row[2],
        amount_eur=row[3],
        credits_granted=row[4],
        status=PaymentStatus(row[5]),
        created_at=datetime.fromisoformat(row[6]),
        updated_at=datetime.fromisoformat(row[7]),
    )


class _SQLiteBase:
    """Shared connection handling. Opens one connection per operation."""

    def __init__(self, db_path: str = None, timeout: float = 30.0):
        if db_path is None:
            db_path = models.default_db_path()
        if db_path == ":memory:":
            raise ValueError("SQLite stores need a file path; use the in-memory stores instead")

        self.db_path = db_path
        self.timeout = timeout
        init_database(db_path).close()

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly
        return sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        conn = self._get_conn()
        cursor = conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            yield cursor
            cursor.execute("COMMIT")
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _query(self, sql: str, params: tuple = ()) -> List[tuple]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()


class SQLiteCreditStore(_SQLiteBase, CreditStore):
    """Durable balances and ledger."""

    def __init__(
        self,
        db_path: str = None,
        id_generator: Optional[IdGenerator] = None,
        today: Callable[[], str] = _utc_today,
        timeout: float = 30.0,
    ):
        super().__init__(db_path, timeout)
        self.id_generator = id_generator or TimestampIdGenerator()
        self.today = today
        logger.info(f"Credit store initialized: {self.db_path}")

    # Balances ---------------------------------------------------------------

    def _get_balance_sync(self, user_id: str) -> Optional[CreditBalance]:
        rows = self._query(
            f"SELECT {BALANCE_COLUMNS} FROM credit_balances WHERE user_id = ?", (user_id,)
        )
        return _row_to_balance(rows[0]) if rows else None

    async def get_balance(self, user_id: str) -> Optional[CreditBalance]:
        return await asyncio.to_thread(self._get_balance_sync, user_id)

    def _initialize_balance_sync(self, user_id: str) -> CreditBalance:
        now = _now()
        with self._transaction() as cursor:
            cursor.execute(
                """
                INSERT OR IGNORE INTO credit_balances
                (user_id, balance, lifetime_spent, tier, last_activity_date, created_at, updated_at)
                VALUES (?, ?, 0, ?, NULL, ?, ?)
                """,
                (user_id, models.FREE_CREDITS, UserTier.FREE.value, now, now),
            )
            cursor.execute(
                f"SELECT {BALANCE_COLUMNS} FROM credit_balances WHERE user_id = ?", (user_id,)
            )
            row = cursor.fetchone()
        return _row_to_balance(row)

    async def initialize_balance(self, user_id: str) -> CreditBalance:
        return await asyncio.to_thread(self._initialize_balance_sync, user_id)

    # Ledger -----------------------------------------------------------------

    def _apply_sync(
        self,
        user_id: str,
        delta: int,
        type: TransactionType,
        reference_id: Optional[str],
        reference_type: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> CreditTransaction:
        now = _now()
        spent = -delta if delta < 0 else 0
        transaction_id = self.id_generator.generate("tx")

        with self._transaction() as cursor:
            cursor.execute(
                """
                UPDATE credit_balances
                SET balance = balance + ?, lifetime_spent = lifetime_spent + ?, updated_at = ?
                WHERE user_id = ?
                """,
                (delta, spent, now, user_id),
            )
            if cursor.rowcount == 0:
                raise BalanceNotFoundError(f"User {user_id} has no credit balance")

            cursor.execute("SELECT balance FROM credit_balances WHERE user_id = ?", (user_id,))
            balance_after = cursor.fetchone()[0]

            cursor.execute(
                f"""
                INSERT INTO credit_transactions ({TRANSACTION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    transaction_id,
                    user_id,
                    type.value,
                    delta,
                    balance_after,
                    reference_id,
                    reference_type,
                    json.dumps(metadata) if metadata is not None else None,
                    now,
                ),
            )

        return CreditTransaction(
            id=transaction_id,
            user_id=user_id,
            type=type,
            amount=delta,
            balance_after=balance_after,
            reference_id=reference_id,
            reference_type=reference_type,
            metadata=metadata,
            created_at=datetime.fromisoformat(now),
        )

    async def deduct_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        return await asyncio.to_thread(
            self._apply_sync, user_id, -amount, type, reference_id, reference_type, metadata
        )

    async def add_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        return await asyncio.to_thread(
            self._apply_sync, user_id, amount, type, reference_id, reference_type, metadata
        )

    def _get_transactions_sync(self, user_id: str, limit: int, offset: int) -> List[CreditTransaction]:
        rows = self._query(
            f"""
            SELECT {TRANSACTION_COLUMNS} FROM credit_transactions
            WHERE user_id = ?
            ORDER BY seq DESC
            LIMIT ? OFFSET ?
            """,
            (user_id, limit, offset),
        )
        return [_row_to_transaction(row) for row in rows]

    async def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> List[CreditTransaction]:
        return await asyncio.to_thread(self._get_transactions_sync, user_id, limit, offset)

    # Activity & tier --------------------------------------------------------

    def _record_activity_sync(self, user_id: str, activity_type: str) -> bool:
        today = self.today()
        now = _now()
        with self._transaction() as cursor:
            cursor.execute(
                """
                INSERT OR IGNORE INTO daily_activity
                (id, user_id, activity_date, activity_type, charged_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (self.id_generator.generate("act"), user_id, today, activity_type, now),
            )
            first_today = cursor.rowcount == 1
            if first_today:
                cursor.execute(
                    "UPDATE credit_balances SET last_activity_date = ?, updated_at = ? WHERE user_id = ?",
                    (today, now, user_id),
                )
        return first_today

    async def record_activity(self, user_id: str, activity_type: str) -> bool:
        return await asyncio.to_thread(self._record_activity_sync, user_id, activity_type)

    def _update_tier_sync(self, user_id: str, tier: UserTier) -> None:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE credit_balances SET tier = ?, updated_at = ? WHERE user_id = ?",
                (tier.value, _now(), user_id),
            )
            if cursor.rowcount == 0:
                raise BalanceNotFoundError(f"User {user_id} has no credit balance")

    async def update_tier(self, user_id: str, tier: UserTier) -> None:
        await asyncio.to_thread(self._update_tier_sync, user_id, tier)


class SQLitePaymentStore(_SQLiteBase, PaymentStore):
    """Durable payment records. The Stripe intent id is UNIQUE."""

    def _create_sync(self, payment: Payment) -> Payment:
        with self._transaction() as cursor:
            cursor.execute(
                f"INSERT INTO payments ({PAYMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    payment.id,
                    payment.user_id,
                    payment.stripe_payment_intent_id,
                    payment.amount_eur,
                    payment.credits_granted,
                    payment.status.value,
                    payment.created_at.isoformat(),
                    payment.updated_at.isoformat(),
                ),
            )
        return payment

    async def create(self, payment: Payment) -> Payment:
        return await asyncio.to_thread(self._create_sync, payment)

    def _find_one(self, where: str, value: str) -> Optional[Payment]:
        rows = self._query(f"SELECT {PAYMENT_COLUMNS} FROM payments WHERE {where} = ?", (value,))
        return _row_to_payment(rows[0]) if rows else None

    async def find_by_id(self, payment_id: str) -> Optional[Payment]:
        return await asyncio.to_thread(self._find_one, "id", payment_id)

    async def find_by_external_ref(self, external_ref: str) -> Optional[Payment]:
        return await asyncio.to_thread(self._find_one, "stripe_payment_intent_id", external_ref)

    def _update_status_sync(
        self, payment_id: str, status: PaymentStatus, expected: Optional[PaymentStatus]
    ) -> Optional[Payment]:
        with self._transaction() as cursor:
            if expected is None:
                cursor.execute(
                    "UPDATE payments SET status = ?, updated_at = ? WHERE id = ?",
                    (status.value, _now(), payment_id),
                )
            else:
                cursor.execute(
                    "UPDATE payments SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                    (status.value, _now(), payment_id, expected.value),
                )
            changed = cursor.rowcount == 1

            cursor.execute(f"SELECT {PAYMENT_COLUMNS} FROM payments WHERE id = ?", (payment_id,))
            row = cursor.fetchone()

        if row is None:
            raise ValueError(f"Payment {payment_id} not found")
        return _row_to_payment(row) if changed else None

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        expected: Optional[PaymentStatus] = None,
    ) -> Optional[Payment]:
        return await asyncio.to_thread(self._update_status_sync, payment_id, status, expected)

    def _find_by_user_sync(self, user_id: str, limit: int) -> List[Payment]:
        rows = self._query(
            f"""
            SELECT {PAYMENT_COLUMNS} FROM payments
            WHERE user_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [_row_to_payment(row) for row in rows]

    async def find_by_user_id(self, user_id: str, limit: int = 50) -> List[Payment]:
        return await asyncio.to_thread(self._find_by_user_sync, user_id, limit)
