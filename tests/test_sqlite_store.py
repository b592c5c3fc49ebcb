"""
Tests for the SQLite stores.

Each test uses a fresh database file under tmp_path.
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from tradecredits.credits.ids import SequentialIdGenerator
from tradecredits.credits.manager import CreditManager
from tradecredits.credits.memory_store import InMemoryPaymentGateway
from tradecredits.credits.models import (
    FREE_CREDITS,
    CreatePaymentIntentData,
    Payment,
    PaymentStatus,
    TransactionType,
    UserTier,
)
from tradecredits.credits.payments import PaymentOrchestrator
from tradecredits.credits.ports import BalanceNotFoundError
from tradecredits.credits.sqlite_store import SQLiteCreditStore, SQLitePaymentStore


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "data" / "credits.db")


@pytest.fixture
def sqlite_credit_store(db_path, clock):
    return SQLiteCreditStore(db_path, id_generator=SequentialIdGenerator(), today=clock)


@pytest.fixture
def sqlite_payment_store(db_path):
    return SQLitePaymentStore(db_path)


def _payment(payment_id: str = "payment_1", intent_id: str = "pi_1", **kwargs) -> Payment:
    defaults = dict(
        user_id="user_1",
        amount_eur=1000,
        credits_granted=100,
    )
    defaults.update(kwargs)
    return Payment(id=payment_id, stripe_payment_intent_id=intent_id, **defaults)


class TestSQLiteCreditStore:
    """Tests for SQLiteCreditStore."""

    def test_memory_database_rejected(self):
        """Test ':memory:' is refused since each operation opens a new connection."""
        with pytest.raises(ValueError):
            SQLiteCreditStore(":memory:")

    @pytest.mark.asyncio
    async def test_initialize_balance(self, sqlite_credit_store):
        """Test a new balance is seeded with the free allotment."""
        assert await sqlite_credit_store.get_balance("user_1") is None

        balance = await sqlite_credit_store.initialize_balance("user_1")

        assert balance.balance == FREE_CREDITS
        assert balance.tier is UserTier.FREE
        assert (await sqlite_credit_store.get_balance("user_1")).balance == FREE_CREDITS

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, sqlite_credit_store):
        """Test initializing twice keeps the first row."""
        await sqlite_credit_store.initialize_balance("user_1")
        await sqlite_credit_store.deduct_credits("user_1", 5, TransactionType.TRADE)

        balance = await sqlite_credit_store.initialize_balance("user_1")

        assert balance.balance == FREE_CREDITS - 5

    @pytest.mark.asyncio
    async def test_deduct_and_add(self, sqlite_credit_store):
        """Test balance, lifetime spend and ledger rows."""
        await sqlite_credit_store.initialize_balance("user_1")

        debit = await sqlite_credit_store.deduct_credits(
            "user_1", 3, TransactionType.TRADE, "order_1", "order", {"tradeAmount": 12.5}
        )
        credit = await sqlite_credit_store.add_credits(
            "user_1", 100, TransactionType.PURCHASE, "payment_1", "payment"
        )

        assert debit.amount == -3
        assert debit.balance_after == FREE_CREDITS - 3
        assert credit.balance_after == FREE_CREDITS - 3 + 100

        balance = await sqlite_credit_store.get_balance("user_1")
        assert balance.lifetime_spent == 3

        history = await sqlite_credit_store.get_transactions("user_1")
        assert [t.type for t in history] == [TransactionType.PURCHASE, TransactionType.TRADE]
        assert history[1].metadata == {"tradeAmount": 12.5}
        assert history[1].reference_type == "order"
        assert history[0].metadata is None

    @pytest.mark.asyncio
    async def test_missing_balance_raises(self, sqlite_credit_store):
        """Test mutating a user without a balance fails and writes nothing."""
        with pytest.raises(BalanceNotFoundError):
            await sqlite_credit_store.deduct_credits("ghost", 1, TransactionType.TRADE)

        assert await sqlite_credit_store.get_transactions("ghost") == []

    @pytest.mark.asyncio
    async def test_concurrent_deductions_are_atomic(self, sqlite_credit_store):
        """Test concurrent writers never lose an update."""
        await sqlite_credit_store.initialize_balance("user_1")

        await asyncio.gather(
            *(
                sqlite_credit_store.deduct_credits("user_1", 1, TransactionType.TRADE, f"order_{i}", "order")
                for i in range(20)
            )
        )

        balance = await sqlite_credit_store.get_balance("user_1")
        history = await sqlite_credit_store.get_transactions("user_1", limit=100)

        assert balance.balance == FREE_CREDITS - 20
        assert balance.lifetime_spent == 20
        assert len(history) == 20
        assert sorted(t.balance_after for t in history) == list(range(FREE_CREDITS - 20, FREE_CREDITS))

    @pytest.mark.asyncio
    async def test_record_activity_once_per_day(self, sqlite_credit_store, clock):
        """Test first-activity detection per calendar day."""
        await sqlite_credit_store.initialize_balance("user_1")

        results = await asyncio.gather(
            *(sqlite_credit_store.record_activity("user_1", "api_call") for _ in range(5))
        )
        assert results.count(True) == 1

        clock.day = "2026-01-16"
        assert await sqlite_credit_store.record_activity("user_1", "api_call") is True

        balance = await sqlite_credit_store.get_balance("user_1")
        assert balance.last_activity_date == "2026-01-16"

    @pytest.mark.asyncio
    async def test_update_tier(self, sqlite_credit_store):
        """Test tier persistence."""
        await sqlite_credit_store.initialize_balance("user_1")

        await sqlite_credit_store.update_tier("user_1", UserTier.PAID_TIER2)

        assert (await sqlite_credit_store.get_balance("user_1")).tier is UserTier.PAID_TIER2

    @pytest.mark.asyncio
    async def test_data_survives_new_store_instance(self, db_path, sqlite_credit_store):
        """Test balances are durable across store instances."""
        await sqlite_credit_store.initialize_balance("user_1")
        await sqlite_credit_store.add_credits("user_1", 10, TransactionType.BONUS)

        reopened = SQLiteCreditStore(db_path)

        assert (await reopened.get_balance("user_1")).balance == FREE_CREDITS + 10


class TestSQLitePaymentStore:
    """Tests for SQLitePaymentStore."""

    @pytest.mark.asyncio
    async def test_create_and_find(self, sqlite_payment_store):
        """Test lookups by id and by Stripe intent id."""
        await sqlite_payment_store.create(_payment())

        by_id = await sqlite_payment_store.find_by_id("payment_1")
        by_ref = await sqlite_payment_store.find_by_external_ref("pi_1")

        assert by_id.stripe_payment_intent_id == "pi_1"
        assert by_ref.id == "payment_1"
        assert by_ref.status is PaymentStatus.PENDING
        assert await sqlite_payment_store.find_by_external_ref("pi_missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_intent_rejected(self, sqlite_payment_store):
        """Test the Stripe intent id is unique."""
        await sqlite_payment_store.create(_payment())

        with pytest.raises(sqlite3.IntegrityError):
            await sqlite_payment_store.create(_payment(payment_id="payment_2"))

    @pytest.mark.asyncio
    async def test_conditional_status_update(self, sqlite_payment_store):
        """Test compare-and-set semantics of update_status."""
        await sqlite_payment_store.create(_payment())

        won = await sqlite_payment_store.update_status(
            "payment_1", PaymentStatus.COMPLETED, expected=PaymentStatus.PENDING
        )
        lost = await sqlite_payment_store.update_status(
            "payment_1", PaymentStatus.COMPLETED, expected=PaymentStatus.PENDING
        )

        assert won.status is PaymentStatus.COMPLETED
        assert lost is None

    @pytest.mark.asyncio
    async def test_update_missing_payment_raises(self, sqlite_payment_store):
        """Test updating an unknown payment is an error."""
        with pytest.raises(ValueError):
            await sqlite_payment_store.update_status("payment_missing", PaymentStatus.FAILED)

    @pytest.mark.asyncio
    async def test_find_by_user_newest_first(self, sqlite_payment_store):
        """Test history ordering and limit."""
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for i in range(3):
            created = start + timedelta(days=i)
            await sqlite_payment_store.create(
                _payment(f"payment_{i}", f"pi_{i}", created_at=created, updated_at=created)
            )
        await sqlite_payment_store.create(_payment("payment_x", "pi_x", user_id="user_2"))

        history = await sqlite_payment_store.find_by_user_id("user_1", limit=2)

        assert [p.id for p in history] == ["payment_2", "payment_1"]


class TestSQLiteEndToEnd:
    """Ledger and orchestrator on top of SQLite."""

    @pytest.mark.asyncio
    async def test_purchase_and_duplicate_webhook(self, sqlite_credit_store, sqlite_payment_store):
        """Test concurrent success deliveries grant credits once."""
        ids = SequentialIdGenerator()
        manager = CreditManager(sqlite_credit_store)
        orchestrator = PaymentOrchestrator(
            sqlite_payment_store, InMemoryPaymentGateway(ids), ids, manager
        )

        intent = await orchestrator.create_payment_intent(
            CreatePaymentIntentData(user_id="user_1", email="a@example.com", amount_eur=10000)
        )
        results = await asyncio.gather(
            *(orchestrator.handle_payment_success(intent.id) for _ in range(4))
        )

        balance = await manager.get_balance("user_1")
        purchases = [
            t for t in await manager.get_transactions("user_1") if t.type is TransactionType.PURCHASE
        ]

        assert all(results)
        assert balance.balance == FREE_CREDITS + 1000
        assert balance.tier is UserTier.PAID_TIER2
        assert len(purchases) == 1
