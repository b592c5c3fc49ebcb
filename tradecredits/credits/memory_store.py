"""
In-memory adapters for the credit system ports.

Used by the test suite and for local runs without a database. Each store
serializes mutations behind an asyncio.Lock so the atomicity contract of
the ports holds under concurrent coroutines.
"""

import asyncio
import copy
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from tradecredits.credits import models
from tradecredits.credits.ids import SequentialIdGenerator
from tradecredits.credits.models import (
    CreditBalance,
    CreditTransaction,
    Payment,
    PaymentIntent,
    PaymentStatus,
    TransactionType,
    UserTier,
)
from tradecredits.credits.ports import (
    BalanceNotFoundError,
    CreditStore,
    IdGenerator,
    PaymentGateway,
    PaymentStore,
)


def _utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class InMemoryCreditStore(CreditStore):
    """Dict-backed balances and transaction log."""

    def __init__(
        self,
        id_generator: Optional[IdGenerator] = None,
        today: Callable[[], str] = _utc_today,
    ):
        self.id_generator = id_generator or SequentialIdGenerator()
        self.today = today
        self._balances: Dict[str, CreditBalance] = {}
        self._transactions: List[CreditTransaction] = []
        self._activity: Set[Tuple[str, str]] = set()
        self._lock = asyncio.Lock()

    def seed(self, balance: CreditBalance) -> None:
        """Insert a balance directly (test setup)."""
        self._balances[balance.user_id] = copy.deepcopy(balance)

    async def get_balance(self, user_id: str) -> Optional[CreditBalance]:
        balance = self._balances.get(user_id)
        return copy.deepcopy(balance) if balance else None

    async def initialize_balance(self, user_id: str) -> CreditBalance:
        async with self._lock:
            if user_id not in self._balances:
                self._balances[user_id] = CreditBalance(
                    user_id=user_id,
                    balance=models.FREE_CREDITS,
                    lifetime_spent=0,
                    tier=UserTier.FREE,
                )
            return copy.deepcopy(self._balances[user_id])

    async def _apply(
        self,
        user_id: str,
        delta: int,
        type: TransactionType,
        reference_id: Optional[str],
        reference_type: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> CreditTransaction:
        async with self._lock:
            balance = self._balances.get(user_id)
            if balance is None:
                raise BalanceNotFoundError(f"User {user_id} has no credit balance")

            now = datetime.now(timezone.utc)
            balance.balance += delta
            if delta < 0:
                balance.lifetime_spent += -delta
            balance.updated_at = now

            transaction = CreditTransaction(
                id=self.id_generator.generate("tx"),
                user_id=user_id,
                type=type,
                amount=delta,
                balance_after=balance.balance,
                reference_id=reference_id,
                reference_type=reference_type,
                metadata=dict(metadata) if metadata else None,
                created_at=now,
            )
            self._transactions.append(transaction)
            return copy.deepcopy(transaction)

    async def deduct_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        return await self._apply(user_id, -amount, type, reference_id, reference_type, metadata)

    async def add_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        return await self._apply(user_id, amount, type, reference_id, reference_type, metadata)

    async def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> List[CreditTransaction]:
        entries = [tx for tx in reversed(self._transactions) if tx.user_id == user_id]
        return [copy.deepcopy(tx) for tx in entries[offset:offset + limit]]

    async def record_activity(self, user_id: str, activity_type: str) -> bool:
        async with self._lock:
            today = self.today()
            key = (user_id, today)
            if key in self._activity:
                return False
            self._activity.add(key)
            balance = self._balances.get(user_id)
            if balance is not None:
                balance.last_activity_date = today
                balance.updated_at = datetime.now(timezone.utc)
            return True

    async def update_tier(self, user_id: str, tier: UserTier) -> None:
        async with self._lock:
            balance = self._balances.get(user_id)
            if balance is None:
                raise BalanceNotFoundError(f"User {user_id} has no credit balance")
            balance.tier = tier
            balance.updated_at = datetime.now(timezone.utc)


class InMemoryPaymentStore(PaymentStore):
    """Dict-backed payment records with conditional status writes."""

    def __init__(self):
        self._payments: Dict[str, Payment] = {}
        self._lock = asyncio.Lock()

    async def create(self, payment: Payment) -> Payment:
        async with self._lock:
            for existing in self._payments.values():
                if existing.stripe_payment_intent_id == payment.stripe_payment_intent_id:
                    raise ValueError(f"Payment already exists for {payment.stripe_payment_intent_id}")
            self._payments[payment.id] = copy.deepcopy(payment)
            return copy.deepcopy(payment)

    async def find_by_id(self, payment_id: str) -> Optional[Payment]:
        payment = self._payments.get(payment_id)
        return copy.deepcopy(payment) if payment else None

    async def find_by_external_ref(self, external_ref: str) -> Optional[Payment]:
        for payment in self._payments.values():
            if payment.stripe_payment_intent_id == external_ref:
                return copy.deepcopy(payment)
        return None

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        expected: Optional[PaymentStatus] = None,
    ) -> Optional[Payment]:
        async with self._lock:
            payment = self._payments.get(payment_id)
            if payment is None:
                raise ValueError(f"Payment {payment_id} not found")
            if expected is not None and payment.status is not expected:
                return None
            self._payments[payment_id] = replace(
                payment, status=status, updated_at=datetime.now(timezone.utc)
            )
            return copy.deepcopy(self._payments[payment_id])

    async def find_by_user_id(self, user_id: str, limit: int = 50) -> List[Payment]:
        payments = [p for p in reversed(list(self._payments.values())) if p.user_id == user_id]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return [copy.deepcopy(p) for p in payments[:limit]]


class InMemoryPaymentGateway(PaymentGateway):
    """
    Scriptable stand-in for Stripe.

    `confirm_results` and `refund_results` map payment intent ids to the
    boolean the gateway should report; unlisted intents succeed.
    """

    def __init__(self, id_generator: Optional[IdGenerator] = None, currency: str = "eur"):
        self.id_generator = id_generator or SequentialIdGenerator()
        self.currency = currency
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.refunds: List[Tuple[str, Optional[int]]] = []
        self.confirm_results: Dict[str, bool] = {}
        self.refund_results: Dict[str, bool] = {}

    async def create_intent(
        self, amount_eur: int, email: str, metadata: Dict[str, str]
    ) -> PaymentIntent:
        intent_id = self.id_generator.generate("pi")
        self.intents[intent_id] = {"amount": amount_eur, "email": email, "metadata": dict(metadata)}
        return PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret",
            amount=amount_eur,
            currency=self.currency,
            status="requires_payment_method",
        )

    async def confirm_payment(self, external_ref: str) -> bool:
        return self.confirm_results.get(external_ref, True)

    async def create_refund(self, external_ref: str, amount: Optional[int] = None) -> bool:
        ok = self.refund_results.get(external_ref, True)
        if ok:
            self.refunds.append((external_ref, amount))
        return ok
