"""
Trade Credits Test Configuration

Shared fixtures: deterministic ids, in-memory stores and gateway, and the
ledger and orchestrator wired on top of them.
"""

import hashlib
import hmac
import time
from datetime import datetime, timezone

import pytest

from tradecredits.credits.ids import SequentialIdGenerator
from tradecredits.credits.manager import CreditManager
from tradecredits.credits.memory_store import (
    InMemoryCreditStore,
    InMemoryPaymentGateway,
    InMemoryPaymentStore,
)
from tradecredits.credits.models import CreditBalance, UserTier
from tradecredits.credits.payments import PaymentOrchestrator


class FakeClock:
    """Settable calendar day for daily-activity tests."""

    def __init__(self, day: str = "2026-01-15"):
        self.day = day

    def __call__(self) -> str:
        return self.day


@pytest.fixture
def id_generator():
    return SequentialIdGenerator()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credit_store(id_generator, clock):
    return InMemoryCreditStore(id_generator=id_generator, today=clock)


@pytest.fixture
def payment_store():
    return InMemoryPaymentStore()


@pytest.fixture
def gateway():
    return InMemoryPaymentGateway()


@pytest.fixture
def manager(credit_store):
    return CreditManager(credit_store)


@pytest.fixture
def orchestrator(payment_store, gateway, id_generator, manager):
    return PaymentOrchestrator(payment_store, gateway, id_generator, manager)


@pytest.fixture
def make_balance():
    """Factory for balance snapshots."""

    def _make(
        balance: int = 50,
        lifetime_spent: int = 0,
        tier: UserTier = UserTier.FREE,
        user_id: str = "user_1",
    ) -> CreditBalance:
        now = datetime(2026, 1, 15, tzinfo=timezone.utc)
        return CreditBalance(
            user_id=user_id,
            balance=balance,
            lifetime_spent=lifetime_spent,
            tier=tier,
            created_at=now,
            updated_at=now,
        )

    return _make


WEBHOOK_SECRET = "whsec_test_secret"


def _sign_payload(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def sign_payload():
    """Build a Stripe-Signature header for a payload string."""
    return _sign_payload
