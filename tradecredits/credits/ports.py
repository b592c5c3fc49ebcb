"""
Abstract interfaces for the credit system.

The ledger and orchestrator depend only on these. Each port has a durable
adapter (sqlite_store, stripe_integration) and an in-memory one (memory_store).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from tradecredits.credits.models import (
    CreditBalance,
    CreditTransaction,
    Payment,
    PaymentIntent,
    PaymentStatus,
    TransactionType,
    UserTier,
)


class BalanceNotFoundError(Exception):
    """Raised when mutating a user that has no balance row."""
    pass


class CreditStore(ABC):
    """
    Balances and the transaction log.

    `deduct_credits` and `add_credits` must read the balance, apply the
    delta, append the transaction and record `balance_after` as one atomic
    unit. `record_activity` must test-and-set per (user, day).
    """

    @abstractmethod
    async def get_balance(self, user_id: str) -> Optional[CreditBalance]:
        pass

    @abstractmethod
    async def initialize_balance(self, user_id: str) -> CreditBalance:
        """Create a balance seeded with FREE_CREDITS. Returns the existing row if one appeared concurrently."""
        pass

    @abstractmethod
    async def deduct_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        pass

    @abstractmethod
    async def add_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        pass

    @abstractmethod
    async def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> List[CreditTransaction]:
        """Newest first."""
        pass

    @abstractmethod
    async def record_activity(self, user_id: str, activity_type: str) -> bool:
        """True iff this is the user's first recorded activity today."""
        pass

    @abstractmethod
    async def update_tier(self, user_id: str, tier: UserTier) -> None:
        pass


class PaymentStore(ABC):
    """Payment records keyed by id and by Stripe payment intent id."""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def find_by_id(self, payment_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def find_by_external_ref(self, external_ref: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        expected: Optional[PaymentStatus] = None,
    ) -> Optional[Payment]:
        """
        Set the payment status.

        With `expected`, the write only happens if the current status still
        equals `expected`; otherwise nothing is written and None is returned.
        """
        pass

    @abstractmethod
    async def find_by_user_id(self, user_id: str, limit: int = 50) -> List[Payment]:
        """Newest first."""
        pass


class PaymentGateway(ABC):
    """External payment processor."""

    @abstractmethod
    async def create_intent(
        self, amount_eur: int, email: str, metadata: Dict[str, str]
    ) -> PaymentIntent:
        pass

    @abstractmethod
    async def confirm_payment(self, external_ref: str) -> bool:
        pass

    @abstractmethod
    async def create_refund(self, external_ref: str, amount: Optional[int] = None) -> bool:
        pass


class IdGenerator(ABC):
    @abstractmethod
    def generate(self, prefix: Optional[str] = None) -> str:
        pass
