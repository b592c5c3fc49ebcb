"""
Credit Manager - Core credit operations.

Handles:
- Balance lookup (lazily seeded with free credits)
- Daily activity metering
- Access checks for trading and real-time data
- Trade charges
- Purchased, refunded and bonus credits
- Tier promotion
"""

import logging
from typing import Any, Dict, List, Optional

from tradecredits.credits import models
from tradecredits.credits.access import evaluate_access, next_tier
from tradecredits.credits.models import (
    AccessContext,
    CreditBalance,
    CreditTransaction,
    TradeAccessResult,
    TransactionType,
    UserTier,
)
from tradecredits.credits.ports import CreditStore

logger = logging.getLogger("tradecredits.credits")


class CreditError(Exception):
    """Raised when a credit-gated action is refused."""

    def __init__(self, reason: str, required_credits: int = 0):
        super().__init__(reason)
        self.reason = reason
        self.required_credits = required_credits


class CreditManager:
    """
    Manages credit operations for the platform.

    Usage:
        manager = CreditManager(SQLiteCreditStore("data/credits.db"))

        # Charge the first call of the day
        await manager.track_activity(user_id)

        # Gate a trade, then charge it
        result = await manager.can_execute_trade(user_id, order_value=250)
        if result.allowed:
            await manager.deduct_for_trade(user_id, order_id, 250)
    """

    def __init__(self, store: CreditStore):
        self.store = store

    # =========================================================================
    # Balance & Metering
    # =========================================================================

    async def get_balance(self, user_id: str) -> CreditBalance:
        """Get user's balance, creating it with the free allotment on first use."""
        balance = await self.store.get_balance(user_id)
        if balance is not None:
            return balance

        balance = await self.store.initialize_balance(user_id)
        logger.info(f"Initialized balance for {user_id} with {balance.balance} free credits")
        return balance

    async def track_activity(
        self, user_id: str, activity_type: str = "api_call"
    ) -> Optional[CreditTransaction]:
        """
        Record activity and charge DAILY_ACTIVE_COST on the first call of the day.

        The charge applies even when the user is already in debt. Returns the
        charge, or None if the user was already charged today.
        """
        await self.get_balance(user_id)

        first_today = await self.store.record_activity(user_id, activity_type)
        if not first_today:
            return None

        transaction = await self.store.deduct_credits(
            user_id,
            models.DAILY_ACTIVE_COST,
            TransactionType.DAILY_ACTIVE,
            metadata={"activityType": activity_type},
        )
        logger.debug(f"Daily activity charge for {user_id}, balance now {transaction.balance_after}")
        return transaction

    # =========================================================================
    # Access Control
    # =========================================================================

    async def get_access_context(
        self, user_id: str, order_value: Optional[float] = None
    ) -> AccessContext:
        balance = await self.get_balance(user_id)
        return evaluate_access(balance, order_value)

    async def can_execute_trade(self, user_id: str, order_value: float) -> TradeAccessResult:
        context = await self.get_access_context(user_id, order_value)
        return TradeAccessResult(
            allowed=context.can_trade,
            reason=context.restriction_reason,
            required_credits=context.required_credits,
        )

    async def deduct_for_trade(
        self, user_id: str, order_id: str, trade_amount: float
    ) -> CreditTransaction:
        """
        Charge TRADE_BASE_COST for an executed trade.

        Raises:
            CreditError: If the user may not trade this amount. No ledger
                entry is written in that case.
        """
        access = await self.can_execute_trade(user_id, trade_amount)
        if not access.allowed:
            reason = access.reason or "Trade not allowed"
            logger.warning(f"Trade {order_id} refused for {user_id}: {reason}")
            raise CreditError(reason, access.required_credits)

        return await self.store.deduct_credits(
            user_id,
            models.TRADE_BASE_COST,
            TransactionType.TRADE,
            reference_id=order_id,
            reference_type="order",
            metadata={"tradeAmount": trade_amount},
        )

    # =========================================================================
    # Credit Top-ups
    # =========================================================================

    async def add_purchased_credits(
        self, user_id: str, credits: int, payment_id: str
    ) -> CreditTransaction:
        """Add purchased credits and promote the user's tier if earned."""
        if credits <= 0:
            raise ValueError("Credits must be positive")

        await self.get_balance(user_id)
        transaction = await self.store.add_credits(
            user_id,
            credits,
            TransactionType.PURCHASE,
            reference_id=payment_id,
            reference_type="payment",
        )
        logger.info(f"Added {credits} purchased credits to {user_id}, new balance: {transaction.balance_after}")

        await self.apply_tier_promotion(user_id, credits)
        return transaction

    async def apply_tier_promotion(self, user_id: str, credits_purchased: int) -> UserTier:
        """Re-read the balance and promote the tier for a purchase of `credits_purchased`."""
        balance = await self.get_balance(user_id)
        tier = next_tier(balance.tier, credits_purchased)

        if tier is not balance.tier:
            await self.store.update_tier(user_id, tier)
            logger.info(f"Tier change for {user_id}: {balance.tier.value} -> {tier.value}")

        return tier

    async def remove_refunded_credits(
        self,
        user_id: str,
        credits: int,
        payment_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        """Take back refunded credits. May push the balance negative."""
        if credits <= 0:
            raise ValueError("Credits must be positive")

        transaction = await self.store.deduct_credits(
            user_id,
            credits,
            TransactionType.REFUND,
            reference_id=payment_id,
            reference_type="payment",
            metadata=metadata,
        )
        logger.info(f"Removed {credits} refunded credits from {user_id}, new balance: {transaction.balance_after}")
        return transaction

    async def add_bonus_credits(self, user_id: str, credits: int, reason: str = "") -> CreditTransaction:
        """Grant promotional credits. Does not affect tier."""
        if credits <= 0:
            raise ValueError("Credits must be positive")

        await self.get_balance(user_id)
        transaction = await self.store.add_credits(
            user_id,
            credits,
            TransactionType.BONUS,
            metadata={"reason": reason} if reason else None,
        )
        logger.info(f"Granted {credits} bonus credits to {user_id}")
        return transaction

    # =========================================================================
    # History
    # =========================================================================

    async def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> List[CreditTransaction]:
        return await self.store.get_transactions(user_id, limit, offset)
