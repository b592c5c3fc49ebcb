"""
Payment Orchestrator.

Turns Stripe money events into ledger events:
- Intent creation (credits priced and fixed up front)
- Payment success (idempotent on the payment intent id)
- Full and partial refunds

Payment state machine:
    pending -> completed -> refunded
    pending -> failed
Partial refunds leave a completed payment completed.
"""

import logging
from typing import Any, Dict, List, Optional

from tradecredits.credits import models
from tradecredits.credits.access import credits_for_amount
from tradecredits.credits.manager import CreditManager
from tradecredits.credits.models import (
    CreatePaymentIntentData,
    Payment,
    PaymentIntent,
    PaymentStatus,
    UserTier,
    can_transition,
)
from tradecredits.credits.ports import IdGenerator, PaymentGateway, PaymentStore

logger = logging.getLogger("tradecredits.credits.payments")


class PaymentError(Exception):
    """Raised for invalid payment requests."""
    pass


class PaymentOrchestrator:
    """
    Sequences gateway calls with payment-store and ledger updates.

    Every webhook-facing method is safe to call repeatedly with the same
    payment intent id. Expected outcomes (unknown payment, duplicate
    delivery, refund of a non-completed payment) are returned as booleans;
    store and gateway exceptions propagate.
    """

    def __init__(
        self,
        payment_store: PaymentStore,
        gateway: PaymentGateway,
        id_generator: IdGenerator,
        ledger: CreditManager,
    ):
        self.payment_store = payment_store
        self.gateway = gateway
        self.id_generator = id_generator
        self.ledger = ledger

    # =========================================================================
    # Intents
    # =========================================================================

    async def create_payment_intent(self, data: CreatePaymentIntentData) -> PaymentIntent:
        """
        Create a Stripe payment intent and a pending payment record.

        `credits_granted` is computed here and stored; later pricing changes
        do not affect it. No credits are granted until the payment succeeds.
        """
        if isinstance(data.amount_eur, bool) or not isinstance(data.amount_eur, int) or data.amount_eur <= 0:
            raise PaymentError(f"amount_eur must be a positive integer number of cents, got {data.amount_eur!r}")

        credits_granted = credits_for_amount(data.amount_eur)
        if credits_granted <= 0:
            raise PaymentError(
                f"amount_eur {data.amount_eur} is below the smallest purchasable credit "
                f"({100 // models.CREDITS_PER_EUR} cents)"
            )

        intent = await self.gateway.create_intent(
            amount_eur=data.amount_eur,
            email=data.email,
            metadata={
                "userId": data.user_id,
                "tier": data.tier.value,
            },
        )

        payment = Payment(
            id=self.id_generator.generate("payment"),
            user_id=data.user_id,
            stripe_payment_intent_id=intent.id,
            amount_eur=data.amount_eur,
            credits_granted=credits_granted,
            status=PaymentStatus.PENDING,
        )
        await self.payment_store.create(payment)

        logger.info(
            f"Created payment {payment.id} ({intent.id}) for {data.user_id}: "
            f"{data.amount_eur} cents -> {credits_granted} credits"
        )
        return intent

    def quote_purchase(self, amount_eur: int, current_tier: UserTier) -> Dict[str, Any]:
        """Credits a purchase would grant and whether it unlocks Tier 2."""
        credits = credits_for_amount(amount_eur)
        return {
            "creditsToReceive": credits,
            "willUpgradeToTier2": (
                credits >= models.TIER2_MIN_PURCHASE and current_tier is not UserTier.PAID_TIER2
            ),
        }

    # =========================================================================
    # Webhook Outcomes
    # =========================================================================

    async def handle_payment_success(self, stripe_payment_intent_id: str) -> bool:
        """
        Grant credits for a succeeded payment intent.

        Returns:
            False for an unknown intent or a failed confirmation, True once
            the payment is completed (including repeat deliveries).
        """
        payment = await self.payment_store.find_by_external_ref(stripe_payment_intent_id)
        if payment is None:
            logger.warning(f"Success event for unknown payment intent {stripe_payment_intent_id}")
            return False

        if payment.status is PaymentStatus.COMPLETED:
            logger.info(f"Duplicate success event for {stripe_payment_intent_id}, already completed")
            return True

        if payment.status is not PaymentStatus.PENDING:
            logger.warning(
                f"Success event for {stripe_payment_intent_id} in state {payment.status.value}, ignoring"
            )
            return False

        confirmed = await self.gateway.confirm_payment(stripe_payment_intent_id)
        if not confirmed:
            await self._transition(payment, PaymentStatus.FAILED)
            logger.error(f"Payment {payment.id} ({stripe_payment_intent_id}) failed confirmation")
            return False

        claimed = await self._transition(payment, PaymentStatus.COMPLETED)
        if claimed is None:
            # A concurrent delivery moved the payment first
            current = await self.payment_store.find_by_id(payment.id)
            won_elsewhere = current is not None and current.status is PaymentStatus.COMPLETED
            logger.info(f"Payment {payment.id} already transitioned concurrently")
            return won_elsewhere

        await self.ledger.add_purchased_credits(payment.user_id, payment.credits_granted, payment.id)
        await self.ledger.apply_tier_promotion(payment.user_id, payment.credits_granted)

        logger.info(f"Payment {payment.id} completed, granted {payment.credits_granted} credits to {payment.user_id}")
        return True

    async def handle_refund(
        self, stripe_payment_intent_id: str, refund_amount: Optional[int] = None
    ) -> bool:
        """
        Refund a completed payment and remove the matching credits.

        A `refund_amount` below the payment amount is a partial refund:
        credits are removed pro rata and the status stays `completed`.
        Otherwise the full `credits_granted` is removed and the payment
        becomes `refunded`.
        """
        payment = await self.payment_store.find_by_external_ref(stripe_payment_intent_id)
        if payment is None:
            logger.warning(f"Refund for unknown payment intent {stripe_payment_intent_id}")
            return False

        if payment.status is not PaymentStatus.COMPLETED:
            logger.warning(
                f"Refund rejected for {payment.id}: status is {payment.status.value}, not completed"
            )
            return False

        refunded = await self.gateway.create_refund(stripe_payment_intent_id, refund_amount)
        if not refunded:
            logger.error(f"Gateway refused refund for {payment.id} ({stripe_payment_intent_id})")
            return False

        is_partial = refund_amount is not None and refund_amount < payment.amount_eur

        if is_partial:
            credits_to_remove = credits_for_amount(refund_amount)
            metadata = {"partialRefund": True, "refundAmount": refund_amount}
        else:
            claimed = await self._transition(payment, PaymentStatus.REFUNDED)
            if claimed is None:
                logger.info(f"Payment {payment.id} already refunded concurrently")
                return False
            credits_to_remove = payment.credits_granted
            metadata = None

        if credits_to_remove > 0:
            await self.ledger.remove_refunded_credits(
                payment.user_id, credits_to_remove, payment.id, metadata
            )

        logger.info(
            f"{'Partial' if is_partial else 'Full'} refund for {payment.id}: "
            f"removed {credits_to_remove} credits from {payment.user_id}"
        )
        return True

    async def _transition(self, payment: Payment, target: PaymentStatus) -> Optional[Payment]:
        """Claim a status change; None when another writer moved the payment first."""
        if not can_transition(payment.status, target):
            raise PaymentError(
                f"Illegal payment transition {payment.status.value} -> {target.value} for {payment.id}"
            )
        return await self.payment_store.update_status(payment.id, target, expected=payment.status)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        return await self.payment_store.find_by_id(payment_id)

    async def get_payment_history(self, user_id: str, limit: int = 50) -> List[Payment]:
        return await self.payment_store.find_by_user_id(user_id, limit)

    def get_pricing(self) -> Dict[str, Any]:
        return {
            "creditsPerEur": models.CREDITS_PER_EUR,
            "tier2MinPurchase": models.TIER2_MIN_PURCHASE,
            "tier2MinAmountEur": (models.TIER2_MIN_PURCHASE * 100) // models.CREDITS_PER_EUR,
            "packages": [package.to_dict() for package in models.PRICING_PACKAGES],
        }
