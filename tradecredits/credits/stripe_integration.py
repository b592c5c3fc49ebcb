"""
Stripe Payment Integration.

Handles:
- Payment intent creation
- Payment confirmation
- Refunds
- Webhook verification and dispatch

Webhook Events:
- payment_intent.succeeded -> Grant credits
- payment_intent.payment_failed -> Logged, payment stays pending
- charge.refunded -> Remove credits (full or partial)
"""

import asyncio
import logging
from typing import Any, Dict, Optional, TYPE_CHECKING

import stripe

from tradecredits.credits.models import PaymentIntent
from tradecredits.credits.ports import PaymentGateway
from tradecredits.logging_config import CorrelationContext

if TYPE_CHECKING:
    from tradecredits.credits.payments import PaymentOrchestrator

logger = logging.getLogger("tradecredits.credits.stripe")

REFUND_ACCEPTED_STATUSES = {"succeeded", "pending"}


class StripePaymentGateway(PaymentGateway):
    """PaymentGateway backed by the Stripe API."""

    def __init__(self, api_key: str, currency: str = "eur"):
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY not configured")
        self.api_key = api_key
        self.currency = currency

    async def create_intent(
        self, amount_eur: int, email: str, metadata: Dict[str, str]
    ) -> PaymentIntent:
        intent = await asyncio.to_thread(
            stripe.PaymentIntent.create,
            api_key=self.api_key,
            amount=amount_eur,
            currency=self.currency,
            receipt_email=email,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )

        logger.info(f"Created Stripe payment intent {intent.id} for {amount_eur} {self.currency} cents")

        return PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret or "",
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status,
        )

    async def confirm_payment(self, external_ref: str) -> bool:
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve, external_ref, api_key=self.api_key
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving payment intent {external_ref}: {e}")
            return False

        return intent.status == "succeeded"

    async def create_refund(self, external_ref: str, amount: Optional[int] = None) -> bool:
        params: Dict[str, Any] = {"payment_intent": external_ref}
        if amount is not None:
            params["amount"] = amount

        try:
            refund = await asyncio.to_thread(stripe.Refund.create, api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding {external_ref}: {e}")
            return False

        return refund.status in REFUND_ACCEPTED_STATUSES


# =============================================================================
# Webhook Handling
# =============================================================================


def verify_webhook_signature(payload: bytes, signature: str, webhook_secret: str) -> Dict[str, Any]:
    """
    Verify Stripe webhook signature and parse event.

    Raises:
        ValueError: If the secret or signature is missing, or the payload is not JSON.
        stripe.SignatureVerificationError: If the signature does not match.
    """
    if not webhook_secret:
        raise ValueError("STRIPE_WEBHOOK_SECRET not configured")
    if not signature:
        raise ValueError("Missing stripe-signature header")

    return stripe.Webhook.construct_event(payload, signature, webhook_secret)


def _intent_id(value: Any) -> Optional[str]:
    # charge.payment_intent is either an id or an expanded object
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


async def handle_webhook(event: Dict[str, Any], orchestrator: "PaymentOrchestrator") -> Dict[str, Any]:
    """
    Route a verified Stripe event to the payment orchestrator.

    Args:
        event: Parsed Stripe event
        orchestrator: PaymentOrchestrator that owns payment state

    Returns:
        Dict with handling result. `error` is set when processing raised,
        so the caller can ask Stripe to redeliver.
    """
    event_type = event.get("type", "")
    data = event.get("data", {}).get("object", {})
    if event_type.startswith("charge."):
        intent_id = _intent_id(data.get("payment_intent"))
    else:
        intent_id = data.get("id")
    user_id = (data.get("metadata") or {}).get("userId")

    with CorrelationContext(correlation_id=event.get("id"), user_id=user_id, payment_id=intent_id):
        logger.info(f"Processing Stripe webhook: {event_type}")

        try:
            if event_type == "payment_intent.succeeded":
                processed = await orchestrator.handle_payment_success(intent_id)
                if not processed:
                    logger.error(f"Failed to process payment: {intent_id}")
                return {"event_type": event_type, "handled": True, "processed": processed, "payment_intent": intent_id}

            if event_type == "payment_intent.payment_failed":
                logger.info(f"Payment failed at Stripe: {intent_id}")
                return {"event_type": event_type, "handled": True, "processed": False, "payment_intent": intent_id}

            if event_type == "charge.refunded":
                if not intent_id:
                    return {"event_type": event_type, "handled": False, "reason": "no_payment_intent"}
                refund_amount = data.get("amount_refunded")
                processed = await orchestrator.handle_refund(intent_id, refund_amount)
                return {
                    "event_type": event_type,
                    "handled": True,
                    "processed": processed,
                    "payment_intent": intent_id,
                    "amount_refunded": refund_amount,
                }

            logger.debug(f"Unhandled event type: {event_type}")
            return {"event_type": event_type, "handled": False, "reason": "unhandled_event_type"}

        except Exception as e:
            logger.exception(f"Webhook handling error for {event_type}: {e}")
            return {"event_type": event_type, "handled": False, "error": str(e)}
