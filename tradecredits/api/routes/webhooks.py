"""
Stripe Webhook Route.

The raw request body is needed for signature verification, so the payload
is read from the Request directly rather than through a pydantic model.
"""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from tradecredits.api.dependencies import get_config, get_payment_orchestrator
from tradecredits.credits.config import CreditsConfig
from tradecredits.credits.payments import PaymentOrchestrator
from tradecredits.credits.stripe_integration import handle_webhook, verify_webhook_signature

logger = logging.getLogger("tradecredits.api.webhooks")

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    config: CreditsConfig = Depends(get_config),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """
    Receive a Stripe event.

    400 for a missing or invalid signature, 500 when processing raised so
    Stripe redelivers, 200 otherwise.
    """
    payload = await request.body()

    try:
        event = verify_webhook_signature(payload, stripe_signature, config.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(400, str(e))

    result = await handle_webhook(event, orchestrator)

    if "error" in result:
        return JSONResponse(status_code=500, content={"received": True, **result})

    return {"received": True, **result}
