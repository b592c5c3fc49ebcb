"""
Payments API Routes.

FastAPI endpoints for buying credits:
- Payment intent creation
- Payment history
- Pricing information
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from tradecredits.api.dependencies import get_credit_manager, get_payment_orchestrator
from tradecredits.credits.manager import CreditManager
from tradecredits.credits.models import CreatePaymentIntentData
from tradecredits.credits.payments import PaymentError, PaymentOrchestrator

logger = logging.getLogger("tradecredits.api.payments")

router = APIRouter(prefix="/api/payments", tags=["Payments"])


class CreateIntentRequest(BaseModel):
    """Request to start a credit purchase."""
    user_id: str = Field(..., description="User identifier")
    email: str = Field(..., description="Receipt email")
    amount_eur: int = Field(..., ge=100, description="Amount in EUR cents (min 100 = 1 EUR)")


@router.post("/create-intent")
async def create_intent(
    request: CreateIntentRequest,
    manager: CreditManager = Depends(get_credit_manager),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Create a Stripe payment intent for a credit purchase."""
    balance = await manager.get_balance(request.user_id)
    quote = orchestrator.quote_purchase(request.amount_eur, balance.tier)

    try:
        intent = await orchestrator.create_payment_intent(
            CreatePaymentIntentData(
                user_id=request.user_id,
                email=request.email,
                amount_eur=request.amount_eur,
                tier=balance.tier,
            )
        )
    except PaymentError as e:
        raise HTTPException(400, str(e))

    return {
        "paymentIntentId": intent.id,
        "clientSecret": intent.client_secret,
        "amount": intent.amount,
        "currency": intent.currency,
        **quote,
    }


@router.get("/history/{user_id}")
async def get_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=500, description="Number of payments"),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Get user's payments, newest first."""
    payments = await orchestrator.get_payment_history(user_id, limit)
    return {
        "payments": [p.to_dict() for p in payments],
        "count": len(payments),
    }


@router.get("/pricing")
async def get_pricing(
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Get credit pricing and suggested packages."""
    return orchestrator.get_pricing()
