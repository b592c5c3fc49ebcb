"""
Credits API Routes.

FastAPI endpoints for the credit ledger:
- Balance and access checks
- Trade gating and trade charges
- Daily activity metering
- Transaction history

User identity is taken from the path or body as given.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from tradecredits.api.dependencies import get_credit_manager
from tradecredits.credits.manager import CreditError, CreditManager

logger = logging.getLogger("tradecredits.api.credits")

router = APIRouter(prefix="/api/credits", tags=["Credits"])


# =============================================================================
# Request Models
# =============================================================================


class ChargeTradeRequest(BaseModel):
    """Request to charge a user for an executed trade."""
    user_id: str = Field(..., description="User identifier")
    order_id: str = Field(..., description="Order identifier")
    trade_amount: float = Field(..., ge=0, description="Trade value in USD")


# =============================================================================
# API Endpoints
# =============================================================================


@router.get("/balance/{user_id}")
async def get_balance(
    user_id: str,
    manager: CreditManager = Depends(get_credit_manager),
):
    """Get user's credit balance."""
    balance = await manager.get_balance(user_id)
    return balance.to_dict()


@router.get("/access/{user_id}")
async def get_access(
    user_id: str,
    order_value: Optional[float] = Query(None, description="Order value to check (USD)"),
    manager: CreditManager = Depends(get_credit_manager),
):
    """Get what the user's balance currently permits."""
    context = await manager.get_access_context(user_id, order_value)
    return context.to_dict()


@router.get("/can-trade/{user_id}")
async def can_trade(
    user_id: str,
    order_value: float = Query(..., description="Order value in USD"),
    manager: CreditManager = Depends(get_credit_manager),
):
    """Check whether the user may place an order of this value."""
    result = await manager.can_execute_trade(user_id, order_value)
    return result.to_dict()


@router.post("/charge-trade")
async def charge_trade(
    request: ChargeTradeRequest,
    manager: CreditManager = Depends(get_credit_manager),
):
    """Charge the per-trade cost. 403 if the trade is not allowed."""
    try:
        transaction = await manager.deduct_for_trade(
            request.user_id, request.order_id, request.trade_amount
        )
    except CreditError as e:
        raise HTTPException(
            403,
            {"restrictionReason": e.reason, "requiredCredits": e.required_credits},
        )
    return transaction.to_dict()


@router.post("/track-activity/{user_id}")
async def track_activity(
    user_id: str,
    activity_type: str = Query("api_call", description="Kind of activity"),
    manager: CreditManager = Depends(get_credit_manager),
):
    """Record activity; the first call of the day is charged."""
    transaction = await manager.track_activity(user_id, activity_type)
    return {
        "charged": transaction is not None,
        "transaction": transaction.to_dict() if transaction else None,
    }


@router.get("/transactions/{user_id}")
async def get_transactions(
    user_id: str,
    limit: int = Query(50, ge=1, le=500, description="Number of transactions"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
    manager: CreditManager = Depends(get_credit_manager),
):
    """Get user's ledger entries, newest first."""
    transactions = await manager.get_transactions(user_id, limit, offset)
    return {
        "transactions": [t.to_dict() for t in transactions],
        "count": len(transactions),
    }
