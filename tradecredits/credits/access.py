"""
Access evaluation and tier rules.

Pure functions over a balance snapshot. Nothing here touches a store.
"""

from typing import Optional

from tradecredits.credits import models
from tradecredits.credits.models import (
    AccessContext,
    CreditBalance,
    UserTier,
)

DEBT_RESTRICTION = "Free credits exhausted. Purchase credits to continue trading."


def tier2_restriction() -> str:
    return (
        f"Orders over ${models.ORDER_THRESHOLD_TIER2} require Tier 2. "
        f"Purchase {models.TIER2_MIN_PURCHASE}+ credits to upgrade."
    )


def credits_for_amount(amount_eur: int) -> int:
    """Convert an amount in EUR cents to whole credits (rounded down)."""
    return (amount_eur * models.CREDITS_PER_EUR) // 100


def _allows_large_orders(tier: UserTier) -> bool:
    if tier is UserTier.PAID_TIER2:
        return True
    if tier is UserTier.PAID_TIER1 or tier is UserTier.FREE:
        return False
    raise ValueError(f"Unknown tier: {tier}")


def _blocked_by_debt(tier: UserTier) -> bool:
    # Only a tier that has never purchased is cut off by debt
    if tier is UserTier.FREE:
        return True
    if tier is UserTier.PAID_TIER1 or tier is UserTier.PAID_TIER2:
        return False
    raise ValueError(f"Unknown tier: {tier}")


def evaluate_access(balance: CreditBalance, order_value: Optional[float] = None) -> AccessContext:
    """
    Compute what a balance snapshot permits.

    The debt rule is evaluated before the large-order rule, and
    `required_credits` reports whichever of the two blocked the user.
    """
    current_debt = max(0, -balance.balance)
    free_tier_exhausted = balance.lifetime_spent >= models.FREE_CREDITS
    in_debt_after_free_tier = (
        current_debt > 0 and free_tier_exhausted and _blocked_by_debt(balance.tier)
    )

    can_trade = not in_debt_after_free_tier
    restriction_reason = DEBT_RESTRICTION if in_debt_after_free_tier else None

    large_order_blocked = False
    if (
        can_trade
        and order_value is not None
        and order_value > models.ORDER_THRESHOLD_TIER2
        and not _allows_large_orders(balance.tier)
    ):
        can_trade = False
        large_order_blocked = True
        restriction_reason = tier2_restriction()

    required_credits = 0
    if in_debt_after_free_tier:
        required_credits = current_debt + 1
    elif large_order_blocked:
        required_credits = models.TIER2_MIN_PURCHASE

    return AccessContext(
        can_trade=can_trade,
        can_view_realtime=not in_debt_after_free_tier,
        show_ads=in_debt_after_free_tier,
        requires_upgrade=not can_trade,
        required_credits=required_credits,
        current_debt=current_debt,
        restriction_reason=restriction_reason,
    )


def next_tier(current: UserTier, credits_purchased: int) -> UserTier:
    """
    Tier after a purchase of `credits_purchased` credits.

    Any purchase lifts `free` to `paid_tier1`; a single purchase of at
    least TIER2_MIN_PURCHASE lifts any tier to `paid_tier2`. Never lowers.
    """
    if current is UserTier.FREE:
        candidate = UserTier.PAID_TIER1
    elif current is UserTier.PAID_TIER1 or current is UserTier.PAID_TIER2:
        candidate = current
    else:
        raise ValueError(f"Unknown tier: {current}")

    if credits_purchased >= models.TIER2_MIN_PURCHASE:
        candidate = UserTier.PAID_TIER2

    return candidate if candidate.rank >= current.rank else current
