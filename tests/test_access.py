"""
Tests for access evaluation and tier rules.

Pure functions, no stores involved.
"""

import pytest

from tradecredits.credits.access import (
    DEBT_RESTRICTION,
    credits_for_amount,
    evaluate_access,
    next_tier,
)
from tradecredits.credits.models import UserTier


class TestEvaluateAccess:
    """Tests for evaluate_access."""

    def test_positive_balance_can_trade(self, make_balance):
        """Test a free user with credits left trades freely."""
        context = evaluate_access(make_balance(balance=30, lifetime_spent=10))

        assert context.can_trade is True
        assert context.current_debt == 0
        assert context.can_view_realtime is True
        assert context.show_ads is False
        assert context.requires_upgrade is False
        assert context.required_credits == 0
        assert context.restriction_reason is None

    def test_free_user_in_debt_after_free_tier_is_blocked(self, make_balance):
        """Test debt blocks a free user who has used up the free allotment."""
        context = evaluate_access(make_balance(balance=-5, lifetime_spent=55))

        assert context.can_trade is False
        assert context.current_debt == 5
        assert context.required_credits == 6
        assert context.can_view_realtime is False
        assert context.show_ads is True
        assert context.requires_upgrade is True
        assert context.restriction_reason == DEBT_RESTRICTION

    def test_debt_before_free_tier_exhausted_is_allowed(self, make_balance):
        """Test debt alone does not block while lifetime spend is under the allotment."""
        context = evaluate_access(make_balance(balance=-2, lifetime_spent=40))

        assert context.can_trade is True
        assert context.current_debt == 2
        assert context.show_ads is False

    def test_paid_user_in_debt_can_trade(self, make_balance):
        """Test debt never blocks a user who has purchased before."""
        context = evaluate_access(
            make_balance(balance=-20, lifetime_spent=200, tier=UserTier.PAID_TIER1)
        )

        assert context.can_trade is True
        assert context.can_view_realtime is True
        assert context.current_debt == 20
        assert context.required_credits == 0

    def test_large_order_requires_tier2(self, make_balance):
        """Test orders above the threshold need Tier 2."""
        context = evaluate_access(
            make_balance(balance=100, tier=UserTier.PAID_TIER1), order_value=600
        )

        assert context.can_trade is False
        assert "Tier 2" in context.restriction_reason
        assert context.required_credits == 1000
        assert context.requires_upgrade is True
        # Large-order restriction does not affect data access
        assert context.can_view_realtime is True
        assert context.show_ads is False

    def test_order_at_threshold_is_allowed(self, make_balance):
        """Test the threshold itself is not a large order."""
        context = evaluate_access(make_balance(balance=10), order_value=500)

        assert context.can_trade is True

    def test_tier2_allows_large_orders(self, make_balance):
        """Test Tier 2 users may place large orders."""
        context = evaluate_access(
            make_balance(balance=900, tier=UserTier.PAID_TIER2), order_value=10_000
        )

        assert context.can_trade is True
        assert context.restriction_reason is None

    def test_debt_rule_reported_before_large_order_rule(self, make_balance):
        """Test a user blocked by both rules gets the debt restriction."""
        context = evaluate_access(
            make_balance(balance=-5, lifetime_spent=55), order_value=600
        )

        assert context.restriction_reason == DEBT_RESTRICTION
        assert context.required_credits == 6

    def test_no_order_value_skips_large_order_rule(self, make_balance):
        """Test omitting order_value never triggers the Tier 2 check."""
        context = evaluate_access(make_balance(balance=10, tier=UserTier.FREE))

        assert context.can_trade is True

    def test_to_dict_uses_api_field_names(self, make_balance):
        """Test serialization keys."""
        data = evaluate_access(make_balance(balance=-5, lifetime_spent=55)).to_dict()

        assert data == {
            "canTrade": False,
            "canViewRealtime": False,
            "showAds": True,
            "requiresUpgrade": True,
            "requiredCredits": 6,
            "currentDebt": 5,
            "restrictionReason": DEBT_RESTRICTION,
        }


class TestNextTier:
    """Tests for the tier promotion rule."""

    @pytest.mark.parametrize(
        "current,credits,expected",
        [
            (UserTier.FREE, 50, UserTier.PAID_TIER1),
            (UserTier.FREE, 999, UserTier.PAID_TIER1),
            (UserTier.FREE, 1000, UserTier.PAID_TIER2),
            (UserTier.PAID_TIER1, 100, UserTier.PAID_TIER1),
            (UserTier.PAID_TIER1, 1000, UserTier.PAID_TIER2),
            (UserTier.PAID_TIER2, 10, UserTier.PAID_TIER2),
        ],
    )
    def test_promotion(self, current, credits, expected):
        """Test promotion for a single purchase."""
        assert next_tier(current, credits) is expected

    def test_tier_never_moves_backwards(self):
        """Test a sequence of purchases never lowers tier rank."""
        tier = UserTier.FREE
        for credits in [10, 1500, 5, 200, 1]:
            promoted = next_tier(tier, credits)
            assert promoted.rank >= tier.rank
            tier = promoted

        assert tier is UserTier.PAID_TIER2

    def test_purchases_are_not_cumulative_for_tier2(self):
        """Test two purchases below the Tier 2 minimum do not add up."""
        tier = next_tier(UserTier.FREE, 600)
        tier = next_tier(tier, 600)

        assert tier is UserTier.PAID_TIER1


class TestCreditsForAmount:
    """Tests for EUR cents to credits conversion."""

    def test_whole_euros(self):
        """Test 50 EUR buys 500 credits."""
        assert credits_for_amount(5000) == 500

    def test_rounds_down(self):
        """Test fractional credits are dropped."""
        assert credits_for_amount(1099) == 109
        assert credits_for_amount(5) == 0
