"""
Trade Credits.

Credit ledger and Stripe payment orchestration for a trading platform:
free credits, daily activity metering, per-trade charges, paid tiers,
and credit purchases and refunds driven by Stripe webhooks.
"""

__version__ = "0.1.0"
