"""
Credit System for the trading platform.

Provides:
- Free credit allotment and daily activity metering
- Trade gating and per-trade charges
- Paid tiers unlocked by purchases
- Stripe-backed credit purchases and refunds

Usage:
    from tradecredits.credits import (
        CreditManager,
        PaymentOrchestrator,
        SQLiteCreditStore,
        SQLitePaymentStore,
        StripePaymentGateway,
        TimestampIdGenerator,
    )

    ids = TimestampIdGenerator()
    ledger = CreditManager(SQLiteCreditStore("data/credits.db", id_generator=ids))
    payments = PaymentOrchestrator(
        SQLitePaymentStore("data/credits.db"),
        StripePaymentGateway(api_key),
        ids,
        ledger,
    )

    # Gate and charge a trade
    access = await ledger.can_execute_trade(user_id, order_value=250)
    if access.allowed:
        await ledger.deduct_for_trade(user_id, order_id, 250)

    # Sell credits
    intent = await payments.create_payment_intent(
        CreatePaymentIntentData(user_id=user_id, email=email, amount_eur=1000)
    )
"""

from tradecredits.credits.access import (
    credits_for_amount,
    evaluate_access,
    next_tier,
)
from tradecredits.credits.config import CreditsConfig
from tradecredits.credits.ids import (
    SequentialIdGenerator,
    TimestampIdGenerator,
)
from tradecredits.credits.manager import (
    CreditError,
    CreditManager,
)
from tradecredits.credits.memory_store import (
    InMemoryCreditStore,
    InMemoryPaymentGateway,
    InMemoryPaymentStore,
)
from tradecredits.credits.models import (
    AccessContext,
    CreatePaymentIntentData,
    CreditBalance,
    CreditTransaction,
    Payment,
    PaymentIntent,
    PaymentStatus,
    PricingPackage,
    TradeAccessResult,
    TransactionType,
    UserTier,
)
from tradecredits.credits.payments import (
    PaymentError,
    PaymentOrchestrator,
)
from tradecredits.credits.ports import (
    BalanceNotFoundError,
    CreditStore,
    IdGenerator,
    PaymentGateway,
    PaymentStore,
)
from tradecredits.credits.sqlite_store import (
    SQLiteCreditStore,
    SQLitePaymentStore,
)
from tradecredits.credits.stripe_integration import (
    StripePaymentGateway,
    handle_webhook,
    verify_webhook_signature,
)

__all__ = [
    # Ledger
    "CreditManager",
    "CreditError",
    "evaluate_access",
    "next_tier",
    "credits_for_amount",
    # Payments
    "PaymentOrchestrator",
    "PaymentError",
    # Models
    "AccessContext",
    "CreatePaymentIntentData",
    "CreditBalance",
    "CreditTransaction",
    "Payment",
    "PaymentIntent",
    "PaymentStatus",
    "PricingPackage",
    "TradeAccessResult",
    "TransactionType",
    "UserTier",
    # Ports
    "BalanceNotFoundError",
    "CreditStore",
    "IdGenerator",
    "PaymentGateway",
    "PaymentStore",
    # Adapters
    "InMemoryCreditStore",
    "InMemoryPaymentGateway",
    "InMemoryPaymentStore",
    "SQLiteCreditStore",
    "SQLitePaymentStore",
    "StripePaymentGateway",
    "SequentialIdGenerator",
    "TimestampIdGenerator",
    # Stripe webhooks
    "handle_webhook",
    "verify_webhook_signature",
    # Config
    "CreditsConfig",
]
