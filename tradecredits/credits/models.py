"""
Credit System Data Models.

Domain types and storage schema for the credit ledger and payments.

Tables:
- credit_balances: Current balance, lifetime spend and tier per user
- credit_transactions: Append-only ledger of every balance mutation
- daily_activity: One row per user per calendar day (activity metering)
- payments: One row per Stripe payment intent
"""

import os
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

# =============================================================================
# Constants
# =============================================================================

CREDITS_PER_EUR = 10          # 1 EUR = 10 credits
FREE_CREDITS = 50             # Allotment granted on first balance read
DAILY_ACTIVE_COST = 1         # Charged on the first call of each day
TRADE_BASE_COST = 1           # Charged per executed trade
TIER2_MIN_PURCHASE = 1000     # Credits in a single purchase that unlock Tier 2
ORDER_THRESHOLD_TIER2 = 500   # Order value (USD) above which Tier 2 is required


# =============================================================================
# Enums
# =============================================================================


class TransactionType(Enum):
    """Types of credit transactions."""
    DAILY_ACTIVE = "daily_active"  # First API call of the day
    TRADE = "trade"                # Executed trade
    PURCHASE = "purchase"          # Credits bought with EUR
    REFUND = "refund"              # Payment reversal
    BONUS = "bonus"                # Promotional credits


class UserTier(Enum):
    """User tiers, in promotion order."""
    FREE = "free"
    PAID_TIER1 = "paid_tier1"
    PAID_TIER2 = "paid_tier2"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = [UserTier.FREE, UserTier.PAID_TIER1, UserTier.PAID_TIER2]


class PaymentStatus(Enum):
    """Payment lifecycle states."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# pending -> completed -> refunded, pending -> failed
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """Whether a payment may move from `current` to `target`."""
    return target in PAYMENT_TRANSITIONS[current]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class CreditBalance:
    """User's current credit balance."""
    user_id: str
    balance: int
    lifetime_spent: int = 0
    tier: UserTier = UserTier.FREE
    last_activity_date: Optional[str] = None  # YYYY-MM-DD
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def in_debt(self) -> bool:
        return self.balance < 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "balance": self.balance,
            "lifetimeSpent": self.lifetime_spent,
            "tier": self.tier.value,
            "lastActivityDate": self.last_activity_date,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class CreditTransaction:
    """A credit ledger entry."""
    id: str
    user_id: str
    type: TransactionType
    amount: int  # Positive for credits in, negative for credits out
    balance_after: int
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value,
            "amount": self.amount,
            "balanceAfter": self.balance_after,
            "referenceId": self.reference_id,
            "referenceType": self.reference_type,
            "metadata": self.metadata,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Payment:
    """A payment backed by a Stripe payment intent."""
    id: str
    user_id: str
    stripe_payment_intent_id: str
    amount_eur: int  # Minor units (cents)
    credits_granted: int
    status: PaymentStatus = PaymentStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "stripePaymentIntentId": self.stripe_payment_intent_id,
            "amountEur": self.amount_eur,
            "creditsGranted": self.credits_granted,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class PaymentIntent:
    """Gateway view of an in-progress charge."""
    id: str
    client_secret: str
    amount: int
    currency: str
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "clientSecret": self.client_secret,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
        }


@dataclass
class CreatePaymentIntentData:
    """Input for creating a payment intent."""
    user_id: str
    email: str
    amount_eur: int  # Minor units (cents)
    tier: UserTier = UserTier.FREE


@dataclass
class AccessContext:
    """What a balance snapshot currently permits. Derived, never stored."""
    can_trade: bool
    can_view_realtime: bool
    show_ads: bool
    requires_upgrade: bool
    required_credits: int
    current_debt: int
    restriction_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canTrade": self.can_trade,
            "canViewRealtime": self.can_view_realtime,
            "showAds": self.show_ads,
            "requiresUpgrade": self.requires_upgrade,
            "requiredCredits": self.required_credits,
            "currentDebt": self.current_debt,
            "restrictionReason": self.restriction_reason,
        }


@dataclass
class TradeAccessResult:
    """Result of a trade permission check."""
    allowed: bool
    reason: Optional[str]
    required_credits: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "requiredCredits": self.required_credits,
        }


@dataclass
class PricingPackage:
    """A suggested purchase amount."""
    amount_eur: int  # Minor units (cents)
    credits: int
    label: str
    popular: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amountEur": self.amount_eur,
            "credits": self.credits,
            "label": self.label,
            "popular": self.popular,
        }


# =============================================================================
# Pricing Packages
# =============================================================================

PRICING_PACKAGES: List[PricingPackage] = [
    PricingPackage(amount_eur=500, credits=50, label="50 Credits (5 EUR)"),
    PricingPackage(amount_eur=1000, credits=100, label="100 Credits (10 EUR)", popular=True),
    PricingPackage(amount_eur=2500, credits=250, label="250 Credits (25 EUR)"),
    PricingPackage(amount_eur=5000, credits=500, label="500 Credits (50 EUR)"),
    PricingPackage(amount_eur=10000, credits=1000, label="1000 Credits (100 EUR) - Tier 2"),
]


# =============================================================================
# Database Schema
# =============================================================================


def default_db_path() -> str:
    data_dir = Path(os.getenv("DATA_DIR", "data"))
    return str(data_dir / "credits.db")


def init_database(db_path: str = None) -> sqlite3.Connection:
    """Initialize the credit system database."""
    if db_path is None:
        db_path = default_db_path()

    if db_path != ":memory:":
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()

    cursor.execute(f"""
        CREATE TABLE IF NOT EXISTS credit_balances (
            user_id TEXT PRIMARY KEY,
            balance INTEGER NOT NULL DEFAULT {FREE_CREDITS},
            lifetime_spent INTEGER NOT NULL DEFAULT 0,
            tier TEXT NOT NULL DEFAULT 'free',
            last_activity_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS credit_transactions (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT UNIQUE NOT NULL,
            user_id TEXT NOT NULL REFERENCES credit_balances(user_id),
            type TEXT NOT NULL,
            amount INTEGER NOT NULL,
            balance_after INTEGER NOT NULL,
            reference_id TEXT,
            reference_type TEXT,
            metadata_json TEXT,
            created_at TEXT NOT NULL
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS daily_activity (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            activity_date TEXT NOT NULL,
            activity_type TEXT NOT NULL,
            charged_at TEXT NOT NULL,
            UNIQUE (user_id, activity_date)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS payments (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            stripe_payment_intent_id TEXT UNIQUE NOT NULL,
            amount_eur INTEGER NOT NULL,
            credits_granted INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    # Indexes
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_transactions_user
        ON credit_transactions(user_id)
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_transactions_reference
        ON credit_transactions(reference_id, reference_type)
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_payments_user
        ON payments(user_id)
    """)

    conn.commit()

    return conn
