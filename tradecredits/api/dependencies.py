"""
Shared service instances for the API routes.

Routes receive these through `Depends`; tests and embedders swap them via
`app.dependency_overrides` (see `create_app`).
"""

import logging
from typing import Optional

from fastapi import HTTPException

from tradecredits.credits.config import CreditsConfig
from tradecredits.credits.ids import TimestampIdGenerator
from tradecredits.credits.manager import CreditManager
from tradecredits.credits.payments import PaymentOrchestrator
from tradecredits.credits.sqlite_store import SQLiteCreditStore, SQLitePaymentStore
from tradecredits.credits.stripe_integration import StripePaymentGateway

logger = logging.getLogger("tradecredits.api")

# Singleton instances
_config: Optional[CreditsConfig] = None
_credit_manager: Optional[CreditManager] = None
_payment_orchestrator: Optional[PaymentOrchestrator] = None
_id_generator = TimestampIdGenerator()


def get_config() -> CreditsConfig:
    """Get or load configuration from the environment."""
    global _config
    if _config is None:
        _config = CreditsConfig.from_env()
    return _config


def get_credit_manager() -> CreditManager:
    """Get or create the credit manager backed by SQLite."""
    global _credit_manager
    if _credit_manager is None:
        config = get_config()
        _credit_manager = CreditManager(
            SQLiteCreditStore(config.db_path, id_generator=_id_generator)
        )
    return _credit_manager


def get_payment_orchestrator() -> PaymentOrchestrator:
    """
    Get or create the payment orchestrator.

    Raises:
        HTTPException: 503 if Stripe keys are not configured.
    """
    global _payment_orchestrator
    if _payment_orchestrator is None:
        config = get_config()
        try:
            config.require_stripe()
        except ValueError as e:
            logger.error(f"Payments unavailable: {e}")
            raise HTTPException(503, str(e))
        _payment_orchestrator = PaymentOrchestrator(
            SQLitePaymentStore(config.db_path),
            StripePaymentGateway(config.stripe_secret_key, config.stripe_currency),
            _id_generator,
            get_credit_manager(),
        )
        logger.info("Payment orchestrator initialized with Stripe gateway")
    return _payment_orchestrator


def reset_services() -> None:
    """Drop cached instances so the next request rebuilds them from the environment."""
    global _config, _credit_manager, _payment_orchestrator
    _config = None
    _credit_manager = None
    _payment_orchestrator = None
