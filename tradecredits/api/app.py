"""
FastAPI application factory.

Usage:
    uvicorn tradecredits.api.app:create_app --factory
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tradecredits import __version__
from tradecredits.api.dependencies import (
    get_config,
    get_credit_manager,
    get_payment_orchestrator,
)
from tradecredits.api.routes import credits_router, payments_router, webhooks_router
from tradecredits.credits.config import CreditsConfig
from tradecredits.credits.manager import CreditManager
from tradecredits.credits.payments import PaymentOrchestrator
from tradecredits.logging_config import setup_logging

logger = logging.getLogger("tradecredits.api")


def create_app(
    ledger: Optional[CreditManager] = None,
    orchestrator: Optional[PaymentOrchestrator] = None,
    config: Optional[CreditsConfig] = None,
    configure_logging: bool = False,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        ledger: CreditManager to serve instead of the SQLite-backed default
        orchestrator: PaymentOrchestrator to serve instead of the Stripe-backed default
        config: Configuration to use instead of the environment
        configure_logging: Install file and console log handlers from config
    """
    if configure_logging:
        settings = config or get_config()
        setup_logging(
            log_dir=settings.log_dir,
            level=settings.log_level,
            json_format=settings.log_json,
        )

    app = FastAPI(
        title="Trade Credits API",
        description="Credit ledger and payment orchestration",
        version=__version__,
    )

    if ledger is not None:
        app.dependency_overrides[get_credit_manager] = lambda: ledger
    if orchestrator is not None:
        app.dependency_overrides[get_payment_orchestrator] = lambda: orchestrator
    if config is not None:
        app.dependency_overrides[get_config] = lambda: config

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(credits_router)
    app.include_router(payments_router)
    app.include_router(webhooks_router)

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    return app
