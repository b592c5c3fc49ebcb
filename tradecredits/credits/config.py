"""Credit system configuration loaded from the environment."""

import os
from dataclasses import dataclass

from tradecredits.credits.models import default_db_path


@dataclass
class CreditsConfig:
    """Runtime settings. Domain constants live in models, not here."""
    db_path: str = ""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_currency: str = "eur"
    log_level: str = "INFO"
    log_json: bool = True
    log_dir: str = "logs"

    @classmethod
    def from_env(cls) -> "CreditsConfig":
        """Load configuration from environment."""
        return cls(
            db_path=os.getenv("CREDITS_DB_PATH", "") or default_db_path(),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            stripe_currency=os.getenv("STRIPE_CURRENCY", "eur").lower(),
            log_level=os.getenv("CREDITS_LOG_LEVEL", "INFO").upper(),
            log_json=os.getenv("CREDITS_LOG_JSON", "true").lower() == "true",
            log_dir=os.getenv("CREDITS_LOG_DIR", "logs"),
        )

    def require_stripe(self) -> None:
        if not self.stripe_secret_key:
            raise ValueError("STRIPE_SECRET_KEY not configured")
        if not self.stripe_webhook_secret:
            raise ValueError("STRIPE_WEBHOOK_SECRET not configured")
