"""
Tests for configuration loading and structured logging.
"""

import json
import logging

import pytest

from tradecredits.credits.config import CreditsConfig
from tradecredits.logging_config import (
    CorrelationContext,
    JSONFormatter,
    StructuredFormatter,
    correlation_id_var,
    setup_logging,
)


class TestCreditsConfig:
    """Tests for CreditsConfig."""

    def test_from_env(self, monkeypatch):
        """Test values are read from the environment."""
        monkeypatch.setenv("CREDITS_DB_PATH", "/tmp/credits-test.db")
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_1")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_1")
        monkeypatch.setenv("STRIPE_CURRENCY", "EUR")
        monkeypatch.setenv("CREDITS_LOG_LEVEL", "debug")
        monkeypatch.setenv("CREDITS_LOG_JSON", "false")

        config = CreditsConfig.from_env()

        assert config.db_path == "/tmp/credits-test.db"
        assert config.stripe_secret_key == "sk_test_1"
        assert config.stripe_currency == "eur"
        assert config.log_level == "DEBUG"
        assert config.log_json is False

    def test_default_db_path_under_data_dir(self, monkeypatch, tmp_path):
        """Test DATA_DIR is used when no explicit path is set."""
        monkeypatch.delenv("CREDITS_DB_PATH", raising=False)
        monkeypatch.setenv("DATA_DIR", str(tmp_path))

        config = CreditsConfig.from_env()

        assert config.db_path == str(tmp_path / "credits.db")

    def test_require_stripe(self):
        """Test missing Stripe keys are reported."""
        with pytest.raises(ValueError, match="STRIPE_SECRET_KEY"):
            CreditsConfig().require_stripe()
        with pytest.raises(ValueError, match="STRIPE_WEBHOOK_SECRET"):
            CreditsConfig(stripe_secret_key="sk_test_1").require_stripe()


def _record(message: str = "credits added") -> logging.LogRecord:
    return logging.LogRecord(
        name="tradecredits.credits",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestStructuredLogging:
    """Tests for formatters and correlation context."""

    def test_json_formatter_includes_context(self):
        """Test correlation fields are emitted inside a context."""
        formatter = JSONFormatter(extra_fields={"service": "tradecredits"})

        with CorrelationContext(correlation_id="evt_123", user_id="user_1", payment_id="payment_1"):
            data = json.loads(formatter.format(_record()))

        assert data["message"] == "credits added"
        assert data["logger"] == "tradecredits.credits"
        assert data["correlation_id"] == "evt_123"
        assert data["user_id"] == "user_1"
        assert data["payment_id"] == "payment_1"
        assert data["service"] == "tradecredits"

    def test_context_is_reset_on_exit(self):
        """Test context vars are restored after the block."""
        with CorrelationContext(correlation_id="evt_123"):
            assert correlation_id_var.get() == "evt_123"

        assert correlation_id_var.get() is None
        assert "correlation_id" not in json.loads(JSONFormatter().format(_record()))

    def test_structured_formatter(self):
        """Test console lines carry level, logger and short correlation id."""
        formatter = StructuredFormatter(use_color=False)

        with CorrelationContext(correlation_id="abcdef0123456789"):
            line = formatter.format(_record("tier change"))

        assert "[INFO]" in line
        assert "[tradecredits.credits]" in line
        assert "tier change" in line
        assert "correlation_id=abcdef01" in line

    def test_setup_logging_writes_json_file(self, tmp_path):
        """Test setup_logging installs a rotating JSON file handler."""
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level

        try:
            setup_logging(log_dir=tmp_path / "logs", level="INFO", console_output=False)
            logging.getLogger("tradecredits.test").info("hello ledger")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        lines = (tmp_path / "logs" / "tradecredits.log").read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "hello ledger"
