"""Tests for structured logging configuration and context helpers."""

import os
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import structlog

from billing_engine.logging_config import (
    add_app_context,
    bind_context,
    clear_context,
    configure_logging,
    drop_debug_in_production,
    get_logger,
    is_debug_mode,
    render_billing_values,
    subscription_context,
)
from billing_engine.models.subscription import Provider, SubscriptionStatus


@pytest.fixture(scope="module")
def setup_logging():
    """Configure logging for all tests in this module."""
    log_format = os.getenv("LOG_FORMAT", "console")
    configure_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), json_format=log_format.lower() == "json")
    yield


@pytest.fixture(autouse=True)
def cleanup_context():
    """Ensure context is cleared before and after each test."""
    clear_context()
    yield
    clear_context()


class TestProcessors:
    """Test the custom structlog processors."""

    def test_app_context_added(self):
        event_dict = add_app_context(None, "info", {"event": "x"})
        assert event_dict["app"] == "subscription-billing-engine"

    def test_debug_dropped_outside_debug_mode(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        assert not is_debug_mode()
        with pytest.raises(structlog.DropEvent):
            drop_debug_in_production(None, "debug", {"event": "x"})

    def test_debug_kept_in_debug_mode(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert is_debug_mode()
        assert drop_debug_in_production(None, "debug", {"event": "x"}) == {"event": "x"}

    def test_other_levels_kept(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        assert drop_debug_in_production(None, "warning", {"event": "x"}) == {"event": "x"}

    def test_billing_values_rendered_as_strings(self):
        event_dict = render_billing_values(
            None,
            "info",
            {
                "event": "subscription_extended",
                "status": SubscriptionStatus.ACTIVE,
                "amount": Decimal("49.90"),
                "current_period_end": datetime(2026, 11, 18, 12, 0, tzinfo=timezone.utc),
                "retry_count": 2,
            },
        )
        assert event_dict["status"] == SubscriptionStatus.ACTIVE.value
        assert event_dict["amount"] == "49.90"
        assert event_dict["current_period_end"] == "2026-11-18T12:00:00+00:00"
        assert event_dict["retry_count"] == 2


class TestContextualLogging:
    """Test context binding through structlog.contextvars."""

    def test_bind(self):
        bind_context(request_id="req-1", provider="iugu")
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1", "provider": "iugu"}

    def test_subscription_context_restores_request_values(self):
        bind_context(request_id="req-1")

        with subscription_context("sub_1", Provider.MERCADO_PAGO):
            assert structlog.contextvars.get_contextvars() == {
                "request_id": "req-1",
                "subscription_id": "sub_1",
                "provider": Provider.MERCADO_PAGO.value,
            }

        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}

    def test_subscription_context_without_provider(self):
        with subscription_context("sub_1"):
            assert structlog.contextvars.get_contextvars() == {"subscription_id": "sub_1"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_clear(self):
        bind_context(request_id="req-1")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestLoggingSmoke:
    """Log through the configured pipeline at every level."""

    def test_all_levels(self, setup_logging):
        logger = get_logger("test.basic")

        logger.debug("debug_message", level="debug")
        logger.info("webhook_received", provider="mercadopago", type="payment")
        logger.warning("provider_timeout", provider="iugu", path="/invoices/inv-1")
        logger.error("webhook_processing_failed", provider="iugu", error="boom")

    def test_exception_logging_with_traceback(self, setup_logging):
        logger = get_logger("test.exceptions")

        try:
            _ = 1 / 0
        except ZeroDivisionError as e:
            logger.error("calculation_failed", error=str(e), exc_info=True)
