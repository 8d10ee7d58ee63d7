"""Utility functions and helpers for the billing engine."""

from billing_engine.utils.billing_period import (
    billing_period_to_timedelta,
    parse_billing_period,
    validate_billing_period,
)
from billing_engine.utils.identifiers import (
    event_fingerprint,
    generate_idempotency_key,
    generate_subscription_id,
)

__all__ = [
    # Identifiers
    "generate_subscription_id",
    "generate_idempotency_key",
    "event_fingerprint",
    # Billing period parsing
    "parse_billing_period",
    "billing_period_to_timedelta",
    "validate_billing_period",
]
