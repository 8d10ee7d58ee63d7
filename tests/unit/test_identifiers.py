"""Tests for identifier generation and event fingerprints."""

import re

from billing_engine.utils.identifiers import (
    event_fingerprint,
    generate_idempotency_key,
    generate_subscription_id,
)


class TestSubscriptionIds:
    def test_format(self):
        subscription_id = generate_subscription_id()
        assert subscription_id.startswith("sub_")
        assert len(subscription_id) == 36
        assert re.fullmatch(r"sub_[0-9a-f]{32}", subscription_id)

    def test_unique(self):
        ids = {generate_subscription_id() for _ in range(100)}
        assert len(ids) == 100

    def test_idempotency_keys_unique(self):
        assert generate_idempotency_key() != generate_idempotency_key()


class TestEventFingerprint:
    """Fingerprints stand in for transaction ids on events that carry none."""

    def test_deterministic_regardless_of_key_order(self):
        first = event_fingerprint("invoice.payment_failed", {"subscription_id": "sub_abc", "customer_id": "c-1"})
        second = event_fingerprint("invoice.payment_failed", {"customer_id": "c-1", "subscription_id": "sub_abc"})
        assert first == second
        assert first.startswith("evt_")
        assert len(first) == 36

    def test_differs_by_event(self):
        data = {"subscription_id": "sub_abc"}
        assert event_fingerprint("invoice.payment_failed", data) != event_fingerprint(
            "invoice.payment_succeeded", data
        )

    def test_differs_by_data(self):
        assert event_fingerprint("invoice.payment_failed", {"subscription_id": "a"}) != event_fingerprint(
            "invoice.payment_failed", {"subscription_id": "b"}
        )
