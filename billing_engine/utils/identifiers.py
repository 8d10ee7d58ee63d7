"""Identifier generation and event fingerprinting."""

import hashlib
import json
import uuid
from typing import Any


def generate_subscription_id() -> str:
    """Generate a store id for a new subscription row.

    Format: sub_{uuid hex}
    """
    return f"sub_{uuid.uuid4().hex}"


def generate_idempotency_key() -> str:
    """Random key for provider calls that create payments."""
    return uuid.uuid4().hex


def event_fingerprint(event: str, data: Any) -> str:
    """Deterministic transaction key for events that carry no transaction id.

    Identical redeliveries produce the same key. The next billing cycle can
    send the very same event, so callers pair the key with a dedup window.

    Format: evt_{first 32 hex chars of sha256(canonical json)}
    """
    canonical = json.dumps({"event": event, "data": data}, sort_keys=True, separators=(",", ":"), default=str)
    return "evt_" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]
