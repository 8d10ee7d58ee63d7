"""State change logging for subscriptions and their establishment mirror.

Tracks transitions with before/after values for auditing. Webhook handlers
always acknowledge the provider, so these records are the durable trail.
"""

from datetime import datetime
from typing import Any, Optional

from billing_engine.logging_config import get_logger

logger = get_logger(__name__)


def log_subscription_status_change(
    subscription_id: str,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a subscription status transition.

    Args:
        subscription_id: Internal subscription id
        old_status: Previous status
        new_status: New status
        reason: Why the transition happened
        **extra_context: Additional context (user_id, provider, etc.)
    """
    logger.info(
        "subscription_status_changed",
        subscription_id=subscription_id,
        old_status=str(old_status),
        new_status=str(new_status),
        reason=reason,
        **extra_context,
    )


def log_period_end_change(
    subscription_id: str,
    old_period_end: Optional[datetime],
    new_period_end: datetime,
    reason: str,
    **extra_context: Any,
) -> None:
    """Log a paid-through date change.

    Args:
        subscription_id: Internal subscription id
        old_period_end: Previous paid-through date (None for new rows)
        new_period_end: New paid-through date
        reason: Reason for the change
        **extra_context: Additional context
    """
    extension_days = None
    if old_period_end is not None:
        extension_days = round((new_period_end - old_period_end).total_seconds() / 86400, 2)

    logger.info(
        "period_end_changed",
        subscription_id=subscription_id,
        old_period_end=old_period_end.isoformat() if old_period_end else None,
        new_period_end=new_period_end.isoformat(),
        extension_days=extension_days,
        reason=reason,
        **extra_context,
    )


def log_retry_count_change(
    subscription_id: str,
    old_count: int,
    new_count: int,
    **extra_context: Any,
) -> None:
    """Log a change in consecutive payment failures."""
    logger.info(
        "retry_count_changed",
        subscription_id=subscription_id,
        old_count=old_count,
        new_count=new_count,
        **extra_context,
    )


def log_establishment_mirror(
    establishment_id: str,
    subscription_status: str,
    subscription_end_date: Optional[datetime],
    **extra_context: Any,
) -> None:
    """Log a write to the establishment's mirrored subscription fields."""
    logger.info(
        "establishment_mirror_updated",
        establishment_id=establishment_id,
        subscription_status=subscription_status,
        subscription_end_date=subscription_end_date.isoformat() if subscription_end_date else None,
        **extra_context,
    )
