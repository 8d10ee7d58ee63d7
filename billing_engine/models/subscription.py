"""Subscription state and lifecycle models."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Provider(str, Enum):
    """External payment providers."""

    MERCADO_PAGO = "mercadopago"  # redirect/preference provider
    IUGU = "iugu"  # direct-charge/subscription provider


class SubscriptionStatus(str, Enum):
    """Subscription status."""

    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"  # last payment failed, not yet suspended
    CANCELED = "canceled"
    SUSPENDED = "suspended"


TERMINAL_STATUSES = frozenset({SubscriptionStatus.CANCELED, SubscriptionStatus.SUSPENDED})


class SubscriptionRecord(BaseModel):
    """Internal subscription record.

    Mutated only through the reconciliation engine and the dunning sweep,
    never hard-deleted.
    """

    id: str = Field(..., description="Store-owned identifier")
    user_id: Optional[str] = Field(None, description="End customer owning the subscription")
    establishment_id: Optional[str] = Field(None, description="Tenant establishment owning the subscription")
    plan_id: str = Field(..., description="Plan identifier")

    provider: Provider = Field(..., description="Provider holding the payment truth")
    provider_subscription_id: Optional[str] = Field(
        None, description="Provider-side subscription id, once it exists"
    )

    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    current_period_end: datetime = Field(..., description="Paid-through date")
    last_payment_status: Optional[str] = Field(None, description="Last known provider payment outcome")
    retry_count: int = Field(default=0, ge=0, description="Consecutive failures since last success")

    # Provider-side suspension that failed transiently and must be retried
    provider_suspend_pending: bool = Field(default=False)

    created_at: datetime = Field(..., description="Creation time")
    updated_at: datetime = Field(..., description="Last write, used for conditional updates")

    @property
    def is_terminal(self) -> bool:
        """True for canceled and suspended subscriptions."""
        return self.status in TERMINAL_STATUSES

    def set_status(self, new_status: SubscriptionStatus, reason: Optional[str] = None) -> None:
        """Change status and log the transition.

        Entering ACTIVE resets the retry count.
        """
        from billing_engine.state_logger import log_subscription_status_change

        old_status = self.status
        if old_status != new_status:
            self.status = new_status
            log_subscription_status_change(
                subscription_id=self.id,
                old_status=old_status.value,
                new_status=new_status.value,
                reason=reason,
                provider=self.provider.value,
                user_id=self.user_id,
                establishment_id=self.establishment_id,
            )
        if new_status == SubscriptionStatus.ACTIVE:
            self.set_retry_count(0)

    def set_retry_count(self, retry_count: int) -> None:
        """Change the consecutive failure count and log it."""
        from billing_engine.state_logger import log_retry_count_change

        old_count = self.retry_count
        if old_count != retry_count:
            self.retry_count = retry_count
            log_retry_count_change(
                subscription_id=self.id,
                old_count=old_count,
                new_count=retry_count,
            )

    def extend_period(self, new_period_end: datetime, reason: str) -> None:
        """Move the paid-through date forward and log the change.

        Raises:
            ValueError: If the new date is earlier than the current one
        """
        from billing_engine.state_logger import log_period_end_change

        old_period_end = self.current_period_end
        if new_period_end < old_period_end:
            raise ValueError(
                f"current_period_end cannot move backward "
                f"({old_period_end.isoformat()} -> {new_period_end.isoformat()})"
            )
        self.current_period_end = new_period_end
        log_period_end_change(
            subscription_id=self.id,
            old_period_end=old_period_end,
            new_period_end=new_period_end,
            reason=reason,
        )

    def touch(self, now: datetime) -> None:
        """Stamp a write. The new updated_at is always strictly later than the old one."""
        if now > self.updated_at:
            self.updated_at = now
        else:
            self.updated_at = self.updated_at + timedelta(microseconds=1)

    class Config:
        json_schema_extra = {
            "example": {
                "id": "sub_3f2a9c1e0b7d4e5f8a6b1c2d3e4f5a6b",
                "user_id": "user-123",
                "establishment_id": "est-42",
                "plan_id": "barbershop.pro.monthly",
                "provider": "iugu",
                "provider_subscription_id": "sub_abc",
                "status": "active",
                "current_period_end": "2026-11-18T12:00:00Z",
                "last_payment_status": "paid",
                "retry_count": 0,
                "created_at": "2026-10-19T12:00:00Z",
                "updated_at": "2026-10-19T12:00:00Z",
            }
        }
