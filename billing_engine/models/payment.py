"""Payment models: provider payments, verified outcomes and payment history."""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .subscription import Provider


class PaymentOutcome(str, Enum):
    """Verified outcome of a payment attempt."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProviderPayment(BaseModel):
    """Authoritative payment state as returned by a provider API."""

    id: str = Field(..., description="Provider payment/invoice id")
    status: str = Field(..., description="Provider-specific status string")
    amount: Optional[Decimal] = Field(None, description="Amount in BRL")
    external_reference: Optional[str] = Field(None, description="Our reference (user id) echoed by the provider")
    metadata: dict[str, Any] = Field(default_factory=dict)
    subscription_id: Optional[str] = Field(None, description="Provider subscription id, if any")
    customer_id: Optional[str] = Field(None, description="Provider customer id, if any")


class ResolutionQuery(BaseModel):
    """Identifying fields carried by a provider event.

    Any of them may be missing; the resolver tries them in a fixed order.
    """

    provider_subscription_id: Optional[str] = None
    establishment_id: Optional[str] = None
    customer_id: Optional[str] = None
    plan_id: Optional[str] = Field(None, description="Narrows establishment/customer lookups when known")

    def is_empty(self) -> bool:
        """True when the event carries nothing to resolve with."""
        return not (self.provider_subscription_id or self.establishment_id or self.customer_id)


class VerifiedPaymentEvent(BaseModel):
    """A payment outcome confirmed against the provider, ready to reconcile."""

    provider: Provider
    provider_transaction_id: str = Field(..., description="Dedup key within the provider")
    outcome: PaymentOutcome
    provider_status: str = Field(..., description="Raw provider status, kept for history")
    amount: Optional[Decimal] = None
    query: ResolutionQuery = Field(default_factory=ResolutionQuery)
    dedup_window: Optional[timedelta] = Field(
        None, description="Earlier records only count as duplicates within this window; None means forever"
    )


class PaymentHistoryEntry(BaseModel):
    """Append-only record of a reconciled payment."""

    subscription_id: str
    provider: Provider
    provider_transaction_id: str
    outcome: PaymentOutcome
    amount: Optional[Decimal] = None
    status: str = Field(..., description="Recorded payment status (paid or failed)")
    created_at: datetime

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.provider.value, self.provider_transaction_id, self.outcome.value)


class PlanCheckout(BaseModel):
    """Everything a provider needs to start a payment for a plan."""

    plan_id: str
    title: str
    price: Decimal
    user_id: str
    email: str
    establishment_id: Optional[str] = None


class CheckoutPreference(BaseModel):
    """Redirect checkout created at the provider."""

    id: str
    checkout_url: str


class PixPayment(BaseModel):
    """Pix payment created at the provider."""

    id: str
    status: Optional[str] = None
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None


class ChargeResult(BaseModel):
    """Direct charge created at the provider."""

    id: Optional[str] = None
    status: Optional[str] = None
    url: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)
