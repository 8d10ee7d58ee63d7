"""Provider capability interfaces and error taxonomy.

Adapters satisfy these protocols structurally; there is no base class to
inherit from. A provider that cannot do something simply does not
implement that capability.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from billing_engine.models import (
    ChargeResult,
    CheckoutPreference,
    PixPayment,
    PlanCheckout,
    Provider,
    ProviderPayment,
)


class ProviderError(Exception):
    """Base exception for provider API failures."""

    def __init__(
        self,
        message: str,
        provider: Optional[Provider] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.details = details


class TransientProviderError(ProviderError):
    """Timeout, transport failure or 5xx. Safe to retry later."""

    pass


class PermanentProviderError(ProviderError):
    """4xx: bad credentials or payload. Never retried."""

    pass


@runtime_checkable
class PaymentVerifier(Protocol):
    """Live lookup of a payment's authoritative state."""

    provider: Provider

    def fetch_payment(self, payment_id: str) -> Optional[ProviderPayment]:
        """Return the payment, or None when the provider does not know it."""
        ...


@runtime_checkable
class PreferenceCheckout(Protocol):
    def create_preference(self, checkout: PlanCheckout) -> CheckoutPreference:
        ...


@runtime_checkable
class PixCheckout(Protocol):
    def create_pix_payment(self, checkout: PlanCheckout) -> PixPayment:
        ...


@runtime_checkable
class ChargeCheckout(Protocol):
    def create_charge(self, body: dict[str, Any]) -> ChargeResult:
        ...


@runtime_checkable
class SubscriptionGateway(Protocol):
    """Provider-side subscription control used by the dunning sweep."""

    provider: Provider

    def suspend(self, provider_subscription_id: str) -> None:
        ...

    def cancel(self, provider_subscription_id: str) -> None:
        ...
