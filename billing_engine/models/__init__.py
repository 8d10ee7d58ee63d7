"""Pydantic models for configuration, domain records, events and API payloads."""

# Configuration models
from .plan import (
    PlanDefinition,
    MercadoPagoSettings,
    IuguSettings,
    ProvidersConfig,
    HttpConfig,
    DunningConfig,
    NotificationConfig,
    WebhookConfig,
    BillingConfig,
)

# Subscription models
from .subscription import (
    Provider,
    SubscriptionStatus,
    TERMINAL_STATUSES,
    SubscriptionRecord,
)

# Payment models
from .payment import (
    PaymentOutcome,
    ProviderPayment,
    ResolutionQuery,
    VerifiedPaymentEvent,
    PaymentHistoryEntry,
    PlanCheckout,
    CheckoutPreference,
    PixPayment,
    ChargeResult,
)

# Establishment aggregate
from .establishment import (
    EstablishmentRecord,
    UserContact,
    Contact,
)

# Webhook payloads and outbound messages
from .events import (
    MercadoPagoNotification,
    MercadoPagoNotificationData,
    IuguNotification,
    NotificationMessage,
)

from .dunning import SweepReport

# API request models
from .api_request import (
    CheckoutRequest,
    RenewRequest,
    IuguChargeItem,
    IuguCardChargeRequest,
    IuguPixChargeRequest,
    CheckoutResponse,
    ErrorResponse,
)

__all__ = [
    # Configuration
    "PlanDefinition",
    "MercadoPagoSettings",
    "IuguSettings",
    "ProvidersConfig",
    "HttpConfig",
    "DunningConfig",
    "NotificationConfig",
    "WebhookConfig",
    "BillingConfig",
    # Subscription
    "Provider",
    "SubscriptionStatus",
    "TERMINAL_STATUSES",
    "SubscriptionRecord",
    # Payment
    "PaymentOutcome",
    "ProviderPayment",
    "ResolutionQuery",
    "VerifiedPaymentEvent",
    "PaymentHistoryEntry",
    "PlanCheckout",
    "CheckoutPreference",
    "PixPayment",
    "ChargeResult",
    # Establishment
    "EstablishmentRecord",
    "UserContact",
    "Contact",
    # Events
    "MercadoPagoNotification",
    "MercadoPagoNotificationData",
    "IuguNotification",
    "NotificationMessage",
    # Dunning
    "SweepReport",
    # API requests
    "CheckoutRequest",
    "RenewRequest",
    "IuguChargeItem",
    "IuguCardChargeRequest",
    "IuguPixChargeRequest",
    "CheckoutResponse",
    "ErrorResponse",
]
