"""Plan and engine configuration models.

Models for config/billing.yaml.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class PlanDefinition(BaseModel):
    """Plan definition from configuration."""

    id: str = Field(..., description="Plan identifier")
    title: str = Field(..., description="Human-readable title")
    price: Decimal = Field(..., description="Price per billing period, in BRL")
    billing_period: str = Field(default="P30D", description="ISO 8601 duration (e.g., P30D, P1M, P1Y)")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "barbershop.pro.monthly",
                "title": "Pro Monthly",
                "price": "89.90",
                "billing_period": "P30D",
            }
        }


class MercadoPagoSettings(BaseModel):
    """Mercado Pago adapter settings (the access token comes from the environment)."""

    base_url: str = Field(default="https://api.mercadopago.com")
    currency: str = Field(default="BRL")
    notification_url: Optional[str] = Field(None, description="Public HTTPS URL of /webhooks/mercadopago")
    back_urls: dict[str, str] = Field(default_factory=dict, description="success/failure/pending redirect URLs")


class IuguSettings(BaseModel):
    """Iugu adapter settings (the API token comes from the environment)."""

    base_url: str = Field(default="https://api.iugu.com/v1")


class ProvidersConfig(BaseModel):
    """Per-provider settings."""

    mercadopago: MercadoPagoSettings = Field(default_factory=MercadoPagoSettings)
    iugu: IuguSettings = Field(default_factory=IuguSettings)


class HttpConfig(BaseModel):
    """Outbound HTTP settings shared by provider adapters."""

    timeout_seconds: float = Field(default=8.0, gt=0, description="Per-call timeout for provider APIs")


class DunningConfig(BaseModel):
    """Dunning sweep settings."""

    enabled: bool = Field(default=True)
    interval_seconds: int = Field(default=86400, gt=0, description="Seconds between sweeps")
    run_on_start: bool = Field(default=False, description="Run a sweep as soon as the worker starts")
    warning_after_days: int = Field(default=3, ge=0)
    suspend_after_days: int = Field(default=7, ge=0)


class NotificationConfig(BaseModel):
    """Outbound notification (Pub/Sub) settings."""

    enabled: bool = Field(default=False, description="Publish notifications to Pub/Sub")
    project_id: str = Field(default="billing-local")
    topic: str = Field(default="billing-notifications")
    publish_timeout_seconds: float = Field(default=5.0, gt=0)


class WebhookConfig(BaseModel):
    """Webhook ingress settings."""

    processing_timeout_seconds: float = Field(default=10.0, gt=0)
    unverified_dedup_window_hours: int = Field(
        default=24, gt=0, description="How long identical Iugu events without an invoice id are treated as redeliveries"
    )


class BillingConfig(BaseModel):
    """Complete billing.yaml configuration."""

    plans: list[PlanDefinition] = Field(default_factory=list, description="Plan definitions")
    default_interval_days: int = Field(default=30, gt=0, description="Interval for plans not in the catalog")
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    dunning: DunningConfig = Field(default_factory=DunningConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    webhooks: WebhookConfig = Field(default_factory=WebhookConfig)
