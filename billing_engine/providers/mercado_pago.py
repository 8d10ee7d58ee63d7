"""Mercado Pago adapter (redirect/preference provider).

Implements PaymentVerifier, PreferenceCheckout, PixCheckout, ChargeCheckout
and SubscriptionGateway (preapprovals).
"""

from decimal import Decimal
from typing import Any, Optional

import httpx

from billing_engine.logging_config import get_logger
from billing_engine.models import (
    ChargeResult,
    CheckoutPreference,
    MercadoPagoSettings,
    PixPayment,
    PlanCheckout,
    Provider,
    ProviderPayment,
)
from billing_engine.providers.base import PermanentProviderError
from billing_engine.providers.http_client import ProviderHttpClient
from billing_engine.utils.identifiers import generate_idempotency_key

logger = get_logger(__name__)


class MercadoPagoAdapter:
    """Mercado Pago REST adapter."""

    provider = Provider.MERCADO_PAGO

    def __init__(
        self,
        access_token: Optional[str],
        settings: Optional[MercadoPagoSettings] = None,
        timeout_seconds: float = 8.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the adapter.

        Args:
            access_token: API access token; calls fail permanently without it
            settings: Base URL, currency, notification and redirect URLs
            timeout_seconds: Per-call timeout
            transport: Optional httpx transport for tests
        """
        self._access_token = access_token
        self.settings = settings or MercadoPagoSettings()
        self._http = ProviderHttpClient(
            provider=self.provider,
            base_url=self.settings.base_url,
            auth_factory=self._auth_headers,
            timeout_seconds=timeout_seconds,
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        if not self._access_token:
            raise PermanentProviderError("Missing MERCADO_PAGO_ACCESS_TOKEN", provider=self.provider)
        return {"Authorization": f"Bearer {self._access_token}"}

    def fetch_payment(self, payment_id: str) -> Optional[ProviderPayment]:
        """GET /v1/payments/{id}."""
        body = self._http.request("GET", f"/v1/payments/{payment_id}", allow_not_found=True)
        if body is None:
            logger.info("mercadopago_payment_not_found", payment_id=payment_id)
            return None

        amount = body.get("transaction_amount")
        metadata = body.get("metadata") or {}
        return ProviderPayment(
            id=str(body.get("id", payment_id)),
            status=str(body.get("status", "")),
            amount=Decimal(str(amount)) if amount is not None else None,
            external_reference=body.get("external_reference"),
            metadata=metadata,
            subscription_id=metadata.get("preapproval_id"),
        )

    def create_preference(self, checkout: PlanCheckout) -> CheckoutPreference:
        """POST /checkout/preferences for card/boleto redirect checkout."""
        body: dict[str, Any] = {
            "items": [
                {
                    "id": checkout.plan_id,
                    "title": checkout.title,
                    "quantity": 1,
                    "unit_price": float(checkout.price),
                    "currency_id": self.settings.currency,
                }
            ],
            "payer": {"email": checkout.email},
            "external_reference": checkout.user_id,
            "auto_return": "approved",
            "metadata": self._metadata(checkout),
        }
        if self.settings.back_urls:
            body["back_urls"] = self.settings.back_urls
        if self.settings.notification_url:
            body["notification_url"] = self.settings.notification_url

        result = self._http.request("POST", "/checkout/preferences", json=body)
        logger.info("mercadopago_preference_created", preference_id=result.get("id"), plan_id=checkout.plan_id)
        return CheckoutPreference(id=str(result.get("id")), checkout_url=result.get("init_point", ""))

    def create_pix_payment(self, checkout: PlanCheckout) -> PixPayment:
        """POST /v1/payments with payment_method_id=pix."""
        body: dict[str, Any] = {
            "transaction_amount": float(checkout.price),
            "description": checkout.title,
            "payment_method_id": "pix",
            "payer": {"email": checkout.email},
            "external_reference": checkout.user_id,
            "metadata": self._metadata(checkout),
        }
        if self.settings.notification_url:
            body["notification_url"] = self.settings.notification_url

        result = self._http.request(
            "POST",
            "/v1/payments",
            json=body,
            headers={"X-Idempotency-Key": generate_idempotency_key()},
        )
        transaction_data = (result.get("point_of_interaction") or {}).get("transaction_data") or {}
        logger.info("mercadopago_pix_created", payment_id=result.get("id"), plan_id=checkout.plan_id)
        return PixPayment(
            id=str(result.get("id")),
            status=result.get("status"),
            qr_code=transaction_data.get("qr_code"),
            qr_code_base64=transaction_data.get("qr_code_base64"),
            ticket_url=transaction_data.get("ticket_url"),
        )

    def create_charge(self, body: dict[str, Any]) -> ChargeResult:
        """POST /v1/payments with a caller-built body."""
        result = self._http.request(
            "POST",
            "/v1/payments",
            json=body,
            headers={"X-Idempotency-Key": generate_idempotency_key()},
        )
        return ChargeResult(
            id=str(result["id"]) if result.get("id") is not None else None,
            status=result.get("status"),
            raw=result,
        )

    def suspend(self, provider_subscription_id: str) -> None:
        """Pause a preapproval."""
        self._http.request("PUT", f"/preapproval/{provider_subscription_id}", json={"status": "paused"})
        logger.info("mercadopago_preapproval_paused", provider_subscription_id=provider_subscription_id)

    def cancel(self, provider_subscription_id: str) -> None:
        """Cancel a preapproval."""
        self._http.request("PUT", f"/preapproval/{provider_subscription_id}", json={"status": "cancelled"})
        logger.info("mercadopago_preapproval_cancelled", provider_subscription_id=provider_subscription_id)

    @staticmethod
    def _metadata(checkout: PlanCheckout) -> dict[str, Any]:
        metadata: dict[str, Any] = {"plan_id": checkout.plan_id, "user_id": checkout.user_id}
        if checkout.establishment_id:
            metadata["establishment_id"] = checkout.establishment_id
        return metadata

    def close(self) -> None:
        self._http.close()
