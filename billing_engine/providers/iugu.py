"""Iugu adapter (direct-charge/subscription provider).

Implements PaymentVerifier (invoices), PixCheckout, ChargeCheckout and
SubscriptionGateway. Iugu has no redirect preference.
"""

import base64
from decimal import Decimal
from typing import Any, Optional

import httpx

from billing_engine.logging_config import get_logger
from billing_engine.models import (
    ChargeResult,
    IuguSettings,
    PixPayment,
    PlanCheckout,
    Provider,
    ProviderPayment,
)
from billing_engine.providers.base import PermanentProviderError
from billing_engine.providers.http_client import ProviderHttpClient

logger = get_logger(__name__)


class IuguAdapter:
    """Iugu REST adapter."""

    provider = Provider.IUGU

    def __init__(
        self,
        api_token: Optional[str],
        settings: Optional[IuguSettings] = None,
        timeout_seconds: float = 8.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_token = api_token
        self.settings = settings or IuguSettings()
        self._http = ProviderHttpClient(
            provider=self.provider,
            base_url=self.settings.base_url,
            auth_factory=self._auth_headers,
            timeout_seconds=timeout_seconds,
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        # HTTP Basic with the token as user and an empty password
        if not self._api_token:
            raise PermanentProviderError("Missing IUGU_API_TOKEN", provider=self.provider)
        encoded = base64.b64encode(f"{self._api_token}:".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}

    def fetch_payment(self, payment_id: str) -> Optional[ProviderPayment]:
        """GET /invoices/{id}."""
        body = self._http.request("GET", f"/invoices/{payment_id}", allow_not_found=True)
        if body is None:
            logger.info("iugu_invoice_not_found", invoice_id=payment_id)
            return None

        total_cents = body.get("total_cents")
        return ProviderPayment(
            id=str(body.get("id", payment_id)),
            status=str(body.get("status", "")),
            amount=Decimal(total_cents) / 100 if total_cents is not None else None,
            subscription_id=body.get("subscription_id"),
            customer_id=body.get("customer_id"),
            metadata={k: body[k] for k in ("due_date", "paid_at") if body.get(k)},
        )

    def create_charge(self, body: dict[str, Any]) -> ChargeResult:
        """POST /charge."""
        result = self._http.request("POST", "/charge", json=body)
        if result.get("success") is False:
            raise PermanentProviderError(
                result.get("message") or result.get("LR") or "Iugu charge was declined",
                provider=self.provider,
                details=result,
            )
        invoice_id = result.get("invoice_id")
        logger.info("iugu_charge_created", invoice_id=invoice_id)
        return ChargeResult(
            id=str(invoice_id) if invoice_id else None,
            status=result.get("status") or ("paid" if result.get("success") else None),
            url=result.get("url"),
            raw=result,
        )

    def create_pix_payment(self, checkout: PlanCheckout) -> PixPayment:
        """Pix charge for a plan."""
        price_cents = int((checkout.price * 100).to_integral_value())
        charge = self.create_charge(
            {
                "email": checkout.email,
                "payable_with": "pix",
                "items": [{"description": checkout.title, "quantity": 1, "price_cents": price_cents}],
            }
        )
        pix = charge.raw.get("pix") or {}
        return PixPayment(
            id=charge.id or "",
            status=charge.status,
            qr_code=pix.get("qrcode_text"),
            ticket_url=charge.url,
        )

    def suspend(self, provider_subscription_id: str) -> None:
        """POST /subscriptions/{id}/suspend."""
        self._http.request("POST", f"/subscriptions/{provider_subscription_id}/suspend")
        logger.info("iugu_subscription_suspended", provider_subscription_id=provider_subscription_id)

    def cancel(self, provider_subscription_id: str) -> None:
        """DELETE /subscriptions/{id}."""
        self._http.request("DELETE", f"/subscriptions/{provider_subscription_id}")
        logger.info("iugu_subscription_deleted", provider_subscription_id=provider_subscription_id)

    def close(self) -> None:
        self._http.close()
