"""Checkout initiation upstream of the billing engine.

Creates provider-side payments for a plan. Nothing here touches the
subscription row: the period is only extended when the provider's webhook
is reconciled. Provider errors propagate to the caller.
"""

from typing import Any, Optional

from billing_engine.logging_config import get_logger
from billing_engine.models import (
    ChargeResult,
    CheckoutRequest,
    CheckoutResponse,
    IuguCardChargeRequest,
    IuguChargeItem,
    IuguPixChargeRequest,
    PlanCheckout,
    Provider,
    RenewRequest,
)
from billing_engine.providers.base import ChargeCheckout, PixCheckout, PreferenceCheckout
from billing_engine.repositories.plan_repository import PlanRepository
from billing_engine.repositories.subscription_store import SubscriptionStore

logger = get_logger(__name__)

DEFAULT_CHARGE_DESCRIPTION = "Subscription"


class CheckoutError(Exception):
    """Raised when a checkout cannot be started for a plan or user."""

    def __init__(self, message: str, status_code: int = 404):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CheckoutService:
    """Starts Mercado Pago plan checkouts and Iugu direct charges."""

    def __init__(
        self,
        plan_repository: PlanRepository,
        store: SubscriptionStore,
        mercadopago: Any,
        iugu: Optional[ChargeCheckout] = None,
    ):
        """Initialize the service.

        Args:
            plan_repository: Plan prices and titles
            store: Used by renewals to find the user's current plan
            mercadopago: PreferenceCheckout and PixCheckout provider
            iugu: ChargeCheckout provider for direct charges
        """
        self.plan_repository = plan_repository
        self.store = store
        self.mercadopago = mercadopago
        self.iugu = iugu

    def start_plan_checkout(self, request: CheckoutRequest) -> CheckoutResponse:
        """Create a Pix payment or a redirect preference for a plan.

        Raises:
            CheckoutError: Unknown plan
            ProviderError: Provider rejected or failed the call
        """
        plan = self.plan_repository.find_by_id(request.plan_id)
        if plan is None:
            raise CheckoutError(f"Plan not found: {request.plan_id}")

        checkout = PlanCheckout(
            plan_id=plan.id,
            title=f"Subscription: {plan.title}",
            price=plan.price,
            user_id=request.user_id,
            email=request.email,
            establishment_id=request.establishment_id,
        )

        if request.payment_method == "pix":
            return self._pix(checkout)

        if not isinstance(self.mercadopago, PreferenceCheckout):
            raise CheckoutError("Redirect checkout is not available", status_code=400)
        preference = self.mercadopago.create_preference(checkout)
        logger.info(
            "checkout_started",
            provider=Provider.MERCADO_PAGO.value,
            payment_method="preference",
            plan_id=plan.id,
            user_id=request.user_id,
        )
        return CheckoutResponse(
            provider=Provider.MERCADO_PAGO.value,
            payment_method="preference",
            id=preference.id,
            checkout_url=preference.checkout_url,
        )

    def renew(self, request: RenewRequest) -> CheckoutResponse:
        """Pix payment for `months` periods of the user's current plan.

        Raises:
            CheckoutError: User has no subscription or its plan is unknown
        """
        subscription = self.store.latest_for_user(request.user_id)
        if subscription is None:
            raise CheckoutError(f"No subscription found for user: {request.user_id}")

        plan = self.plan_repository.find_by_id(subscription.plan_id)
        if plan is None:
            raise CheckoutError(f"Plan not found: {subscription.plan_id}")

        checkout = PlanCheckout(
            plan_id=plan.id,
            title=f"Renewal: {plan.title} ({request.months} months)",
            price=plan.price * request.months,
            user_id=request.user_id,
            email=request.email,
            establishment_id=subscription.establishment_id,
        )
        return self._pix(checkout)

    def _pix(self, checkout: PlanCheckout) -> CheckoutResponse:
        if not isinstance(self.mercadopago, PixCheckout):
            raise CheckoutError("Pix checkout is not available", status_code=400)
        pix = self.mercadopago.create_pix_payment(checkout)
        logger.info(
            "checkout_started",
            provider=Provider.MERCADO_PAGO.value,
            payment_method="pix",
            plan_id=checkout.plan_id,
            user_id=checkout.user_id,
            payment_id=pix.id,
        )
        return CheckoutResponse(
            provider=Provider.MERCADO_PAGO.value,
            payment_method="pix",
            id=pix.id,
            status=pix.status,
            qr_code=pix.qr_code,
            qr_code_base64=pix.qr_code_base64,
            ticket_url=pix.ticket_url,
        )

    def iugu_card_charge(self, request: IuguCardChargeRequest) -> CheckoutResponse:
        """Charge a tokenized card through Iugu."""
        body = {
            "token": request.payment_token,
            "email": request.email,
            "items": self._iugu_items(request.items, request.amount_cents),
        }
        return self._iugu_charge(body, "card")

    def iugu_pix_charge(self, request: IuguPixChargeRequest) -> CheckoutResponse:
        """Create a Pix charge through Iugu."""
        body = {
            "email": request.email,
            "payable_with": "pix",
            "items": self._iugu_items(request.items, request.amount_cents),
        }
        return self._iugu_charge(body, "pix")

    def _iugu_charge(self, body: dict[str, Any], payment_method: str) -> CheckoutResponse:
        if self.iugu is None:
            raise CheckoutError("Iugu checkout is not available", status_code=400)
        charge: ChargeResult = self.iugu.create_charge(body)
        logger.info(
            "checkout_started",
            provider=Provider.IUGU.value,
            payment_method=payment_method,
            invoice_id=charge.id,
        )
        pix = charge.raw.get("pix") or {}
        return CheckoutResponse(
            provider=Provider.IUGU.value,
            payment_method=payment_method,
            id=charge.id,
            status=charge.status,
            checkout_url=charge.url,
            qr_code=pix.get("qrcode_text"),
            raw=charge.raw,
        )

    @staticmethod
    def _iugu_items(items: Optional[list[IuguChargeItem]], amount_cents: int) -> list[dict[str, Any]]:
        if items:
            return [item.model_dump() for item in items]
        return [{"description": DEFAULT_CHARGE_DESCRIPTION, "quantity": 1, "price_cents": amount_cents}]
