"""Checkout initiation API.

Implements:
- POST /subscriptions/checkout - Mercado Pago Pix or redirect checkout for a plan
- POST /subscriptions/renew - Pix renewal of the user's current plan
- POST /checkout/iugu/card - Iugu card charge
- POST /checkout/iugu/pix - Iugu Pix charge

Unlike webhooks, a human is waiting on these calls, so provider errors are
returned to the caller.
"""

from fastapi import APIRouter, Depends, HTTPException

from billing_engine.logging_config import get_logger
from billing_engine.models import (
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    IuguCardChargeRequest,
    IuguPixChargeRequest,
    RenewRequest,
)
from billing_engine.providers.base import ProviderError, TransientProviderError
from billing_engine.services.checkout_service import CheckoutError
from billing_engine.services.container import BillingServices

from billing_engine.api.dependencies import get_services

logger = get_logger(__name__)
router = APIRouter(tags=["Checkout"])


def _http_error(error: Exception) -> HTTPException:
    """Map checkout and provider errors onto HTTP responses."""
    if isinstance(error, CheckoutError):
        return HTTPException(
            status_code=error.status_code,
            detail=ErrorResponse(error="checkout_unavailable", message=error.message).model_dump(),
        )
    if isinstance(error, TransientProviderError):
        return HTTPException(
            status_code=503,
            detail=ErrorResponse(error="provider_unavailable", message=str(error)).model_dump(),
        )
    return HTTPException(
        status_code=502,
        detail=ErrorResponse(error="provider_rejected", message=str(error)).model_dump(),
    )


@router.post(
    "/subscriptions/checkout",
    response_model=CheckoutResponse,
    summary="Start plan checkout",
)
def start_checkout(
    request: CheckoutRequest, services: BillingServices = Depends(get_services)
) -> CheckoutResponse:
    """Create a Mercado Pago payment for a plan.

    Raises:
        404: Plan not found
        502: Provider rejected the request
        503: Provider unavailable
    """
    logger.info(
        "checkout_request",
        plan_id=request.plan_id,
        user_id=request.user_id,
        payment_method=request.payment_method,
    )
    try:
        return services.checkout.start_plan_checkout(request)
    except (CheckoutError, ProviderError) as e:
        raise _http_error(e) from e


@router.post(
    "/subscriptions/renew",
    response_model=CheckoutResponse,
    summary="Generate renewal payment",
)
def renew_subscription(
    request: RenewRequest, services: BillingServices = Depends(get_services)
) -> CheckoutResponse:
    """Create a Pix payment covering `months` periods of the user's plan.

    The paid-through date only moves once the payment webhook arrives.
    """
    logger.info("renew_request", user_id=request.user_id, months=request.months)
    try:
        return services.checkout.renew(request)
    except (CheckoutError, ProviderError) as e:
        raise _http_error(e) from e


@router.post("/checkout/iugu/card", response_model=CheckoutResponse, summary="Iugu card charge")
def iugu_card(
    request: IuguCardChargeRequest, services: BillingServices = Depends(get_services)
) -> CheckoutResponse:
    logger.info("iugu_card_request", amount_cents=request.amount_cents)
    try:
        return services.checkout.iugu_card_charge(request)
    except (CheckoutError, ProviderError) as e:
        raise _http_error(e) from e


@router.post("/checkout/iugu/pix", response_model=CheckoutResponse, summary="Iugu Pix charge")
def iugu_pix(
    request: IuguPixChargeRequest, services: BillingServices = Depends(get_services)
) -> CheckoutResponse:
    logger.info("iugu_pix_request", amount_cents=request.amount_cents)
    try:
        return services.checkout.iugu_pix_charge(request)
    except (CheckoutError, ProviderError) as e:
        raise _http_error(e) from e
