"""Provider webhook ingress.

Implements:
- POST /webhooks/mercadopago - Mercado Pago payment notifications
- POST /webhooks/iugu - Iugu invoice events (JSON or form-encoded)

Processing runs in a worker thread under a deadline. Apart from malformed
JSON on the Mercado Pago endpoint, every request is acknowledged with 200
so providers do not redeliver in a loop; failures go to the logs.
"""

import asyncio
import json
import re
from typing import Any, Callable
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from billing_engine.logging_config import get_logger
from billing_engine.models import Provider
from billing_engine.services.container import BillingServices
from billing_engine.services.webhook_processor import IuguWebhookProcessor, MercadoPagoWebhookProcessor

from billing_engine.api.dependencies import get_services

logger = get_logger(__name__)
router = APIRouter(tags=["Webhooks"], prefix="/webhooks")

_BRACKET_KEY = re.compile(r"[^\[\]]+")


async def run_with_deadline(
    handler: Callable[[Any], str],
    payload: Any,
    timeout_seconds: float,
    provider: Provider,
    error_ack: str,
) -> str:
    """Run a blocking webhook handler off the event loop, bounded by a deadline.

    Returns the handler's ack, or `error_ack` if the deadline passes.
    Cancellation of the request is logged and propagated.
    """
    try:
        return await asyncio.wait_for(run_in_threadpool(handler, payload), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(
            "webhook_deadline_exceeded",
            provider=provider.value,
            timeout_seconds=timeout_seconds,
        )
        return error_ack
    except asyncio.CancelledError:
        logger.warning("webhook_cancelled", provider=provider.value)
        raise


def parse_form_payload(body: str) -> dict[str, Any]:
    """Decode a form body, nesting bracket keys (`data[id]=1` -> {"data": {"id": "1"}})."""
    payload: dict[str, Any] = {}
    for key, value in parse_qsl(body, keep_blank_values=True):
        parts = _BRACKET_KEY.findall(key)
        if not parts:
            continue
        node = payload
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return payload


@router.post("/mercadopago", response_class=PlainTextResponse, summary="Mercado Pago webhook")
async def mercadopago_webhook(
    request: Request, services: BillingServices = Depends(get_services)
) -> PlainTextResponse:
    """Receive a Mercado Pago notification.

    The body only carries a payment id; the payment is re-fetched before
    anything is changed.

    Returns:
        200 with OK, IGNORED or "Error processed"; 400 on malformed JSON
    """
    try:
        payload = await request.json()
    except ValueError as e:
        logger.warning("webhook_malformed_json", provider=Provider.MERCADO_PAGO.value, error=str(e))
        return PlainTextResponse("Malformed JSON", status_code=400)

    logger.info(
        "webhook_received",
        provider=Provider.MERCADO_PAGO.value,
        type=payload.get("type") if isinstance(payload, dict) else None,
        action=payload.get("action") if isinstance(payload, dict) else None,
    )
    ack = await run_with_deadline(
        services.mercadopago_webhooks.handle,
        payload,
        services.config.billing.webhooks.processing_timeout_seconds,
        Provider.MERCADO_PAGO,
        MercadoPagoWebhookProcessor.ACK_ERROR,
    )
    return PlainTextResponse(ack)


@router.post("/iugu", response_class=PlainTextResponse, summary="Iugu webhook")
async def iugu_webhook(request: Request, services: BillingServices = Depends(get_services)) -> PlainTextResponse:
    """Receive an Iugu event.

    Accepts JSON and `application/x-www-form-urlencoded` bodies.

    Returns:
        200 with OK, IGNORED or ERROR
    """
    body = await request.body()
    content_type = request.headers.get("content-type", "")
    try:
        text = body.decode("utf-8")
        if "application/x-www-form-urlencoded" in content_type:
            payload = parse_form_payload(text)
        else:
            payload = json.loads(text)
    except ValueError as e:
        logger.warning("webhook_malformed_body", provider=Provider.IUGU.value, error=str(e))
        return PlainTextResponse(IuguWebhookProcessor.ACK_ERROR)

    logger.info(
        "webhook_received",
        provider=Provider.IUGU.value,
        iugu_event=(payload.get("event") or payload.get("type")) if isinstance(payload, dict) else None,
    )
    ack = await run_with_deadline(
        services.iugu_webhooks.handle,
        payload,
        services.config.billing.webhooks.processing_timeout_seconds,
        Provider.IUGU,
        IuguWebhookProcessor.ACK_ERROR,
    )
    return PlainTextResponse(ack)
