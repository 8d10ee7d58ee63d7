"""Per-provider webhook processing.

Each processor turns a raw webhook payload into a verified payment event
(double-checking the payment against the provider API) and hands it to the
reconciliation engine. Processors never raise: every failure is logged and
mapped to an acknowledgement text, so providers do not redeliver in a loop.
"""

from datetime import timedelta
from typing import Any, Optional

from pydantic import ValidationError

from billing_engine.logging_config import get_logger
from billing_engine.models import (
    IuguNotification,
    MercadoPagoNotification,
    PaymentOutcome,
    Provider,
    ResolutionQuery,
    VerifiedPaymentEvent,
)
from billing_engine.providers.base import PaymentVerifier, PermanentProviderError, TransientProviderError
from billing_engine.services.reconciliation_engine import ReconciliationEngine
from billing_engine.utils.identifiers import event_fingerprint

logger = get_logger(__name__)

MERCADO_PAGO_OUTCOMES = {
    "approved": PaymentOutcome.SUCCEEDED,
    "rejected": PaymentOutcome.FAILED,
}

IUGU_EVENTS = {
    "invoice.payment_succeeded": PaymentOutcome.SUCCEEDED,
    "invoice.payment_failed": PaymentOutcome.FAILED,
}

IUGU_PAID = "paid"


class MercadoPagoWebhookProcessor:
    """Handles `{action, type, data: {id}}` payment notifications."""

    ACK_OK = "OK"
    ACK_IGNORED = "IGNORED"
    ACK_ERROR = "Error processed"

    def __init__(self, verifier: PaymentVerifier, engine: ReconciliationEngine):
        self.verifier = verifier
        self.engine = engine

    def handle(self, payload: Any) -> str:
        """Process a notification and return the acknowledgement text."""
        try:
            return self._handle(payload)
        except Exception as e:
            _log_processing_error(Provider.MERCADO_PAGO, e)
            return self.ACK_ERROR

    def _handle(self, payload: Any) -> str:
        try:
            notification = MercadoPagoNotification.model_validate(payload)
        except ValidationError as e:
            logger.warning("webhook_payload_invalid", provider=Provider.MERCADO_PAGO.value, error=str(e))
            return self.ACK_OK

        payment_id = notification.payment_id
        if not payment_id or (notification.type and notification.type != "payment"):
            logger.info(
                "webhook_not_billing_relevant",
                provider=Provider.MERCADO_PAGO.value,
                type=notification.type,
                action=notification.action,
            )
            return self.ACK_OK

        payment = self.verifier.fetch_payment(payment_id)
        if payment is None:
            return self.ACK_OK

        outcome = MERCADO_PAGO_OUTCOMES.get(payment.status)
        if outcome is None:
            logger.info(
                "webhook_payment_status_ignored",
                provider=Provider.MERCADO_PAGO.value,
                payment_id=payment.id,
                payment_status=payment.status,
            )
            return self.ACK_IGNORED

        metadata = payment.metadata
        query = ResolutionQuery(
            provider_subscription_id=_str_or_none(metadata.get("preapproval_id")) or payment.subscription_id,
            establishment_id=_str_or_none(metadata.get("establishment_id")),
            customer_id=payment.external_reference or _str_or_none(metadata.get("user_id")),
            plan_id=_str_or_none(metadata.get("plan_id")),
        )
        event = VerifiedPaymentEvent(
            provider=Provider.MERCADO_PAGO,
            provider_transaction_id=payment.id,
            outcome=outcome,
            provider_status=payment.status,
            amount=payment.amount,
            query=query,
        )
        result = self.engine.apply(event)
        logger.info(
            "webhook_processed",
            provider=Provider.MERCADO_PAGO.value,
            payment_id=payment.id,
            outcome=outcome.value,
            result=result.outcome.value,
        )
        return self.ACK_OK


class IuguWebhookProcessor:
    """Handles `invoice.payment_succeeded` and `invoice.payment_failed` events."""

    ACK_OK = "OK"
    ACK_IGNORED = "IGNORED"
    ACK_ERROR = "ERROR"

    def __init__(
        self,
        verifier: PaymentVerifier,
        engine: ReconciliationEngine,
        unverified_dedup_window: timedelta = timedelta(hours=24),
    ):
        """Initialize the processor.

        Args:
            verifier: Iugu invoice lookup
            engine: Reconciliation engine
            unverified_dedup_window: Identical events without an invoice id
                within this window are redeliveries; later ones are new cycles
        """
        self.verifier = verifier
        self.engine = engine
        self.unverified_dedup_window = unverified_dedup_window

    def handle(self, payload: Any) -> str:
        """Process an event and return the acknowledgement text."""
        try:
            return self._handle(payload)
        except Exception as e:
            _log_processing_error(Provider.IUGU, e)
            return self.ACK_ERROR

    def _handle(self, payload: Any) -> str:
        if not isinstance(payload, dict):
            logger.warning("webhook_payload_invalid", provider=Provider.IUGU.value, payload_type=type(payload).__name__)
            return self.ACK_ERROR

        notification = IuguNotification.from_payload(payload)
        expected = IUGU_EVENTS.get(notification.event or "")
        if expected is None:
            logger.info("webhook_event_ignored", provider=Provider.IUGU.value, iugu_event=notification.event)
            return self.ACK_IGNORED

        query = ResolutionQuery(
            provider_subscription_id=notification.subscription_id,
            establishment_id=notification.establishment_id,
            customer_id=notification.customer_id,
            plan_id=_str_or_none(notification.data.get("plan_id")),
        )

        invoice_id = notification.invoice_id
        if invoice_id:
            invoice = self.verifier.fetch_payment(invoice_id)
            if invoice is None:
                return self.ACK_OK

            paid = invoice.status == IUGU_PAID
            if expected == PaymentOutcome.SUCCEEDED and not paid:
                logger.info(
                    "iugu_payment_not_confirmed",
                    invoice_id=invoice_id,
                    invoice_status=invoice.status,
                )
                return self.ACK_OK
            if expected == PaymentOutcome.FAILED and paid:
                logger.info("iugu_failure_stale", invoice_id=invoice_id)
                return self.ACK_OK

            query = query.model_copy(
                update={
                    "provider_subscription_id": query.provider_subscription_id or invoice.subscription_id,
                    "customer_id": query.customer_id or invoice.customer_id,
                }
            )
            transaction_id = invoice.id
            provider_status = invoice.status
            amount = invoice.amount
            dedup_window = None
        else:
            transaction_id = event_fingerprint(notification.event, notification.data)
            provider_status = notification.event
            amount = None
            dedup_window = self.unverified_dedup_window
            logger.warning(
                "iugu_event_unverified",
                iugu_event=notification.event,
                provider_transaction_id=transaction_id,
                provider_subscription_id=query.provider_subscription_id,
            )

        event = VerifiedPaymentEvent(
            provider=Provider.IUGU,
            provider_transaction_id=transaction_id,
            outcome=expected,
            provider_status=provider_status,
            amount=amount,
            query=query,
            dedup_window=dedup_window,
        )
        result = self.engine.apply(event)
        logger.info(
            "webhook_processed",
            provider=Provider.IUGU.value,
            iugu_event=notification.event,
            provider_transaction_id=transaction_id,
            result=result.outcome.value,
        )
        return self.ACK_OK


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _log_processing_error(provider: Provider, error: Exception) -> None:
    if isinstance(error, TransientProviderError):
        logger.warning("webhook_processing_failed", provider=provider.value, retryable=True, error=str(error))
    elif isinstance(error, PermanentProviderError):
        logger.error(
            "webhook_processing_failed",
            provider=provider.value,
            retryable=False,
            status_code=error.status_code,
            error=str(error),
        )
    else:
        logger.error(
            "webhook_processing_failed",
            provider=provider.value,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=True,
        )
