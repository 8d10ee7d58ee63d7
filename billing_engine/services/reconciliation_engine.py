"""Applies verified payment outcomes to subscription records.

Responsibilities:
- Deduplicate redelivered provider events by transaction id
- Transition subscriptions (active on success, past_due on failure)
- Extend the paid-through date without ever moving it backward
- Create the subscription on a first successful payment
- Mirror the establishment and send billing messages after a write
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from billing_engine.logging_config import get_logger
from billing_engine.models import (
    PaymentHistoryEntry,
    PaymentOutcome,
    SubscriptionRecord,
    SubscriptionStatus,
    VerifiedPaymentEvent,
)
from billing_engine.repositories.establishment_store import EstablishmentStore
from billing_engine.repositories.plan_repository import PlanRepository
from billing_engine.repositories.subscription_store import CommitResult, SubscriptionStore
from billing_engine.services.event_resolver import EventResolver
from billing_engine.services.notification_dispatcher import NotificationSink
from billing_engine.services.time_controller import TimeController
from billing_engine.utils.identifiers import generate_subscription_id

logger = get_logger(__name__)

PAYMENT_CONFIRMED_MESSAGE = "Payment confirmed! Your subscription has been renewed."
PAYMENT_FAILED_MESSAGE = "Your payment was not approved. We will try again. Settle it to avoid losing access."

LAST_PAYMENT_STATUS = {
    PaymentOutcome.SUCCEEDED: "paid",
    PaymentOutcome.FAILED: "failed",
}


class ConcurrentUpdateError(Exception):
    """Raised when a subscription keeps changing under a reconciliation attempt."""

    pass


class ReconciliationOutcome(str, Enum):
    """What reconciling an event did."""

    APPLIED = "applied"
    CREATED = "created"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    SKIPPED_TERMINAL = "skipped_terminal"


class ReconciliationResult(BaseModel):
    """Outcome of reconciling one event, with the subscription as written."""

    outcome: ReconciliationOutcome
    subscription: Optional[SubscriptionRecord] = None


class ReconciliationEngine:
    """Payment state machine.

    Every write goes through SubscriptionStore.commit_payment, which records
    the history entry and the subscription row together and only if the row
    has not changed since it was read.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        establishments: EstablishmentStore,
        plan_repository: PlanRepository,
        notifier: NotificationSink,
        time_controller: TimeController,
        resolver: Optional[EventResolver] = None,
        max_conflict_retries: int = 3,
    ):
        """Initialize the engine.

        Args:
            store: Subscription and payment history storage
            establishments: Establishment mirror and contact lookup
            plan_repository: Plan intervals
            notifier: Outbound message sink
            time_controller: Clock
            resolver: Event resolver (defaults to one over `store`)
            max_conflict_retries: Attempts before giving up on a contended row
        """
        self.store = store
        self.establishments = establishments
        self.plan_repository = plan_repository
        self.notifier = notifier
        self.time_controller = time_controller
        self.resolver = resolver or EventResolver(store)
        self.max_conflict_retries = max_conflict_retries

    def apply(self, event: VerifiedPaymentEvent) -> ReconciliationResult:
        """Reconcile a verified payment event.

        Args:
            event: Outcome confirmed against the provider

        Returns:
            ReconciliationResult

        Raises:
            ConcurrentUpdateError: If every attempt lost a concurrent write
        """
        since = self._duplicate_since(event)
        if self.store.has_payment(event.provider, event.provider_transaction_id, event.outcome, since=since):
            return self._duplicate(event)

        for attempt in range(1, self.max_conflict_retries + 1):
            subscription = self.resolver.resolve(event.query, provider=event.provider)

            if subscription is None:
                if event.outcome == PaymentOutcome.SUCCEEDED and self._can_create(event):
                    result = self._create(event)
                    if result is not None:
                        return result
                    continue
                logger.info(
                    "payment_event_unmatched",
                    provider=event.provider.value,
                    provider_transaction_id=event.provider_transaction_id,
                    outcome=event.outcome.value,
                )
                return ReconciliationResult(outcome=ReconciliationOutcome.NOT_FOUND)

            if subscription.is_terminal:
                if self._starts_new_subscription(subscription, event):
                    logger.info(
                        "terminal_subscription_superseded",
                        subscription_id=subscription.id,
                        status=subscription.status.value,
                        provider_transaction_id=event.provider_transaction_id,
                    )
                    result = self._create(event, supersedes=subscription)
                    if result is not None:
                        return result
                    continue
                logger.info(
                    "payment_event_for_terminal_subscription",
                    subscription_id=subscription.id,
                    status=subscription.status.value,
                    provider_transaction_id=event.provider_transaction_id,
                    outcome=event.outcome.value,
                )
                return ReconciliationResult(
                    outcome=ReconciliationOutcome.SKIPPED_TERMINAL, subscription=subscription
                )

            expected_updated_at = subscription.updated_at
            updated = self._transition(subscription, event)
            commit = self.store.commit_payment(
                updated, self._history_entry(updated, event), expected_updated_at, duplicate_since=since
            )

            if commit == CommitResult.APPLIED:
                self._after_commit(updated, event)
                return ReconciliationResult(outcome=ReconciliationOutcome.APPLIED, subscription=updated)
            if commit == CommitResult.DUPLICATE:
                return self._duplicate(event)

            logger.warning(
                "reconciliation_conflict",
                subscription_id=subscription.id,
                attempt=attempt,
                provider_transaction_id=event.provider_transaction_id,
            )

        raise ConcurrentUpdateError(
            f"Subscription kept changing while applying {event.provider.value} "
            f"transaction {event.provider_transaction_id}"
        )

    def _transition(self, subscription: SubscriptionRecord, event: VerifiedPaymentEvent) -> SubscriptionRecord:
        """Return a modified copy of `subscription` with the event applied."""
        now = self.time_controller.now()
        updated = subscription.model_copy(deep=True)

        if event.outcome == PaymentOutcome.SUCCEEDED:
            # lapsed subscriptions restart from now, current ones extend from their end
            base = max(now, updated.current_period_end)
            updated.extend_period(
                base + self.plan_repository.interval_for(updated.plan_id),
                reason="payment_succeeded",
            )
            updated.set_status(SubscriptionStatus.ACTIVE, reason="payment_succeeded")
            if not updated.provider_subscription_id and event.query.provider_subscription_id:
                updated.provider_subscription_id = event.query.provider_subscription_id
        else:
            updated.set_status(SubscriptionStatus.PAST_DUE, reason="payment_failed")
            updated.set_retry_count(updated.retry_count + 1)

        updated.last_payment_status = LAST_PAYMENT_STATUS[event.outcome]
        updated.touch(now)
        return updated

    def _can_create(self, event: VerifiedPaymentEvent) -> bool:
        query = event.query
        return bool(query.plan_id and (query.customer_id or query.establishment_id))

    def _starts_new_subscription(self, terminal: SubscriptionRecord, event: VerifiedPaymentEvent) -> bool:
        """A paid checkout after cancellation starts a fresh subscription.

        Events carrying the terminal row's own provider subscription id stay
        tied to it and are no-ops.
        """
        if event.outcome != PaymentOutcome.SUCCEEDED or not self._can_create(event):
            return False
        provider_subscription_id = event.query.provider_subscription_id
        return not (provider_subscription_id and provider_subscription_id == terminal.provider_subscription_id)

    def _duplicate_since(self, event: VerifiedPaymentEvent) -> Optional[datetime]:
        if event.dedup_window is None:
            return None
        return self.time_controller.now() - event.dedup_window

    def _create(
        self, event: VerifiedPaymentEvent, supersedes: Optional[SubscriptionRecord] = None
    ) -> Optional[ReconciliationResult]:
        """Insert a new active subscription for a first successful payment.

        A row that `supersedes` a terminal one is stamped after it, so lookups
        by establishment or user pick the new row.

        Returns None when the insert lost a race and should be retried.
        """
        now = self.time_controller.now()
        query = event.query
        subscription = SubscriptionRecord(
            id=generate_subscription_id(),
            user_id=query.customer_id,
            establishment_id=query.establishment_id,
            plan_id=query.plan_id,
            provider=event.provider,
            provider_subscription_id=query.provider_subscription_id,
            status=SubscriptionStatus.ACTIVE,
            current_period_end=now + self.plan_repository.interval_for(query.plan_id),
            last_payment_status=LAST_PAYMENT_STATUS[event.outcome],
            retry_count=0,
            created_at=now,
            updated_at=now,
        )
        if supersedes is not None and supersedes.updated_at >= subscription.updated_at:
            subscription.updated_at = supersedes.updated_at + timedelta(microseconds=1)

        commit = self.store.commit_payment(
            subscription,
            self._history_entry(subscription, event),
            None,
            duplicate_since=self._duplicate_since(event),
        )
        if commit == CommitResult.DUPLICATE:
            return self._duplicate(event)
        if commit == CommitResult.CONFLICT:
            return None

        logger.info(
            "subscription_created",
            subscription_id=subscription.id,
            provider=event.provider.value,
            plan_id=subscription.plan_id,
            user_id=subscription.user_id,
            establishment_id=subscription.establishment_id,
            current_period_end=subscription.current_period_end.isoformat(),
        )
        self._after_commit(subscription, event)
        return ReconciliationResult(outcome=ReconciliationOutcome.CREATED, subscription=subscription)

    def _history_entry(self, subscription: SubscriptionRecord, event: VerifiedPaymentEvent) -> PaymentHistoryEntry:
        return PaymentHistoryEntry(
            subscription_id=subscription.id,
            provider=event.provider,
            provider_transaction_id=event.provider_transaction_id,
            outcome=event.outcome,
            amount=event.amount,
            status=LAST_PAYMENT_STATUS[event.outcome],
            created_at=self.time_controller.now(),
        )

    def _after_commit(self, subscription: SubscriptionRecord, event: VerifiedPaymentEvent) -> None:
        """Establishment mirror and billing message for a committed event."""
        logger.info(
            "payment_reconciled",
            subscription_id=subscription.id,
            provider=event.provider.value,
            provider_transaction_id=event.provider_transaction_id,
            outcome=event.outcome.value,
            status=subscription.status.value,
            retry_count=subscription.retry_count,
            current_period_end=subscription.current_period_end.isoformat(),
        )

        if event.outcome == PaymentOutcome.SUCCEEDED:
            self.establishments.mirror_subscription(
                subscription,
                SubscriptionStatus.ACTIVE.value,
                end_date=subscription.current_period_end,
            )
            message = PAYMENT_CONFIRMED_MESSAGE
        else:
            message = PAYMENT_FAILED_MESSAGE

        contact = self.establishments.resolve_contact(subscription)
        self.notifier.send(contact.establishment_id, contact.phone, message)

    def _duplicate(self, event: VerifiedPaymentEvent) -> ReconciliationResult:
        logger.debug(
            "payment_event_duplicate",
            provider=event.provider.value,
            provider_transaction_id=event.provider_transaction_id,
            outcome=event.outcome.value,
        )
        return ReconciliationResult(outcome=ReconciliationOutcome.DUPLICATE)

