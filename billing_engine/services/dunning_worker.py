"""Periodic dunning sweep over past_due subscriptions.

Responsibilities:
- Compute how late each past_due subscription is
- Send a warning once it is more than `warning_after_days` late
- Cancel locally and suspend at the provider once it is more than
  `suspend_after_days` late
- Retry provider-side suspensions that failed transiently
- Run the sweep on a background thread at a fixed interval
"""

import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from billing_engine.logging_config import get_logger, subscription_context
from billing_engine.models import (
    DunningConfig,
    Provider,
    SubscriptionRecord,
    SubscriptionStatus,
    SweepReport,
)
from billing_engine.providers.base import (
    ProviderError,
    SubscriptionGateway,
    TransientProviderError,
)
from billing_engine.repositories.establishment_store import EstablishmentStore
from billing_engine.repositories.subscription_store import SubscriptionNotFoundError, SubscriptionStore
from billing_engine.services.notification_dispatcher import NotificationSink
from billing_engine.services.time_controller import TimeController

logger = get_logger(__name__)

OVERDUE_WARNING_MESSAGE = (
    "Your subscription has been overdue for more than {days} days. Settle it to avoid suspension."
)

WARNING_MESSAGE_TYPE = "billing_warning"

# mirrored onto the establishment when dunning cancels its subscription
ESTABLISHMENT_SUSPENDED = "suspended"


class SuspendAttempt(str, Enum):
    """Result of a provider-side suspension call."""

    DONE = "done"
    SKIPPED = "skipped"  # no provider subscription id
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


def days_late(now: datetime, period_end: datetime) -> int:
    """Whole days elapsed since `period_end`, 0 if it is still in the future."""
    if now <= period_end:
        return 0
    return (now - period_end) // timedelta(days=1)


class DunningSweeper:
    """One pass of the dunning policy over the subscription store.

    Safe to run concurrently with itself and with the reconciliation
    engine: every write is a compare-and-set on updated_at, and a row that
    changed underneath is skipped until the next sweep.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        establishments: EstablishmentStore,
        gateways: Dict[Provider, SubscriptionGateway],
        notifier: NotificationSink,
        time_controller: TimeController,
        settings: Optional[DunningConfig] = None,
    ):
        self.store = store
        self.establishments = establishments
        self.gateways = gateways
        self.notifier = notifier
        self.time_controller = time_controller
        self.settings = settings or DunningConfig()

    def run_once(self, stop_event: Optional[threading.Event] = None) -> SweepReport:
        """Run a single sweep.

        Args:
            stop_event: When set, the sweep stops between subscriptions

        Returns:
            SweepReport with counts for this run
        """
        report = SweepReport()
        now = self.time_controller.now()
        logger.info("dunning_sweep_started", now=now.isoformat())

        for subscription in self.store.get_pending_provider_suspensions():
            if _stopping(stop_event):
                report.interrupted = True
                break
            with subscription_context(subscription.id, subscription.provider):
                try:
                    self._retry_provider_suspension(subscription, report)
                except Exception as e:
                    # flag stays set, so the next sweep tries again
                    report.provider_failures += 1
                    _log_unexpected("dunning_suspend_retry_failed", e)

        if not report.interrupted:
            for subscription in self.store.get_by_status(SubscriptionStatus.PAST_DUE):
                if _stopping(stop_event):
                    report.interrupted = True
                    break
                report.scanned += 1
                with subscription_context(subscription.id, subscription.provider):
                    try:
                        self._process(subscription, now, report)
                    except Exception as e:
                        _log_unexpected("dunning_subscription_failed", e)

        logger.info("dunning_sweep_completed", **report.model_dump())
        return report

    def _process(self, subscription: SubscriptionRecord, now: datetime, report: SweepReport) -> None:
        late = days_late(now, subscription.current_period_end)

        if late > self.settings.suspend_after_days:
            self._suspend(subscription, now, late, report)
        elif late > self.settings.warning_after_days:
            contact = self.establishments.resolve_contact(subscription)
            self.notifier.send(
                contact.establishment_id,
                contact.phone,
                OVERDUE_WARNING_MESSAGE.format(days=self.settings.warning_after_days),
                message_type=WARNING_MESSAGE_TYPE,
            )
            report.warned += 1
            logger.info("dunning_warning_sent", days_late=late, has_phone=bool(contact.phone))
        else:
            logger.debug("dunning_no_action", days_late=late)

    def _suspend(self, subscription: SubscriptionRecord, now: datetime, late: int, report: SweepReport) -> None:
        """Cancel locally, mirror the establishment, then suspend at the provider.

        The local cancel is conditional; the provider is only called by the
        writer that won it.
        """
        current = self.store.find(subscription.id)
        if current is None or current.status != SubscriptionStatus.PAST_DUE:
            logger.info(
                "dunning_suspend_skipped",
                reason="status_changed",
                status=current.status.value if current else None,
            )
            return

        expected_updated_at = current.updated_at
        canceled = current.model_copy(deep=True)
        canceled.set_status(SubscriptionStatus.CANCELED, reason=f"overdue_{late}_days")
        canceled.provider_suspend_pending = bool(canceled.provider_subscription_id)
        canceled.touch(now)

        if not self.store.compare_and_set(canceled, expected_updated_at):
            report.conflicts += 1
            logger.info("dunning_suspend_conflict")
            return

        report.suspended += 1
        self.establishments.mirror_subscription(canceled, ESTABLISHMENT_SUSPENDED)

        attempt = self._suspend_at_provider(canceled)
        if attempt == SuspendAttempt.TRANSIENT_FAILURE:
            report.provider_failures += 1
        else:
            if attempt == SuspendAttempt.PERMANENT_FAILURE:
                report.provider_failures += 1
            self._clear_suspend_pending(canceled.id)

        logger.info(
            "dunning_subscription_suspended",
            days_late=late,
            provider=canceled.provider.value,
            provider_suspend=attempt.value,
        )

    def _retry_provider_suspension(self, subscription: SubscriptionRecord, report: SweepReport) -> None:
        attempt = self._suspend_at_provider(subscription)
        if attempt == SuspendAttempt.TRANSIENT_FAILURE:
            report.provider_failures += 1
            return
        if attempt == SuspendAttempt.DONE:
            report.suspend_retries += 1
        elif attempt == SuspendAttempt.PERMANENT_FAILURE:
            report.provider_failures += 1
        self._clear_suspend_pending(subscription.id)

    def _suspend_at_provider(self, subscription: SubscriptionRecord) -> SuspendAttempt:
        """Call suspend on the subscription's provider. Failures are logged, never raised."""
        provider_subscription_id = subscription.provider_subscription_id
        if not provider_subscription_id:
            return SuspendAttempt.SKIPPED

        gateway = self.gateways.get(subscription.provider)
        if gateway is None:
            logger.error(
                "dunning_no_gateway",
                subscription_id=subscription.id,
                provider=subscription.provider.value,
            )
            return SuspendAttempt.PERMANENT_FAILURE

        try:
            gateway.suspend(provider_subscription_id)
            return SuspendAttempt.DONE
        except TransientProviderError as e:
            logger.warning(
                "dunning_provider_suspend_failed",
                subscription_id=subscription.id,
                provider=subscription.provider.value,
                provider_subscription_id=provider_subscription_id,
                retryable=True,
                error=str(e),
            )
            return SuspendAttempt.TRANSIENT_FAILURE
        except ProviderError as e:
            logger.error(
                "dunning_provider_suspend_failed",
                subscription_id=subscription.id,
                provider=subscription.provider.value,
                provider_subscription_id=provider_subscription_id,
                retryable=False,
                status_code=e.status_code,
                error=str(e),
            )
            return SuspendAttempt.PERMANENT_FAILURE

    def _clear_suspend_pending(self, subscription_id: str, attempts: int = 3) -> None:
        for _ in range(attempts):
            try:
                current = self.store.get(subscription_id)
            except SubscriptionNotFoundError:
                return
            if not current.provider_suspend_pending:
                return
            expected_updated_at = current.updated_at
            current.provider_suspend_pending = False
            current.touch(self.time_controller.now())
            if self.store.compare_and_set(current, expected_updated_at):
                return
        logger.warning("dunning_clear_suspend_pending_conflict", subscription_id=subscription_id)


def _log_unexpected(event: str, error: Exception) -> None:
    logger.error(event, error=str(error), error_type=type(error).__name__, exc_info=True)


def _stopping(stop_event: Optional[threading.Event]) -> bool:
    return stop_event is not None and stop_event.is_set()


class DunningWorker:
    """Runs a DunningSweeper on a daemon thread every `interval_seconds`.

    The first sweep happens one interval after start() unless run_on_start
    is set. stop() interrupts the wait and any in-flight sweep between
    subscriptions.
    """

    def __init__(self, sweeper: DunningSweeper, interval_seconds: float, run_on_start: bool = False):
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name="dunning-worker", daemon=True)
            self._thread.start()
        logger.info(
            "dunning_worker_started",
            interval_seconds=self.interval_seconds,
            run_on_start=self.run_on_start,
        )

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        with self._lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is not None:
            thread.join(timeout)
            logger.info("dunning_worker_stopped", clean=not thread.is_alive())

    def _run(self) -> None:
        if self.run_on_start:
            self._sweep()
        while not self._stop_event.wait(self.interval_seconds):
            self._sweep()

    def _sweep(self) -> None:
        try:
            self.sweeper.run_once(stop_event=self._stop_event)
        except Exception as e:
            logger.error(
                "dunning_sweep_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
