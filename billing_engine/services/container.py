"""Wiring of stores, provider adapters and services.

Everything is built explicitly and passed by constructor, so tests can
substitute any piece.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional

import httpx

from billing_engine.config import Config
from billing_engine.logging_config import get_logger
from billing_engine.models import Provider
from billing_engine.providers.base import PaymentVerifier, SubscriptionGateway
from billing_engine.providers.iugu import IuguAdapter
from billing_engine.providers.mercado_pago import MercadoPagoAdapter
from billing_engine.repositories.establishment_store import EstablishmentStore
from billing_engine.repositories.plan_repository import PlanRepository
from billing_engine.repositories.subscription_store import SubscriptionStore
from billing_engine.services.checkout_service import CheckoutService
from billing_engine.services.dunning_worker import DunningSweeper, DunningWorker
from billing_engine.services.event_resolver import EventResolver
from billing_engine.services.notification_dispatcher import NotificationDispatcher, NotificationSink
from billing_engine.services.reconciliation_engine import ReconciliationEngine
from billing_engine.services.time_controller import TimeController
from billing_engine.services.webhook_processor import IuguWebhookProcessor, MercadoPagoWebhookProcessor

logger = get_logger(__name__)


@dataclass
class BillingServices:
    """Everything the HTTP layer and the worker need."""

    config: Config
    store: SubscriptionStore
    establishments: EstablishmentStore
    plan_repository: PlanRepository
    time_controller: TimeController
    notifier: NotificationSink
    engine: ReconciliationEngine
    mercadopago_webhooks: MercadoPagoWebhookProcessor
    iugu_webhooks: IuguWebhookProcessor
    checkout: CheckoutService
    sweeper: DunningSweeper
    worker: Optional[DunningWorker] = None
    adapters: list = field(default_factory=list)

    @classmethod
    def from_config(
        cls,
        config: Config,
        time_controller: Optional[TimeController] = None,
        notifier: Optional[NotificationSink] = None,
        verifiers: Optional[Dict[Provider, PaymentVerifier]] = None,
        gateways: Optional[Dict[Provider, SubscriptionGateway]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "BillingServices":
        """Build the service graph.

        Args:
            config: Loaded configuration
            time_controller: Clock (real time by default)
            notifier: Notification sink (Pub/Sub dispatcher by default)
            verifiers: Override payment verifiers per provider
            gateways: Override subscription gateways per provider
            transport: httpx transport for the real adapters (tests)
        """
        billing = config.billing
        time_controller = time_controller or TimeController()
        store = SubscriptionStore()
        establishments = EstablishmentStore()
        plan_repository = PlanRepository.from_config(config)

        mercadopago = MercadoPagoAdapter(
            access_token=config.mercadopago_access_token,
            settings=billing.providers.mercadopago,
            timeout_seconds=config.provider_timeout_seconds,
            transport=transport,
        )
        iugu = IuguAdapter(
            api_token=config.iugu_api_token,
            settings=billing.providers.iugu,
            timeout_seconds=config.provider_timeout_seconds,
            transport=transport,
        )

        verifiers = {Provider.MERCADO_PAGO: mercadopago, Provider.IUGU: iugu, **(verifiers or {})}
        gateways = {Provider.MERCADO_PAGO: mercadopago, Provider.IUGU: iugu, **(gateways or {})}

        if notifier is None:
            notifier = NotificationDispatcher(billing.notifications, time_controller)

        engine = ReconciliationEngine(
            store=store,
            establishments=establishments,
            plan_repository=plan_repository,
            notifier=notifier,
            time_controller=time_controller,
            resolver=EventResolver(store),
        )
        sweeper = DunningSweeper(
            store=store,
            establishments=establishments,
            gateways=gateways,
            notifier=notifier,
            time_controller=time_controller,
            settings=billing.dunning,
        )
        worker = None
        if billing.dunning.enabled:
            worker = DunningWorker(
                sweeper,
                interval_seconds=billing.dunning.interval_seconds,
                run_on_start=billing.dunning.run_on_start,
            )

        services = cls(
            config=config,
            store=store,
            establishments=establishments,
            plan_repository=plan_repository,
            time_controller=time_controller,
            notifier=notifier,
            engine=engine,
            mercadopago_webhooks=MercadoPagoWebhookProcessor(verifiers[Provider.MERCADO_PAGO], engine),
            iugu_webhooks=IuguWebhookProcessor(
                verifiers[Provider.IUGU],
                engine,
                unverified_dedup_window=timedelta(hours=billing.webhooks.unverified_dedup_window_hours),
            ),
            checkout=CheckoutService(plan_repository, store, mercadopago=mercadopago, iugu=iugu),
            sweeper=sweeper,
            worker=worker,
            adapters=[mercadopago, iugu],
        )
        logger.info(
            "billing_services_initialized",
            plans=len(plan_repository),
            dunning_enabled=worker is not None,
            notifications_enabled=billing.notifications.enabled,
        )
        return services

    def start(self) -> None:
        if self.worker is not None:
            self.worker.start()

    def shutdown(self) -> None:
        """Stop the worker, then release the notifier and HTTP clients."""
        if self.worker is not None:
            self.worker.stop()
        if isinstance(self.notifier, NotificationDispatcher):
            self.notifier.shutdown()
        for adapter in self.adapters:
            adapter.close()
        logger.info("billing_services_shutdown")
