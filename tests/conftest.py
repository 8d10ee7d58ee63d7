"""Shared fixtures: a frozen clock, fresh stores and fake provider/notifier doubles."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from billing_engine.models import (
    EstablishmentRecord,
    PlanDefinition,
    Provider,
    ProviderPayment,
    SubscriptionRecord,
    SubscriptionStatus,
)
from billing_engine.repositories.establishment_store import EstablishmentStore
from billing_engine.repositories.plan_repository import PlanRepository
from billing_engine.repositories.subscription_store import SubscriptionStore
from billing_engine.services.reconciliation_engine import ReconciliationEngine
from billing_engine.services.time_controller import TimeController

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """NotificationSink double that records every send."""

    def __init__(self):
        self.sent = []

    def send(self, establishment_id, phone_number, message_body, message_type="billing_dunning"):
        if not phone_number:
            return False
        self.sent.append(
            {
                "establishment_id": establishment_id,
                "phone_number": phone_number,
                "message_body": message_body,
                "message_type": message_type,
            }
        )
        return True


class FakeGateway:
    """SubscriptionGateway double. Raises queued errors before succeeding."""

    def __init__(self, provider: Provider):
        self.provider = provider
        self.suspended = []
        self.canceled = []
        self.errors = []

    def suspend(self, provider_subscription_id: str) -> None:
        self.suspended.append(provider_subscription_id)
        if self.errors:
            raise self.errors.pop(0)

    def cancel(self, provider_subscription_id: str) -> None:
        self.canceled.append(provider_subscription_id)


class FakeVerifier:
    """PaymentVerifier double backed by a dict of payments."""

    def __init__(self, provider: Provider):
        self.provider = provider
        self.payments = {}
        self.calls = []
        self.error: Optional[Exception] = None

    def add(self, payment: ProviderPayment) -> None:
        self.payments[payment.id] = payment

    def fetch_payment(self, payment_id: str) -> Optional[ProviderPayment]:
        self.calls.append(payment_id)
        if self.error is not None:
            raise self.error
        return self.payments.get(payment_id)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Clock frozen at NOW."""
    return TimeController(start_time=NOW)


@pytest.fixture
def store():
    """Fresh SubscriptionStore."""
    store = SubscriptionStore()
    yield store
    store.clear()


@pytest.fixture
def establishments():
    """EstablishmentStore with one establishment (est-1, owned by owner-1)."""
    establishments = EstablishmentStore()
    establishments.upsert_establishment(
        EstablishmentRecord(id="est-1", owner_id="owner-1", phone="+5511999990001")
    )
    yield establishments
    establishments.clear()


@pytest.fixture
def plan_repository():
    return PlanRepository(
        [
            PlanDefinition(id="basic.monthly", title="Basic Monthly", price=Decimal("49.90"), billing_period="P30D"),
            PlanDefinition(id="pro.yearly", title="Pro Yearly", price=Decimal("899.00"), billing_period="P1Y"),
        ],
        default_interval_days=30,
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def iugu_gateway():
    return FakeGateway(Provider.IUGU)


@pytest.fixture
def mercadopago_gateway():
    return FakeGateway(Provider.MERCADO_PAGO)


@pytest.fixture
def iugu_verifier():
    return FakeVerifier(Provider.IUGU)


@pytest.fixture
def mercadopago_verifier():
    return FakeVerifier(Provider.MERCADO_PAGO)


@pytest.fixture
def make_subscription(store):
    """Factory that builds a subscription and adds it to the store."""

    def _make(add: bool = True, **overrides) -> SubscriptionRecord:
        values = {
            "id": f"sub_{len(store) + 1:032x}",
            "user_id": "owner-1",
            "establishment_id": "est-1",
            "plan_id": "basic.monthly",
            "provider": Provider.IUGU,
            "provider_subscription_id": "sub_abc",
            "status": SubscriptionStatus.ACTIVE,
            "current_period_end": NOW + timedelta(days=10),
            "last_payment_status": "paid",
            "retry_count": 0,
            "created_at": NOW - timedelta(days=20),
            "updated_at": NOW - timedelta(days=20),
        }
        values.update(overrides)
        subscription = SubscriptionRecord(**values)
        if add:
            store.add(subscription)
        return subscription

    return _make


@pytest.fixture
def engine(store, establishments, plan_repository, notifier, clock):
    return ReconciliationEngine(
        store=store,
        establishments=establishments,
        plan_repository=plan_repository,
        notifier=notifier,
        time_controller=clock,
    )
