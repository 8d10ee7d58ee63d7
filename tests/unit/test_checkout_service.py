"""Tests for CheckoutService."""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from billing_engine.models import (
    ChargeResult,
    CheckoutPreference,
    CheckoutRequest,
    IuguCardChargeRequest,
    IuguChargeItem,
    IuguPixChargeRequest,
    PixPayment,
    RenewRequest,
)
from billing_engine.providers.base import PermanentProviderError
from billing_engine.services.checkout_service import CheckoutError, CheckoutService


class FakeMercadoPago:
    """Preference and Pix checkout double recording the PlanCheckout it receives."""

    def __init__(self):
        self.preferences = []
        self.pix = []

    def create_preference(self, checkout):
        self.preferences.append(checkout)
        return CheckoutPreference(id="pref-1", checkout_url="https://mp.example/checkout/pref-1")

    def create_pix_payment(self, checkout):
        self.pix.append(checkout)
        return PixPayment(id="pay-1", status="pending", qr_code="000201...", ticket_url="https://mp.example/t/1")


class PixOnly:
    def create_pix_payment(self, checkout):
        return PixPayment(id="pay-2", status="pending")


@pytest.fixture
def mercadopago():
    return FakeMercadoPago()


@pytest.fixture
def iugu():
    iugu = Mock()
    iugu.create_charge.return_value = ChargeResult(
        id="inv-1",
        status="pending",
        url="https://iugu.example/inv-1",
        raw={"invoice_id": "inv-1", "pix": {"qrcode_text": "pix-copy-paste"}},
    )
    return iugu


@pytest.fixture
def service(plan_repository, store, mercadopago, iugu):
    return CheckoutService(plan_repository, store, mercadopago, iugu)


class TestPlanCheckout:
    """Mercado Pago checkouts for a catalog plan."""

    def test_pix_checkout(self, service, mercadopago):
        response = service.start_plan_checkout(
            CheckoutRequest(plan_id="basic.monthly", user_id="owner-1", email="o@example.com", payment_method="pix")
        )

        assert response.provider == "mercadopago"
        assert response.payment_method == "pix"
        assert response.id == "pay-1"
        assert response.qr_code == "000201..."
        checkout = mercadopago.pix[0]
        assert checkout.price == Decimal("49.90")
        assert checkout.title == "Subscription: Basic Monthly"
        assert checkout.user_id == "owner-1"

    def test_preference_checkout(self, service, mercadopago):
        response = service.start_plan_checkout(
            CheckoutRequest(plan_id="pro.yearly", user_id="owner-1", email="o@example.com", establishment_id="est-1")
        )

        assert response.payment_method == "preference"
        assert response.checkout_url == "https://mp.example/checkout/pref-1"
        assert mercadopago.preferences[0].establishment_id == "est-1"

    def test_unknown_plan(self, service):
        with pytest.raises(CheckoutError) as exc_info:
            service.start_plan_checkout(
                CheckoutRequest(plan_id="missing.plan", user_id="owner-1", email="o@example.com")
            )
        assert exc_info.value.status_code == 404

    def test_preference_unavailable(self, plan_repository, store):
        service = CheckoutService(plan_repository, store, PixOnly())

        with pytest.raises(CheckoutError) as exc_info:
            service.start_plan_checkout(
                CheckoutRequest(plan_id="basic.monthly", user_id="owner-1", email="o@example.com")
            )
        assert exc_info.value.status_code == 400


class TestRenew:
    """Pix renewals never touch the subscription row."""

    def test_renew_charges_price_times_months(self, service, mercadopago, make_subscription, store):
        subscription = make_subscription()

        response = service.renew(RenewRequest(user_id="owner-1", email="o@example.com", months=3))

        assert response.id == "pay-1"
        checkout = mercadopago.pix[0]
        assert checkout.price == Decimal("149.70")
        assert checkout.title == "Renewal: Basic Monthly (3 months)"
        assert checkout.establishment_id == "est-1"
        assert store.get(subscription.id).current_period_end == subscription.current_period_end

    def test_renew_without_subscription(self, service):
        with pytest.raises(CheckoutError, match="No subscription found"):
            service.renew(RenewRequest(user_id="nobody", email="n@example.com"))

    def test_renew_unknown_plan(self, service, make_subscription):
        make_subscription(plan_id="retired.plan")

        with pytest.raises(CheckoutError, match="Plan not found"):
            service.renew(RenewRequest(user_id="owner-1", email="o@example.com"))


class TestIuguCharges:
    def test_card_charge_default_item(self, service, iugu):
        response = service.iugu_card_charge(
            IuguCardChargeRequest(payment_token="tok-1", amount_cents=4990, email="o@example.com")
        )

        body = iugu.create_charge.call_args.args[0]
        assert body["token"] == "tok-1"
        assert body["items"] == [{"description": "Subscription", "quantity": 1, "price_cents": 4990}]
        assert response.provider == "iugu"
        assert response.id == "inv-1"
        assert response.checkout_url == "https://iugu.example/inv-1"

    def test_pix_charge_with_items(self, service, iugu):
        response = service.iugu_pix_charge(
            IuguPixChargeRequest(
                amount_cents=8990,
                email="o@example.com",
                items=[IuguChargeItem(description="Pro Monthly", price_cents=8990)],
            )
        )

        body = iugu.create_charge.call_args.args[0]
        assert body["payable_with"] == "pix"
        assert body["items"] == [{"description": "Pro Monthly", "quantity": 1, "price_cents": 8990}]
        assert response.qr_code == "pix-copy-paste"

    def test_iugu_unavailable(self, plan_repository, store, mercadopago):
        service = CheckoutService(plan_repository, store, mercadopago)

        with pytest.raises(CheckoutError) as exc_info:
            service.iugu_pix_charge(IuguPixChargeRequest(amount_cents=100, email="o@example.com"))
        assert exc_info.value.status_code == 400

    def test_provider_errors_propagate(self, service, iugu):
        iugu.create_charge.side_effect = PermanentProviderError("card declined")

        with pytest.raises(PermanentProviderError):
            service.iugu_card_charge(
                IuguCardChargeRequest(payment_token="tok-1", amount_cents=4990, email="o@example.com")
            )
