"""Tests for webhook payload models."""

from billing_engine.models import IuguNotification, MercadoPagoNotification


class TestIuguNotification:
    """Iugu sends the same event in several shapes."""

    def test_event_and_data(self):
        notification = IuguNotification.from_payload(
            {"event": "invoice.payment_succeeded", "data": {"id": "inv-1", "subscription_id": "sub_abc"}}
        )
        assert notification.event == "invoice.payment_succeeded"
        assert notification.invoice_id == "inv-1"
        assert notification.subscription_id == "sub_abc"

    def test_type_and_invoice(self):
        notification = IuguNotification.from_payload(
            {"type": "invoice.status_changed", "invoice": {"id": "inv-2", "customer": {"id": "cus-9"}}}
        )
        assert notification.event == "invoice.status_changed"
        assert notification.invoice_id == "inv-2"
        assert notification.customer_id == "cus-9"

    def test_flat_payload(self):
        notification = IuguNotification.from_payload(
            {"event": "invoice.payment_failed", "subscription": {"id": "sub_xyz"}, "establishment_id": "est-1"}
        )
        assert notification.subscription_id == "sub_xyz"
        assert notification.establishment_id == "est-1"
        assert notification.invoice_id is None

    def test_event_inside_data(self):
        notification = IuguNotification.from_payload({"data": {"event": "invoice.refund", "id": "inv-3"}})
        assert notification.event == "invoice.refund"

    def test_missing_event(self):
        notification = IuguNotification.from_payload({"data": {"id": "inv-4"}})
        assert notification.event is None

    def test_non_dict_data(self):
        notification = IuguNotification.from_payload({"event": "invoice.created", "data": "garbage"})
        assert notification.data == {}


class TestMercadoPagoNotification:
    def test_numeric_payment_id_coerced(self):
        notification = MercadoPagoNotification.model_validate(
            {"action": "payment.updated", "type": "payment", "data": {"id": 123456789}}
        )
        assert notification.payment_id == "123456789"

    def test_missing_data(self):
        notification = MercadoPagoNotification.model_validate({"type": "payment"})
        assert notification.payment_id is None
