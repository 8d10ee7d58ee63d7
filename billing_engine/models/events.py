"""Inbound webhook payloads and outbound notification messages."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class MercadoPagoNotificationData(BaseModel):
    """`data` object of a Mercado Pago webhook."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: Optional[str] = None


class MercadoPagoNotification(BaseModel):
    """Mercado Pago webhook body.

    Only the payment id is trusted; everything else is re-fetched.
    """

    model_config = ConfigDict(extra="allow")

    action: Optional[str] = None
    type: Optional[str] = None
    data: Optional[MercadoPagoNotificationData] = None

    @property
    def payment_id(self) -> Optional[str]:
        return self.data.id if self.data else None


class IuguNotification(BaseModel):
    """Iugu webhook body, normalized from its several shapes."""

    event: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "IuguNotification":
        """Build from a raw payload.

        The event name may sit in `event`, `type` or `data.event`; the data in
        `data`, `invoice` or the payload root.
        """
        raw_data = payload.get("data") or payload.get("invoice") or payload
        data = raw_data if isinstance(raw_data, dict) else {}
        event = payload.get("event") or payload.get("type") or data.get("event")
        return cls(event=str(event) if event else None, data=data)

    @property
    def invoice_id(self) -> Optional[str]:
        value = self.data.get("id")
        return str(value) if value else None

    @property
    def subscription_id(self) -> Optional[str]:
        value = self.data.get("subscription_id") or _nested_id(self.data.get("subscription"))
        return str(value) if value else None

    @property
    def customer_id(self) -> Optional[str]:
        value = self.data.get("customer_id") or _nested_id(self.data.get("customer"))
        return str(value) if value else None

    @property
    def establishment_id(self) -> Optional[str]:
        value = self.data.get("establishment_id")
        return str(value) if value else None


def _nested_id(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return None


class NotificationMessage(BaseModel):
    """Outbound WhatsApp-style message published to Pub/Sub."""

    establishment_id: Optional[str] = None
    phone_number: str
    message_type: str = Field(default="billing_dunning")
    message_body: str
    created_at_millis: int

    class Config:
        json_schema_extra = {
            "example": {
                "establishment_id": "est-42",
                "phone_number": "+5511999990000",
                "message_type": "billing_dunning",
                "message_body": "Payment confirmed! Your subscription has been renewed.",
                "created_at_millis": 1760875200000,
            }
        }
