"""API request/response models for checkout endpoints."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    """Start a Mercado Pago payment for a plan."""

    plan_id: str = Field(..., description="Plan to subscribe to")
    user_id: str = Field(..., description="Paying user")
    email: str = Field(..., description="Payer email")
    payment_method: Literal["pix", "preference"] = Field(default="preference")
    establishment_id: Optional[str] = Field(None, description="Establishment the plan is for")

    class Config:
        json_schema_extra = {
            "example": {
                "plan_id": "barbershop.pro.monthly",
                "user_id": "user-123",
                "email": "owner@example.com",
                "payment_method": "pix",
            }
        }


class RenewRequest(BaseModel):
    """Generate a Pix renewal for the user's current plan."""

    user_id: str
    email: str
    months: int = Field(default=1, ge=1, le=12)


class IuguChargeItem(BaseModel):
    description: str
    quantity: int = Field(default=1, ge=1)
    price_cents: int = Field(..., gt=0)


class IuguCardChargeRequest(BaseModel):
    """Charge a tokenized card through Iugu."""

    payment_token: str
    amount_cents: int = Field(..., gt=0)
    email: str
    items: Optional[list[IuguChargeItem]] = None


class IuguPixChargeRequest(BaseModel):
    """Create a Pix charge through Iugu."""

    amount_cents: int = Field(..., gt=0)
    email: str
    items: Optional[list[IuguChargeItem]] = None


class CheckoutResponse(BaseModel):
    """Checkout initiation result."""

    provider: str
    payment_method: str
    id: Optional[str] = None
    status: Optional[str] = None
    checkout_url: Optional[str] = None
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error body for checkout failures."""

    error: str
    message: str
