"""Establishment aggregate and user contact rows.

The engine writes the mirrored subscription fields here but never reads
them back as the source of truth.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EstablishmentRecord(BaseModel):
    """Tenant establishment, as far as billing is concerned."""

    id: str
    owner_id: Optional[str] = Field(None, description="User owning the establishment")
    phone: Optional[str] = None
    subscription_status: Optional[str] = Field(None, description="Mirrored for UI reads")
    subscription_end_date: Optional[datetime] = Field(None, description="Mirrored for UI reads")


class UserContact(BaseModel):
    """End user contact details used for billing messages."""

    id: str
    phone: Optional[str] = None
    establishment_id: Optional[str] = None


class Contact(BaseModel):
    """Where a billing message for a subscription should go."""

    establishment_id: Optional[str] = None
    phone: Optional[str] = None
