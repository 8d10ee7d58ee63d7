"""Dunning sweep models."""

from pydantic import BaseModel, Field


class SweepReport(BaseModel):
    """Outcome of a single dunning sweep."""

    scanned: int = Field(default=0, description="past_due subscriptions examined")
    warned: int = Field(default=0, description="Warning notifications sent")
    suspended: int = Field(default=0, description="Subscriptions canceled locally")
    provider_failures: int = Field(default=0, description="Provider suspend calls that failed")
    suspend_retries: int = Field(default=0, description="Pending provider suspensions completed")
    conflicts: int = Field(default=0, description="Rows skipped after losing a concurrent write")
    interrupted: bool = Field(default=False, description="Sweep stopped early on shutdown")
