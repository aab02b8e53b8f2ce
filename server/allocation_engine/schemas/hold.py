"""Inventory hold Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.hold import HoldStatus
from .booking import BookingItemRequest, BookingResult, PassengerInput, ValidateBookingRequest


class CreateHoldRequest(ValidateBookingRequest):
    """Request schema for holding capacity ahead of a booking."""

    ttl_seconds: Optional[int] = Field(
        None,
        ge=60,
        le=604800,
        description="Hold lifetime in seconds; defaults to the configured hold TTL"
    )
    reference: Optional[str] = Field(
        None,
        min_length=1,
        max_length=64,
        description="Reference for the booking created on confirmation"
    )
    channel: str = Field("direct", min_length=1, max_length=50, description="Sales channel")
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$", description="Booking currency")


class HoldAllocationResult(BaseModel):
    """Units held on one record for one night of an item."""

    item_index: int
    service_date: date
    product_variant_id: UUID
    supplier_id: UUID
    supplier_name: str
    allocation_record_id: UUID
    inventory_pool_id: Optional[UUID] = None
    quantity: int
    unit_cost: Decimal
    selling_price: Decimal
    currency: str

    class Config:
        from_attributes = True


class HoldResult(BaseModel):
    """Hold response schema."""

    id: UUID
    status: HoldStatus
    expires_at: datetime
    channel: str
    reference: Optional[str] = None
    booking_id: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    items: List[BookingItemRequest]
    allocations: List[HoldAllocationResult]

    class Config:
        from_attributes = True


class ConfirmHoldRequest(BaseModel):
    """Request schema for turning an active hold into a booking."""

    hold_id: UUID = Field(..., description="Hold to confirm")
    passengers: List[PassengerInput] = Field(default_factory=list)


class ConfirmHoldResult(BaseModel):
    """Confirmed hold and the booking created from it."""

    hold: HoldResult
    booking: BookingResult


class ReleaseHoldRequest(BaseModel):
    """Request schema for releasing an active hold."""

    hold_id: UUID = Field(..., description="Hold to release")


class GetHoldRequest(BaseModel):
    """Request schema for getting a hold."""

    hold_id: UUID = Field(..., description="Hold to retrieve")


class ExpireHoldsResult(BaseModel):
    """Outcome of an expiry sweep."""

    expired: int = Field(..., description="Holds moved to expired and released")
