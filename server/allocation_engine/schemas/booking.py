"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.booking import BookingItemState, BookingStatus
from .availability import MAX_RANGE_DAYS, SupplierSelection


class PassengerInput(BaseModel):
    """Passenger details supplied with a booking request."""

    full_name: str = Field(..., min_length=1, max_length=255, description="Passenger full name")
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    age: Optional[int] = Field(None, ge=0, le=130)
    is_lead: bool = Field(False, description="Lead passenger for the booking")
    dietary: Optional[str] = None
    medical: Optional[str] = None
    passport: Optional[str] = Field(None, max_length=50)


class BookingItemRequest(BaseModel):
    """One requested line: a variant, a stay of one or more service days and a quantity."""

    product_variant_id: UUID = Field(..., description="Product variant to book")
    service_start: date = Field(..., description="First service day")
    service_end: Optional[date] = Field(None, description="Last service day, inclusive; defaults to service_start")
    quantity: int = Field(..., ge=1, le=1000, description="Units to book")
    adults: int = Field(1, ge=0, le=1000)
    children: int = Field(0, ge=0, le=1000)

    @model_validator(mode="after")
    def fill_service_end(self) -> "BookingItemRequest":
        if self.service_end is None:
            self.service_end = self.service_start
        elif self.service_end < self.service_start:
            raise ValueError("service_end must not be before service_start")
        if (self.service_end - self.service_start).days >= MAX_RANGE_DAYS:
            raise ValueError(f"a stay must not exceed {MAX_RANGE_DAYS} days")
        return self


class ValidateBookingRequest(BaseModel):
    """Request schema for a dry-run availability check."""

    items: List[BookingItemRequest] = Field(..., min_length=1, max_length=50)


class CreateBookingRequest(ValidateBookingRequest):
    """Request schema for creating a booking."""

    reference: Optional[str] = Field(
        None,
        min_length=1,
        max_length=64,
        description="Booking reference; generated when omitted"
    )
    channel: str = Field("direct", min_length=1, max_length=50, description="Sales channel")
    currency: Optional[str] = Field(
        None,
        pattern=r"^[A-Z]{3}$",
        description="Booking currency; defaults to the first item's selling currency"
    )
    passengers: List[PassengerInput] = Field(default_factory=list)


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a whole booking."""

    booking_id: UUID = Field(..., description="Booking to cancel")
    reason: Optional[str] = Field(None, max_length=1000, description="Cancellation reason")


class CancelBookingItemsRequest(BaseModel):
    """Request schema for cancelling a subset of a booking's items."""

    booking_id: UUID = Field(..., description="Booking owning the items")
    item_ids: List[UUID] = Field(..., min_length=1, description="Items to cancel")
    reason: Optional[str] = Field(None, max_length=1000, description="Cancellation reason")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: UUID = Field(..., description="Booking to retrieve")


class ValidationIssue(BaseModel):
    """Hard error found while validating a requested item."""

    code: str = Field(..., description="NO_MASTER_RATE, NO_SUPPLIER_AVAILABLE or INSUFFICIENT_AVAILABILITY")
    message: str
    item_index: int
    product_variant_id: UUID
    service_date: date
    requested_quantity: int
    available: Optional[int] = None


class MarginWarning(BaseModel):
    """Non-fatal warning for a selection whose margin is below the threshold."""

    code: str = "LOW_MARGIN"
    message: str
    item_index: int
    supplier_id: UUID
    selling_price: Decimal
    unit_cost: Decimal
    margin: Decimal
    margin_percent: Decimal


class AvailabilityValidation(BaseModel):
    """Dry-run result: errors block a booking, warnings never do."""

    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[MarginWarning] = Field(default_factory=list)
    selections: List[SupplierSelection] = Field(default_factory=list)


class BookingItemNightResult(BaseModel):
    """Allocation record and per-unit prices for one night of a booking item."""

    service_date: date
    allocation_record_id: UUID
    inventory_pool_id: Optional[UUID] = None
    unit_cost: Decimal
    unit_price: Decimal

    class Config:
        from_attributes = True


class BookingItemResult(BaseModel):
    """Booking item response schema."""

    id: UUID
    line_number: int
    product_variant_id: UUID
    supplier_id: UUID
    supplier_name: str
    allocation_record_id: UUID
    inventory_pool_id: Optional[UUID] = None
    service_start: date
    service_end: date
    quantity: int
    adults: int
    children: int
    unit_cost: Decimal
    unit_price: Decimal
    margin: Decimal
    total_cost: Decimal
    total_price: Decimal
    total_margin: Decimal
    currency: str
    state: BookingItemState
    cancelled_at: Optional[datetime] = None
    nights: List[BookingItemNightResult] = Field(default_factory=list)

    class Config:
        from_attributes = True


class BookingResult(BaseModel):
    """Result of a successful booking creation."""

    success: bool = True
    booking_id: UUID
    reference: str
    status: BookingStatus
    currency: str
    total_cost: Decimal
    total_price: Decimal
    total_margin: Decimal
    items: List[BookingItemResult]
    warnings: List[MarginWarning] = Field(default_factory=list)


class BookingSummary(BaseModel):
    """Booking header response schema."""

    id: UUID
    org_id: UUID
    reference: str
    channel: str
    currency: str
    status: BookingStatus
    total_cost: Decimal
    total_price: Decimal
    total_margin: Decimal
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_by: Optional[str] = None

    class Config:
        from_attributes = True


class PassengerResult(BaseModel):
    """Passenger response schema."""

    id: UUID
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = None
    is_lead: bool
    dietary: Optional[str] = None
    medical: Optional[str] = None
    passport: Optional[str] = None

    class Config:
        from_attributes = True


class SupplierBreakdown(BaseModel):
    """Per-supplier totals over a booking's confirmed items."""

    supplier_id: UUID
    supplier_name: str
    item_count: int
    quantity: int
    total_cost: Decimal
    total_price: Decimal
    total_margin: Decimal


class BookingDetails(BaseModel):
    """Booking with items, passengers and supplier breakdown."""

    booking: BookingSummary
    items: List[BookingItemResult]
    passengers: List[PassengerResult]
    supplier_breakdown: List[SupplierBreakdown]


class AuditEventResult(BaseModel):
    """One entry of a booking's audit trail."""

    id: UUID
    entity_type: str
    entity_id: str
    action: str
    actor: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
