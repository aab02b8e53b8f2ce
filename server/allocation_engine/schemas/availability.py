"""Rate, availability and supplier selection Pydantic schemas."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.allocation import AllocationType
from ..models.rate_plan import InventoryModel

# Longest date range a calendar or summary request may span
MAX_RANGE_DAYS = 366


class CalendarStatus(str, Enum):
    """Calendar day status, in precedence order."""
    STOP_SELL = "stop_sell"
    BLACKOUT = "blackout"
    SOLD_OUT = "sold_out"
    LOW_INVENTORY = "low_inventory"
    AVAILABLE = "available"


class MasterRate(BaseModel):
    """Selling price resolved from the preferred master rate plan."""

    rate_plan_id: UUID = Field(..., description="Master rate plan ID")
    product_variant_id: UUID = Field(..., description="Product variant ID")
    selling_price: Decimal = Field(..., description="Selling price per unit")
    currency: str = Field(..., description="ISO 4217 currency code")
    priority: int = Field(..., description="Rate plan priority (higher wins)")
    valid_from: date = Field(..., description="First day the rate applies")
    valid_to: date = Field(..., description="Last day the rate applies")


class SupplierRate(BaseModel):
    """One supplier's cost rate for a variant on a date."""

    rate_plan_id: UUID
    supplier_id: UUID
    supplier_name: str
    unit_cost: Decimal
    currency: str
    priority: int
    inventory_model: InventoryModel
    auto_select: Optional[bool] = None
    valid_from: date
    valid_to: date


class SupplierAvailability(BaseModel):
    """
    One allocation record joined with its supplier, pool and current rate plan.

    ``available`` already accounts for the pool: a pooled record can never
    sell more than the pool has left.
    """

    allocation_record_id: UUID
    supplier_id: UUID
    supplier_name: str
    service_date: date
    allocation_type: AllocationType
    quantity: Optional[int] = Field(None, description="Contracted units; null means unbounded")
    booked: int
    held: int
    available: int
    unit_cost: Decimal
    currency: str
    stop_sell: bool
    blackout: bool
    priority: int
    auto_select: Optional[bool] = None
    rate_plan_id: Optional[UUID] = None
    inventory_pool_id: Optional[UUID] = None
    pool_available: Optional[int] = None

    @property
    def is_sellable(self) -> bool:
        """Return True when neither stop-sell nor blackout applies."""
        return not self.stop_sell and not self.blackout


class NightAllocation(BaseModel):
    """Record, pool and prices backing one night of a selection."""

    service_date: date
    allocation_record_id: UUID
    inventory_pool_id: Optional[UUID] = None
    unit_cost: Decimal
    selling_price: Decimal
    available: int


class SupplierSelection(BaseModel):
    """
    Supplier chosen to fulfil one requested item.

    A stay spanning several service days is served by one supplier with one
    allocation record per night in ``nights``; ``unit_cost`` and
    ``selling_price`` are per-unit totals over the stay and the top-level
    record and pool are the first night's. A selection built without nights
    describes a single day.
    """

    product_variant_id: UUID
    service_date: date
    service_end: Optional[date] = Field(None, description="Last service day; defaults to service_date")
    quantity: int
    supplier_id: UUID
    supplier_name: str
    allocation_record_id: UUID
    inventory_pool_id: Optional[UUID] = None
    unit_cost: Decimal
    selling_price: Decimal
    currency: str
    margin: Decimal = Field(..., description="Selling price minus unit cost")
    available: int = Field(..., description="Units available when the selection was made")
    priority: int
    nights: List[NightAllocation] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_single_night(self) -> "SupplierSelection":
        if self.service_end is None:
            self.service_end = self.service_date
        if not self.nights:
            self.nights = [
                NightAllocation(
                    service_date=self.service_date,
                    allocation_record_id=self.allocation_record_id,
                    inventory_pool_id=self.inventory_pool_id,
                    unit_cost=self.unit_cost,
                    selling_price=self.selling_price,
                    available=self.available,
                )
            ]
        return self


class RecommendedSupplier(BaseModel):
    """Highest ranked sellable supplier with stock on a calendar day."""

    supplier_id: UUID
    supplier_name: str
    allocation_record_id: UUID
    unit_cost: Decimal
    available: int
    priority: int
    margin: Optional[Decimal] = None


class CalendarEntry(BaseModel):
    """Aggregated availability for one service date."""

    service_date: date
    selling_price: Optional[Decimal] = None
    currency: Optional[str] = None
    total_available: int
    total_quantity: int
    total_booked: int
    status: CalendarStatus
    recommended_supplier: Optional[RecommendedSupplier] = None
    suppliers: List[SupplierAvailability] = Field(default_factory=list)


class AvailabilitySummary(BaseModel):
    """Roll-up over a calendar range; reporting only."""

    product_variant_id: UUID
    start_date: date
    end_date: date
    total_days: int
    available_days: int
    sold_out_days: int
    low_inventory_days: int
    stop_sell_days: int
    blackout_days: int
    total_available: int
    total_booked: int
    average_margin: Optional[Decimal] = None


class RatesResponse(BaseModel):
    """Master rate and competing supplier rates for a variant on a date."""

    master_rate: Optional[MasterRate] = None
    supplier_rates: List[SupplierRate] = Field(default_factory=list)


class AvailabilityRangeRequest(BaseModel):
    """Request schema for calendar and summary queries."""

    product_variant_id: UUID = Field(..., description="Product variant to inspect")
    start_date: date = Field(..., description="First service date (inclusive)")
    end_date: date = Field(..., description="Last service date (inclusive)")

    @model_validator(mode="after")
    def check_range(self) -> "AvailabilityRangeRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (self.end_date - self.start_date).days >= MAX_RANGE_DAYS:
            raise ValueError(f"date range must not exceed {MAX_RANGE_DAYS} days")
        return self


class SelectSupplierRequest(BaseModel):
    """Request schema for a single supplier selection."""

    product_variant_id: UUID = Field(..., description="Product variant to fulfil")
    service_date: date = Field(..., description="Service date")
    quantity: int = Field(..., ge=1, le=1000, description="Units requested")


class RatesRequest(BaseModel):
    """Request schema for rate lookups."""

    product_variant_id: UUID = Field(..., description="Product variant to price")
    service_date: date = Field(..., description="Service date")
