"""Models module exporting all database models."""

from .allocation import AllocationRecord, AllocationType, InventoryPool
from .audit import AuditEvent
from .booking import Booking, BookingItem, BookingItemNight, BookingItemState, BookingStatus, Passenger
from .hold import Hold, HoldAllocation, HoldStatus
from .product import ProductVariant
from .rate_plan import InventoryModel, RatePlan
from .supplier import Supplier

__all__ = [
    # Catalog entities
    "Supplier",
    "ProductVariant",

    # Pricing entities
    "RatePlan",
    "InventoryModel",

    # Capacity entities
    "AllocationRecord",
    "AllocationType",
    "InventoryPool",

    # Booking entities
    "Booking",
    "BookingStatus",
    "BookingItem",
    "BookingItemState",
    "BookingItemNight",
    "Passenger",

    # Hold entities
    "Hold",
    "HoldAllocation",
    "HoldStatus",

    # Audit entity
    "AuditEvent",
]
