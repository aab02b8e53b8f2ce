"""Business logic services."""

from .audit_service import AuditService
from .availability_service import AvailabilityService
from .booking_service import BookingService
from .rate_service import RateService
from .supplier_selector import SupplierSelector
from .validation_service import ValidationService

__all__ = [
    "AuditService",
    "AvailabilityService",
    "BookingService",
    "RateService",
    "SupplierSelector",
    "ValidationService",
]
