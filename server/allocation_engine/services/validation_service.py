"""Dry-run availability validation for booking requests."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import NoMasterRateError, NoSupplierAvailableError
from ..core.observability import metrics_collector
from ..schemas.availability import SupplierSelection
from ..schemas.booking import AvailabilityValidation, MarginWarning, ValidateBookingRequest, ValidationIssue
from .supplier_selector import SupplierSelector, claim

logger = logging.getLogger(__name__)


def margin_percent(selling_price: Decimal, margin: Decimal) -> Decimal:
    """Margin as a percentage of selling price; non-positive prices count as zero margin."""
    if selling_price <= 0:
        return Decimal("0.00")
    return (margin / selling_price * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def margin_warning(item_index: int, selection: SupplierSelection) -> MarginWarning | None:
    """Return a LOW_MARGIN warning when the selection's margin is under the threshold."""
    percent = margin_percent(selection.selling_price, selection.margin)
    threshold = Decimal(str(settings.low_margin_threshold_percent))
    if percent >= threshold:
        return None

    metrics_collector.record_low_margin_warning()
    return MarginWarning(
        message=(
            f"Item {item_index}: margin {percent}% with {selection.supplier_name} "
            f"is below the {threshold}% threshold"
        ),
        item_index=item_index,
        supplier_id=selection.supplier_id,
        selling_price=selection.selling_price,
        unit_cost=selection.unit_cost,
        margin=selection.margin,
        margin_percent=percent,
    )


class ValidationService:
    """Previews a booking without touching capacity."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.selector = SupplierSelector(db)

    async def validate_booking_availability(
        self,
        org_id: UUID,
        request: ValidateBookingRequest
    ) -> AvailabilityValidation:
        """
        Run supplier selection for every item and report what would happen.

        Items are checked in order and see the units claimed by earlier items
        of the same request. A multi-day item must be served by one supplier on
        every day; errors name the first day that cannot be served. The result is advisory only: capacity can change
        between this call and a booking commit.
        """
        errors: list[ValidationIssue] = []
        warnings: list[MarginWarning] = []
        selections: list[SupplierSelection] = []
        claimed: dict[UUID, int] = {}

        for index, item in enumerate(request.items):
            try:
                selection = await self.selector.select_supplier_for_stay(
                    org_id,
                    item.product_variant_id,
                    item.service_start,
                    item.service_end,
                    item.quantity,
                    already_requested=claimed,
                )
            except NoMasterRateError as e:
                errors.append(ValidationIssue(
                    code="NO_MASTER_RATE",
                    message=f"Item {index}: no master rate for {e.service_date.isoformat()}",
                    item_index=index,
                    product_variant_id=item.product_variant_id,
                    service_date=e.service_date,
                    requested_quantity=item.quantity,
                ))
                continue
            except NoSupplierAvailableError as e:
                if e.best_available > 0:
                    errors.append(ValidationIssue(
                        code="INSUFFICIENT_AVAILABILITY",
                        message=(
                            f"Item {index}: requested {item.quantity} but at most "
                            f"{e.best_available} available from a single supplier"
                        ),
                        item_index=index,
                        product_variant_id=item.product_variant_id,
                        service_date=e.service_date,
                        requested_quantity=item.quantity,
                        available=e.best_available,
                    ))
                else:
                    errors.append(ValidationIssue(
                        code="NO_SUPPLIER_AVAILABLE",
                        message=f"Item {index}: no supplier available on {e.service_date.isoformat()}",
                        item_index=index,
                        product_variant_id=item.product_variant_id,
                        service_date=e.service_date,
                        requested_quantity=item.quantity,
                        available=0,
                    ))
                continue

            claim(claimed, selection)
            selections.append(selection)

            warning = margin_warning(index, selection)
            if warning is not None:
                warnings.append(warning)

        validation = AvailabilityValidation(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            selections=selections,
        )

        logger.info(
            "Booking availability validated",
            extra={
                "org_id": str(org_id),
                "items": len(request.items),
                "valid": validation.valid,
                "errors": len(errors),
                "warnings": len(warnings)
            }
        )

        return validation
