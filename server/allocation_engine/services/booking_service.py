"""Booking transaction coordinator: create, cancel and inspect bookings."""

import logging
import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.database import unit_of_work
from ..core.exceptions import (
    AlreadyCancelledError,
    DuplicateReferenceError,
    NoMasterRateError,
    NoSupplierAvailableError,
    NotFoundError,
)
from ..core.observability import metrics_collector
from ..models.audit import AuditEvent
from ..models.booking import Booking, BookingItem, BookingItemNight, BookingItemState, BookingStatus, Passenger
from ..schemas.availability import SupplierSelection
from ..schemas.booking import (
    AvailabilityValidation,
    BookingDetails,
    BookingItemRequest,
    BookingItemResult,
    BookingResult,
    BookingSummary,
    CreateBookingRequest,
    PassengerResult,
    SupplierBreakdown,
    ValidateBookingRequest,
)
from .audit_service import AuditService, booking_snapshot
from .capacity_service import CapacityService
from .supplier_selector import SupplierSelector
from .validation_service import ValidationService, margin_warning

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class BookingService:
    """
    Coordinates multi-item bookings against allocation capacity.

    Every mutating operation runs as one unit of work: supplier selection,
    conditional capacity updates, the booking graph and the audit event are
    committed together or not at all.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.selector = SupplierSelector(db)
        self.validation_service = ValidationService(db)
        self.audit_service = AuditService(db)
        self.capacity_service = CapacityService(db)

    def _generate_booking_reference(self, length: int = 8) -> str:
        """Generate a random booking reference."""
        alphabet = string.ascii_uppercase + string.digits
        code = ''.join(secrets.choice(alphabet) for _ in range(length))
        return f"{settings.booking_reference_prefix}{code}"

    async def _reference_exists(self, org_id: UUID, reference: str) -> bool:
        stmt = select(Booking.id).where(Booking.org_id == org_id, Booking.reference == reference)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def assign_reference(self, org_id: UUID, requested: str | None) -> str:
        """Return the requested reference if it is free in the org, else generate an unused one."""
        if requested is not None:
            if await self._reference_exists(org_id, requested):
                raise DuplicateReferenceError(requested)
            return requested

        while True:
            reference = self._generate_booking_reference()
            if not await self._reference_exists(org_id, reference):
                return reference

    async def validate_booking_availability(
        self,
        org_id: UUID,
        request: ValidateBookingRequest
    ) -> AvailabilityValidation:
        """Dry-run a booking request; see ValidationService."""
        return await self.validation_service.validate_booking_availability(org_id, request)

    async def create_booking(
        self,
        org_id: UUID,
        request: CreateBookingRequest,
        actor: str | None = None
    ) -> BookingResult:
        """
        Create a booking, consuming capacity for every item.

        Args:
            org_id: Organization scope
            request: Items, passengers and optional reference
            actor: User creating the booking, recorded on the booking and audit trail

        Returns:
            Booking identifiers, totals, per-item breakdown and margin warnings

        Raises:
            DuplicateReferenceError: If the reference is already used in the org
            NoMasterRateError: If an item has no selling price
            NoSupplierAvailableError: If no supplier can fulfil an item
            CapacityExceededError: If capacity ran out between selection and update
            TransactionConflictError: If the store aborted the transaction
        """
        reference = request.reference
        try:
            async with unit_of_work(self.db):
                reference = await self.assign_reference(org_id, request.reference)

                selections: list[SupplierSelection] = []
                for index, item in enumerate(request.items):
                    selection = await self.select_for_item(org_id, index, item)
                    await self.capacity_service.reserve(org_id, index, selection)
                    selections.append(selection)

                booking = self.build_booking(org_id, reference, request, selections, actor)
                self.db.add(booking)

                self.audit_service.record(
                    org_id=org_id,
                    entity_type="booking",
                    entity_id=booking.id,
                    action="create",
                    actor=actor,
                    new_values=booking_snapshot(booking),
                )
        except IntegrityError as e:
            if self.is_reference_conflict(e):
                raise DuplicateReferenceError(reference) from e
            raise

        warnings = []
        for index, selection in enumerate(selections):
            warning = margin_warning(index, selection)
            if warning is not None:
                warnings.append(warning)

        units = sum(selection.quantity * len(selection.nights) for selection in selections)
        metrics_collector.record_booking_created(request.channel, units)

        logger.info(
            "Booking created successfully",
            extra={
                "org_id": str(org_id),
                "booking_id": str(booking.id),
                "reference": booking.reference,
                "items": len(booking.items),
                "units": units,
                "total_price": str(booking.total_price),
                "total_margin": str(booking.total_margin),
                "warnings": len(warnings)
            }
        )

        return BookingResult(
            booking_id=booking.id,
            reference=booking.reference,
            status=booking.status,
            currency=booking.currency,
            total_cost=booking.total_cost,
            total_price=booking.total_price,
            total_margin=booking.total_margin,
            items=[BookingItemResult.model_validate(item) for item in booking.items],
            warnings=warnings,
        )

    @staticmethod
    def is_reference_conflict(exc: IntegrityError) -> bool:
        message = str(exc.orig)
        return "uq_booking_org_reference" in message or "bookings.reference" in message

    async def select_for_item(self, org_id: UUID, index: int, item: BookingItemRequest) -> SupplierSelection:
        """Run supplier selection, tagging failures with the item's position."""
        try:
            return await self.selector.select_supplier_for_stay(
                org_id, item.product_variant_id, item.service_start, item.service_end, item.quantity
            )
        except NoMasterRateError as e:
            raise NoMasterRateError(e.product_variant_id, e.service_date, item_index=index) from e
        except NoSupplierAvailableError as e:
            raise NoSupplierAvailableError(
                product_variant_id=e.product_variant_id,
                service_date=e.service_date,
                requested_quantity=e.requested_quantity,
                best_available=e.best_available,
                item_index=index,
            ) from e

    def build_booking(
        self,
        org_id: UUID,
        reference: str,
        request: CreateBookingRequest,
        selections: list[SupplierSelection],
        actor: str | None
    ) -> Booking:
        """Build an unsaved booking graph from requested items and their selections."""
        booking = Booking(
            id=uuid4(),
            org_id=org_id,
            reference=reference,
            channel=request.channel,
            currency=request.currency or selections[0].currency,
            status=BookingStatus.CONFIRMED,
            created_by=actor,
            cancellation_reason=None,
            cancelled_at=None,
        )

        for index, (item, selection) in enumerate(zip(request.items, selections)):
            booking_item = BookingItem(
                id=uuid4(),
                org_id=org_id,
                booking_id=booking.id,
                line_number=index + 1,
                product_variant_id=item.product_variant_id,
                supplier_id=selection.supplier_id,
                supplier_name=selection.supplier_name,
                allocation_record_id=selection.allocation_record_id,
                inventory_pool_id=selection.inventory_pool_id,
                service_start=item.service_start,
                service_end=item.service_end,
                quantity=item.quantity,
                adults=item.adults,
                children=item.children,
                unit_cost=selection.unit_cost,
                unit_price=selection.selling_price,
                margin=selection.margin,
                total_cost=selection.unit_cost * item.quantity,
                total_price=selection.selling_price * item.quantity,
                total_margin=selection.margin * item.quantity,
                currency=selection.currency,
                state=BookingItemState.CONFIRMED,
                cancelled_at=None,
            )
            for night in selection.nights:
                booking_item.nights.append(BookingItemNight(
                    id=uuid4(),
                    org_id=org_id,
                    booking_item_id=booking_item.id,
                    service_date=night.service_date,
                    allocation_record_id=night.allocation_record_id,
                    inventory_pool_id=night.inventory_pool_id,
                    unit_cost=night.unit_cost,
                    unit_price=night.selling_price,
                ))
            booking.items.append(booking_item)

        for passenger in request.passengers:
            booking.passengers.append(Passenger(
                id=uuid4(),
                org_id=org_id,
                booking_id=booking.id,
                **passenger.model_dump(),
            ))

        self._recompute_totals(booking)
        return booking

    @staticmethod
    def _recompute_totals(booking: Booking) -> None:
        """Derive booking totals from its confirmed items."""
        active = [item for item in booking.items if item.state == BookingItemState.CONFIRMED]
        booking.total_cost = sum((item.total_cost for item in active), ZERO)
        booking.total_price = sum((item.total_price for item in active), ZERO)
        booking.total_margin = sum((item.total_margin for item in active), ZERO)

    async def _load_booking(self, org_id: UUID, booking_id: UUID, for_update: bool = False) -> Booking:
        stmt = (
            select(Booking)
            .options(
                selectinload(Booking.items).selectinload(BookingItem.nights),
                selectinload(Booking.passengers),
            )
            .where(Booking.id == booking_id, Booking.org_id == org_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()

        if not booking:
            logger.warning(
                "Booking not found",
                extra={
                    "org_id": str(org_id),
                    "booking_id": str(booking_id)
                }
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )

        return booking

    async def get_booking(self, org_id: UUID, booking_id: UUID) -> Booking:
        """
        Get a booking with its items and passengers.

        Raises:
            NotFoundError: If the booking does not exist in the org
        """
        return await self._load_booking(org_id, booking_id)

    async def get_booking_audit(self, org_id: UUID, booking_id: UUID) -> list[AuditEvent]:
        """
        Audit trail of a booking, oldest first.

        Raises:
            NotFoundError: If the booking does not exist in the org
        """
        await self._load_booking(org_id, booking_id)
        return await self.audit_service.list_events(org_id, booking_id)

    async def cancel_booking(
        self,
        org_id: UUID,
        booking_id: UUID,
        reason: str | None = None,
        actor: str | None = None
    ) -> Booking:
        """
        Cancel a whole booking and release its capacity.

        Raises:
            NotFoundError: If the booking does not exist in the org
            AlreadyCancelledError: If the booking is already cancelled
        """
        async with unit_of_work(self.db):
            booking = await self._load_booking(org_id, booking_id, for_update=True)

            if booking.status == BookingStatus.CANCELLED:
                logger.warning(
                    "Booking cancellation failed - already cancelled",
                    extra={
                        "org_id": str(org_id),
                        "booking_id": str(booking_id)
                    }
                )
                raise AlreadyCancelledError("booking", str(booking_id))

            old_values = booking_snapshot(booking)
            now = datetime.now(timezone.utc)

            active = [item for item in booking.items if item.state == BookingItemState.CONFIRMED]
            for item in active:
                await self.capacity_service.release(org_id, item.nights, item.quantity)
                item.state = BookingItemState.CANCELLED
                item.cancelled_at = now

            booking.status = BookingStatus.CANCELLED
            booking.cancellation_reason = reason
            booking.cancelled_at = now
            self._recompute_totals(booking)

            self.audit_service.record(
                org_id=org_id,
                entity_type="booking",
                entity_id=booking.id,
                action="cancel",
                actor=actor,
                old_values=old_values,
                new_values=booking_snapshot(booking),
            )

        metrics_collector.record_booking_cancelled()
        metrics_collector.record_items_cancelled(len(active))

        logger.info(
            "Booking cancelled successfully",
            extra={
                "org_id": str(org_id),
                "booking_id": str(booking_id),
                "reference": booking.reference,
                "released_items": len(active),
                "released_units": sum(item.quantity for item in active)
            }
        )

        return booking

    async def cancel_booking_items(
        self,
        org_id: UUID,
        booking_id: UUID,
        item_ids: list[UUID],
        reason: str | None = None,
        actor: str | None = None
    ) -> Booking:
        """
        Cancel some of a booking's items and release their capacity.

        Totals are recomputed over the items left confirmed. Cancelling the
        last confirmed item cancels the booking itself.

        Raises:
            NotFoundError: If the booking or one of the items does not exist
            AlreadyCancelledError: If the booking or one of the items is already cancelled
        """
        async with unit_of_work(self.db):
            booking = await self._load_booking(org_id, booking_id, for_update=True)

            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelledError("booking", str(booking_id))

            items_by_id = {item.id: item for item in booking.items}
            targets: list[BookingItem] = []
            for item_id in dict.fromkeys(item_ids):
                item = items_by_id.get(item_id)
                if item is None:
                    raise NotFoundError(resource_type="booking_item", resource_id=str(item_id))
                if item.state == BookingItemState.CANCELLED:
                    raise AlreadyCancelledError("booking_item", str(item_id))
                targets.append(item)

            old_values = booking_snapshot(booking)
            now = datetime.now(timezone.utc)

            for item in targets:
                await self.capacity_service.release(org_id, item.nights, item.quantity)
                item.state = BookingItemState.CANCELLED
                item.cancelled_at = now

            booking_closed = all(item.state == BookingItemState.CANCELLED for item in booking.items)
            if booking_closed:
                booking.status = BookingStatus.CANCELLED
                booking.cancellation_reason = reason
                booking.cancelled_at = now
            self._recompute_totals(booking)

            self.audit_service.record(
                org_id=org_id,
                entity_type="booking",
                entity_id=booking.id,
                action="cancel_items",
                actor=actor,
                old_values=old_values,
                new_values=booking_snapshot(booking),
            )

        metrics_collector.record_items_cancelled(len(targets))
        if booking_closed:
            metrics_collector.record_booking_cancelled()

        logger.info(
            "Booking items cancelled successfully",
            extra={
                "org_id": str(org_id),
                "booking_id": str(booking_id),
                "cancelled_items": [str(item.id) for item in targets],
                "booking_cancelled": booking_closed,
                "total_price": str(booking.total_price)
            }
        )

        return booking

    async def get_booking_details(self, org_id: UUID, booking_id: UUID) -> BookingDetails:
        """Booking, items, passengers and a per-supplier breakdown of confirmed items."""
        booking = await self._load_booking(org_id, booking_id)

        breakdown: dict[UUID, SupplierBreakdown] = {}
        for item in booking.items:
            if item.state != BookingItemState.CONFIRMED:
                continue

            entry = breakdown.get(item.supplier_id)
            if entry is None:
                entry = breakdown[item.supplier_id] = SupplierBreakdown(
                    supplier_id=item.supplier_id,
                    supplier_name=item.supplier_name,
                    item_count=0,
                    quantity=0,
                    total_cost=ZERO,
                    total_price=ZERO,
                    total_margin=ZERO,
                )
            entry.item_count += 1
            entry.quantity += item.quantity
            entry.total_cost += item.total_cost
            entry.total_price += item.total_price
            entry.total_margin += item.total_margin

        return BookingDetails(
            booking=BookingSummary.model_validate(booking),
            items=[BookingItemResult.model_validate(item) for item in booking.items],
            passengers=[PassengerResult.model_validate(passenger) for passenger in booking.passengers],
            supplier_breakdown=list(breakdown.values()),
        )
