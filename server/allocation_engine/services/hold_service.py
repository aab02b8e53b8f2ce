"""Inventory holds: reserve capacity ahead of a booking, then confirm, release or expire."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import unit_of_work
from ..core.exceptions import (
    DuplicateReferenceError,
    HoldExpiredError,
    HoldNotActiveError,
    NotFoundError,
)
from ..core.observability import metrics_collector
from ..models.hold import Hold, HoldAllocation, HoldStatus
from ..schemas.availability import NightAllocation, SupplierSelection
from ..schemas.booking import BookingItemRequest, BookingItemResult, BookingResult, CreateBookingRequest
from ..schemas.hold import ConfirmHoldRequest, CreateHoldRequest, HoldResult
from .audit_service import booking_snapshot
from .booking_service import BookingService
from .capacity_service import HELD
from .validation_service import margin_warning

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps read back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hold_snapshot(hold: Hold) -> dict[str, Any]:
    """JSON-safe snapshot of a hold and its allocations."""
    return HoldResult.model_validate(hold).model_dump(mode="json")


def selection_from_allocations(item: BookingItemRequest, allocations: list[HoldAllocation]) -> SupplierSelection:
    """Rebuild the selection a hold was placed with from its per-night allocations."""
    first = allocations[0]
    nights = [
        NightAllocation(
            service_date=allocation.service_date,
            allocation_record_id=allocation.allocation_record_id,
            inventory_pool_id=allocation.inventory_pool_id,
            unit_cost=allocation.unit_cost,
            selling_price=allocation.selling_price,
            available=allocation.quantity,
        )
        for allocation in allocations
    ]
    unit_cost = sum(night.unit_cost for night in nights)
    selling_price = sum(night.selling_price for night in nights)

    return SupplierSelection(
        product_variant_id=first.product_variant_id,
        service_date=item.service_start,
        service_end=item.service_end,
        quantity=item.quantity,
        supplier_id=first.supplier_id,
        supplier_name=first.supplier_name,
        allocation_record_id=first.allocation_record_id,
        inventory_pool_id=first.inventory_pool_id,
        unit_cost=unit_cost,
        selling_price=selling_price,
        currency=first.currency,
        margin=selling_price - unit_cost,
        available=item.quantity,
        priority=first.priority,
        nights=nights,
    )


class HoldService:
    """
    Holds capacity in the ``held`` counters until the hold is resolved.

    A hold is placed with the same selection rules as a booking and consumes
    capacity the same way, so held units are never sold twice. Confirming
    moves them to ``booked`` and creates the booking; releasing or expiring
    gives them back.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.booking_service = BookingService(db)
        self.capacity_service = self.booking_service.capacity_service
        self.audit_service = self.booking_service.audit_service

    async def create_hold(self, org_id: UUID, request: CreateHoldRequest, actor: str | None = None) -> Hold:
        """
        Hold capacity for every item of a request.

        Raises:
            DuplicateReferenceError: If the requested reference is already booked
            NoMasterRateError: If an item has no selling price
            NoSupplierAvailableError: If no supplier can fulfil an item
            CapacityExceededError: If capacity ran out between selection and update
        """
        ttl_seconds = request.ttl_seconds or settings.hold_ttl_seconds
        now = datetime.now(timezone.utc)

        async with unit_of_work(self.db):
            if request.reference is not None:
                await self.booking_service.assign_reference(org_id, request.reference)

            hold = Hold(
                id=uuid4(),
                org_id=org_id,
                status=HoldStatus.ACTIVE,
                expires_at=now + timedelta(seconds=ttl_seconds),
                channel=request.channel,
                currency=request.currency,
                reference=request.reference,
                items=[item.model_dump(mode="json") for item in request.items],
                created_by=actor,
                booking_id=None,
                resolved_at=None,
            )

            for index, item in enumerate(request.items):
                selection = await self.booking_service.select_for_item(org_id, index, item)
                await self.capacity_service.reserve(org_id, index, selection, counter=HELD)
                for night in selection.nights:
                    hold.allocations.append(HoldAllocation(
                        id=uuid4(),
                        org_id=org_id,
                        hold_id=hold.id,
                        item_index=index,
                        service_date=night.service_date,
                        product_variant_id=item.product_variant_id,
                        supplier_id=selection.supplier_id,
                        supplier_name=selection.supplier_name,
                        allocation_record_id=night.allocation_record_id,
                        inventory_pool_id=night.inventory_pool_id,
                        quantity=item.quantity,
                        unit_cost=night.unit_cost,
                        selling_price=night.selling_price,
                        currency=selection.currency,
                        priority=selection.priority,
                    ))

            self.db.add(hold)
            self.audit_service.record(
                org_id=org_id,
                entity_type="hold",
                entity_id=hold.id,
                action="create",
                actor=actor,
                new_values=hold_snapshot(hold),
            )

        metrics_collector.record_hold("created")

        logger.info(
            "Hold created",
            extra={
                "org_id": str(org_id),
                "hold_id": str(hold.id),
                "items": len(request.items),
                "allocations": len(hold.allocations),
                "expires_at": hold.expires_at.isoformat()
            }
        )

        return hold

    async def _load_hold(self, org_id: UUID, hold_id: UUID, for_update: bool = False) -> Hold:
        stmt = (
            select(Hold)
            .where(Hold.id == hold_id, Hold.org_id == org_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        hold = result.scalar_one_or_none()

        if not hold:
            logger.warning(
                "Hold not found",
                extra={
                    "org_id": str(org_id),
                    "hold_id": str(hold_id)
                }
            )
            raise NotFoundError(resource_type="hold", resource_id=str(hold_id))

        return hold

    async def get_hold(self, org_id: UUID, hold_id: UUID) -> Hold:
        """
        Get a hold with its allocations.

        Raises:
            NotFoundError: If the hold does not exist in the org
        """
        return await self._load_hold(org_id, hold_id)

    async def confirm_hold(
        self,
        org_id: UUID,
        request: ConfirmHoldRequest,
        actor: str | None = None
    ) -> tuple[Hold, BookingResult]:
        """
        Turn an active hold into a confirmed booking.

        The booking uses the suppliers and prices fixed when the hold was
        placed. An expired hold is refused and left for the expiry sweep.

        Raises:
            NotFoundError: If the hold does not exist in the org
            HoldNotActiveError: If the hold was already confirmed, released or expired
            HoldExpiredError: If the hold is past its expiry
            DuplicateReferenceError: If the hold's reference was booked meanwhile
        """
        now = datetime.now(timezone.utc)
        reference = None

        try:
            async with unit_of_work(self.db):
                hold = await self._load_hold(org_id, request.hold_id, for_update=True)

                if hold.status != HoldStatus.ACTIVE:
                    raise HoldNotActiveError(str(hold.id), HoldStatus(hold.status).value)

                expires_at = as_utc(hold.expires_at)
                if expires_at <= now:
                    logger.warning(
                        "Hold confirmation failed - hold expired",
                        extra={
                            "org_id": str(org_id),
                            "hold_id": str(hold.id),
                            "expired_at": expires_at.isoformat(),
                            "current_time": now.isoformat()
                        }
                    )
                    raise HoldExpiredError(str(hold.id), expires_at)

                old_values = hold_snapshot(hold)
                booking_request = CreateBookingRequest(
                    items=hold.items,
                    reference=hold.reference,
                    channel=hold.channel,
                    currency=hold.currency,
                    passengers=request.passengers,
                )
                reference = await self.booking_service.assign_reference(org_id, hold.reference)

                selections: list[SupplierSelection] = []
                for index, item in enumerate(booking_request.items):
                    allocations = [allocation for allocation in hold.allocations if allocation.item_index == index]
                    await self.capacity_service.settle_held(org_id, index, allocations, item.quantity)
                    selections.append(selection_from_allocations(item, allocations))

                booking = self.booking_service.build_booking(org_id, reference, booking_request, selections, actor)
                self.db.add(booking)

                hold.status = HoldStatus.CONFIRMED
                hold.booking = booking
                hold.booking_id = booking.id
                hold.resolved_at = now

                self.audit_service.record(
                    org_id=org_id,
                    entity_type="booking",
                    entity_id=booking.id,
                    action="create",
                    actor=actor,
                    new_values=booking_snapshot(booking),
                )
                self.audit_service.record(
                    org_id=org_id,
                    entity_type="hold",
                    entity_id=hold.id,
                    action="confirm",
                    actor=actor,
                    old_values=old_values,
                    new_values=hold_snapshot(hold),
                )
        except IntegrityError as e:
            if reference is not None and BookingService.is_reference_conflict(e):
                raise DuplicateReferenceError(reference) from e
            raise

        warnings = []
        for index, selection in enumerate(selections):
            warning = margin_warning(index, selection)
            if warning is not None:
                warnings.append(warning)

        units = sum(selection.quantity * len(selection.nights) for selection in selections)
        metrics_collector.record_booking_created(booking.channel, units)
        metrics_collector.record_hold("confirmed")

        logger.info(
            "Hold confirmed",
            extra={
                "org_id": str(org_id),
                "hold_id": str(hold.id),
                "booking_id": str(booking.id),
                "reference": booking.reference,
                "units": units
            }
        )

        result = BookingResult(
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
        return hold, result

    async def _release_allocations(self, org_id: UUID, hold: Hold) -> None:
        for allocation in hold.allocations:
            await self.capacity_service.release(org_id, [allocation], allocation.quantity, counter=HELD)

    async def release_hold(self, org_id: UUID, hold_id: UUID, actor: str | None = None) -> Hold:
        """
        Give an active hold's units back before it expires.

        Raises:
            NotFoundError: If the hold does not exist in the org
            HoldNotActiveError: If the hold was already confirmed, released or expired
        """
        async with unit_of_work(self.db):
            hold = await self._load_hold(org_id, hold_id, for_update=True)

            if hold.status != HoldStatus.ACTIVE:
                raise HoldNotActiveError(str(hold.id), HoldStatus(hold.status).value)

            old_values = hold_snapshot(hold)
            await self._release_allocations(org_id, hold)
            hold.status = HoldStatus.RELEASED
            hold.resolved_at = datetime.now(timezone.utc)

            self.audit_service.record(
                org_id=org_id,
                entity_type="hold",
                entity_id=hold.id,
                action="release",
                actor=actor,
                old_values=old_values,
                new_values=hold_snapshot(hold),
            )

        metrics_collector.record_hold("released")

        logger.info(
            "Hold released",
            extra={
                "org_id": str(org_id),
                "hold_id": str(hold.id),
                "allocations": len(hold.allocations)
            }
        )

        return hold

    async def expire_holds(self, org_id: UUID, now: datetime | None = None, actor: str | None = None) -> int:
        """
        Expire active holds past their expiry and release their units.

        Args:
            org_id: Organization scope
            now: Sweep time; defaults to the current time
            actor: Caller running the sweep, recorded on the audit trail

        Returns:
            Number of holds expired
        """
        now = now or datetime.now(timezone.utc)

        async with unit_of_work(self.db):
            stmt = (
                select(Hold)
                .where(
                    Hold.org_id == org_id,
                    Hold.status == HoldStatus.ACTIVE,
                    Hold.expires_at <= now,
                )
                .order_by(Hold.expires_at.asc(), Hold.id.asc())
                .with_for_update(skip_locked=True)
                .execution_options(populate_existing=True)
            )
            result = await self.db.execute(stmt)
            expired = list(result.scalars().all())

            for hold in expired:
                old_values = hold_snapshot(hold)
                await self._release_allocations(org_id, hold)
                hold.status = HoldStatus.EXPIRED
                hold.resolved_at = now

                self.audit_service.record(
                    org_id=org_id,
                    entity_type="hold",
                    entity_id=hold.id,
                    action="expire",
                    actor=actor,
                    old_values=old_values,
                    new_values=hold_snapshot(hold),
                )

        if expired:
            metrics_collector.record_hold("expired", len(expired))

        logger.info(
            "Expired holds swept",
            extra={
                "org_id": str(org_id),
                "expired": len(expired),
                "swept_at": now.isoformat()
            }
        )

        return len(expired)
