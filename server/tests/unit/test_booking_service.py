"""Unit tests for the booking transaction coordinator."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from allocation_engine.core.config import settings
from allocation_engine.core.exceptions import (
    AlreadyCancelledError,
    DuplicateReferenceError,
    NoMasterRateError,
    NoSupplierAvailableError,
    NotFoundError,
)
from allocation_engine.models import (
    AllocationRecord,
    AuditEvent,
    Booking,
    BookingItem,
    BookingItemNight,
    BookingItemState,
    BookingStatus,
    InventoryPool,
    Passenger,
)
from allocation_engine.schemas.booking import CreateBookingRequest
from allocation_engine.services.booking_service import BookingService

SERVICE_DATE = date(2025, 7, 1)
NEXT_DATE = date(2025, 7, 2)
THIRD_DATE = date(2025, 7, 3)


def _create_request(*items, **kwargs) -> CreateBookingRequest:
    return CreateBookingRequest(
        items=[
            {"product_variant_id": variant_id, "service_start": service_date, "quantity": quantity}
            for variant_id, service_date, quantity in items
        ],
        **kwargs,
    )


async def _hotel(seed, capacity: int = 5, cost: str = "100.00", price: str = "150.00"):
    """One variant priced at `price` with a single supplier record."""
    variant = await seed.variant()
    await seed.master_rate(variant, price)
    supplier = await seed.supplier("Hotel Direct")
    record = await seed.allocation(variant, supplier, capacity, cost)
    return variant, supplier, record


def _stay_request(variant_id, service_start, service_end, quantity: int, **kwargs) -> CreateBookingRequest:
    return CreateBookingRequest(
        items=[{
            "product_variant_id": variant_id,
            "service_start": service_start,
            "service_end": service_end,
            "quantity": quantity,
        }],
        **kwargs,
    )


async def _table_snapshot(session) -> dict[str, list[tuple]]:
    """Every row a booking can write, read straight from the tables."""
    tables = {
        "allocation_records": (AllocationRecord.id, AllocationRecord.booked, AllocationRecord.held),
        "inventory_pools": (InventoryPool.id, InventoryPool.booked, InventoryPool.held),
        "bookings": (Booking.id, Booking.status),
        "booking_items": (BookingItem.id, BookingItem.state),
        "booking_item_nights": (BookingItemNight.id,),
        "passengers": (Passenger.id,),
        "audit_events": (AuditEvent.id, AuditEvent.action),
    }
    snapshot = {}
    for name, columns in tables.items():
        result = await session.execute(select(*columns).order_by(columns[0]))
        snapshot[name] = [tuple(row) for row in result.all()]
    return snapshot


@pytest.mark.asyncio
async def test_create_booking(test_session, seed):
    """A booking consumes capacity and carries per-line and booking totals."""
    variant, supplier, record = await _hotel(seed)
    variant_id, record_id = variant.id, record.id

    service = BookingService(test_session)
    result = await service.create_booking(
        seed.org_id,
        _create_request(
            (variant_id, SERVICE_DATE, 2),
            passengers=[{"full_name": "Ada Lovelace", "is_lead": True}],
        ),
        actor="user-1",
    )

    assert result.success is True
    assert result.status == BookingStatus.CONFIRMED
    assert result.currency == "GBP"
    assert result.reference.startswith(settings.booking_reference_prefix)
    assert result.total_cost == Decimal("200.00")
    assert result.total_price == Decimal("300.00")
    assert result.total_margin == Decimal("100.00")
    assert result.warnings == []

    assert len(result.items) == 1
    item = result.items[0]
    assert item.line_number == 1
    assert item.supplier_id == supplier.id
    assert item.allocation_record_id == record_id
    assert item.unit_cost == Decimal("100.00")
    assert item.unit_price == Decimal("150.00")
    assert item.margin == Decimal("50.00")
    assert item.service_end == SERVICE_DATE
    assert item.state == BookingItemState.CONFIRMED

    fresh = await seed.reload(AllocationRecord, record_id)
    assert fresh.booked == 2

    booking = await service.get_booking(seed.org_id, result.booking_id)
    assert booking.created_by == "user-1"
    assert [p.full_name for p in booking.passengers] == ["Ada Lovelace"]


@pytest.mark.asyncio
async def test_create_booking_multiple_items(test_session, seed):
    """Each item books its own supplier; totals sum over the lines."""
    room = await seed.variant("Double Room")
    transfer = await seed.variant("Airport Transfer")
    await seed.master_rate(room, "150.00")
    await seed.master_rate(transfer, "40.00")
    hotel = await seed.supplier("Hotel Direct")
    taxi = await seed.supplier("City Taxis")
    await seed.allocation(room, hotel, 5, "100.00")
    await seed.allocation(room, hotel, 5, "100.00", service_date=NEXT_DATE)
    await seed.allocation(transfer, taxi, None, "25.00")

    service = BookingService(test_session)
    result = await service.create_booking(
        seed.org_id,
        _create_request(
            (room.id, SERVICE_DATE, 1),
            (room.id, NEXT_DATE, 1),
            (transfer.id, SERVICE_DATE, 2),
        ),
    )

    assert [item.line_number for item in result.items] == [1, 2, 3]
    assert result.total_cost == Decimal("250.00")
    assert result.total_price == Decimal("380.00")
    assert result.total_margin == Decimal("130.00")
    assert result.items[2].supplier_name == "City Taxis"


@pytest.mark.asyncio
async def test_create_booking_is_atomic(test_session, seed):
    """When a later item fails nothing from earlier items is kept."""
    room = await seed.variant("Double Room")
    unpriced = await seed.variant("Unpriced Room")
    await seed.master_rate(room, "150.00")
    hotel = await seed.supplier("Hotel Direct")
    record = await seed.allocation(room, hotel, 5, "100.00")
    await seed.allocation(unpriced, hotel, 5, "100.00")
    room_id, unpriced_id, record_id, org_id = room.id, unpriced.id, record.id, seed.org_id

    service = BookingService(test_session)

    with pytest.raises(NoMasterRateError) as exc_info:
        await service.create_booking(
            org_id,
            _create_request((room_id, SERVICE_DATE, 3), (unpriced_id, SERVICE_DATE, 1)),
        )

    assert exc_info.value.item_index == 1
    assert exc_info.value.problem_details["item_index"] == 1

    fresh = await seed.reload(AllocationRecord, record_id)
    assert fresh.booked == 0

    bookings = (await test_session.execute(select(Booking))).scalars().all()
    assert bookings == []


@pytest.mark.asyncio
async def test_create_booking_no_supplier(test_session, seed):
    variant, _, _ = await _hotel(seed, capacity=2)
    variant_id = variant.id

    service = BookingService(test_session)

    with pytest.raises(NoSupplierAvailableError) as exc_info:
        await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 3)))

    assert exc_info.value.item_index == 0
    assert exc_info.value.best_available == 2


@pytest.mark.asyncio
async def test_same_record_twice_in_one_booking(test_session, seed):
    """Lines sharing a record are bounded by its capacity as a whole."""
    variant, _, record = await _hotel(seed, capacity=3)
    variant_id, record_id = variant.id, record.id

    service = BookingService(test_session)

    with pytest.raises(NoSupplierAvailableError) as exc_info:
        await service.create_booking(
            seed.org_id,
            _create_request((variant_id, SERVICE_DATE, 2), (variant_id, SERVICE_DATE, 2)),
        )

    assert exc_info.value.item_index == 1
    fresh = await seed.reload(AllocationRecord, record_id)
    assert fresh.booked == 0


@pytest.mark.asyncio
async def test_pooled_booking_and_cancellation(test_session, seed):
    """Pooled records consume and release both their own and the pool's counters."""
    variant = await seed.variant()
    await seed.master_rate(variant, "150.00")
    supplier = await seed.supplier("Pooled Hotel")
    pool = await seed.pool(quantity=4)
    record = await seed.allocation(variant, supplier, 10, "100.00", pool=pool)
    variant_id, record_id, pool_id = variant.id, record.id, pool.id

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 3)))

    assert result.items[0].inventory_pool_id == pool_id
    assert (await seed.reload(AllocationRecord, record_id)).booked == 3
    assert (await seed.reload(InventoryPool, pool_id)).booked == 3

    with pytest.raises(NoSupplierAvailableError):
        await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 2)))

    await service.cancel_booking(seed.org_id, result.booking_id)

    assert (await seed.reload(AllocationRecord, record_id)).booked == 0
    assert (await seed.reload(InventoryPool, pool_id)).booked == 0


@pytest.mark.asyncio
async def test_explicit_reference_and_duplicate(test_session, seed):
    variant, _, record = await _hotel(seed)
    variant_id, record_id = variant.id, record.id

    service = BookingService(test_session)
    first = await service.create_booking(
        seed.org_id, _create_request((variant_id, SERVICE_DATE, 1), reference="SUMMER-001")
    )
    assert first.reference == "SUMMER-001"

    with pytest.raises(DuplicateReferenceError) as exc_info:
        await service.create_booking(
            seed.org_id, _create_request((variant_id, SERVICE_DATE, 1), reference="SUMMER-001")
        )

    assert exc_info.value.problem_details["code"] == "DUPLICATE_REFERENCE"
    assert (await seed.reload(AllocationRecord, record_id)).booked == 1


@pytest.mark.asyncio
async def test_reference_is_unique_per_org_only(test_session, seed):
    """Another organization may reuse a reference."""
    variant, _, _ = await _hotel(seed)
    other_seed = type(seed)(test_session, uuid4())
    other_variant, _, _ = await _hotel(other_seed)

    service = BookingService(test_session)
    await service.create_booking(
        seed.org_id, _create_request((variant.id, SERVICE_DATE, 1), reference="SHARED-1")
    )
    other = await service.create_booking(
        other_seed.org_id, _create_request((other_variant.id, SERVICE_DATE, 1), reference="SHARED-1")
    )

    assert other.reference == "SHARED-1"


@pytest.mark.asyncio
async def test_generated_references_are_distinct(test_session, seed):
    variant, _, _ = await _hotel(seed, capacity=10)
    variant_id = variant.id

    service = BookingService(test_session)
    references = set()
    for _ in range(5):
        result = await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 1)))
        references.add(result.reference)

    assert len(references) == 5
    for reference in references:
        assert len(reference) == len(settings.booking_reference_prefix) + 8


@pytest.mark.asyncio
async def test_low_margin_booking_still_succeeds(test_session, seed):
    variant, _, _ = await _hotel(seed, cost="140.00")

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _create_request((variant.id, SERVICE_DATE, 1)))

    assert result.success is True
    assert len(result.warnings) == 1
    assert result.warnings[0].code == "LOW_MARGIN"
    assert result.warnings[0].margin_percent == Decimal("6.67")


@pytest.mark.asyncio
async def test_currency_defaults_and_override(test_session, seed):
    variant, _, _ = await _hotel(seed)

    service = BookingService(test_session)
    defaulted = await service.create_booking(seed.org_id, _create_request((variant.id, SERVICE_DATE, 1)))
    explicit = await service.create_booking(
        seed.org_id, _create_request((variant.id, SERVICE_DATE, 1), currency="EUR")
    )

    assert defaulted.currency == "GBP"
    assert explicit.currency == "EUR"


@pytest.mark.asyncio
async def test_cancel_booking_releases_capacity(test_session, seed):
    variant, _, record = await _hotel(seed)
    variant_id, record_id = variant.id, record.id

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 4)))
    assert (await seed.reload(AllocationRecord, record_id)).booked == 4

    booking = await service.cancel_booking(seed.org_id, result.booking_id, reason="Guest request", actor="agent-7")

    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == "Guest request"
    assert booking.cancelled_at is not None
    assert all(item.state == BookingItemState.CANCELLED for item in booking.items)
    assert booking.total_price == Decimal("0.00")
    assert (await seed.reload(AllocationRecord, record_id)).booked == 0


@pytest.mark.asyncio
async def test_cancel_twice_fails_and_releases_once(test_session, seed):
    """A second cancellation is rejected and never double-releases."""
    variant, _, record = await _hotel(seed)
    variant_id, record_id = variant.id, record.id

    service = BookingService(test_session)
    await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 1)))
    second = await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 2)))

    await service.cancel_booking(seed.org_id, second.booking_id)

    with pytest.raises(AlreadyCancelledError) as exc_info:
        await service.cancel_booking(seed.org_id, second.booking_id)

    assert exc_info.value.problem_details["code"] == "ALREADY_CANCELLED"
    assert (await seed.reload(AllocationRecord, record_id)).booked == 1


@pytest.mark.asyncio
async def test_release_never_goes_negative(test_session, seed):
    """Releasing more than is booked floors the counter at zero."""
    variant, _, record = await _hotel(seed)
    variant_id, record_id = variant.id, record.id

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _create_request((variant_id, SERVICE_DATE, 3)))

    # Counter drifted out of band, e.g. a manual correction
    fresh = await seed.reload(AllocationRecord, record_id)
    fresh.booked = 1
    await test_session.commit()

    await service.cancel_booking(seed.org_id, result.booking_id)

    assert (await seed.reload(AllocationRecord, record_id)).booked == 0


@pytest.mark.asyncio
async def test_cancel_unknown_booking(test_session, seed):
    service = BookingService(test_session)

    with pytest.raises(NotFoundError):
        await service.cancel_booking(seed.org_id, uuid4())


@pytest.mark.asyncio
async def test_booking_scoped_to_org(test_session, seed):
    variant, _, _ = await _hotel(seed)

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _create_request((variant.id, SERVICE_DATE, 1)))

    with pytest.raises(NotFoundError):
        await service.get_booking(uuid4(), result.booking_id)


@pytest.mark.asyncio
async def test_partial_cancellation(test_session, seed):
    """Cancelling some items releases them and recomputes totals over the rest."""
    room = await seed.variant("Double Room")
    transfer = await seed.variant("Airport Transfer")
    await seed.master_rate(room, "150.00")
    await seed.master_rate(transfer, "40.00")
    hotel = await seed.supplier("Hotel Direct")
    taxi = await seed.supplier("City Taxis")
    room_record = await seed.allocation(room, hotel, 5, "100.00")
    taxi_record = await seed.allocation(transfer, taxi, 5, "25.00")
    room_record_id, taxi_record_id = room_record.id, taxi_record.id

    service = BookingService(test_session)
    result = await service.create_booking(
        seed.org_id,
        _create_request((room.id, SERVICE_DATE, 2), (transfer.id, SERVICE_DATE, 1)),
    )
    transfer_item_id = result.items[1].id

    booking = await service.cancel_booking_items(seed.org_id, result.booking_id, [transfer_item_id])

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.cancelled_at is None
    assert [item.state for item in booking.items] == [BookingItemState.CONFIRMED, BookingItemState.CANCELLED]
    assert booking.total_price == Decimal("300.00")
    assert booking.total_margin == Decimal("100.00")
    assert (await seed.reload(AllocationRecord, taxi_record_id)).booked == 0
    assert (await seed.reload(AllocationRecord, room_record_id)).booked == 2

    with pytest.raises(AlreadyCancelledError):
        await service.cancel_booking_items(seed.org_id, result.booking_id, [transfer_item_id])


@pytest.mark.asyncio
async def test_cancelling_last_item_cancels_booking(test_session, seed):
    variant, _, record = await _hotel(seed)
    record_id = record.id

    service = BookingService(test_session)
    result = await service.create_booking(
        seed.org_id,
        _create_request((variant.id, SERVICE_DATE, 1), (variant.id, SERVICE_DATE, 1)),
    )
    item_ids = [item.id for item in result.items]

    await service.cancel_booking_items(seed.org_id, result.booking_id, item_ids[:1])
    booking = await service.cancel_booking_items(seed.org_id, result.booking_id, item_ids[1:], reason="Trip off")

    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == "Trip off"
    assert booking.total_price == Decimal("0.00")
    assert (await seed.reload(AllocationRecord, record_id)).booked == 0

    with pytest.raises(AlreadyCancelledError):
        await service.cancel_booking(seed.org_id, result.booking_id)


@pytest.mark.asyncio
async def test_cancel_unknown_item_changes_nothing(test_session, seed):
    variant, _, record = await _hotel(seed)
    record_id = record.id

    service = BookingService(test_session)
    result = await service.create_booking(
        seed.org_id,
        _create_request((variant.id, SERVICE_DATE, 1), (variant.id, SERVICE_DATE, 1)),
    )

    with pytest.raises(NotFoundError) as exc_info:
        await service.cancel_booking_items(seed.org_id, result.booking_id, [result.items[0].id, uuid4()])

    assert exc_info.value.problem_details["code"] == "NOT_FOUND"
    assert (await seed.reload(AllocationRecord, record_id)).booked == 2


@pytest.mark.asyncio
async def test_booking_details_breakdown(test_session, seed):
    """The breakdown groups confirmed items by supplier."""
    room = await seed.variant("Double Room")
    transfer = await seed.variant("Airport Transfer")
    await seed.master_rate(room, "150.00")
    await seed.master_rate(transfer, "40.00")
    hotel = await seed.supplier("Hotel Direct")
    taxi = await seed.supplier("City Taxis")
    await seed.allocation(room, hotel, 5, "100.00")
    await seed.allocation(room, hotel, 5, "100.00", service_date=NEXT_DATE)
    await seed.allocation(transfer, taxi, 5, "25.00")

    service = BookingService(test_session)
    result = await service.create_booking(
        seed.org_id,
        _create_request(
            (room.id, SERVICE_DATE, 1),
            (room.id, NEXT_DATE, 2),
            (transfer.id, SERVICE_DATE, 1),
        ),
        passengers=[{"full_name": "Ada Lovelace", "is_lead": True}, {"full_name": "Charles Babbage"}],
    )
    await service.cancel_booking_items(seed.org_id, result.booking_id, [result.items[2].id])

    details = await service.get_booking_details(seed.org_id, result.booking_id)

    assert details.booking.reference == result.reference
    assert len(details.items) == 3
    assert len(details.passengers) == 2
    assert len(details.supplier_breakdown) == 1

    hotel_line = details.supplier_breakdown[0]
    assert hotel_line.supplier_name == "Hotel Direct"
    assert hotel_line.item_count == 2
    assert hotel_line.quantity == 3
    assert hotel_line.total_cost == Decimal("300.00")
    assert hotel_line.total_price == Decimal("450.00")
    assert hotel_line.total_margin == Decimal("150.00")


@pytest.mark.asyncio
async def test_audit_trail(test_session, seed):
    """Create and cancel each leave an audit event with before and after snapshots."""
    variant, _, _ = await _hotel(seed)

    service = BookingService(test_session)
    result = await service.create_booking(
        seed.org_id, _create_request((variant.id, SERVICE_DATE, 1)), actor="user-1"
    )
    await service.cancel_booking(seed.org_id, result.booking_id, actor="user-2")

    events = await service.get_booking_audit(seed.org_id, result.booking_id)
    by_action = {event.action: event for event in events}

    assert set(by_action) == {"create", "cancel"}

    created = by_action["create"]
    assert created.actor == "user-1"
    assert created.old_values is None
    assert created.new_values["reference"] == result.reference
    assert created.new_values["status"] == "confirmed"

    cancelled = by_action["cancel"]
    assert cancelled.actor == "user-2"
    assert cancelled.old_values["status"] == "confirmed"
    assert cancelled.new_values["status"] == "cancelled"
    assert cancelled.new_values["items"][0]["state"] == "cancelled"


@pytest.mark.asyncio
async def test_failed_booking_leaves_no_audit_event(test_session, seed):
    variant, _, _ = await _hotel(seed, capacity=1)
    variant_id, org_id = variant.id, seed.org_id

    service = BookingService(test_session)

    with pytest.raises(NoSupplierAvailableError):
        await service.create_booking(org_id, _create_request((variant_id, SERVICE_DATE, 2)))

    events = (await test_session.execute(select(AuditEvent))).scalars().all()
    assert events == []


@pytest.mark.asyncio
async def test_failed_middle_item_leaves_every_table_untouched(test_session, seed):
    """A second line without any supplier rolls back the first and never books the third."""
    room, _, _ = await _hotel(seed)
    transfer = await seed.variant("Airport Transfer")
    await seed.master_rate(transfer, "40.00")
    tour = await seed.variant("City Tour")
    await seed.master_rate(tour, "60.00")
    guide = await seed.supplier("Guided Walks")
    await seed.allocation(tour, guide, 10, "30.00")
    room_id, transfer_id, tour_id = room.id, transfer.id, tour.id

    service = BookingService(test_session)
    await service.create_booking(
        seed.org_id,
        _create_request((room_id, SERVICE_DATE, 1), passengers=[{"full_name": "Grace Hopper"}]),
    )
    before = await _table_snapshot(test_session)

    with pytest.raises(NoSupplierAvailableError) as exc_info:
        await service.create_booking(
            seed.org_id,
            _create_request(
                (room_id, SERVICE_DATE, 2),
                (transfer_id, SERVICE_DATE, 1),
                (tour_id, SERVICE_DATE, 1),
                passengers=[{"full_name": "Alan Turing", "is_lead": True}],
            ),
        )

    assert exc_info.value.item_index == 1
    assert exc_info.value.best_available == 0
    assert await _table_snapshot(test_session) == before


@pytest.mark.asyncio
async def test_stay_books_every_night(test_session, seed):
    """A three-night stay takes units on each night's record and prices the whole stay."""
    variant = await seed.variant()
    await seed.master_rate(variant, "150.00")
    await seed.master_rate(variant, "180.00", valid_from=THIRD_DATE, valid_to=THIRD_DATE, priority=500)
    supplier = await seed.supplier("Hotel Direct")
    records = [
        await seed.allocation(variant, supplier, 5, "100.00", service_date=SERVICE_DATE),
        await seed.allocation(variant, supplier, 5, "100.00", service_date=NEXT_DATE),
        await seed.allocation(variant, supplier, 5, "120.00", service_date=THIRD_DATE),
    ]
    variant_id, record_ids = variant.id, [record.id for record in records]

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _stay_request(variant_id, SERVICE_DATE, THIRD_DATE, 2))

    item = result.items[0]
    assert item.service_start == SERVICE_DATE
    assert item.service_end == THIRD_DATE
    assert item.allocation_record_id == record_ids[0]
    assert item.unit_cost == Decimal("320.00")
    assert item.unit_price == Decimal("480.00")
    assert item.margin == Decimal("160.00")
    assert item.total_price == Decimal("960.00")
    assert result.total_cost == Decimal("640.00")

    assert [night.service_date for night in item.nights] == [SERVICE_DATE, NEXT_DATE, THIRD_DATE]
    assert [night.allocation_record_id for night in item.nights] == record_ids
    assert [night.unit_price for night in item.nights] == [
        Decimal("150.00"), Decimal("150.00"), Decimal("180.00")
    ]

    for record_id in record_ids:
        assert (await seed.reload(AllocationRecord, record_id)).booked == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("gap, gap_date", [
    ("stop_sell", NEXT_DATE),
    ("blackout", NEXT_DATE),
    ("missing", THIRD_DATE),
])
async def test_stay_with_unsellable_night_books_nothing(test_session, seed, gap, gap_date):
    """A stay is refused whole when any night is flagged or has no record."""
    variant = await seed.variant()
    await seed.master_rate(variant, "150.00")
    supplier = await seed.supplier("Hotel Direct")
    first = await seed.allocation(variant, supplier, 1, "100.00", service_date=SERVICE_DATE)
    for night in (NEXT_DATE, THIRD_DATE):
        if night != gap_date:
            await seed.allocation(variant, supplier, 5, "100.00", service_date=night)
        elif gap != "missing":
            await seed.allocation(variant, supplier, 5, "100.00", service_date=night, **{gap: True})
    variant_id, first_id = variant.id, first.id

    service = BookingService(test_session)

    with pytest.raises(NoSupplierAvailableError) as exc_info:
        await service.create_booking(seed.org_id, _stay_request(variant_id, SERVICE_DATE, THIRD_DATE, 1))

    assert exc_info.value.item_index == 0
    assert exc_info.value.service_date == gap_date
    assert exc_info.value.best_available == 0
    assert (await seed.reload(AllocationRecord, first_id)).booked == 0
    assert (await test_session.execute(select(Booking))).scalars().all() == []


@pytest.mark.asyncio
async def test_stay_is_served_by_one_supplier(test_session, seed):
    """A preferred supplier missing one night loses to a supplier covering the whole stay."""
    variant = await seed.variant()
    await seed.master_rate(variant, "150.00")
    preferred = await seed.supplier("Preferred Hotel")
    fallback = await seed.supplier("Fallback Hotel")
    await seed.supplier_rate(variant, preferred, "80.00", priority=200)
    await seed.supplier_rate(variant, fallback, "100.00", priority=100)
    for night in (SERVICE_DATE, NEXT_DATE):
        await seed.allocation(variant, preferred, 5, "80.00", service_date=night)
    for night in (SERVICE_DATE, NEXT_DATE, THIRD_DATE):
        await seed.allocation(variant, fallback, 5, "100.00", service_date=night)
    variant_id, fallback_id = variant.id, fallback.id

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _stay_request(variant_id, SERVICE_DATE, THIRD_DATE, 1))

    assert result.items[0].supplier_id == fallback_id
    assert len(result.items[0].nights) == 3


@pytest.mark.asyncio
async def test_pooled_stay_draws_on_pool_each_night(test_session, seed):
    """Nights sharing a pool consume it once per night."""
    variant = await seed.variant()
    await seed.master_rate(variant, "150.00")
    supplier = await seed.supplier("Pooled Hotel")
    pool = await seed.pool(quantity=4)
    await seed.allocation(variant, supplier, 10, "100.00", service_date=SERVICE_DATE, pool=pool)
    await seed.allocation(variant, supplier, 10, "100.00", service_date=NEXT_DATE, pool=pool)
    variant_id, pool_id = variant.id, pool.id

    service = BookingService(test_session)

    with pytest.raises(NoSupplierAvailableError) as exc_info:
        await service.create_booking(seed.org_id, _stay_request(variant_id, SERVICE_DATE, NEXT_DATE, 3))
    assert exc_info.value.service_date == SERVICE_DATE
    assert (await seed.reload(InventoryPool, pool_id)).booked == 0

    await service.create_booking(seed.org_id, _stay_request(variant_id, SERVICE_DATE, NEXT_DATE, 2))
    assert (await seed.reload(InventoryPool, pool_id)).booked == 4


@pytest.mark.asyncio
async def test_cancel_stay_releases_every_night(test_session, seed):
    variant = await seed.variant()
    await seed.master_rate(variant, "150.00")
    supplier = await seed.supplier("Hotel Direct")
    records = [
        await seed.allocation(variant, supplier, 5, "100.00", service_date=night)
        for night in (SERVICE_DATE, NEXT_DATE, THIRD_DATE)
    ]
    variant_id, record_ids = variant.id, [record.id for record in records]

    service = BookingService(test_session)
    result = await service.create_booking(seed.org_id, _stay_request(variant_id, SERVICE_DATE, THIRD_DATE, 2))
    await service.cancel_booking(seed.org_id, result.booking_id)

    for record_id in record_ids:
        assert (await seed.reload(AllocationRecord, record_id)).booked == 0


@pytest.mark.asyncio
async def test_booking_audit_requires_existing_booking(test_session, seed):
    service = BookingService(test_session)

    with pytest.raises(NotFoundError):
        await service.get_booking_audit(seed.org_id, uuid4())
