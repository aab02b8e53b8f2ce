"""Unit tests for inventory holds."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from allocation_engine.core.config import settings
from allocation_engine.core.exceptions import (
    HoldExpiredError,
    HoldNotActiveError,
    NoSupplierAvailableError,
    NotFoundError,
)
from allocation_engine.models import AllocationRecord, AuditEvent, Booking, Hold, HoldAllocation, HoldStatus
from allocation_engine.schemas.booking import CreateBookingRequest
from allocation_engine.schemas.hold import ConfirmHoldRequest, CreateHoldRequest
from allocation_engine.services.booking_service import BookingService
from allocation_engine.services.hold_service import HoldService, as_utc

SERVICE_DATE = date(2025, 7, 1)
NEXT_DATE = date(2025, 7, 2)


def _hold_request(*items, **kwargs) -> CreateHoldRequest:
    return CreateHoldRequest(
        items=[
            {
                "product_variant_id": variant_id,
                "service_start": start,
                "service_end": end,
                "quantity": quantity,
            }
            for variant_id, start, end, quantity in items
        ],
        **kwargs,
    )


async def _two_night_hotel(seed, capacity: int = 3):
    variant = await seed.variant()
    await seed.master_rate(variant, "150.00")
    supplier = await seed.supplier("Hotel Direct")
    records = [
        await seed.allocation(variant, supplier, capacity, "100.00", service_date=night)
        for night in (SERVICE_DATE, NEXT_DATE)
    ]
    return variant, supplier, [record.id for record in records]


async def _expire_now(seed, hold_id):
    hold = await seed.reload(Hold, hold_id)
    hold.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    await seed.session.commit()


@pytest.mark.asyncio
async def test_create_hold_marks_units_held(test_session, seed):
    """A hold takes units in the held counter on every night and books nothing."""
    variant, supplier, record_ids = await _two_night_hotel(seed)

    service = HoldService(test_session)
    before = datetime.now(timezone.utc)
    hold = await service.create_hold(
        seed.org_id, _hold_request((variant.id, SERVICE_DATE, NEXT_DATE, 2)), actor="user-1"
    )

    assert hold.status == HoldStatus.ACTIVE
    assert as_utc(hold.expires_at) >= before + timedelta(seconds=settings.hold_ttl_seconds)
    assert [allocation.allocation_record_id for allocation in hold.allocations] == record_ids
    assert {allocation.supplier_id for allocation in hold.allocations} == {supplier.id}

    for record_id in record_ids:
        fresh = await seed.reload(AllocationRecord, record_id)
        assert (fresh.booked, fresh.held) == (0, 2)
    assert (await test_session.execute(select(Booking))).scalars().all() == []


@pytest.mark.asyncio
async def test_held_units_are_not_sold_twice(test_session, seed):
    variant, _, _ = await _two_night_hotel(seed, capacity=2)
    variant_id = variant.id

    await HoldService(test_session).create_hold(
        seed.org_id, _hold_request((variant_id, SERVICE_DATE, SERVICE_DATE, 2))
    )

    with pytest.raises(NoSupplierAvailableError):
        await BookingService(test_session).create_booking(
            seed.org_id,
            CreateBookingRequest(items=[
                {"product_variant_id": variant_id, "service_start": SERVICE_DATE, "quantity": 1}
            ]),
        )


@pytest.mark.asyncio
async def test_failed_hold_holds_nothing(test_session, seed):
    """An unfulfillable line rolls back the units held for earlier lines."""
    variant, _, record_ids = await _two_night_hotel(seed)
    empty = await seed.variant("Empty Room")
    await seed.master_rate(empty, "150.00")
    variant_id, empty_id = variant.id, empty.id

    with pytest.raises(NoSupplierAvailableError) as exc_info:
        await HoldService(test_session).create_hold(
            seed.org_id,
            _hold_request(
                (variant_id, SERVICE_DATE, NEXT_DATE, 1),
                (empty_id, SERVICE_DATE, SERVICE_DATE, 1),
            ),
        )

    assert exc_info.value.item_index == 1
    for record_id in record_ids:
        assert (await seed.reload(AllocationRecord, record_id)).held == 0
    assert (await test_session.execute(select(Hold))).scalars().all() == []
    assert (await test_session.execute(select(HoldAllocation))).scalars().all() == []


@pytest.mark.asyncio
async def test_confirm_hold_books_at_held_prices(test_session, seed):
    """Confirmation moves held units to booked and keeps the prices fixed at hold time."""
    variant, supplier, record_ids = await _two_night_hotel(seed)

    service = HoldService(test_session)
    hold = await service.create_hold(
        seed.org_id,
        _hold_request((variant.id, SERVICE_DATE, NEXT_DATE, 2), reference="HOLD-001", channel="agent"),
    )
    hold_id = hold.id

    # A later price change does not reach the held stay
    await seed.master_rate(variant, "400.00", priority=900)

    confirmed, booking = await service.confirm_hold(
        seed.org_id,
        ConfirmHoldRequest(hold_id=hold_id, passengers=[{"full_name": "Ada Lovelace", "is_lead": True}]),
        actor="user-2",
    )

    assert confirmed.status == HoldStatus.CONFIRMED
    assert confirmed.booking_id == booking.booking_id
    assert confirmed.resolved_at is not None
    assert booking.reference == "HOLD-001"
    assert booking.items[0].supplier_id == supplier.id
    assert booking.items[0].unit_price == Decimal("300.00")
    assert booking.items[0].unit_cost == Decimal("200.00")
    assert booking.total_price == Decimal("600.00")
    assert [night.allocation_record_id for night in booking.items[0].nights] == record_ids

    for record_id in record_ids:
        fresh = await seed.reload(AllocationRecord, record_id)
        assert (fresh.booked, fresh.held) == (2, 0)

    stored = await BookingService(test_session).get_booking(seed.org_id, booking.booking_id)
    assert stored.channel == "agent"
    assert stored.created_by == "user-2"
    assert [p.full_name for p in stored.passengers] == ["Ada Lovelace"]


@pytest.mark.asyncio
async def test_confirm_twice_is_refused(test_session, seed):
    variant, _, record_ids = await _two_night_hotel(seed)

    service = HoldService(test_session)
    hold = await service.create_hold(seed.org_id, _hold_request((variant.id, SERVICE_DATE, SERVICE_DATE, 1)))
    hold_id = hold.id
    await service.confirm_hold(seed.org_id, ConfirmHoldRequest(hold_id=hold_id))

    with pytest.raises(HoldNotActiveError) as exc_info:
        await service.confirm_hold(seed.org_id, ConfirmHoldRequest(hold_id=hold_id))

    assert exc_info.value.problem_details["code"] == "HOLD_NOT_ACTIVE"
    assert exc_info.value.problem_details["hold_status"] == "confirmed"
    assert (await seed.reload(AllocationRecord, record_ids[0])).booked == 1
    assert len((await test_session.execute(select(Booking))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_expired_hold_cannot_be_confirmed_and_is_swept(test_session, seed):
    """An overdue hold is refused, keeps its units until the sweep, then gives them back."""
    variant, _, record_ids = await _two_night_hotel(seed)

    service = HoldService(test_session)
    hold = await service.create_hold(seed.org_id, _hold_request((variant.id, SERVICE_DATE, NEXT_DATE, 2)))
    hold_id = hold.id
    await _expire_now(seed, hold_id)

    with pytest.raises(HoldExpiredError) as exc_info:
        await service.confirm_hold(seed.org_id, ConfirmHoldRequest(hold_id=hold_id))

    assert exc_info.value.problem_details["code"] == "HOLD_EXPIRED"
    assert exc_info.value.problem_details["retryable"] is False
    assert (await seed.reload(AllocationRecord, record_ids[0])).held == 2

    assert await service.expire_holds(seed.org_id) == 1
    assert await service.expire_holds(seed.org_id) == 0

    for record_id in record_ids:
        assert (await seed.reload(AllocationRecord, record_id)).held == 0
    swept = await seed.reload(Hold, hold_id)
    assert swept.status == HoldStatus.EXPIRED

    with pytest.raises(HoldNotActiveError):
        await service.confirm_hold(seed.org_id, ConfirmHoldRequest(hold_id=hold_id))


@pytest.mark.asyncio
async def test_sweep_leaves_live_holds_alone(test_session, seed):
    variant, _, record_ids = await _two_night_hotel(seed)

    service = HoldService(test_session)
    short =await service.create_hold(
        seed.org_id, _hold_request((variant.id, SERVICE_DATE, SERVICE_DATE, 1), ttl_seconds=600)
    )
    long = await service.create_hold(
        seed.org_id, _hold_request((variant.id, SERVICE_DATE, SERVICE_DATE, 1), ttl_seconds=7200)
    )
    short_id, long_id = short.id, long.id

    expired = await service.expire_holds(seed.org_id, now=datetime.now(timezone.utc) + timedelta(hours=1))

    assert expired == 1
    assert (await seed.reload(Hold, short_id)).status == HoldStatus.EXPIRED
    assert (await seed.reload(Hold, long_id)).status == HoldStatus.ACTIVE
    assert (await seed.reload(AllocationRecord, record_ids[0])).held == 1


@pytest.mark.asyncio
async def test_release_hold_returns_units(test_session, seed):
    variant, _, record_ids = await _two_night_hotel(seed)

    service = HoldService(test_session)
    hold = await service.create_hold(seed.org_id, _hold_request((variant.id, SERVICE_DATE, NEXT_DATE, 3)))
    hold_id = hold.id

    released = await service.release_hold(seed.org_id, hold_id, actor="user-1")

    assert released.status == HoldStatus.RELEASED
    for record_id in record_ids:
        assert (await seed.reload(AllocationRecord, record_id)).held == 0

    with pytest.raises(HoldNotActiveError):
        await service.release_hold(seed.org_id, hold_id)


@pytest.mark.asyncio
async def test_unknown_or_foreign_hold_is_not_found(test_session, seed):
    variant, _, _ = await _two_night_hotel(seed)

    service = HoldService(test_session)
    hold = await service.create_hold(seed.org_id, _hold_request((variant.id, SERVICE_DATE, SERVICE_DATE, 1)))

    with pytest.raises(NotFoundError):
        await service.get_hold(seed.org_id, uuid4())
    with pytest.raises(NotFoundError):
        await service.confirm_hold(uuid4(), ConfirmHoldRequest(hold_id=hold.id))


@pytest.mark.asyncio
async def test_hold_lifecycle_is_audited(test_session, seed):
    variant, _, _ = await _two_night_hotel(seed)

    service = HoldService(test_session)
    hold = await service.create_hold(
        seed.org_id, _hold_request((variant.id, SERVICE_DATE, SERVICE_DATE, 1)), actor="user-1"
    )
    hold_id = hold.id
    _, booking = await service.confirm_hold(seed.org_id, ConfirmHoldRequest(hold_id=hold_id), actor="user-1")

    events = (await test_session.execute(select(AuditEvent))).scalars().all()
    actions = {(event.entity_type, event.entity_id, event.action) for event in events}

    assert actions == {
        ("hold", str(hold_id), "create"),
        ("hold", str(hold_id), "confirm"),
        ("booking", str(booking.booking_id), "create"),
    }
