"""Booking router for booking operations."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import CallerContext, DatabaseSession, RequiredCaller
from ..schemas.booking import (
    AuditEventResult,
    AvailabilityValidation,
    BookingDetails,
    BookingResult,
    BookingSummary,
    CancelBookingItemsRequest,
    CancelBookingRequest,
    CreateBookingRequest,
    GetBookingRequest,
    ValidateBookingRequest,
)
from ..schemas.common import BOOKING_RESPONSES
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=BOOKING_RESPONSES)


@router.post("/create", response_model=BookingResult)
async def create_booking(
    request: CreateBookingRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Create a multi-item booking.

    Every item is assigned a supplier and its capacity is consumed in one
    transaction. Any failing item aborts the whole booking.
    """
    booking_service = BookingService(db)
    result = await booking_service.create_booking(caller.org_id, request, actor=caller.user_id)

    logger.info(
        "Booking created",
        extra={
            "booking_id": str(result.booking_id),
            "reference": result.reference,
            "user_id": caller.user_id
        }
    )

    return JSONResponse(
        status_code=200,
        content=result.model_dump(mode="json")
    )


@router.post("/validate", response_model=AvailabilityValidation)
async def validate_booking(
    request: ValidateBookingRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Preview a booking without consuming capacity.

    Returns errors for items that cannot be fulfilled and low-margin warnings.
    """
    booking_service = BookingService(db)
    validation = await booking_service.validate_booking_availability(caller.org_id, request)

    return JSONResponse(
        status_code=200,
        content=validation.model_dump(mode="json")
    )


@router.post("/cancel", response_model=BookingSummary)
async def cancel_booking(
    request: CancelBookingRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Cancel a booking and release its capacity."""
    booking_service = BookingService(db)
    booking = await booking_service.cancel_booking(
        caller.org_id,
        request.booking_id,
        reason=request.reason,
        actor=caller.user_id
    )

    return JSONResponse(
        status_code=200,
        content=BookingSummary.model_validate(booking).model_dump(mode="json")
    )


@router.post("/cancel-items", response_model=BookingSummary)
async def cancel_booking_items(
    request: CancelBookingItemsRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Cancel some of a booking's items and release their capacity."""
    booking_service = BookingService(db)
    booking = await booking_service.cancel_booking_items(
        caller.org_id,
        request.booking_id,
        request.item_ids,
        reason=request.reason,
        actor=caller.user_id
    )

    return JSONResponse(
        status_code=200,
        content=BookingSummary.model_validate(booking).model_dump(mode="json")
    )


@router.post("/get", response_model=BookingDetails)
async def get_booking(
    request: GetBookingRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Get booking details.

    Includes items, passengers and a per-supplier breakdown of confirmed items.
    """
    booking_service = BookingService(db)
    details = await booking_service.get_booking_details(caller.org_id, request.booking_id)

    return JSONResponse(
        status_code=200,
        content=details.model_dump(mode="json")
    )


@router.post("/audit", response_model=list[AuditEventResult])
async def get_booking_audit(
    request: GetBookingRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """List a booking's audit trail, oldest first."""
    booking_service = BookingService(db)
    events = await booking_service.get_booking_audit(caller.org_id, request.booking_id)

    return JSONResponse(
        status_code=200,
        content=[AuditEventResult.model_validate(event).model_dump(mode="json") for event in events]
    )
